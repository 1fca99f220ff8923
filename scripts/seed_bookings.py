from __future__ import annotations

import uuid
from datetime import datetime, time, timedelta, timezone
from typing import List

from core.config import settings
from db.database import close_sync_database, get_sync_database
from models.booking import Booking, BookingStatus
from repositories.bookings import to_document


PATIENTS = [
    ("Asha Verma", "asha.verma@example.com", "+91 98100 00001", "General Consultation"),
    ("Rahul Mehta", "rahul.mehta@example.com", "+91 98100 00002", "Nutrition Review"),
    ("Meera Iyer", "meera.iyer@example.com", None, "Follow-up"),
]


def _next_weekday(start: datetime, days_ahead: int) -> datetime:
    day = (start + timedelta(days=days_ahead)).date()
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return datetime.combine(day, time(settings.working_hours_start + days_ahead % 4), tzinfo=timezone.utc)


def build_pending_bookings(now: datetime) -> List[Booking]:
    bookings = []
    for offset, (name, email, phone, service) in enumerate(PATIENTS, start=1):
        bookings.append(
            Booking(
                _id=uuid.uuid4().hex,
                patient_name=name,
                email=email,
                phone=phone,
                service_type=service,
                requested_date=_next_weekday(now, offset),
                current_concerns="Seeded demo booking",
                status=BookingStatus.pending,
                created_at=now,
                updated_at=now,
            )
        )
    return bookings


def seed() -> int:
    db = get_sync_database()
    now = datetime.now(timezone.utc)
    docs = [to_document(b) for b in build_pending_bookings(now)]
    result = db[settings.bookings_collection].insert_many(docs)
    return len(result.inserted_ids)


if __name__ == "__main__":
    try:
        inserted = seed()
        print(f"Seeded {inserted} pending bookings into {settings.database_name}.{settings.bookings_collection}")
    finally:
        close_sync_database()
