from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import requests
from dotenv import load_dotenv
from pymongo.database import Database

from core.config import settings
from db.database import close_sync_database, get_sync_database


load_dotenv()

STALE_REQUEST_MINUTES = 10


def find_retryable_bookings(db: Database, limit: int = 100) -> List[Dict[str, Any]]:
    """Confirmed bookings whose meeting failed transiently or never finished provisioning."""
    stale_before = datetime.now(timezone.utc) - timedelta(minutes=STALE_REQUEST_MINUTES)
    return list(
        db[settings.bookings_collection]
        .find(
            {
                "status": "confirmed",
                "meeting_link": None,
                "$or": [
                    {"meeting_state": "failed", "meeting_error_kind": "internal"},
                    {"meeting_state": "requested", "meeting_requested_at": {"$lte": stale_before}},
                ],
            },
            {"_id": 1, "meeting_state": 1, "meeting_error": 1},
        )
        .sort("meeting_requested_at", 1)
        .limit(limit)
    )


def retry_failed_meetings(limit: int = 100) -> int:
    db = get_sync_database()
    base_url = os.getenv("BOOKING_API_BASE_URL", "http://localhost:8000")
    due = find_retryable_bookings(db, limit=limit)
    print(f"[CRON:MEETINGS] Found {len(due)} bookings needing a meeting")

    retried = 0
    for booking in due:
        booking_id = booking["_id"]
        try:
            r = requests.post(f"{base_url}/api/v1/admin/bookings/{booking_id}/meeting/retry", timeout=60)
        except requests.RequestException as exc:
            print(f"[CRON:MEETINGS] Failed booking={booking_id}: {exc}")
            continue
        print(f"[CRON:MEETINGS] POST booking={booking_id} status={r.status_code}")
        if r.ok and (r.json() or {}).get("meeting_link"):
            retried += 1

    print(f"[CRON:MEETINGS] Meetings created for {retried} bookings")
    return retried


def main() -> None:
    try:
        retry_failed_meetings(limit=int(os.getenv("MEETING_RETRY_LIMIT", "100")))
    finally:
        close_sync_database()


if __name__ == "__main__":
    main()
