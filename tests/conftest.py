"""Shared fixtures: in-memory booking store, fake calendar, recording mail transport."""
from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from core.config import settings
from core.errors import IntegrationErrorKind, ProvisioningError
from models.booking import Booking, BookingStatus, StatusChange
from models.meeting import MeetingDetails
from repositories.base import utcnow
from repositories.bookings import _to_mongo, to_document
from services.bookings import BookingStateMachine
from services.calendar.provisioner import event_id_for, idempotency_key
from services.notifications.dispatcher import NotificationDispatcher


FIXED_NOW = datetime(2026, 10, 20, 12, 0, tzinfo=timezone.utc)  # a Tuesday


class InMemoryBookingRepository:
    """Dict-backed stand-in for BookingRepository with the same compare-and-swap contract."""

    collection = "bookings"

    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}

    def seed(self, booking: Booking) -> Booking:
        self.docs[booking.id] = to_document(booking)
        return booking

    def _load(self, doc: Dict[str, Any]) -> Booking:
        return Booking(**copy.deepcopy(doc))

    async def get(self, booking_id: str) -> Optional[Booking]:
        doc = self.docs.get(booking_id)
        return self._load(doc) if doc else None

    async def create(self, booking: Booking) -> Booking:
        self.docs[booking.id] = to_document(booking)
        return self._load(self.docs[booking.id])

    async def list(self, *, status: Optional[BookingStatus] = None, limit: int = 100, skip: int = 0) -> List[Booking]:
        docs = [d for d in self.docs.values() if status is None or d["status"] == status.value]
        return [self._load(d) for d in docs[skip : skip + limit]]

    async def count_many(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        status = (query or {}).get("status")
        return len([d for d in self.docs.values() if status is None or d["status"] == status])

    async def transition(self, booking_id, expected, target, *, fields=None, reason=None) -> Optional[Booking]:
        doc = self.docs.get(booking_id)
        if doc is None or doc["status"] != expected.value:
            return None
        doc.update(_to_mongo({**(fields or {}), "status": target}))
        change = StatusChange(from_status=expected, to_status=target, at=utcnow(), reason=reason)
        doc.setdefault("status_history", []).append(_to_mongo(change.model_dump()))
        doc["updated_at"] = utcnow()
        return self._load(doc)

    async def record_meeting(self, booking_id, fields, *, expected_status=None) -> Optional[Booking]:
        doc = self.docs.get(booking_id)
        if doc is None or (expected_status is not None and doc["status"] != expected_status.value):
            return None
        doc.update(_to_mongo(fields))
        doc["updated_at"] = utcnow()
        return self._load(doc)


class FakeProvisioner:
    def __init__(self, *, error: Optional[BaseException] = None, link: bool = True) -> None:
        self.error = error
        self.link = link
        self.calls: List[Dict[str, Any]] = []

    async def provision(self, booking_id, patient_email, admin_email, start, duration_minutes, service_type, **kwargs):
        self.calls.append(
            {
                "booking_id": booking_id,
                "patient_email": patient_email,
                "admin_email": admin_email,
                "start": start,
                "duration_minutes": duration_minutes,
                **kwargs,
            }
        )
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        event_id = event_id_for(idempotency_key(booking_id, kwargs.get("revision", 0)))
        if not self.link:
            return MeetingDetails(calendar_event_id=event_id)
        return MeetingDetails(
            calendar_event_id=event_id,
            meeting_link=f"https://meet.google.com/abc-{len(self.calls)}",
            conference_id=f"abc-{len(self.calls)}",
        )


class FakeCalendarSession:
    """Calendar API double keyed by event id; duplicate inserts fail with 409 like the real API."""

    calendar_id = "primary"

    def __init__(
        self,
        *,
        verify_error: Optional[ProvisioningError] = None,
        insert_error: Optional[ProvisioningError] = None,
        attach_link: bool = True,
        link_on_patch: bool = True,
        freebusy: Optional[Dict[str, Any]] = None,
        freebusy_error: Optional[BaseException] = None,
    ) -> None:
        self.verify_error = verify_error
        self.insert_error = insert_error
        self.attach_link = attach_link
        self.link_on_patch = link_on_patch
        self.freebusy = freebusy or {"calendars": {}}
        self.freebusy_error = freebusy_error
        self.events: Dict[str, Dict[str, Any]] = {}
        self.inserted: List[Dict[str, Any]] = []
        self.patched: List[Dict[str, Any]] = []
        self.freebusy_calls: List[List[str]] = []
        self.verify_calls = 0
        self.is_open = True
        self.verified_at: Optional[datetime] = None

    @property
    def is_authenticated(self) -> bool:
        return self.is_open and self.verify_error is None

    @staticmethod
    def _conference(event_id: str) -> Dict[str, Any]:
        conference_id = f"meet-{event_id[:10]}"
        return {
            "conferenceId": conference_id,
            "entryPoints": [
                {"entryPointType": "phone", "uri": "tel:+1-555-0100"},
                {"entryPointType": "video", "uri": f"https://meet.google.com/{conference_id}"},
            ],
        }

    async def verify(self) -> None:
        self.verify_calls += 1
        if self.verify_error is not None:
            raise self.verify_error
        self.verified_at = FIXED_NOW

    async def insert_event(self, body: Dict[str, Any], *, send_updates: str = "all") -> Dict[str, Any]:
        self.inserted.append(body)
        if self.insert_error is not None:
            raise self.insert_error
        if body["id"] in self.events:
            raise ProvisioningError(IntegrationErrorKind.internal, "The requested identifier already exists.", status=409)
        event: Dict[str, Any] = {"id": body["id"], "htmlLink": f"https://calendar.example/{body['id']}"}
        if self.attach_link:
            event["conferenceData"] = self._conference(body["id"])
        self.events[body["id"]] = event
        return copy.deepcopy(event)

    async def get_event(self, event_id: str) -> Dict[str, Any]:
        if event_id not in self.events:
            raise ProvisioningError(IntegrationErrorKind.not_found, "Not Found", status=404)
        return copy.deepcopy(self.events[event_id])

    async def patch_event(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.patched.append(body)
        event = self.events[event_id]
        if self.link_on_patch:
            event["conferenceData"] = self._conference(event_id)
        return copy.deepcopy(event)

    async def query_freebusy(self, calendar_ids, time_min, time_max, *, timeout=None) -> Dict[str, Any]:
        self.freebusy_calls.append(list(calendar_ids))
        if self.freebusy_error is not None:
            raise self.freebusy_error
        return self.freebusy

    async def list_calendars(self, min_access_role: str = "writer") -> List[Dict[str, Any]]:
        return [{"id": "primary", "summary": "Clinic", "primary": True, "access_role": "owner", "time_zone": "UTC"}]


class RecordingTransport:
    def __init__(self, *, ok: bool = True, error: str = "smtp unavailable", raises: Optional[BaseException] = None) -> None:
        self.ok = ok
        self.error = error
        self.raises = raises
        self.sent: List[Dict[str, Any]] = []

    def send(self, to_email, subject, body, html=None, cc=None, reply_to=None):
        self.sent.append({"to": to_email, "subject": subject, "body": body, "html": html, "cc": list(cc or [])})
        if self.raises is not None:
            raise self.raises
        if self.ok:
            return True, f"<msg-{len(self.sent)}@test>"
        return False, self.error


@pytest.fixture
def cfg():
    return settings.model_copy(
        update={
            "admin_email": "admin@clinic.test",
            "clinic_name": "Test Clinic",
            "clinic_timezone": "UTC",
            "calendar_enabled": True,
            "consultation_duration_minutes": 60,
            "slot_duration_minutes": 60,
            "working_hours_start": 9,
            "working_hours_end": 17,
            "provisioning_timeout_seconds": 2.0,
            "notification_timeout_seconds": 2.0,
            "freebusy_timeout_seconds": 2.0,
            "support_phone": None,
            "admin_dashboard_url": "",
        }
    )


@pytest.fixture
def repository():
    return InMemoryBookingRepository()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(transport, cfg):
    return NotificationDispatcher(transport, cfg)


@pytest.fixture
def machine(repository, provisioner, dispatcher, cfg):
    return BookingStateMachine(repository, provisioner, dispatcher, cfg, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_booking(repository):
    counter = {"n": 0}

    def _make(status: BookingStatus = BookingStatus.pending, **overrides: Any) -> Booking:
        counter["n"] += 1
        data: Dict[str, Any] = {
            "_id": overrides.pop("booking_id", f"B{counter['n']}"),
            "patient_name": "Priya Nair",
            "email": "priya@example.com",
            "phone": "+91 90000 00000",
            "service_type": "General Consultation",
            "requested_date": datetime(2026, 10, 22, 10, 0, tzinfo=timezone.utc),
            "status": status,
            "created_at": FIXED_NOW,
            "updated_at": FIXED_NOW,
        }
        data.update(overrides)
        return repository.seed(Booking(**data))

    return _make
