from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator, model_validator

from .base import MongoModel, as_utc


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    rejected = "rejected"
    rescheduled = "rescheduled"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self]


VALID_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
    BookingStatus.pending: {BookingStatus.confirmed, BookingStatus.rejected, BookingStatus.cancelled},
    BookingStatus.confirmed: {BookingStatus.rescheduled, BookingStatus.cancelled},
    BookingStatus.rescheduled: {BookingStatus.confirmed, BookingStatus.cancelled},
    BookingStatus.rejected: set(),  # terminal
    BookingStatus.cancelled: set(),  # terminal
}


def can_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return to_status in VALID_TRANSITIONS.get(from_status, set())


class MeetingState(str, Enum):
    not_requested = "not_requested"
    requested = "requested"
    created = "created"
    missing_link = "missing_link"
    failed = "failed"


class StatusChange(BaseModel):
    from_status: Optional[BookingStatus] = None
    to_status: BookingStatus
    at: datetime
    reason: Optional[str] = None


class Booking(MongoModel):
    id: str = Field(alias="_id")
    patient_name: str
    email: str
    phone: Optional[str] = None
    service_type: str = "General Consultation"
    requested_date: datetime
    confirmed_date: Optional[datetime] = None
    medical_history: Optional[str] = None
    current_concerns: Optional[str] = None
    special_requests: Optional[str] = None
    status: BookingStatus = BookingStatus.pending

    # Meeting provisioning outcome
    meeting_state: MeetingState = MeetingState.not_requested
    meeting_link: Optional[str] = None
    meeting_resource_id: Optional[str] = None
    conference_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    meeting_revision: int = 0
    meeting_error: Optional[str] = None
    meeting_error_kind: Optional[str] = None
    meeting_error_detail: Optional[str] = None
    meeting_requested_at: Optional[datetime] = None
    meeting_created_at: Optional[datetime] = None

    # Admin decisions
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    reschedule_reason: Optional[str] = None
    previous_date: Optional[datetime] = None
    status_history: List[StatusChange] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "requested_date",
        "confirmed_date",
        "previous_date",
        "meeting_requested_at",
        "meeting_created_at",
        "created_at",
        "updated_at",
        mode="after",
    )
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @model_validator(mode="after")
    def _meeting_fields_paired(self) -> "Booking":
        if bool(self.meeting_link) != bool(self.meeting_resource_id):
            raise ValueError("meeting_link and meeting_resource_id must be set together")
        return self

    @property
    def appointment_date(self) -> datetime:
        return self.confirmed_date or self.requested_date

    @property
    def has_meeting(self) -> bool:
        return bool(self.meeting_link)
