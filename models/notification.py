from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .booking import Booking


class NotificationType(str, Enum):
    new_booking = "new_booking"
    booking_confirmation = "booking_confirmation"
    booking_rejection = "booking_rejection"
    booking_reschedule = "booking_reschedule"
    booking_cancellation = "booking_cancellation"


VALID_NOTIFICATION_TYPES = [t.value for t in NotificationType]


class NotificationEvent(BaseModel):
    # Kept as a plain string so unknown types reach the dispatcher and fail there
    type: str
    booking_id: str
    patient_name: str
    patient_email: str
    phone: Optional[str] = None
    service_type: str = "General Consultation"
    appointment_date: Optional[datetime] = None
    reason: Optional[str] = None
    old_date: Optional[datetime] = None
    new_date: Optional[datetime] = None
    meeting_link: Optional[str] = None
    medical_history: Optional[str] = None
    current_concerns: Optional[str] = None

    @classmethod
    def for_booking(cls, notification_type: NotificationType | str, booking: Booking, **payload: Any) -> "NotificationEvent":
        data = {
            "type": NotificationType(notification_type).value
            if isinstance(notification_type, NotificationType)
            else notification_type,
            "booking_id": booking.id,
            "patient_name": booking.patient_name,
            "patient_email": booking.email,
            "phone": booking.phone,
            "service_type": booking.service_type,
            "appointment_date": booking.appointment_date,
            "meeting_link": booking.meeting_link,
            "medical_history": booking.medical_history,
            "current_concerns": booking.current_concerns,
        }
        data.update(payload)
        return cls(**data)


class DispatchResult(BaseModel):
    type: str
    booking_id: str
    delivered: bool
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    recipients: List[str] = Field(default_factory=list)
