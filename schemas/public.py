from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from models.booking import Booking, BookingStatus


class BookingCreateRequest(BaseModel):
    patient_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    requested_date: datetime
    service_type: Optional[str] = None
    medical_history: Optional[str] = None
    current_concerns: Optional[str] = None
    special_requests: Optional[str] = None


class BookingCreateResponse(BaseModel):
    message: str
    booking_id: str
    status: BookingStatus
    admin_notified: bool


class BookingStatusResponse(BaseModel):
    """What a patient may see about their own booking."""

    booking_id: str
    status: BookingStatus
    service_type: str
    appointment_date: datetime
    meeting_link: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingStatusResponse":
        return cls(
            booking_id=booking.id,
            status=booking.status,
            service_type=booking.service_type,
            appointment_date=booking.appointment_date,
            meeting_link=booking.meeting_link,
            rejection_reason=booking.rejection_reason,
            cancellation_reason=booking.cancellation_reason,
        )


class AvailabilityResponse(BaseModel):
    source: str
    timezone: str
    total: int
    slots: Dict[str, List[Dict[str, Any]]]
