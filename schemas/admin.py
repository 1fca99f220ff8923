from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.errors import remediation_for
from models.booking import Booking
from models.notification import DispatchResult


class ConfirmBookingRequest(BaseModel):
    confirmed_date: datetime


class RejectBookingRequest(BaseModel):
    reason: str = Field(min_length=1)


class RescheduleBookingRequest(BaseModel):
    new_date: datetime
    reason: Optional[str] = None


class CancelBookingRequest(BaseModel):
    reason: str = Field(min_length=1)


class BookingListResponse(BaseModel):
    items: List[Booking]
    total: int


class TransitionResponse(BaseModel):
    booking: Booking
    meeting_link: Optional[str] = None
    meeting_error: Optional[Dict[str, Any]] = None
    notification: Optional[DispatchResult] = None


class BookingDetailResponse(BaseModel):
    booking: Booking
    meeting_error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingDetailResponse":
        error = None
        if booking.meeting_error:
            error = {
                "error": booking.meeting_error_kind,
                "message": booking.meeting_error,
                "detail": booking.meeting_error_detail,
                "remediation": remediation_for(booking.meeting_error_kind),
            }
        return cls(booking=booking, meeting_error=error)
