from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from schemas.meetings import CamelModel


class SendNotificationRequest(CamelModel):
    type: str
    booking_id: str = Field(min_length=1)
    patient_email: EmailStr
    patient_name: str = Field(min_length=1)
    appointment_date_time: Optional[datetime] = None
    service_type: str = "General Consultation"
    phone: Optional[str] = None
    rejection_reason: Optional[str] = None
    reschedule_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    old_date_time: Optional[datetime] = None
    new_date_time: Optional[datetime] = None
    meet_link: Optional[str] = None
    medical_history: Optional[str] = None
    current_concerns: Optional[str] = None

    def reason(self) -> Optional[str]:
        return self.rejection_reason or self.reschedule_reason or self.cancellation_reason


class NotificationSummary(CamelModel):
    type: str
    booking_id: str
    patient_email: str
    sent_at: Optional[datetime] = None


class NotificationResponse(CamelModel):
    success: bool
    notification: NotificationSummary
    error: Optional[str] = None


class AdminNotificationRequest(CamelModel):
    type: str = "new_booking"
    booking_id: str = Field(min_length=1)
    patient_email: EmailStr
    patient_name: str = Field(min_length=1)
    appointment_date_time: datetime
    service_type: str = "General Consultation"
    phone: Optional[str] = None
    medical_history: Optional[str] = None
    current_concerns: Optional[str] = None


class AdminNotificationSummary(CamelModel):
    type: str
    booking_id: str
    patient_name: str
    admin_email: str
    sent_at: Optional[datetime] = None


class AdminNotificationResponse(CamelModel):
    success: bool
    notification: AdminNotificationSummary
    error: Optional[str] = None
