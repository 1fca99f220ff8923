from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateMeetingRequest(CamelModel):
    booking_id: str = Field(min_length=1)
    patient_email: EmailStr
    patient_name: str = ""
    appointment_date_time: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    service_type: str = "General Consultation"


class CreateMeetingResponse(CamelModel):
    success: bool = True
    meeting_link: Optional[str] = None
    event_id: str
    conference_id: Optional[str] = None
    message: str
