from __future__ import annotations

from fastapi import APIRouter, Depends

from api.v1.deps import get_provisioner
from core.config import settings
from core.errors import BookingValidationError
from schemas.meetings import CreateMeetingRequest, CreateMeetingResponse
from services.calendar.provisioner import MeetingProvisioner


router = APIRouter(tags=["meetings"])


@router.post("/meetings", response_model=CreateMeetingResponse, response_model_by_alias=True)
async def create_meeting(
    payload: CreateMeetingRequest,
    provisioner: MeetingProvisioner = Depends(get_provisioner),
) -> CreateMeetingResponse:
    if payload.appointment_date_time.tzinfo is None:
        raise BookingValidationError(
            "appointmentDateTime must include a timezone offset", fields=["appointmentDateTime"]
        )
    # Failures surface as ProvisioningError and are rendered by the app-level handler
    meeting = await provisioner.provision(
        payload.booking_id,
        str(payload.patient_email),
        settings.admin_email,
        payload.appointment_date_time,
        payload.duration_minutes or settings.consultation_duration_minutes,
        payload.service_type,
        patient_name=payload.patient_name,
    )
    message = "Meeting created" if not meeting.link_missing else "Meeting created without a video link"
    if meeting.reused:
        message = f"{message} (existing event reused)"
    return CreateMeetingResponse(
        meeting_link=meeting.meeting_link,
        event_id=meeting.calendar_event_id,
        conference_id=meeting.conference_id,
        message=message,
    )
