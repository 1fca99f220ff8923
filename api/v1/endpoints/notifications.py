from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.v1.deps import get_dispatcher
from models.notification import VALID_NOTIFICATION_TYPES, NotificationEvent, NotificationType
from schemas.notifications import (
    AdminNotificationRequest,
    AdminNotificationResponse,
    AdminNotificationSummary,
    NotificationResponse,
    NotificationSummary,
    SendNotificationRequest,
)
from services.notifications.dispatcher import NotificationDispatcher


router = APIRouter(prefix="/notifications", tags=["notifications"])


def _respond(body: BaseModel, delivered: bool):
    if not delivered:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=body.model_dump(mode="json", by_alias=True),
        )
    return body


@router.post("", response_model=NotificationResponse, response_model_by_alias=True)
async def send_notification(
    payload: SendNotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    if payload.type not in VALID_NOTIFICATION_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid notification type", "validTypes": VALID_NOTIFICATION_TYPES},
        )

    event = NotificationEvent(
        type=payload.type,
        booking_id=payload.booking_id,
        patient_name=payload.patient_name,
        patient_email=str(payload.patient_email),
        phone=payload.phone,
        service_type=payload.service_type,
        appointment_date=payload.appointment_date_time or payload.new_date_time,
        reason=payload.reason(),
        old_date=payload.old_date_time,
        new_date=payload.new_date_time,
        meeting_link=payload.meet_link,
        medical_history=payload.medical_history,
        current_concerns=payload.current_concerns,
    )
    result = await dispatcher.dispatch(event)
    body = NotificationResponse(
        success=result.delivered,
        notification=NotificationSummary(
            type=result.type,
            booking_id=result.booking_id,
            patient_email=event.patient_email,
            sent_at=result.sent_at,
        ),
        error=result.error,
    )
    return _respond(body, result.delivered)


@router.post("/admin", response_model=AdminNotificationResponse, response_model_by_alias=True)
async def send_admin_notification(
    payload: AdminNotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """New-booking alert to the clinic admin; the only type this route accepts."""
    if payload.type != NotificationType.new_booking.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid notification type", "validTypes": [NotificationType.new_booking.value]},
        )

    event = NotificationEvent(
        type=NotificationType.new_booking.value,
        booking_id=payload.booking_id,
        patient_name=payload.patient_name,
        patient_email=str(payload.patient_email),
        phone=payload.phone,
        service_type=payload.service_type,
        appointment_date=payload.appointment_date_time,
        medical_history=payload.medical_history,
        current_concerns=payload.current_concerns,
    )
    result = await dispatcher.dispatch(event)
    body = AdminNotificationResponse(
        success=result.delivered,
        notification=AdminNotificationSummary(
            type=result.type,
            booking_id=result.booking_id,
            patient_name=payload.patient_name,
            admin_email=dispatcher.cfg.admin_email,
            sent_at=result.sent_at,
        ),
        error=result.error,
    )
    return _respond(body, result.delivered)
