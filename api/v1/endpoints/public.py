from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from api.v1.deps import get_availability_service, get_booking_repository, get_state_machine
from core.errors import BookingNotFoundError
from models.base import as_utc
from models.slot import WorkingHours
from repositories.bookings import BookingRepository
from schemas.public import (
    AvailabilityResponse,
    BookingCreateRequest,
    BookingCreateResponse,
    BookingStatusResponse,
)
from services.availability import AvailabilityService
from services.bookings import BookingStateMachine


router = APIRouter(tags=["public"])


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    calendar_ids: list[str] = Query(default=[]),
    start: datetime | None = None,
    end: datetime | None = None,
    days: int = Query(default=7, ge=1, le=60),
    duration_minutes: int | None = Query(default=None, gt=0, le=480),
    start_hour: int | None = Query(default=None, ge=0, le=23),
    end_hour: int | None = Query(default=None, ge=1, le=24),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    # Open slots grouped by local date; falls back to plain working hours when the calendar is unavailable
    window_start = as_utc(start) if start else datetime.now(timezone.utc)
    window_end = as_utc(end) if end else window_start + timedelta(days=days)
    if window_end <= window_start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must be after start")

    hours = None
    if start_hour is not None or end_hour is not None:
        defaults = service.default_working_hours()
        try:
            hours = WorkingHours(
                start_hour=defaults.start_hour if start_hour is None else start_hour,
                end_hour=defaults.end_hour if end_hour is None else end_hour,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_hour must be after start_hour") from exc

    result = await service.find_slots(
        calendar_ids=calendar_ids,
        window_start=window_start,
        window_end=window_end,
        duration_minutes=duration_minutes,
        working_hours=hours,
    )
    return AvailabilityResponse(
        source=result.source,
        timezone=result.timezone,
        total=len(result.slots),
        slots=result.by_date(),
    )


@router.post("/bookings", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreateRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> BookingCreateResponse:
    outcome = await machine.request(
        patient_name=payload.patient_name,
        email=str(payload.email),
        requested_date=payload.requested_date,
        phone=payload.phone,
        service_type=payload.service_type,
        medical_history=payload.medical_history,
        current_concerns=payload.current_concerns,
        special_requests=payload.special_requests,
    )
    return BookingCreateResponse(
        message="Booking request received",
        booking_id=outcome.booking.id,
        status=outcome.booking.status,
        admin_notified=bool(outcome.notification and outcome.notification.delivered),
    )


@router.get("/bookings/{booking_id}", response_model=BookingStatusResponse)
async def get_booking_status(
    booking_id: str,
    repository: BookingRepository = Depends(get_booking_repository),
) -> BookingStatusResponse:
    booking = await repository.get(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return BookingStatusResponse.from_booking(booking)
