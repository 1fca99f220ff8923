from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.v1.deps import get_booking_repository, get_state_machine
from core.errors import BookingNotFoundError
from models.booking import BookingStatus
from repositories.bookings import BookingRepository
from schemas.admin import (
    BookingDetailResponse,
    BookingListResponse,
    CancelBookingRequest,
    ConfirmBookingRequest,
    RejectBookingRequest,
    RescheduleBookingRequest,
    TransitionResponse,
)
from services.bookings import BookingStateMachine, TransitionOutcome


router = APIRouter(prefix="/admin", tags=["admin"])


def _response(outcome: TransitionOutcome) -> TransitionResponse:
    return TransitionResponse(
        booking=outcome.booking,
        meeting_link=outcome.booking.meeting_link,
        meeting_error=outcome.meeting_error,
        notification=outcome.notification,
    )


@router.get("/bookings", response_model=BookingListResponse)
async def list_bookings(
    status: BookingStatus | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    repository: BookingRepository = Depends(get_booking_repository),
) -> BookingListResponse:
    items = await repository.list(status=status, limit=limit, skip=skip)
    query = {"status": status.value} if status else {}
    total = await repository.count_many(repository.collection, query)
    return BookingListResponse(items=items, total=total)


@router.get("/bookings/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: str,
    repository: BookingRepository = Depends(get_booking_repository),
) -> BookingDetailResponse:
    booking = await repository.get(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return BookingDetailResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/confirm", response_model=TransitionResponse)
async def confirm_booking(
    booking_id: str,
    payload: ConfirmBookingRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> TransitionResponse:
    return _response(await machine.confirm(booking_id, payload.confirmed_date))


@router.post("/bookings/{booking_id}/reject", response_model=TransitionResponse)
async def reject_booking(
    booking_id: str,
    payload: RejectBookingRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> TransitionResponse:
    return _response(await machine.reject(booking_id, payload.reason))


@router.post("/bookings/{booking_id}/reschedule", response_model=TransitionResponse)
async def reschedule_booking(
    booking_id: str,
    payload: RescheduleBookingRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> TransitionResponse:
    return _response(await machine.reschedule(booking_id, payload.new_date, payload.reason))


@router.post("/bookings/{booking_id}/cancel", response_model=TransitionResponse)
async def cancel_booking(
    booking_id: str,
    payload: CancelBookingRequest,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> TransitionResponse:
    return _response(await machine.cancel(booking_id, payload.reason))


@router.post("/bookings/{booking_id}/meeting/retry", response_model=TransitionResponse)
async def retry_meeting(
    booking_id: str,
    machine: BookingStateMachine = Depends(get_state_machine),
) -> TransitionResponse:
    return _response(await machine.retry_meeting(booking_id))
