from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from core.config import settings
from db.database import get_database
from repositories.bookings import BookingRepository
from services.availability import AvailabilityService
from services.bookings import BookingStateMachine
from services.calendar.client import CalendarSession
from services.calendar.provisioner import MeetingProvisioner
from services.notifications.dispatcher import NotificationDispatcher


def get_calendar_session(request: Request) -> Optional[CalendarSession]:
    return getattr(request.app.state, "calendar", None)


async def get_booking_repository() -> BookingRepository:
    db = await get_database()
    return BookingRepository(db)


def get_provisioner(session: Optional[CalendarSession] = Depends(get_calendar_session)) -> MeetingProvisioner:
    return MeetingProvisioner(session, settings)


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(cfg=settings)


def get_availability_service(
    session: Optional[CalendarSession] = Depends(get_calendar_session),
) -> AvailabilityService:
    return AvailabilityService(session, settings)


def get_state_machine(
    repository: BookingRepository = Depends(get_booking_repository),
    provisioner: MeetingProvisioner = Depends(get_provisioner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingStateMachine:
    return BookingStateMachine(repository, provisioner, dispatcher, settings)
