from __future__ import annotations

# Re-export key service classes for convenient imports
from .availability import AvailabilityService, compute_available_slots, generate_fallback_slots
from .bookings import BookingStateMachine, TransitionOutcome
from .calendar.client import CalendarSession
from .calendar.provisioner import MeetingProvisioner
from .notifications.dispatcher import NotificationDispatcher
from .notifications.email import EmailService

__all__ = [
    "AvailabilityService",
    "BookingStateMachine",
    "CalendarSession",
    "EmailService",
    "MeetingProvisioner",
    "NotificationDispatcher",
    "TransitionOutcome",
    "compute_available_slots",
    "generate_fallback_slots",
]
