from .booking import Booking, BookingStatus, MeetingState
from .meeting import MeetingDetails
from .notification import DispatchResult, NotificationEvent, NotificationType
from .slot import BusyInterval, Slot, WorkingHours

__all__ = [
    "Booking",
    "BookingStatus",
    "MeetingState",
    "MeetingDetails",
    "DispatchResult",
    "NotificationEvent",
    "NotificationType",
    "BusyInterval",
    "Slot",
    "WorkingHours",
]
