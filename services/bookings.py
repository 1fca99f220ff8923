"""
Booking lifecycle: pending -> confirmed / rejected / cancelled, with
confirmed <-> rescheduled for time changes.

Every transition validates its inputs and the current status first, then
commits through a compare-and-swap on the stored status, and only then runs
side effects (meeting provisioning, notifications). Side-effect failures are
recorded on the booking or returned in the outcome; they never undo a
committed status.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel

from core.config import AppSettings, settings as default_settings
from core.errors import (
    BookingNotFoundError,
    BookingValidationError,
    ProvisioningError,
    TransitionError,
    classify_calendar_error,
)
from models.booking import Booking, BookingStatus, MeetingState, can_transition
from models.meeting import MeetingDetails
from models.notification import DispatchResult, NotificationEvent, NotificationType


logger = logging.getLogger(__name__)

NO_LINK_NOTE = "meeting created without a video link"
NO_LINK_KIND = "no_link"


class TransitionOutcome(BaseModel):
    booking: Booking
    meeting: Optional[MeetingDetails] = None
    meeting_error: Optional[Dict[str, Any]] = None
    notification: Optional[DispatchResult] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise BookingValidationError(f"{field} is required", fields=[field])
    return str(value)


def _require_aware(value: Optional[datetime], field: str) -> datetime:
    if value is None:
        raise BookingValidationError(f"{field} is required", fields=[field])
    if value.tzinfo is None:
        raise BookingValidationError(f"{field} must include a timezone offset", fields=[field])
    return value.astimezone(timezone.utc)


class BookingStateMachine:
    def __init__(
        self,
        repository: Any,
        provisioner: Any,
        dispatcher: Any,
        cfg: AppSettings = default_settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.provisioner = provisioner
        self.dispatcher = dispatcher
        self.cfg = cfg
        self.clock = clock

    # ---------------- helpers ----------------

    async def _load(self, booking_id: str) -> Booking:
        booking = await self.repository.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    @staticmethod
    def _guard(booking: Booking, target: BookingStatus) -> None:
        if not can_transition(booking.status, target):
            raise TransitionError(booking.id, booking.status.value, target.value)

    async def _commit(
        self,
        booking: Booking,
        target: BookingStatus,
        *,
        fields: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> Booking:
        updated = await self.repository.transition(
            booking.id, booking.status, target, fields=fields, reason=reason
        )
        if updated is None:
            current = await self.repository.get(booking.id)
            current_status = current.status.value if current else None
            logger.warning(
                "booking.transition.conflict",
                extra={"booking_id": booking.id, "expected": booking.status.value, "target": target.value, "current": current_status},
            )
            raise TransitionError(
                booking.id,
                current_status,
                target.value,
                f"Booking {booking.id} changed concurrently (now {current_status}); {target.value} not applied",
            )
        logger.info(
            "booking.transition",
            extra={"booking_id": booking.id, "from": booking.status.value, "to": target.value},
        )
        return updated

    async def _provision(
        self, booking: Booking, *, retry: bool = False
    ) -> Tuple[Dict[str, Any], Optional[MeetingDetails], Optional[ProvisioningError]]:
        """Run provisioning once and return the booking fields describing its outcome."""
        try:
            meeting = await self.provisioner.provision(
                booking.id,
                booking.email,
                self.cfg.admin_email,
                booking.appointment_date,
                self.cfg.consultation_duration_minutes,
                booking.service_type,
                patient_name=booking.patient_name,
                revision=booking.meeting_revision,
                retry=retry,
                notes=booking.special_requests,
            )
        except ProvisioningError as exc:
            err = exc
        except Exception as exc:
            logger.exception("booking.meeting.unexpected_error", extra={"booking_id": booking.id})
            err = classify_calendar_error(exc)
        else:
            if meeting.link_missing:
                fields = {
                    "meeting_state": MeetingState.missing_link,
                    "meeting_link": None,
                    "meeting_resource_id": None,
                    "calendar_event_id": meeting.calendar_event_id,
                    "conference_id": meeting.conference_id,
                    "meeting_error": NO_LINK_NOTE,
                    "meeting_error_kind": NO_LINK_KIND,
                    "meeting_error_detail": f"event {meeting.calendar_event_id} has no conference entry point",
                }
            else:
                fields = {
                    "meeting_state": MeetingState.created,
                    "meeting_link": meeting.meeting_link,
                    "meeting_resource_id": meeting.calendar_event_id,
                    "calendar_event_id": meeting.calendar_event_id,
                    "conference_id": meeting.conference_id,
                    "meeting_created_at": self.clock(),
                    "meeting_error": None,
                    "meeting_error_kind": None,
                    "meeting_error_detail": None,
                }
            return fields, meeting, None

        fields = {
            "meeting_state": MeetingState.failed,
            "meeting_error": str(err),
            "meeting_error_kind": err.kind.value,
            "meeting_error_detail": err.detail,
        }
        return fields, None, err

    async def _notify(self, notification_type: NotificationType, booking: Booking, **payload: Any) -> DispatchResult:
        event = NotificationEvent.for_booking(notification_type, booking, **payload)
        return await self.dispatcher.dispatch(event)

    async def _orphaned(self, booking: Booking, meeting: Optional[MeetingDetails]) -> Booking:
        """Record a just-created event on a booking whose status changed underneath it."""
        current = await self._load(booking.id)
        logger.warning(
            "booking.meeting.orphaned",
            extra={
                "booking_id": booking.id,
                "status": current.status.value,
                "calendar_event_id": meeting.calendar_event_id if meeting else None,
            },
        )
        if meeting is None:
            return current
        recorded = await self.repository.record_meeting(
            booking.id,
            {"calendar_event_id": meeting.calendar_event_id, "conference_id": meeting.conference_id},
        )
        return recorded or current

    @staticmethod
    def _error_dict(err: Optional[ProvisioningError]) -> Optional[Dict[str, Any]]:
        return err.to_dict() if err is not None else None

    # ---------------- operations ----------------

    async def request(
        self,
        *,
        patient_name: str,
        email: str,
        requested_date: datetime,
        phone: Optional[str] = None,
        service_type: Optional[str] = None,
        medical_history: Optional[str] = None,
        current_concerns: Optional[str] = None,
        special_requests: Optional[str] = None,
    ) -> TransitionOutcome:
        """Record a new pending booking and alert the admin."""
        _require_text(patient_name, "patient_name")
        _require_text(email, "email")
        requested = _require_aware(requested_date, "requested_date")
        now = self.clock()
        booking = Booking(
            _id=uuid.uuid4().hex,
            patient_name=patient_name.strip(),
            email=email.strip(),
            phone=phone,
            service_type=service_type or "General Consultation",
            requested_date=requested,
            medical_history=medical_history,
            current_concerns=current_concerns,
            special_requests=special_requests,
            status=BookingStatus.pending,
            created_at=now,
            updated_at=now,
        )
        booking = await self.repository.create(booking)
        logger.info("booking.created", extra={"booking_id": booking.id})
        notification = await self._notify(NotificationType.new_booking, booking)
        return TransitionOutcome(booking=booking, notification=notification)

    async def confirm(self, booking_id: str, confirmed_date: datetime) -> TransitionOutcome:
        """pending -> confirmed, then provision the meeting and notify the patient.

        Provisioning failures do not revert the confirmation; they are recorded
        on the booking and returned as ``meeting_error``.
        """
        confirmed_at = _require_aware(confirmed_date, "confirmed_date")
        booking = await self._load(booking_id)
        self._guard(booking, BookingStatus.confirmed)
        _require_text(booking.email, "email")
        _require_text(booking.patient_name, "patient_name")

        booking = await self._commit(
            booking,
            BookingStatus.confirmed,
            fields={
                "confirmed_date": confirmed_at,
                "meeting_state": MeetingState.requested,
                "meeting_requested_at": self.clock(),
                "meeting_error": None,
                "meeting_error_kind": None,
                "meeting_error_detail": None,
            },
        )

        fields, meeting, err = await self._provision(booking)
        recorded = await self.repository.record_meeting(
            booking.id, fields, expected_status=BookingStatus.confirmed
        )
        if recorded is None:
            # Moved on (e.g. cancelled) while provisioning ran
            booking = await self._orphaned(booking, meeting)
            return TransitionOutcome(booking=booking, meeting=meeting, meeting_error=self._error_dict(err))
        booking = recorded

        notification = await self._notify(NotificationType.booking_confirmation, booking)
        return TransitionOutcome(
            booking=booking, meeting=meeting, meeting_error=self._error_dict(err), notification=notification
        )

    async def reject(self, booking_id: str, reason: str) -> TransitionOutcome:
        reason = _require_text(reason, "reason")
        booking = await self._load(booking_id)
        self._guard(booking, BookingStatus.rejected)
        booking = await self._commit(
            booking, BookingStatus.rejected, fields={"rejection_reason": reason}, reason=reason
        )
        notification = await self._notify(NotificationType.booking_rejection, booking, reason=reason)
        return TransitionOutcome(booking=booking, notification=notification)

    async def cancel(self, booking_id: str, reason: str) -> TransitionOutcome:
        reason = _require_text(reason, "reason")
        booking = await self._load(booking_id)
        self._guard(booking, BookingStatus.cancelled)
        booking = await self._commit(
            booking, BookingStatus.cancelled, fields={"cancellation_reason": reason}, reason=reason
        )
        notification = await self._notify(NotificationType.booking_cancellation, booking, reason=reason)
        return TransitionOutcome(booking=booking, notification=notification)

    async def reschedule(
        self, booking_id: str, new_date: datetime, reason: Optional[str] = None
    ) -> TransitionOutcome:
        """confirmed -> rescheduled -> confirmed with a new time and a fresh meeting."""
        new_at = _require_aware(new_date, "new_date")
        booking = await self._load(booking_id)
        self._guard(booking, BookingStatus.rescheduled)
        old_at = booking.appointment_date

        booking = await self._commit(
            booking,
            BookingStatus.rescheduled,
            fields={
                "previous_date": old_at,
                "confirmed_date": new_at,
                "reschedule_reason": reason,
                "meeting_revision": booking.meeting_revision + 1,
                "meeting_state": MeetingState.requested,
                "meeting_requested_at": self.clock(),
                "meeting_link": None,
                "meeting_resource_id": None,
                "conference_id": None,
                "calendar_event_id": None,
                "meeting_error": None,
                "meeting_error_kind": None,
                "meeting_error_detail": None,
            },
            reason=reason,
        )

        fields, meeting, err = await self._provision(booking)
        updated = await self.repository.transition(
            booking.id, BookingStatus.rescheduled, BookingStatus.confirmed, fields=fields, reason=reason
        )
        if updated is None:
            # Cancelled mid-reschedule; the move itself already committed
            booking = await self._orphaned(booking, meeting)
            return TransitionOutcome(booking=booking, meeting=meeting, meeting_error=self._error_dict(err))
        logger.info(
            "booking.transition",
            extra={"booking_id": booking.id, "from": BookingStatus.rescheduled.value, "to": BookingStatus.confirmed.value},
        )
        booking = updated

        notification = await self._notify(
            NotificationType.booking_reschedule, booking, reason=reason, old_date=old_at, new_date=new_at
        )
        return TransitionOutcome(
            booking=booking, meeting=meeting, meeting_error=self._error_dict(err), notification=notification
        )

    async def retry_meeting(self, booking_id: str) -> TransitionOutcome:
        """Re-run provisioning for a confirmed booking that has no meeting link."""
        booking = await self._load(booking_id)
        if booking.status is not BookingStatus.confirmed:
            raise TransitionError(
                booking.id,
                booking.status.value,
                BookingStatus.confirmed.value,
                f"Booking {booking.id} is {booking.status.value}; only confirmed bookings get meetings",
            )
        if booking.has_meeting:
            raise BookingValidationError(
                f"Booking {booking.id} already has a meeting link", fields=["meeting_link"]
            )

        fields, meeting, err = await self._provision(booking, retry=True)
        recorded = await self.repository.record_meeting(
            booking.id, fields, expected_status=BookingStatus.confirmed
        )
        if recorded is None:
            await self._orphaned(booking, meeting)
            raise TransitionError(
                booking.id,
                None,
                BookingStatus.confirmed.value,
                f"Booking {booking.id} left confirmed while its meeting was being created",
            )
        booking = recorded

        notification = None
        if booking.has_meeting:
            notification = await self._notify(NotificationType.booking_confirmation, booking)
        return TransitionOutcome(
            booking=booking, meeting=meeting, meeting_error=self._error_dict(err), notification=notification
        )
