"""
Calendar event and video-meeting creation for confirmed bookings.

Provisioning is idempotent per booking: the event id is derived from the
booking id (and its meeting revision), so a repeated call for the same
booking finds the event it already created instead of adding a duplicate.
"""
from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from core.config import AppSettings, settings as default_settings
from core.errors import IntegrationErrorKind, ProvisioningError, classify_calendar_error
from models.meeting import MeetingDetails


logger = logging.getLogger(__name__)

MEET_URL = "https://meet.google.com/{conference_id}"


def idempotency_key(booking_id: str, revision: int = 0) -> str:
    return booking_id if revision <= 0 else f"{booking_id}:r{revision}"


def event_id_for(key: str) -> str:
    # Calendar event ids allow base32hex characters (0-9, a-v), 5-1024 long
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return base64.b32hexencode(digest).decode("ascii").rstrip("=").lower()


def conference_request_id(key: str, attempt_ms: Optional[int] = None) -> str:
    request_id = f"meet-{key}"
    if attempt_ms is not None:
        request_id = f"{request_id}-{attempt_ms}"
    return request_id


def extract_meeting_link(event: Dict[str, Any]) -> Optional[str]:
    """Video entry point, then hangoutLink, then a URL built from the conference id."""
    conference = event.get("conferenceData") or {}
    for entry in conference.get("entryPoints") or []:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    if event.get("hangoutLink"):
        return event["hangoutLink"]
    conference_id = conference.get("conferenceId")
    if conference_id:
        return MEET_URL.format(conference_id=conference_id)
    return None


def build_event_body(
    *,
    event_id: str,
    booking_id: str,
    patient_name: str,
    patient_email: str,
    admin_email: Optional[str],
    start: datetime,
    duration_minutes: int,
    service_type: str,
    request_id: str,
    time_zone: str,
    reminder_minutes: int = 30,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    end = start + timedelta(minutes=duration_minutes)
    description = [
        f"{service_type} consultation",
        f"Patient: {patient_name or patient_email}",
        f"Booking ID: {booking_id}",
    ]
    if notes:
        description.append(f"Notes: {notes}")
    attendees = [{"email": patient_email, "displayName": patient_name or None}]
    if admin_email and admin_email != patient_email:
        attendees.append({"email": admin_email, "organizer": True})
    return {
        "id": event_id,
        "summary": f"{service_type} - {patient_name or patient_email}",
        "description": "\n".join(description),
        "start": {"dateTime": start.isoformat(), "timeZone": time_zone},
        "end": {"dateTime": end.isoformat(), "timeZone": time_zone},
        "attendees": attendees,
        "conferenceData": {
            "createRequest": {
                "requestId": request_id,
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        },
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": reminder_minutes},
            ],
        },
        "extendedProperties": {"private": {"bookingId": booking_id}},
        "guestsCanModify": False,
    }


class MeetingProvisioner:
    def __init__(self, session: Any = None, cfg: AppSettings = default_settings) -> None:
        self.session = session
        self.cfg = cfg

    async def provision(
        self,
        booking_id: str,
        patient_email: str,
        admin_email: Optional[str],
        start: datetime,
        duration_minutes: int,
        service_type: str,
        *,
        patient_name: str = "",
        revision: int = 0,
        retry: bool = False,
        notes: Optional[str] = None,
    ) -> MeetingDetails:
        """Create (or find) the calendar event with a video link for a booking.

        Raises ProvisioningError classified as unauthenticated, forbidden,
        not_found or internal. A created event without a link is returned with
        ``meeting_link=None`` rather than raised.
        """
        if not booking_id or not patient_email:
            raise ValueError("booking_id and patient_email are required")
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if self.session is None or not self.cfg.calendar_enabled:
            raise ProvisioningError(IntegrationErrorKind.unauthenticated, "calendar integration is not connected")

        log_extra = {"booking_id": booking_id, "revision": revision, "retry": retry}
        logger.info("meeting.provision.start", extra=log_extra)
        try:
            meeting = await asyncio.wait_for(
                self._provision(
                    booking_id=booking_id,
                    patient_email=patient_email,
                    patient_name=patient_name,
                    admin_email=admin_email,
                    start=start,
                    duration_minutes=duration_minutes,
                    service_type=service_type,
                    revision=revision,
                    retry=retry,
                    notes=notes,
                ),
                timeout=self.cfg.provisioning_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            err = ProvisioningError(
                IntegrationErrorKind.internal,
                f"provisioning timed out after {self.cfg.provisioning_timeout_seconds:g}s",
                cause=exc,
            )
            logger.error("meeting.provision.failed", extra={**log_extra, "kind": err.kind.value, "detail": err.detail})
            raise err from exc
        except ProvisioningError as err:
            logger.error("meeting.provision.failed", extra={**log_extra, "kind": err.kind.value, "detail": err.detail})
            raise
        except Exception as exc:
            err = classify_calendar_error(exc)
            logger.exception("meeting.provision.failed", extra={**log_extra, "kind": err.kind.value})
            raise err from exc

        if meeting.link_missing:
            logger.warning("meeting.provision.no_link", extra={**log_extra, "event_id": meeting.calendar_event_id})
        else:
            logger.info(
                "meeting.provision.ok",
                extra={**log_extra, "event_id": meeting.calendar_event_id, "reused": meeting.reused},
            )
        return meeting

    async def _provision(
        self,
        *,
        booking_id: str,
        patient_email: str,
        patient_name: str,
        admin_email: Optional[str],
        start: datetime,
        duration_minutes: int,
        service_type: str,
        revision: int,
        retry: bool,
        notes: Optional[str],
    ) -> MeetingDetails:
        await self.session.verify()

        key = idempotency_key(booking_id, revision)
        event_id = event_id_for(key)
        request_id = conference_request_id(key, int(time.time() * 1000) if retry else None)
        body = build_event_body(
            event_id=event_id,
            booking_id=booking_id,
            patient_name=patient_name,
            patient_email=patient_email,
            admin_email=admin_email,
            start=start,
            duration_minutes=duration_minutes,
            service_type=service_type,
            request_id=request_id,
            time_zone=self.cfg.clinic_timezone,
            reminder_minutes=self.cfg.meeting_reminder_minutes,
            notes=notes,
        )

        reused = False
        try:
            event = await self.session.insert_event(body)
        except ProvisioningError as exc:
            if exc.status != 409:
                raise
            # Already created by an earlier attempt for this booking
            reused = True
            event = await self.session.get_event(event_id)
            if retry and not extract_meeting_link(event):
                event = await self.session.patch_event(event_id, {"conferenceData": body["conferenceData"]})

        conference = event.get("conferenceData") or {}
        return MeetingDetails(
            calendar_event_id=event.get("id") or event_id,
            meeting_link=extract_meeting_link(event),
            conference_id=conference.get("conferenceId"),
            html_link=event.get("htmlLink"),
            reused=reused,
        )
