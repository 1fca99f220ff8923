"""
Error taxonomy for booking transitions and calendar integration.

Validation and transition errors are raised before any side effect runs.
Calendar failures are classified into a small set of kinds so operators get
actionable remediation, and so callers can tell transient failures (safe to
retry) from ones that need credentials or configuration fixed first.
"""
from __future__ import annotations

import socket
from enum import Enum
from typing import List, Optional

from google.auth.exceptions import DefaultCredentialsError, RefreshError, TransportError
from googleapiclient.errors import HttpError


class BookingValidationError(ValueError):
    """Missing or malformed booking fields. Client-fixable."""

    def __init__(self, message: str, *, fields: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class BookingNotFoundError(LookupError):
    def __init__(self, booking_id: str) -> None:
        super().__init__(f"Booking not found: {booking_id}")
        self.booking_id = booking_id


class TransitionError(Exception):
    """Raised when a status transition is not allowed or lost a concurrent update."""

    def __init__(
        self,
        booking_id: str,
        current_status: Optional[str],
        target_status: str,
        message: Optional[str] = None,
    ) -> None:
        self.booking_id = booking_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            message
            or f"Cannot move booking {booking_id} from {current_status} to {target_status}"
        )


class IntegrationErrorKind(str, Enum):
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"
    not_found = "not_found"
    internal = "internal"


_SUMMARIES = {
    IntegrationErrorKind.unauthenticated: "authentication failed",
    IntegrationErrorKind.forbidden: "permission denied",
    IntegrationErrorKind.not_found: "calendar resource not found",
    IntegrationErrorKind.internal: "calendar event creation failed",
}

REMEDIATION = {
    IntegrationErrorKind.unauthenticated: [
        "Check that the service account key file (GOOGLE_SERVICE_ACCOUNT_FILE) exists and is valid",
        "If using an authorized-user token, re-run the OAuth consent flow to refresh GOOGLE_TOKEN_FILE",
        "Restart the service after replacing credentials",
    ],
    IntegrationErrorKind.forbidden: [
        "Grant the service account 'Make changes to events' on the target calendar",
        "Confirm the credentials carry the calendar and calendar.events scopes",
        "For Workspace domains, check domain-wide delegation for GOOGLE_DELEGATED_USER",
    ],
    IntegrationErrorKind.not_found: [
        "Verify GOOGLE_CALENDAR_ID points to an existing calendar",
        "Share the calendar with the service account email",
    ],
    IntegrationErrorKind.internal: [
        "Retry the meeting creation from the admin dashboard",
        "Check calendar API quota and network connectivity if the failure persists",
    ],
}

_RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}


class ProvisioningError(Exception):
    """Calendar event / video link creation failed.

    ``str(err)`` is the short summary recorded on the booking as its error note;
    ``detail`` keeps the upstream message for operators.
    """

    def __init__(
        self,
        kind: IntegrationErrorKind,
        detail: str = "",
        *,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
    ) -> None:
        self.kind = IntegrationErrorKind(kind)
        self.detail = detail
        self.cause = cause
        self.status = status
        super().__init__(_SUMMARIES[self.kind])

    @property
    def retryable(self) -> bool:
        return self.kind is IntegrationErrorKind.internal

    @property
    def remediation(self) -> List[str]:
        return list(REMEDIATION[self.kind])

    def to_dict(self) -> dict:
        return {
            "error": self.kind.value,
            "message": str(self),
            "detail": self.detail,
            "remediation": self.remediation,
            "retryable": self.retryable,
        }


def _http_error_reason(exc: HttpError) -> Optional[str]:
    details = getattr(exc, "error_details", None)
    if isinstance(details, list):
        for item in details:
            if isinstance(item, dict) and item.get("reason"):
                return item["reason"]
    return None


def classify_calendar_error(exc: BaseException) -> ProvisioningError:
    """Map an exception raised by the calendar client to a ProvisioningError."""
    if isinstance(exc, ProvisioningError):
        return exc
    detail = str(exc) or type(exc).__name__
    if isinstance(exc, HttpError):
        status = getattr(exc.resp, "status", None)
        try:
            status = int(status) if status is not None else None
        except (TypeError, ValueError):
            status = None
        if status == 401:
            kind = IntegrationErrorKind.unauthenticated
        elif status == 403:
            if _http_error_reason(exc) in _RATE_LIMIT_REASONS:
                kind = IntegrationErrorKind.internal
            else:
                kind = IntegrationErrorKind.forbidden
        elif status in (404, 410):
            kind = IntegrationErrorKind.not_found
        else:
            kind = IntegrationErrorKind.internal
        return ProvisioningError(kind, detail, cause=exc, status=status)
    if isinstance(exc, (RefreshError, DefaultCredentialsError, FileNotFoundError)):
        return ProvisioningError(IntegrationErrorKind.unauthenticated, detail, cause=exc)
    if isinstance(exc, (TimeoutError, TransportError, socket.timeout, ConnectionError, OSError)):
        return ProvisioningError(IntegrationErrorKind.internal, detail, cause=exc)
    return ProvisioningError(IntegrationErrorKind.internal, detail, cause=exc)


def remediation_for(kind: Optional[str]) -> List[str]:
    """Remediation steps for a recorded error kind; unknown kinds get the retry advice."""
    try:
        return list(REMEDIATION[IntegrationErrorKind(kind)])
    except ValueError:
        return list(REMEDIATION[IntegrationErrorKind.internal])
