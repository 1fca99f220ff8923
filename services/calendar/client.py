from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httplib2
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials as UserCredentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build

from core.config import AppSettings, settings as default_settings
from core.errors import IntegrationErrorKind, ProvisioningError, classify_calendar_error


logger = logging.getLogger(__name__)

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]


def load_credentials(cfg: AppSettings = default_settings) -> Any:
    """Service account key first (optionally delegated), then an authorized-user token."""
    key_path = cfg.google_service_account_file
    if key_path and os.path.exists(key_path):
        creds = service_account.Credentials.from_service_account_file(key_path, scopes=CALENDAR_SCOPES)
        if cfg.google_delegated_user:
            creds = creds.with_subject(cfg.google_delegated_user)
        return creds
    token_path = cfg.google_token_file
    if not os.path.exists(token_path):
        raise FileNotFoundError(
            f"Google credentials not found: {key_path or '<unset>'} or {token_path}"
        )
    return UserCredentials.from_authorized_user_file(token_path, scopes=CALENDAR_SCOPES)


def build_calendar_service(credentials: Any) -> Any:
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


class CalendarSession:
    """Authenticated handle to the Calendar API.

    Lifecycle is explicit: ``acquire()`` at startup, ``verify()`` before use,
    ``release()`` at shutdown. Once released every call fails as unauthenticated.
    Each request runs in a worker thread on its own HTTP connection, bounded by
    a timeout.
    """

    def __init__(
        self,
        service: Any,
        calendar_id: str = "primary",
        *,
        credentials: Any = None,
        default_timeout: float = 20.0,
    ) -> None:
        self._service = service
        self._credentials = credentials
        self.calendar_id = calendar_id
        self.default_timeout = default_timeout
        self.verified_at: Optional[datetime] = None
        self.last_error: Optional[ProvisioningError] = None

    @classmethod
    def acquire(cls, cfg: AppSettings = default_settings) -> "CalendarSession":
        try:
            credentials = load_credentials(cfg)
            service = build_calendar_service(credentials)
        except Exception as exc:
            raise classify_calendar_error(exc) from exc
        logger.info("calendar.session.acquired", extra={"calendar_id": cfg.google_calendar_id})
        return cls(
            service,
            cfg.google_calendar_id,
            credentials=credentials,
            default_timeout=cfg.provisioning_timeout_seconds,
        )

    @property
    def is_open(self) -> bool:
        return self._service is not None

    @property
    def is_authenticated(self) -> bool:
        return self.is_open and self.verified_at is not None and self.last_error is None

    def release(self) -> None:
        service, self._service = self._service, None
        self.verified_at = None
        if service is not None and hasattr(service, "close"):
            service.close()
        logger.info("calendar.session.released", extra={"calendar_id": self.calendar_id})

    def _http(self) -> Optional[Any]:
        if self._credentials is None:
            return None
        return AuthorizedHttp(self._credentials, http=httplib2.Http(timeout=self.default_timeout))

    async def _call(self, make_request: Callable[[Any], Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        if self._service is None:
            raise ProvisioningError(IntegrationErrorKind.unauthenticated, "calendar session is not open")
        service = self._service
        limit = timeout or self.default_timeout

        def _execute() -> Dict[str, Any]:
            request = make_request(service)
            http = self._http()
            return request.execute(http=http) if http is not None else request.execute()

        try:
            return await asyncio.wait_for(asyncio.to_thread(_execute), timeout=limit)
        except asyncio.TimeoutError as exc:
            raise ProvisioningError(
                IntegrationErrorKind.internal, f"calendar request timed out after {limit:g}s", cause=exc
            ) from exc
        except ProvisioningError:
            raise
        except Exception as exc:
            raise classify_calendar_error(exc) from exc

    async def verify(self) -> None:
        """Capability test: read the target calendar's list entry."""
        try:
            await self._call(lambda s: s.calendarList().get(calendarId=self.calendar_id))
        except ProvisioningError as exc:
            self.last_error = exc
            logger.warning(
                "calendar.session.verify_failed",
                extra={"calendar_id": self.calendar_id, "kind": exc.kind.value, "detail": exc.detail},
            )
            raise
        self.last_error = None
        self.verified_at = datetime.now(timezone.utc)

    async def list_calendars(self, min_access_role: str = "writer") -> List[Dict[str, Any]]:
        resp = await self._call(lambda s: s.calendarList().list(minAccessRole=min_access_role))
        return [
            {
                "id": item.get("id"),
                "summary": item.get("summary"),
                "primary": bool(item.get("primary", False)),
                "access_role": item.get("accessRole"),
                "time_zone": item.get("timeZone"),
            }
            for item in resp.get("items", [])
        ]

    async def query_freebusy(
        self,
        calendar_ids: List[str],
        time_min: datetime,
        time_max: datetime,
        *,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        body = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "items": [{"id": cid} for cid in calendar_ids],
        }
        return await self._call(lambda s: s.freebusy().query(body=body), timeout)

    async def insert_event(self, body: Dict[str, Any], *, send_updates: str = "all") -> Dict[str, Any]:
        return await self._call(
            lambda s: s.events().insert(
                calendarId=self.calendar_id,
                body=body,
                conferenceDataVersion=1,
                sendUpdates=send_updates,
            )
        )

    async def get_event(self, event_id: str) -> Dict[str, Any]:
        return await self._call(lambda s: s.events().get(calendarId=self.calendar_id, eventId=event_id))

    async def patch_event(self, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            lambda s: s.events().patch(
                calendarId=self.calendar_id,
                eventId=event_id,
                body=body,
                conferenceDataVersion=1,
                sendUpdates="none",
            )
        )
