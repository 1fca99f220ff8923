from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from core.config import AppSettings, settings as default_settings
from models.notification import DispatchResult, NotificationEvent, NotificationType
from .email import EmailService
from .templates import RENDERERS, TemplateContext


logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Renders a notification and hands it to the mail transport.

    ``dispatch`` never raises: delivery problems come back as
    ``DispatchResult(delivered=False, error=...)`` so a failed email cannot
    roll back or block a booking transition.
    """

    def __init__(self, transport: Any = None, cfg: AppSettings = default_settings) -> None:
        self.transport = transport if transport is not None else EmailService(cfg)
        self.cfg = cfg
        self.context = TemplateContext(
            clinic_name=cfg.clinic_name,
            timezone=cfg.clinic_timezone,
            admin_email=cfg.admin_email,
            support_phone=cfg.support_phone,
            dashboard_url=cfg.admin_dashboard_url or None,
        )

    def recipients(self, event: NotificationEvent) -> Tuple[str, List[str]]:
        if event.type == NotificationType.new_booking.value:
            return self.cfg.admin_email, []
        cc = [self.cfg.admin_email] if self.cfg.admin_email else []
        return event.patient_email, cc

    def _result(self, event: NotificationEvent, delivered: bool, error: Optional[str], recipients: List[str]) -> DispatchResult:
        return DispatchResult(
            type=event.type,
            booking_id=event.booking_id,
            delivered=delivered,
            error=error,
            sent_at=datetime.now(timezone.utc) if delivered else None,
            recipients=recipients,
        )

    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        log_extra = {"type": event.type, "booking_id": event.booking_id}
        renderer = RENDERERS.get(event.type)
        if renderer is None:
            logger.warning("notification.unsupported_type", extra=log_extra)
            return self._result(event, False, f"unsupported type: {event.type}", [])

        try:
            message = renderer(event, self.context)
        except (ValueError, KeyError, TypeError) as exc:
            logger.exception("notification.render_failed", extra=log_extra)
            return self._result(event, False, f"render failed: {exc}", [])

        to_email, cc = self.recipients(event)
        recipients = [to_email, *cc]
        try:
            ok, info = await asyncio.wait_for(
                asyncio.to_thread(
                    self.transport.send,
                    to_email=to_email,
                    subject=message.subject,
                    body=message.text,
                    html=message.html,
                    cc=cc,
                ),
                timeout=self.cfg.notification_timeout_seconds,
            )
        except asyncio.TimeoutError:
            ok, info = False, f"delivery timed out after {self.cfg.notification_timeout_seconds:g}s"
        except Exception as exc:
            ok, info = False, str(exc) or type(exc).__name__

        if ok:
            logger.info("notification.sent", extra={**log_extra, "recipients": recipients})
            return self._result(event, True, None, recipients)
        logger.error("notification.failed", extra={**log_extra, "recipients": recipients, "error": info})
        return self._result(event, False, info or "delivery failed", recipients)
