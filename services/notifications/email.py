from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Optional, Sequence, Tuple

from core.config import AppSettings, settings as default_settings


logger = logging.getLogger(__name__)


class EmailService:
    """SMTP email sender (supports Gmail / generic SMTP)."""

    def __init__(self, cfg: AppSettings = default_settings) -> None:
        self.smtp_host = cfg.smtp_host
        self.smtp_port = cfg.smtp_port
        self.smtp_user = cfg.smtp_username
        self.smtp_pass = cfg.smtp_password
        self.from_email = cfg.smtp_from_email or cfg.smtp_username
        self.from_name = cfg.smtp_from_name
        self.timeout = cfg.smtp_timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    def send(
        self,
        to_email: str,
        subject: str,
        body: str,
        html: Optional[str] = None,
        cc: Optional[Sequence[str]] = None,
        reply_to: Optional[str] = None,
    ) -> Tuple[bool, Optional[str]]:
        """Send one message. Returns ``(True, message_id)`` or ``(False, error)``."""
        if not self.configured:
            logger.warning("email.send.skipped", extra={"to": to_email, "reason": "missing SMTP credentials"})
            return False, "SMTP credentials not configured"
        msg = EmailMessage()
        msg["From"] = f"{self.from_name} <{self.from_email}>" if self.from_email else self.from_name
        msg["To"] = to_email
        cc_list = [addr for addr in (cc or []) if addr and addr != to_email]
        if cc_list:
            msg["Cc"] = ", ".join(cc_list)
        msg["Subject"] = subject
        message_id = make_msgid()
        msg["Message-ID"] = message_id
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as s:
                s.ehlo()
                s.starttls()
                s.ehlo()
                s.login(self.smtp_user, self.smtp_pass)
                s.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("email.send.failed", extra={"to": to_email, "error": str(exc)})
            return False, str(exc)
        logger.info("email.send.ok", extra={"to": to_email, "cc": cc_list, "message_id": message_id})
        return True, message_id
