"""Envío de correo por SMTP (avisos al administrador)."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from .sink import Notification, Notifier

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    name = "email"

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_addr: Optional[str] = None,
        default_recipient: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from = from_addr or username
        self._default_recipient = default_recipient
        self._use_tls = use_tls
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self._host and self._from)

    def send(self, notification: Notification) -> bool:
        recipient = notification.recipient or self._default_recipient
        if not self.enabled or not recipient:
            logger.warning("[EMAIL] SMTP not configured - skipping '%s'", notification.title)
            return False

        msg = EmailMessage()
        msg["Subject"] = notification.title
        msg["From"] = self._from
        msg["To"] = recipient
        msg.set_content(notification.body)

        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("[EMAIL] email_send_failed to=%s: %s", recipient, e)
            return False

        logger.info("[EMAIL] Sent '%s' to %s", notification.title, recipient)
        return True
