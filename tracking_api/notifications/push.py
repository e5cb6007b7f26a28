"""Notificación local vía backend.

Llama al endpoint interno del backend para enviar el push al dispositivo.
No bloquea el núcleo: corre en el worker del sink y solo loguea errores.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .sink import Notification, Notifier

logger = logging.getLogger(__name__)


class PushNotifier(Notifier):
    name = "push"

    def __init__(
        self,
        backend_url: str,
        internal_key: Optional[str],
        sensor_id: Optional[str] = None,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self._url = f"{backend_url.rstrip('/')}/notifications/internal/trigger-push"
        self._internal_key = internal_key
        self._sensor_id = sensor_id
        self._timeout = timeout
        self._http = session or requests.Session()

    def send(self, notification: Notification) -> bool:
        if not self._internal_key:
            logger.warning("[PUSH] INTERNAL_API_KEY not configured - skipping push '%s'", notification.title)
            return False

        try:
            response = self._http.post(
                self._url,
                json={
                    "type": "sensor_alert",
                    "sensorId": self._sensor_id,
                    "title": notification.title,
                    "body": notification.body,
                },
                headers={
                    "X-Internal-Key": self._internal_key,
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("[PUSH] Error triggering push notification: %s", e)
            return False

        if response.ok:
            logger.info("[PUSH] Push triggered: %s", notification.title)
            return True
        logger.warning("[PUSH] Failed to trigger push: %s %s", response.status_code, response.text)
        return False
