"""Sumidero de notificaciones fire-and-forget.

El núcleo llama a notify() y sigue: la entrega ocurre en un hilo worker.
Los fallos de entrega se loguean aquí y nunca llegan al núcleo como error.
"""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol

from ..metrics import NOTIFICATIONS

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 500


class NotificationChannel(str, Enum):
    LOCAL = "local"  # notificación en el dispositivo (push)
    EMAIL = "email"


@dataclass(frozen=True)
class Notification:
    channel: NotificationChannel
    title: str
    body: str
    recipient: Optional[str] = None


class NotificationSink(Protocol):
    """Contrato que consume el núcleo."""

    def notify(
        self,
        channel: NotificationChannel,
        title: str,
        body: str,
        recipient: Optional[str] = None,
    ) -> None:
        ...


class Notifier(ABC):
    """Entrega concreta para un canal (push, SMTP...)."""

    name = "notifier"

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """Entrega la notificación.

        Returns:
            True si se entregó, False si se descartó o falló.
        """


class BackgroundNotificationSink:
    """Enruta notificaciones a su Notifier desde un hilo worker.

    - notify() retorna de inmediato (cola acotada)
    - Cola llena → se descarta y se loguea
    - Excepciones del Notifier → se loguean, el worker sigue vivo
    """

    def __init__(
        self,
        notifiers: Dict[NotificationChannel, Notifier],
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._notifiers = dict(notifiers)
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

        self._queued = 0
        self._sent = 0
        self._failed = 0
        self._dropped = 0
        self._lock = threading.Lock()

    def notify(
        self,
        channel: NotificationChannel,
        title: str,
        body: str,
        recipient: Optional[str] = None,
    ) -> None:
        channel = NotificationChannel(channel)
        notification = Notification(channel=channel, title=title, body=body, recipient=recipient)
        try:
            self._queue.put_nowait(notification)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            NOTIFICATIONS.labels(channel=channel.value, status="dropped").inc()
            logger.warning("[NOTIFY] Queue full, dropped %s notification '%s'", channel.value, title)
            return
        with self._lock:
            self._queued += 1
        NOTIFICATIONS.labels(channel=channel.value, status="queued").inc()

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._worker_loop, daemon=True, name="notify-worker")
        self._worker.start()
        logger.info("[NOTIFY] Started worker channels=%s", [c.value for c in self._notifiers])

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Detiene el worker. Con drain=True entrega lo pendiente antes."""
        if self._worker is None:
            if drain:
                self.drain()
            return
        if drain:
            self._queue.join()
        self._stop_event.set()
        self._worker.join(timeout=timeout)
        self._worker = None
        logger.info("[NOTIFY] Stopped. %s", self.stats)

    def drain(self) -> int:
        """Entrega en el hilo llamante lo que haya en cola (sin worker)."""
        delivered = 0
        while True:
            try:
                notification = self._queue.get_nowait()
            except queue.Empty:
                return delivered
            self._deliver(notification)
            delivered += 1

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                notification = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self._deliver(notification)

    def _deliver(self, notification: Notification) -> None:
        try:
            notifier = self._notifiers.get(notification.channel)
            if notifier is None:
                logger.warning("[NOTIFY] No notifier for channel=%s", notification.channel.value)
                ok = False
            else:
                ok = notifier.send(notification)
        except Exception as e:
            logger.error("[NOTIFY] %s delivery error: %s", notification.channel.value, e)
            ok = False
        finally:
            self._queue.task_done()

        status = "sent" if ok else "failed"
        with self._lock:
            if ok:
                self._sent += 1
            else:
                self._failed += 1
        NOTIFICATIONS.labels(channel=notification.channel.value, status=status).inc()

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "queued": self._queued,
                "sent": self._sent,
                "failed": self._failed,
                "dropped": self._dropped,
                "pending": self._queue.qsize(),
            }
