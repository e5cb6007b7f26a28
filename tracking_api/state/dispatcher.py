"""Dispatcher hacia el hilo dueño del estado.

Los productores (callback de paho, hilo pub/sub de Redis, handlers HTTP)
no mutan el agregador ni el tracker directamente: encolan una función con
post() y el hilo dueño las ejecuta en orden FIFO.

Dos modos de alojamiento:
- run_pending(): el bucle de UI del host drena la cola en su hilo.
- start(): hilo dueño dedicado (servicio sin UI).
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Optional

from ..metrics import DISPATCH_QUEUE_DEPTH

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 0  # 0 = sin límite: no se descartan eventos de incidencias


class OwnerDispatcher:
    """Cola única de mensajes hacia el hilo dueño."""

    def __init__(self, max_queue_size: int = DEFAULT_QUEUE_SIZE, name: str = "owner"):
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._owner_ident: Optional[int] = None

        # Metrics
        self._posted = 0
        self._executed = 0
        self._dropped = 0
        self._errors = 0
        self._lock = threading.Lock()

    def post(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """Encola fn(*args, **kwargs) para el hilo dueño. False si la cola está llena."""
        try:
            self._queue.put_nowait((fn, args, kwargs))
        except queue.Full:
            with self._lock:
                self._dropped += 1
            logger.warning("[DISPATCH] Queue full, dropped %s", getattr(fn, "__name__", fn))
            return False
        with self._lock:
            self._posted += 1
        DISPATCH_QUEUE_DEPTH.set(self._queue.qsize())
        return True

    def run_pending(self, max_items: Optional[int] = None) -> int:
        """Ejecuta en el hilo llamante los eventos encolados.

        Returns:
            Número de eventos ejecutados.
        """
        if self._thread is not None:
            raise RuntimeError(f"Dispatcher '{self._name}' is running its own owner thread")
        self._owner_ident = threading.get_ident()

        done = 0
        while max_items is None or done < max_items:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            self._execute(item)
            done += 1
        return done

    def start(self) -> None:
        """Arranca un hilo dueño dedicado."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name=f"{self._name}-dispatcher",
        )
        self._thread.start()
        logger.info("[DISPATCH] Started owner thread '%s'", self._name)

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Detiene el hilo dueño. Con drain=True procesa lo pendiente antes."""
        if self._thread is None:
            if drain:
                self.run_pending()
            return
        if drain:
            self._queue.join()
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        self._owner_ident = None
        logger.info("[DISPATCH] Stopped. %s", self.metrics)

    def is_owner_thread(self) -> bool:
        return self._owner_ident == threading.get_ident()

    def _loop(self) -> None:
        self._owner_ident = threading.get_ident()
        while not self._stop_event.is_set():
            try:
                item = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self._execute(item)

    def _execute(self, item) -> None:
        fn, args, kwargs = item
        try:
            fn(*args, **kwargs)
            with self._lock:
                self._executed += 1
        except Exception as e:
            with self._lock:
                self._errors += 1
            logger.exception("[DISPATCH] Event %s failed: %s", getattr(fn, "__name__", fn), e)
        finally:
            self._queue.task_done()
            DISPATCH_QUEUE_DEPTH.set(self._queue.qsize())

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "queue_depth": self._queue.qsize(),
                "queue_max": self._queue.maxsize,
                "posted": self._posted,
                "executed": self._executed,
                "dropped": self._dropped,
                "errors": self._errors,
            }
