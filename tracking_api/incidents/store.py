"""Contrato del almacén remoto de incidencias + implementación en memoria.

Las suscripciones son registros no bloqueantes que devuelven un handle
con cancel(). Los callbacks pueden llegar desde cualquier hilo: quien
los consume debe pasarlos al hilo dueño.
"""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol

from ..errors import SubscriptionError
from .models import Incident, IncidentStatus

logger = logging.getLogger(__name__)

DocumentCallback = Callable[[Optional[Incident]], None]
QueryCallback = Callable[[List[Incident]], None]
ErrorCallback = Callable[[SubscriptionError], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        ...


class IncidentStore(Protocol):
    def create_incident(
        self,
        sensor_id: str,
        title: str,
        message: str,
        location: str = "",
    ) -> Incident:
        ...

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        ...

    def resolve_incident(self, incident_id: str) -> Optional[Incident]:
        ...

    def ping(self) -> bool:
        ...

    def watch_document(
        self,
        incident_id: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        ...

    def watch_incidents(
        self,
        sensor_id: str,
        limit: int,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        ...


class CallbackSubscription:
    """Handle genérico: cancel() ejecuta la baja una sola vez."""

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel = on_cancel
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._on_cancel()


def newest_first(incidents: List[Incident], limit: int) -> List[Incident]:
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    ordered = sorted(incidents, key=lambda i: i.created_at or epoch, reverse=True)
    return ordered[:limit]


class InMemoryIncidentStore:
    """Almacén síncrono en proceso (tests y modo sin Redis).

    Los callbacks se invocan en el hilo que produce el cambio.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._incidents: Dict[str, Incident] = {}
        self._doc_watchers: Dict[str, Dict[int, DocumentCallback]] = {}
        self._query_watchers: Dict[str, Dict[int, tuple[int, QueryCallback]]] = {}
        self._ids = itertools.count(1)
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()

    def create_incident(
        self,
        sensor_id: str,
        title: str,
        message: str,
        location: str = "",
    ) -> Incident:
        with self._lock:
            incident = Incident(
                id=f"inc-{next(self._ids)}",
                sensor_id=str(sensor_id),
                title=title,
                message=message,
                location=location,
                status=IncidentStatus.PENDING,
                resolved=False,
                created_at=self._clock(),
            )
            self._incidents[incident.id] = incident
        logger.info("[STORE] created incident=%s sensor=%s", incident.id, sensor_id)
        self._emit(incident)
        return incident

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            return self._incidents.get(incident_id)

    def list_incidents(self, sensor_id: str, limit: int) -> List[Incident]:
        with self._lock:
            matches = [i for i in self._incidents.values() if i.sensor_id == str(sensor_id)]
        return newest_first(matches, limit)

    def ping(self) -> bool:
        return True

    def resolve_incident(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            incident = self._incidents.get(incident_id)
            if incident is None:
                return None
            incident = Incident(
                id=incident.id,
                sensor_id=incident.sensor_id,
                title=incident.title,
                message=incident.message,
                location=incident.location,
                status=IncidentStatus.RESOLVED,
                resolved=True,
                created_at=incident.created_at,
            )
            self._incidents[incident_id] = incident
        logger.info("[STORE] resolved incident=%s", incident_id)
        self._emit(incident)
        return incident

    def watch_document(
        self,
        incident_id: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> CallbackSubscription:
        token = next(self._tokens)
        with self._lock:
            self._doc_watchers.setdefault(incident_id, {})[token] = on_snapshot
            current = self._incidents.get(incident_id)

        def _cancel():
            with self._lock:
                self._doc_watchers.get(incident_id, {}).pop(token, None)

        subscription = CallbackSubscription(_cancel)
        on_snapshot(current)
        return subscription

    def watch_incidents(
        self,
        sensor_id: str,
        limit: int,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
    ) -> CallbackSubscription:
        sensor_id = str(sensor_id)
        token = next(self._tokens)
        with self._lock:
            self._query_watchers.setdefault(sensor_id, {})[token] = (limit, on_snapshot)

        def _cancel():
            with self._lock:
                self._query_watchers.get(sensor_id, {}).pop(token, None)

        subscription = CallbackSubscription(_cancel)
        on_snapshot(self.list_incidents(sensor_id, limit))
        return subscription

    def _emit(self, incident: Incident) -> None:
        with self._lock:
            doc_callbacks = list(self._doc_watchers.get(incident.id, {}).values())
            query_callbacks = list(self._query_watchers.get(incident.sensor_id, {}).values())

        for callback in doc_callbacks:
            callback(incident)
        for limit, callback in query_callbacks:
            callback(self.list_incidents(incident.sensor_id, limit))
