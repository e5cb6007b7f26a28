"""Detección de la transición PENDING → RESOLVED.

Tanto el tracker (documento único) como el feed (consulta por sensor)
observan documentos de incidencias. Ambos pasan por aquí para que el
efecto de resolución ocurra una sola vez por incidencia y sesión.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .models import IncidentStatus

logger = logging.getLogger(__name__)


class IncidentWatch:
    """Detector one-shot para una incidencia."""

    def __init__(self, incident_id: str, last_known_status: Optional[IncidentStatus] = None):
        self.incident_id = incident_id
        self.last_known_status = last_known_status

    @property
    def resolved(self) -> bool:
        return self.last_known_status == IncidentStatus.RESOLVED

    def observe(self, status: IncidentStatus) -> bool:
        """Registra un estado observado.

        Returns:
            True solo la primera vez que se observa RESOLVED.
        """
        status = IncidentStatus(status)
        if self.resolved:
            return False
        self.last_known_status = status
        return status == IncidentStatus.RESOLVED

    def __repr__(self) -> str:
        status = self.last_known_status.value if self.last_known_status else None
        return f"IncidentWatch({self.incident_id!r}, {status})"


class ResolutionLedger:
    """Watches por id de incidencia, compartido dentro de una sesión."""

    def __init__(self) -> None:
        self._watches: Dict[str, IncidentWatch] = {}
        self._lock = threading.Lock()

    def watch_for(self, incident_id: str) -> IncidentWatch:
        with self._lock:
            watch = self._watches.get(incident_id)
            if watch is None:
                watch = IncidentWatch(incident_id)
                self._watches[incident_id] = watch
            return watch

    def observe(self, incident_id: str, status: IncidentStatus) -> bool:
        """True si esta observación es la primera resolución de la incidencia."""
        first = self.watch_for(incident_id).observe(status)
        if first:
            logger.info("[LEDGER] incident=%s resolved", incident_id)
        return first

    def is_resolved(self, incident_id: str) -> bool:
        with self._lock:
            watch = self._watches.get(incident_id)
        return watch is not None and watch.resolved

    def clear(self) -> None:
        with self._lock:
            self._watches.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._watches)
