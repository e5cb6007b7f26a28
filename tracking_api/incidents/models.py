"""Modelos de incidencias."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from ..errors import SubscriptionError


class IncidentStatus(str, Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class WatchState(str, Enum):
    UNWATCHED = "unwatched"
    WATCHING = "watching"
    RESOLVED_HANDLED = "resolved_handled"


def _parse_created_at(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(float(raw), tz=timezone.utc)
    text = str(raw)
    try:
        return datetime.fromtimestamp(float(text), tz=timezone.utc)
    except ValueError:
        pass
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Incident:
    id: str
    sensor_id: str
    title: str
    message: str = ""
    location: str = ""
    status: IncidentStatus = IncidentStatus.PENDING
    resolved: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == IncidentStatus.RESOLVED

    @classmethod
    def from_document(cls, incident_id: str, doc: Mapping[str, Any]) -> "Incident":
        """Construye la incidencia desde el documento remoto.

        Un documento con ``resolved`` verdadero cuenta como RESOLVED
        aunque su campo ``status`` aún diga PENDING.
        """
        resolved = _parse_bool(doc.get("resolved"))
        raw_status = str(doc.get("status") or "").upper()
        if raw_status == IncidentStatus.RESOLVED.value or resolved:
            status = IncidentStatus.RESOLVED
        else:
            status = IncidentStatus.PENDING

        return cls(
            id=str(doc.get("id") or incident_id),
            sensor_id=str(doc.get("sensorId") or doc.get("sensor_id") or ""),
            title=str(doc.get("title") or ""),
            message=str(doc.get("message") or ""),
            location=str(doc.get("location") or ""),
            status=status,
            resolved=resolved,
            created_at=_parse_created_at(doc.get("createdAt", doc.get("created_at"))),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sensorId": self.sensor_id,
            "title": self.title,
            "message": self.message,
            "location": self.location,
            "status": self.status.value,
            "resolved": self.resolved,
            "createdAt": self.created_at.timestamp() if self.created_at else None,
        }


@dataclass(frozen=True)
class IncidentDraft:
    """Formulario de reporte antes de enviarse."""

    sensor_id: str
    title: str
    message: str
    location: str = ""


@dataclass
class WatchResult:
    """Resultado de start_watch()."""

    ok: bool
    incident_id: Optional[str] = None
    error: Optional[SubscriptionError] = None


@dataclass
class ReportResult:
    """Resultado de IncidentReporter.submit()."""

    ok: bool
    incident: Optional[Incident] = None
    error: Optional[Exception] = None
    warnings: list[str] = field(default_factory=list)
