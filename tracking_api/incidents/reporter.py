"""IncidentReporter: envío de incidencias reportadas por el usuario.

Flujo de submit():
  1. Validar título y mensaje
  2. Aviso por correo al administrador
  3. Alta en el almacén (PENDING, resolved=false, hora del servidor)
  4. 'HH:MM - título' al frente de submittedIncidents (máx. 4)
  5. El tracker empieza a seguir la nueva incidencia
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from ..errors import IncidentValidationError, SubscriptionError
from ..notifications.sink import NotificationChannel
from .models import IncidentDraft, ReportResult

if TYPE_CHECKING:
    from ..notifications.sink import NotificationSink
    from ..state.store import ChannelWriter
    from .store import IncidentStore
    from .tracker import IncidentStateTracker

logger = logging.getLogger(__name__)

DEFAULT_SUBMITTED_CAP = 4


def disconnect_draft(
    sensor_id: str,
    location: Optional[str] = None,
    last_seen: Optional[datetime] = None,
) -> IncidentDraft:
    """Borrador pre-rellenado cuando el sensor deja de reportar."""
    where = location or "unknown location"
    when = last_seen.strftime("%d/%m/%Y %H:%M") if last_seen else "unknown"
    return IncidentDraft(
        sensor_id=str(sensor_id),
        title=f"WARNING: Sensor {sensor_id} disconnected",
        message=(
            f"Sensor {sensor_id} at {where} stopped sending readings. "
            f"Last reading received: {when}."
        ),
        location=location or "",
    )


def validate_draft(draft: IncidentDraft) -> None:
    """Raises IncidentValidationError si falta algún campo obligatorio."""
    missing = [
        name
        for name, value in (("sensor_id", draft.sensor_id), ("title", draft.title), ("message", draft.message))
        if not value or not value.strip()
    ]
    if missing:
        raise IncidentValidationError(f"Incident report is missing: {', '.join(missing)}")


class IncidentReporter:
    def __init__(
        self,
        store: "IncidentStore",
        tracker: Optional["IncidentStateTracker"] = None,
        submitted_writer: Optional["ChannelWriter"] = None,
        notifier: Optional["NotificationSink"] = None,
        admin_email: Optional[str] = None,
        history_cap: int = DEFAULT_SUBMITTED_CAP,
    ):
        self._store = store
        self._tracker = tracker
        self._writer = submitted_writer
        self._notifier = notifier
        self._admin_email = admin_email
        self._history_cap = history_cap
        self._submitted: tuple[str, ...] = ()

    @property
    def submitted(self) -> tuple[str, ...]:
        return self._submitted

    def disconnect_draft(
        self,
        sensor_id: str,
        location: Optional[str] = None,
        last_seen: Optional[datetime] = None,
    ) -> IncidentDraft:
        return disconnect_draft(sensor_id, location, last_seen)

    def submit(self, draft: IncidentDraft) -> ReportResult:
        """Envía el reporte.

        Raises:
            IncidentValidationError: título o mensaje vacío.
        """
        validate_draft(draft)
        title = draft.title.strip()
        message = draft.message.strip()

        self._notify_admin(draft.sensor_id, title, message, draft.location)

        try:
            incident = self._store.create_incident(draft.sensor_id, title, message, draft.location)
        except SubscriptionError as e:
            logger.warning("[REPORT] Could not store incident for sensor=%s: %s", draft.sensor_id, e)
            return ReportResult(ok=False, error=e)

        created = incident.created_at.astimezone() if incident.created_at else datetime.now()
        entry = f"{created.strftime('%H:%M')} - {incident.title}"
        self._submitted = ((entry,) + self._submitted)[: self._history_cap]
        if self._writer is not None:
            self._writer.publish(self._submitted)

        warnings = []
        if self._tracker is not None:
            watch = self._tracker.start_watch(incident.id, incident.title)
            if not watch.ok:
                warnings.append(f"Incident stored but not tracked: {watch.error}")

        logger.info("[REPORT] Submitted incident=%s sensor=%s", incident.id, draft.sensor_id)
        return ReportResult(ok=True, incident=incident, warnings=warnings)

    def _notify_admin(self, sensor_id: str, title: str, message: str, location: str) -> None:
        if self._notifier is None:
            return
        body = f"Sensor: {sensor_id}\nLocation: {location or '-'}\n\n{message}"
        self._notifier.notify(
            NotificationChannel.EMAIL,
            f"New incident: {title}",
            body,
            recipient=self._admin_email,
        )

    def reset(self) -> None:
        self._submitted = ()
        if self._writer is not None:
            self._writer.publish(())
