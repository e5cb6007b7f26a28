"""IncidentFeed: incidencias de un sensor para la pantalla de resumen.

Mantiene una suscripción de consulta (createdAt desc, límite 30) y publica
las pendientes formateadas en incidentSummaries. Las resoluciones pasan
por el mismo ResolutionLedger que el tracker.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from ..errors import SubscriptionError
from ..metrics import SUBSCRIPTION_ERRORS
from ..notifications.sink import NotificationChannel
from .models import Incident, IncidentStatus
from .watch import ResolutionLedger

if TYPE_CHECKING:
    from ..notifications.sink import NotificationSink
    from ..state.dispatcher import OwnerDispatcher
    from ..state.store import ChannelWriter
    from .store import IncidentStore, Subscription

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 30
DEFAULT_SUMMARY_CAP = 4


def format_summary(incident: Incident) -> str:
    """'dd/MM HH:mm - título' (o '--/-- - título' sin fecha)."""
    if incident.created_at is None:
        return f"--/-- - {incident.title}"
    return f"{incident.created_at.strftime('%d/%m %H:%M')} - {incident.title}"


class IncidentFeed:
    def __init__(
        self,
        store: "IncidentStore",
        dispatcher: "OwnerDispatcher",
        summaries_writer: Optional["ChannelWriter"] = None,
        notifier: Optional["NotificationSink"] = None,
        ledger: Optional[ResolutionLedger] = None,
        admin_email: Optional[str] = None,
        query_limit: int = DEFAULT_QUERY_LIMIT,
        summary_cap: int = DEFAULT_SUMMARY_CAP,
        on_error: Optional[Callable[[SubscriptionError], None]] = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._writer = summaries_writer
        self._notifier = notifier
        self._ledger = ledger if ledger is not None else ResolutionLedger()
        self._admin_email = admin_email
        self._query_limit = query_limit
        self._summary_cap = summary_cap
        self._on_error = on_error

        self._sensor_id: Optional[str] = None
        self._subscription: Optional["Subscription"] = None
        self._generation = 0
        self._summaries: tuple[str, ...] = ()

    @property
    def sensor_id(self) -> Optional[str]:
        return self._sensor_id

    @property
    def summaries(self) -> tuple[str, ...]:
        return self._summaries

    def start(self, sensor_id: str) -> None:
        """Suscribe al feed del sensor.

        Raises:
            SubscriptionError: si el almacén rechaza la suscripción.
        """
        self.stop()
        self._generation += 1
        generation = self._generation
        self._sensor_id = str(sensor_id)
        self._subscription = self._store.watch_incidents(
            self._sensor_id,
            self._query_limit,
            on_snapshot=lambda incidents: self._dispatcher.post(self._on_snapshot, generation, incidents),
            on_error=lambda error: self._dispatcher.post(self._on_subscription_error, generation, error),
        )
        logger.info("[FEED] Watching incidents of sensor=%s limit=%d", self._sensor_id, self._query_limit)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
            logger.info("[FEED] Stopped feed sensor=%s", self._sensor_id)
        self._generation += 1

    def _on_snapshot(self, generation: int, incidents: List[Incident]) -> None:
        if generation != self._generation:
            return

        pending = []
        for incident in incidents:
            watch = self._ledger.watch_for(incident.id)
            was_pending = watch.last_known_status == IncidentStatus.PENDING
            first_resolution = watch.observe(incident.status)
            if incident.status == IncidentStatus.RESOLVED:
                # Solo transiciones vistas en esta sesión; las ya resueltas
                # al suscribirse se registran sin notificar.
                if first_resolution and was_pending:
                    self._notify_resolution(incident)
            else:
                pending.append(format_summary(incident))

        summaries = tuple(pending[: self._summary_cap])
        if summaries != self._summaries:
            self._summaries = summaries
            if self._writer is not None:
                self._writer.publish(summaries)
        logger.debug("[FEED] snapshot total=%d pending=%d", len(incidents), len(pending))

    def _on_subscription_error(self, generation: int, error: SubscriptionError) -> None:
        if generation != self._generation:
            return
        SUBSCRIPTION_ERRORS.labels(source="feed").inc()
        logger.warning("[FEED] Subscription error sensor=%s: %s", self._sensor_id, error)
        if self._on_error is not None:
            self._on_error(error)

    def _notify_resolution(self, incident: Incident) -> None:
        logger.info("[FEED] incident=%s resolved", incident.id)
        if self._notifier is None:
            return
        self._notifier.notify(
            NotificationChannel.EMAIL,
            f"Incident resolved: {incident.title}",
            f"The incident '{incident.title}' reported for sensor {incident.sensor_id} "
            f"has been marked as resolved.",
            recipient=self._admin_email,
        )
