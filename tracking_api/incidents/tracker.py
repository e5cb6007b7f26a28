"""IncidentStateTracker: seguimiento one-shot de una incidencia.

Máquina de estados:

    UNWATCHED --start_watch--> WATCHING --RESOLVED--> RESOLVED_HANDLED
        ^                         |
        +------cancel_watch-------+

Al primer RESOLVED: se publica el estado desbloqueado, se notifica la
resolución (una vez por incidencia y sesión, vía ResolutionLedger) y se
cancela la suscripción. Los eventos que lleguen después, o de un watch
ya cancelado, se ignoran: cada callback va ligado al watch que lo creó.
RESOLVED_HANDLED solo se abandona al seguir otra incidencia.

lock()/unlock() bloquean la UI por motivos ajenos a una incidencia
(sensor desconectado); unlock solo actúa si el último bloqueo fue suyo.

Todo método público debe llamarse desde el hilo dueño; los callbacks
del almacén se reencolan en el OwnerDispatcher.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from ..errors import SubscriptionError
from ..metrics import INCIDENT_TRANSITIONS, SUBSCRIPTION_ERRORS
from ..notifications.sink import NotificationChannel
from .models import Incident, IncidentStatus, WatchResult, WatchState
from .watch import IncidentWatch, ResolutionLedger

if TYPE_CHECKING:
    from ..notifications.sink import NotificationSink
    from ..state.dispatcher import OwnerDispatcher
    from ..state.store import ChannelWriter
    from .store import IncidentStore, Subscription

logger = logging.getLogger(__name__)


def incident_status_value(
    locked: bool,
    incident_id: Optional[str] = None,
    status: Optional[IncidentStatus] = None,
    reason: Optional[str] = None,
) -> dict:
    """Valor publicado en el canal incidentStatus."""
    return {
        "locked": locked,
        "incidentId": incident_id,
        "status": status.value if status else None,
        "reason": reason,
    }


class _ActiveWatch:
    def __init__(self, incident_id: str, title: Optional[str]):
        self.incident_id = incident_id
        self.title = title
        self.detector = IncidentWatch(incident_id)
        self.subscription: Optional["Subscription"] = None


class IncidentStateTracker:
    def __init__(
        self,
        store: "IncidentStore",
        dispatcher: "OwnerDispatcher",
        status_writer: Optional["ChannelWriter"] = None,
        notifier: Optional["NotificationSink"] = None,
        ledger: Optional[ResolutionLedger] = None,
        admin_email: Optional[str] = None,
        on_error: Optional[Callable[[SubscriptionError], None]] = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._status_writer = status_writer
        self._notifier = notifier
        self._ledger = ledger if ledger is not None else ResolutionLedger()
        self._admin_email = admin_email
        self._on_error = on_error

        self._state = WatchState.UNWATCHED
        self._active: Optional[_ActiveWatch] = None
        self._effects = 0
        self._lock_reason: Optional[str] = None

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def incident_id(self) -> Optional[str]:
        return self._active.incident_id if self._active else None

    @property
    def resolution_effects(self) -> int:
        return self._effects

    def start_watch(self, incident_id: str, title: Optional[str] = None) -> WatchResult:
        """Empieza a seguir una incidencia.

        Si ya se sigue esa misma incidencia no hace nada. Si se sigue otra,
        se cancela primero. Un fallo síncrono del almacén deja el estado
        como estaba.
        """
        if (
            self._active is not None
            and self._active.incident_id == incident_id
            and self._state in (WatchState.WATCHING, WatchState.RESOLVED_HANDLED)
        ):
            return WatchResult(ok=True, incident_id=incident_id)

        previous = self._active
        watch = _ActiveWatch(incident_id, title)
        self._active = watch
        try:
            watch.subscription = self._store.watch_document(
                incident_id,
                on_snapshot=lambda incident: self._dispatcher.post(self._on_document, watch, incident),
                on_error=lambda error: self._dispatcher.post(self._on_subscription_error, watch, error),
            )
        except SubscriptionError as e:
            self._active = previous
            SUBSCRIPTION_ERRORS.labels(source="tracker").inc()
            logger.warning("[TRACKER] Could not watch incident=%s: %s", incident_id, e)
            return WatchResult(ok=False, incident_id=incident_id, error=e)

        if previous is not None:
            self._release(previous)
            logger.info("[TRACKER] Replaced watch %s -> %s", previous.incident_id, incident_id)

        self._transition(WatchState.WATCHING)
        self._publish(incident_status_value(True, incident_id, IncidentStatus.PENDING))
        logger.info("[TRACKER] Watching incident=%s", incident_id)
        return WatchResult(ok=True, incident_id=incident_id)

    def cancel_watch(self) -> None:
        """WATCHING → UNWATCHED sin efectos.

        RESOLVED_HANDLED es terminal para esa incidencia: se suelta la
        suscripción pero el estado no vuelve a UNWATCHED.
        """
        watch = self._active
        if watch is None:
            return
        self._release(watch)
        if self._state == WatchState.RESOLVED_HANDLED:
            return
        self._active = None
        if self._state != WatchState.UNWATCHED:
            self._transition(WatchState.UNWATCHED)
        logger.info("[TRACKER] Cancelled watch incident=%s", watch.incident_id)

    def close(self) -> None:
        self.cancel_watch()

    def lock(self, reason: str) -> None:
        """Bloquea la UI sin seguir ninguna incidencia (p. ej. sensor desconectado)."""
        status = IncidentStatus.PENDING if self._state == WatchState.WATCHING else None
        self._publish(incident_status_value(True, self.incident_id, status, reason))
        self._lock_reason = reason

    def unlock(self, reason: str) -> bool:
        """Quita un bloqueo puesto con lock(reason).

        Con una incidencia en seguimiento la UI sigue bloqueada hasta su
        resolución; solo se limpia el motivo. Devuelve True si se publicó
        el estado desbloqueado.
        """
        if self._lock_reason != reason:
            return False
        if self._state == WatchState.WATCHING:
            self._publish(incident_status_value(True, self.incident_id, IncidentStatus.PENDING))
            return False
        self._publish(incident_status_value(False, self.incident_id, self._last_status()))
        logger.info("[TRACKER] Unlocked (%s cleared)", reason)
        return True

    def _last_status(self) -> Optional[IncidentStatus]:
        if self._state == WatchState.RESOLVED_HANDLED:
            return IncidentStatus.RESOLVED
        return None

    def _on_document(self, watch: _ActiveWatch, incident: Optional[Incident]) -> None:
        if watch is not self._active or self._state != WatchState.WATCHING:
            logger.debug("[TRACKER] Ignoring stray update for incident=%s", watch.incident_id)
            return
        if incident is None:
            logger.debug("[TRACKER] incident=%s has no document yet", watch.incident_id)
            return

        if not watch.detector.observe(incident.status):
            self._ledger.watch_for(watch.incident_id).observe(incident.status)
            return

        self._transition(WatchState.RESOLVED_HANDLED)
        self._publish(incident_status_value(False, watch.incident_id, IncidentStatus.RESOLVED))

        if self._ledger.observe(watch.incident_id, IncidentStatus.RESOLVED):
            self._notify_resolution(watch, incident)
        else:
            logger.info("[TRACKER] Resolution of %s already notified this session", watch.incident_id)

        self._release(watch)

    def _on_subscription_error(self, watch: _ActiveWatch, error: SubscriptionError) -> None:
        if watch is not self._active:
            return
        SUBSCRIPTION_ERRORS.labels(source="tracker").inc()
        logger.warning("[TRACKER] Subscription error incident=%s: %s", watch.incident_id, error)
        if self._on_error is not None:
            self._on_error(error)

    def _notify_resolution(self, watch: _ActiveWatch, incident: Incident) -> None:
        self._effects += 1
        if self._notifier is None:
            return
        title = watch.title or incident.title or watch.incident_id
        body = (
            f"The incident '{title}' reported for sensor {incident.sensor_id} "
            f"has been marked as resolved."
        )
        self._notifier.notify(
            NotificationChannel.EMAIL,
            f"Incident resolved: {title}",
            body,
            recipient=self._admin_email,
        )

    def _release(self, watch: _ActiveWatch) -> None:
        if watch.subscription is not None:
            watch.subscription.cancel()
            watch.subscription = None

    def _transition(self, new_state: WatchState) -> None:
        INCIDENT_TRANSITIONS.labels(transition=f"{self._state.value}->{new_state.value}").inc()
        self._state = new_state

    def _publish(self, value: dict) -> None:
        self._lock_reason = None
        if self._status_writer is not None:
            self._status_writer.publish(value)
