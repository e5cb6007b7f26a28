"""AlertAggregator: historial acotado y deduplicado de alertas.

Dos políticas (configurables, ver DESIGN.md):

REPLACE_MERGE (por defecto, cap 6):
    historial = unique(nuevas + historial)[:cap]
    Una alerta conocida que se repite sube al frente.

INSERT_NEW_ONLY (cap 4):
    Solo las alertas nunca vistas se notifican (LOCAL, una vez) y se
    insertan al frente en el orden del lote. Las conocidas no se mueven
    ni se vuelven a notificar.

El historial es una tupla inmutable que se reemplaza entera: los
lectores nunca ven un estado a medias.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from ..errors import CapacityInvariantViolation, ConfigurationError
from ..metrics import ALERT_BATCHES_INGESTED, ALERT_HISTORY_SIZE
from ..notifications.sink import NotificationChannel

if TYPE_CHECKING:
    from common.config import Settings

    from ..notifications.sink import NotificationSink
    from ..state.store import ChannelWriter

logger = logging.getLogger(__name__)


class AlertPolicy(str, Enum):
    REPLACE_MERGE = "replace_merge"
    INSERT_NEW_ONLY = "insert_new_only"


DEFAULT_CAPS = {
    AlertPolicy.REPLACE_MERGE: 6,
    AlertPolicy.INSERT_NEW_ONLY: 4,
}

NEW_ALERT_TITLE = "Air quality alert"


@dataclass(frozen=True)
class AggregatorConfig:
    policy: AlertPolicy = AlertPolicy.REPLACE_MERGE
    history_cap: int = DEFAULT_CAPS[AlertPolicy.REPLACE_MERGE]

    def __post_init__(self):
        object.__setattr__(self, "policy", AlertPolicy(self.policy))
        if self.history_cap < 1:
            raise ConfigurationError(f"history_cap must be >= 1, got {self.history_cap}")

    @classmethod
    def for_policy(cls, policy: AlertPolicy | str) -> "AggregatorConfig":
        policy = AlertPolicy(policy)
        return cls(policy=policy, history_cap=DEFAULT_CAPS[policy])

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AggregatorConfig":
        return cls(policy=AlertPolicy(settings.alert_policy), history_cap=settings.alert_history_cap)


@dataclass(frozen=True, eq=False)
class AlertRecord:
    """Alerta del historial. Dos registros son iguales si el texto coincide."""

    message: str
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __eq__(self, other):
        if isinstance(other, AlertRecord):
            return self.message == other.message
        return NotImplemented

    def __hash__(self):
        return hash(self.message)


def _ordered_unique(messages: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for message in messages:
        if message not in seen:
            seen.add(message)
            out.append(message)
    return out


class AlertAggregator:
    """Fusiona lotes de alertas en el historial de la sesión.

    Solo debe mutarse desde el hilo dueño (ver OwnerDispatcher).
    """

    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        writer: Optional["ChannelWriter"] = None,
        notifier: Optional["NotificationSink"] = None,
    ):
        self._config = config or AggregatorConfig()
        self._writer = writer
        self._notifier = notifier
        self._history: tuple[AlertRecord, ...] = ()

        self._batches = 0
        self._notified = 0

        logger.info(
            "[ALERTS] Aggregator policy=%s cap=%d",
            self._config.policy.value,
            self._config.history_cap,
        )

    @property
    def config(self) -> AggregatorConfig:
        return self._config

    def current_history(self) -> tuple[str, ...]:
        return tuple(record.message for record in self._history)

    def ingest(self, new_alerts: Optional[Sequence[str]]) -> tuple[str, ...]:
        """Fusiona un lote y publica el historial resultante.

        Un lote vacío o None no cambia nada (ni publica).
        """
        if not new_alerts:
            return self.current_history()

        if self._config.policy == AlertPolicy.REPLACE_MERGE:
            history = self._replace_merge(new_alerts)
        else:
            history = self._insert_new_only(new_alerts)

        self._check_invariants(history)
        changed = history != self._history
        self._history = history
        self._batches += 1

        ALERT_BATCHES_INGESTED.labels(policy=self._config.policy.value).inc()
        ALERT_HISTORY_SIZE.set(len(history))
        logger.debug("[ALERTS] batch=%d history=%d changed=%s", len(new_alerts), len(history), changed)

        messages = self.current_history()
        if changed and self._writer is not None:
            self._writer.publish(messages)
        return messages

    def reset(self) -> None:
        self._history = ()
        ALERT_HISTORY_SIZE.set(0)
        if self._writer is not None:
            self._writer.publish(())

    def _replace_merge(self, new_alerts: Sequence[str]) -> tuple[AlertRecord, ...]:
        now = datetime.now(timezone.utc)
        previous = {record.message: record for record in self._history}
        merged = _ordered_unique(list(new_alerts) + list(previous))
        merged = merged[: self._config.history_cap]
        fresh = set(new_alerts)
        return tuple(
            AlertRecord(m, now) if m in fresh else previous[m]
            for m in merged
        )

    def _insert_new_only(self, new_alerts: Sequence[str]) -> tuple[AlertRecord, ...]:
        known = {record.message for record in self._history}
        unseen = [m for m in _ordered_unique(new_alerts) if m not in known]
        if not unseen:
            return self._history

        now = datetime.now(timezone.utc)
        for message in unseen:
            self._notify(message)
        block = tuple(AlertRecord(m, now) for m in unseen)
        return (block + self._history)[: self._config.history_cap]

    def _notify(self, message: str) -> None:
        if self._notifier is None:
            return
        self._notifier.notify(NotificationChannel.LOCAL, NEW_ALERT_TITLE, message)
        self._notified += 1

    def _check_invariants(self, history: tuple[AlertRecord, ...]) -> None:
        if len(history) > self._config.history_cap:
            raise CapacityInvariantViolation(
                f"Alert history has {len(history)} entries, cap is {self._config.history_cap}"
            )
        messages = [record.message for record in history]
        if len(set(messages)) != len(messages):
            raise CapacityInvariantViolation(f"Duplicate alert messages in history: {messages}")

    @property
    def stats(self) -> dict:
        return {
            "policy": self._config.policy.value,
            "history_cap": self._config.history_cap,
            "history_size": len(self._history),
            "batches": self._batches,
            "notified": self._notified,
        }
