"""SensorFeedHandler: lecturas en vivo → canales de sesión + alertas.

Corre en el hilo dueño. Por cada paquete:
  1. Publica el valor de cada magnitud en su canal
  2. Actualiza lastSeen / location / connectionStatus
  3. Evalúa umbrales y pasa el lote de alertas al AlertAggregator
  4. Recalcula la exposición sobre la ventana reciente

Si no llegan lecturas en STALE_AFTER_SECONDS el sensor pasa a
"disconnected" y la UI queda bloqueada hasta que vuelvan las lecturas
(o, si hay una incidencia en seguimiento, hasta que se resuelva).
Un hueco en las lecturas es ausencia de datos, nunca un error.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Deque, Iterable, Optional

from ..classification import (
    MetricKind,
    Reading,
    ThresholdEvaluator,
    ThresholdLevel,
    format_value,
    is_battery_low,
    signal_bars,
    summarize_exposure,
)
from ..metrics import READINGS_RECEIVED
from ..state.channels import CONNECTED, DISCONNECTED, METRIC_CHANNELS, Channel

if TYPE_CHECKING:
    from ..alerts.aggregator import AlertAggregator
    from ..incidents.tracker import IncidentStateTracker
    from ..state.store import SessionStateStore

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER_SECONDS = 60.0
DEFAULT_EXPOSURE_WINDOW = 10

# Magnitudes que cuentan para la exposición (no batería ni señal)
EXPOSURE_METRICS = frozenset({
    MetricKind.OZONE,
    MetricKind.CO2,
    MetricKind.TEMPERATURE,
    MetricKind.CO,
    MetricKind.NO2,
    MetricKind.SO2,
})

DISCONNECT_REASON = "sensor disconnected"


class SensorFeedHandler:
    OWNER = "sensor-feed"

    def __init__(
        self,
        evaluator: ThresholdEvaluator,
        aggregator: "AlertAggregator",
        state: "SessionStateStore",
        tracker: Optional["IncidentStateTracker"] = None,
        stale_after_seconds: float = DEFAULT_STALE_AFTER_SECONDS,
        exposure_window: int = DEFAULT_EXPOSURE_WINDOW,
    ):
        self._evaluator = evaluator
        self._aggregator = aggregator
        self._tracker = tracker
        self._stale_after = stale_after_seconds

        self._metric_writers = {
            metric: state.claim_writer(channel, self.OWNER)
            for metric, channel in METRIC_CHANNELS.items()
        }
        self._last_seen_writer = state.claim_writer(Channel.LAST_SEEN, self.OWNER)
        self._location_writer = state.claim_writer(Channel.LOCATION, self.OWNER)
        self._connection_writer = state.claim_writer(Channel.CONNECTION_STATUS, self.OWNER)
        self._exposure_writer = state.claim_writer(Channel.EXPOSURE, self.OWNER)

        self._recent_levels: Deque[ThresholdLevel] = deque(maxlen=exposure_window)
        self._last_seen: Optional[datetime] = None
        self._location: Optional[str] = None
        self._connection: Optional[str] = None
        self._packets = 0

    @property
    def last_seen(self) -> Optional[datetime]:
        return self._last_seen

    @property
    def location(self) -> Optional[str]:
        return self._location

    @property
    def connection_status(self) -> Optional[str]:
        return self._connection

    def on_packet(
        self,
        readings: Iterable[Reading],
        location: Optional[str] = None,
        observed_at: Optional[datetime] = None,
    ) -> list[str]:
        """Aplica un paquete de lecturas. Devuelve el lote de alertas generado."""
        readings = list(readings)
        if not readings:
            return []

        alerts: list[str] = []
        for reading in readings:
            result = self._evaluator.classify(reading.metric, reading.value)
            READINGS_RECEIVED.labels(metric=reading.metric.value).inc()

            writer = self._metric_writers.get(reading.metric)
            if writer is not None:
                writer.publish(self._metric_value(reading, result.level))
            if reading.metric in EXPOSURE_METRICS:
                self._recent_levels.append(result.level)
            if result.message is not None:
                alerts.append(result.message)

        self._last_seen = observed_at or max(r.observed_at for r in readings)
        self._last_seen_writer.publish(self._last_seen.isoformat())
        if location and location != self._location:
            self._location = location
            self._location_writer.publish(location)
        self._set_connection(CONNECTED)

        self._aggregator.ingest(alerts)
        self._publish_exposure()
        self._packets += 1
        return alerts

    def on_connection_lost(self) -> None:
        if self._connection == DISCONNECTED:
            return
        self._set_connection(DISCONNECTED)
        logger.warning("[SENSOR] Connection lost, last_seen=%s", self._last_seen)
        if self._tracker is not None:
            self._tracker.lock(DISCONNECT_REASON)

    def check_liveness(self, now: Optional[datetime] = None) -> bool:
        """True si el sensor sigue vivo; si no, marca la desconexión."""
        if self._last_seen is None:
            return False
        now = now or datetime.now(timezone.utc)
        if (now - self._last_seen).total_seconds() > self._stale_after:
            self.on_connection_lost()
            return False
        return True

    def _set_connection(self, status: str) -> None:
        if status == self._connection:
            return
        previous = self._connection
        self._connection = status
        self._connection_writer.publish(status)
        logger.info("[SENSOR] connection=%s", status)
        if previous == DISCONNECTED and status == CONNECTED and self._tracker is not None:
            self._tracker.unlock(DISCONNECT_REASON)

    def _metric_value(self, reading: Reading, level: ThresholdLevel) -> dict:
        limits = self._evaluator.limits_for(reading.metric)
        value = {
            "value": reading.value,
            "level": level.value,
            "display": format_value(reading.value, limits),
        }
        if reading.metric == MetricKind.BATTERY:
            value["low"] = is_battery_low(reading.value)
        elif reading.metric == MetricKind.SIGNAL:
            value["bars"] = signal_bars(reading.value)
        return value

    def _publish_exposure(self) -> None:
        if not self._recent_levels:
            return
        summary = summarize_exposure(self._recent_levels)
        self._exposure_writer.publish({
            "level": summary.level.value,
            "dangerCount": summary.danger_count,
            "riskCount": summary.risk_count,
            "total": summary.total,
            "explanation": summary.explanation,
        })

    @property
    def stats(self) -> dict:
        return {
            "packets": self._packets,
            "connection": self._connection,
            "last_seen": self._last_seen.isoformat() if self._last_seen else None,
        }
