"""Evaluación de umbrales para lecturas del sensor.

Tabla estática de límites por magnitud y clasificador puro:
- DANGER si el valor supera el umbral de peligro
- RISK si supera el umbral seguro
- SAFE en otro caso

La comparación es estricta: un valor igual al umbral no es violación.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from ..errors import ConfigurationError
from .models import Classification, Limits, MetricKind, Reading, ThresholdLevel

logger = logging.getLogger(__name__)


DEFAULT_LIMITS: Mapping[MetricKind, Limits] = MappingProxyType({
    MetricKind.OZONE: Limits(0.6, 0.9, "ppm", "Ozone (O3)", decimals=3),
    MetricKind.CO2: Limits(800, 1200, "ppm", "Carbon dioxide (CO2)", decimals=0),
    MetricKind.TEMPERATURE: Limits(20, 28, "ºC", "Temperature", decimals=1),
    MetricKind.BATTERY: Limits(30, 15, "%", "Battery", decimals=0, inverted=True),
    MetricKind.SIGNAL: Limits(-80, -90, "dBm", "Signal (RSSI)", decimals=0, inverted=True),
    MetricKind.CO: Limits(10, 30, "mg/m³", "Carbon monoxide (CO)", decimals=1),
    MetricKind.NO2: Limits(200, 400, "µg/m³", "Nitrogen dioxide (NO2)", decimals=0),
    MetricKind.SO2: Limits(350, 500, "µg/m³", "Sulphur dioxide (SO2)", decimals=0),
})

LOW_BATTERY_PERCENT = 15

# (rssi mínimo, barras) de mayor a menor
_SIGNAL_BARS = ((-60, 4), (-70, 3), (-80, 2), (-90, 1))
_MAX_EXTRA_DECIMALS = 3


def validate_limits_table(table: Mapping[MetricKind, Limits]) -> None:
    """Verifica la coherencia de la tabla de límites.

    Raises:
        ConfigurationError: si un límite está invertido respecto a su dirección.
    """
    for kind, limits in table.items():
        if not isinstance(kind, MetricKind):
            raise ConfigurationError(f"Unknown metric kind in limits table: {kind!r}")
        if limits.inverted:
            ok = limits.danger_threshold <= limits.safe_threshold
        else:
            ok = limits.danger_threshold >= limits.safe_threshold
        if not ok:
            raise ConfigurationError(
                f"Inconsistent limits for {kind.value}: "
                f"safe={limits.safe_threshold} danger={limits.danger_threshold} "
                f"inverted={limits.inverted}"
            )
        if limits.decimals < 0:
            raise ConfigurationError(f"Negative decimals for {kind.value}")


def format_value(value: float, limits: Limits, decimals: Optional[int] = None) -> str:
    """Formatea un valor con la precisión y unidad de su magnitud."""
    if decimals is None:
        decimals = limits.decimals
    if limits.unit == "%":
        return f"{value:.{decimals}f}%"
    return f"{value:.{decimals}f} {limits.unit}"


def alert_decimals(value: float, limits: Limits, level: ThresholdLevel) -> int:
    """Decimales para el mensaje de alerta.

    Si al redondear el valor deja de superar el umbral cruzado (800.4 ppm
    se vería como "800 ppm"), se añaden decimales hasta que lo supere.
    """
    threshold = limits.danger_threshold if level == ThresholdLevel.DANGER else limits.safe_threshold
    for extra in range(_MAX_EXTRA_DECIMALS + 1):
        shown = round(value, limits.decimals + extra)
        crosses = shown < threshold if limits.inverted else shown > threshold
        if crosses:
            return limits.decimals + extra
    return limits.decimals + _MAX_EXTRA_DECIMALS


class ThresholdEvaluator:
    """Clasificador puro de lecturas frente a la tabla de límites."""

    def __init__(self, limits: Optional[Mapping[MetricKind, Limits]] = None):
        table = dict(limits if limits is not None else DEFAULT_LIMITS)
        validate_limits_table(table)
        self._limits: Mapping[MetricKind, Limits] = MappingProxyType(table)

    @property
    def limits(self) -> Mapping[MetricKind, Limits]:
        return self._limits

    def limits_for(self, metric: MetricKind) -> Limits:
        try:
            return self._limits[MetricKind(metric)]
        except (KeyError, ValueError):
            raise ConfigurationError(f"Unknown metric kind: {metric!r}")

    def level_for(self, metric: MetricKind, value: float) -> ThresholdLevel:
        limits = self.limits_for(metric)
        if limits.inverted:
            if value < limits.danger_threshold:
                return ThresholdLevel.DANGER
            if value < limits.safe_threshold:
                return ThresholdLevel.RISK
            return ThresholdLevel.SAFE

        if value > limits.danger_threshold:
            return ThresholdLevel.DANGER
        if value > limits.safe_threshold:
            return ThresholdLevel.RISK
        return ThresholdLevel.SAFE

    def classify(self, metric: MetricKind, value: float) -> Classification:
        """Clasifica un valor y genera el mensaje de alerta si no es SAFE.

        El mensaje es determinista: misma magnitud y valor, mismo texto.
        Esto es lo que permite deduplicar alertas por texto.
        """
        limits = self.limits_for(metric)
        metric = MetricKind(metric)
        level = self.level_for(metric, value)

        if level == ThresholdLevel.SAFE:
            return Classification(metric=metric, value=value, level=level)

        verb = "below" if limits.inverted else "exceeds"
        shown = format_value(value, limits, alert_decimals(value, limits, level))
        message = f"{limits.label}: {shown} {verb} {level.value} threshold"
        return Classification(metric=metric, value=value, level=level, message=message)

    def evaluate_packet(self, readings: Iterable[Reading]) -> list[str]:
        """Mensajes de alerta de un paquete de lecturas, en orden de entrada."""
        alerts: list[str] = []
        for reading in readings:
            result = self.classify(reading.metric, reading.value)
            if result.message is not None:
                alerts.append(result.message)
        return alerts


def signal_bars(rssi: float) -> int:
    """Barras de cobertura (0-4) para un RSSI en dBm."""
    for floor, bars in _SIGNAL_BARS:
        if rssi >= floor:
            return bars
    return 0


def is_battery_low(percent: float) -> bool:
    return percent <= LOW_BATTERY_PERCENT
