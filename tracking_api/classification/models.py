"""Modelos de datos para clasificación de lecturas.

Dataclasses y enums usados por el evaluador de umbrales y por la
política de exposición de las gráficas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class MetricKind(str, Enum):
    """Magnitudes que reporta el sensor."""

    OZONE = "ozone"
    CO2 = "co2"
    TEMPERATURE = "temperature"
    BATTERY = "battery"
    SIGNAL = "signal"
    # Solo gráficas
    CO = "co"
    NO2 = "no2"
    SO2 = "so2"


class ThresholdLevel(str, Enum):
    """Clasificación de una lectura frente a sus límites."""

    SAFE = "safe"
    RISK = "risk"
    DANGER = "danger"


class ExposureLevel(str, Enum):
    """Resumen de exposición de una serie completa."""

    SAFE = "safe"
    CAUTION = "caution"
    DANGEROUS = "dangerous"


@dataclass(frozen=True)
class Limits:
    """Límites estáticos de una magnitud.

    Con ``inverted`` los valores bajos son los peligrosos (batería, RSSI):
    DANGER si value < danger_threshold, RISK si value < safe_threshold.
    """

    safe_threshold: float
    danger_threshold: float
    unit: str
    label: str
    decimals: int = 1
    inverted: bool = False


@dataclass(frozen=True)
class Reading:
    """Lectura efímera del sensor, se consume en cuanto llega."""

    metric: MetricKind
    value: float
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Classification:
    """Resultado de clasificar una lectura."""

    metric: MetricKind
    value: float
    level: ThresholdLevel
    message: Optional[str] = None

    @property
    def is_violation(self) -> bool:
        return self.level != ThresholdLevel.SAFE


@dataclass(frozen=True)
class ExposureSummary:
    """Resultado de la política de exposición sobre una serie."""

    level: ExposureLevel
    danger_count: int
    risk_count: int
    total: int
    explanation: str
