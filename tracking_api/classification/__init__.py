"""Clasificación de lecturas por umbral.

Estructura:
- models.py: enums y dataclasses (MetricKind, Limits, Classification...)
- thresholds.py: tabla de límites y ThresholdEvaluator
- exposure.py: política de exposición de una serie
"""

from .models import (
    Classification,
    ExposureLevel,
    ExposureSummary,
    Limits,
    MetricKind,
    Reading,
    ThresholdLevel,
)
from .thresholds import (
    DEFAULT_LIMITS,
    alert_decimals,
    ThresholdEvaluator,
    format_value,
    is_battery_low,
    signal_bars,
    validate_limits_table,
)
from .exposure import evaluate_series, summarize_exposure

__all__ = [
    "Classification",
    "ExposureLevel",
    "ExposureSummary",
    "Limits",
    "MetricKind",
    "Reading",
    "ThresholdLevel",
    "DEFAULT_LIMITS",
    "alert_decimals",
    "ThresholdEvaluator",
    "format_value",
    "is_battery_low",
    "signal_bars",
    "validate_limits_table",
    "evaluate_series",
    "summarize_exposure",
]
