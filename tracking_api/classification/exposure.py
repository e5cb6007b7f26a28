"""Política de exposición para una serie de la gráfica.

Regla fija:
- cualquier entrada DANGER → DANGEROUS
- más de 3 entradas RISK → CAUTION
- en otro caso → SAFE
"""

from __future__ import annotations

from typing import Iterable

from .models import ExposureLevel, ExposureSummary, MetricKind, ThresholdLevel
from .thresholds import ThresholdEvaluator

RISK_COUNT_FOR_CAUTION = 3

_EXPLANATIONS = {
    ExposureLevel.DANGEROUS: "Alert! DANGEROUS levels detected. Avoid the area.",
    ExposureLevel.CAUTION: "Caution: risk levels detected. Air quality is not optimal.",
    ExposureLevel.SAFE: "Excellent! Air quality is safe.",
}


def summarize_exposure(levels: Iterable[ThresholdLevel]) -> ExposureSummary:
    danger = 0
    risk = 0
    total = 0
    for level in levels:
        total += 1
        if level == ThresholdLevel.DANGER:
            danger += 1
        elif level == ThresholdLevel.RISK:
            risk += 1

    if danger > 0:
        overall = ExposureLevel.DANGEROUS
    elif risk > RISK_COUNT_FOR_CAUTION:
        overall = ExposureLevel.CAUTION
    else:
        overall = ExposureLevel.SAFE

    return ExposureSummary(
        level=overall,
        danger_count=danger,
        risk_count=risk,
        total=total,
        explanation=_EXPLANATIONS[overall],
    )


def evaluate_series(
    evaluator: ThresholdEvaluator,
    metric: MetricKind,
    values: Iterable[float],
) -> ExposureSummary:
    """Clasifica cada punto de la serie y aplica la política."""
    return summarize_exposure(evaluator.level_for(metric, v) for v in values)
