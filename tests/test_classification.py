"""Tests del evaluador de umbrales y de la política de exposición.

Ejecutar:
    pytest tests/test_classification.py -v
"""

import pytest

from tracking_api.classification import (
    DEFAULT_LIMITS,
    ExposureLevel,
    Limits,
    MetricKind,
    Reading,
    ThresholdEvaluator,
    ThresholdLevel,
    evaluate_series,
    format_value,
    is_battery_low,
    signal_bars,
    summarize_exposure,
)
from tracking_api.errors import ConfigurationError


@pytest.fixture
def evaluator() -> ThresholdEvaluator:
    return ThresholdEvaluator()


# =============================================================================
# CLASIFICACIÓN
# =============================================================================

class TestThresholdEvaluator:

    def test_value_equal_to_safe_threshold_is_safe(self, evaluator):
        """La comparación es estricta: 800 ppm con umbral 800 es SAFE."""
        result = evaluator.classify(MetricKind.CO2, 800)
        assert result.level == ThresholdLevel.SAFE
        assert result.message is None
        assert result.is_violation is False

    def test_value_above_safe_threshold_is_risk(self, evaluator):
        result = evaluator.classify(MetricKind.CO2, 801)
        assert result.level == ThresholdLevel.RISK
        assert result.message == "Carbon dioxide (CO2): 801 ppm exceeds risk threshold"

    def test_value_above_danger_threshold_is_danger(self, evaluator):
        result = evaluator.classify(MetricKind.CO2, 1250)
        assert result.level == ThresholdLevel.DANGER
        assert result.message == "Carbon dioxide (CO2): 1250 ppm exceeds danger threshold"

    def test_value_equal_to_danger_threshold_is_risk(self, evaluator):
        assert evaluator.level_for(MetricKind.CO2, 1200) == ThresholdLevel.RISK

    def test_ozone_message_uses_three_decimals(self, evaluator):
        result = evaluator.classify(MetricKind.OZONE, 0.95)
        assert result.message == "Ozone (O3): 0.950 ppm exceeds danger threshold"

    def test_message_is_deterministic(self, evaluator):
        a = evaluator.classify(MetricKind.TEMPERATURE, 29.04)
        b = evaluator.classify(MetricKind.TEMPERATURE, 29.04)
        assert a.message == b.message

    @pytest.mark.parametrize(
        "value, level",
        [(50, ThresholdLevel.SAFE), (30, ThresholdLevel.SAFE), (20, ThresholdLevel.RISK), (10, ThresholdLevel.DANGER)],
    )
    def test_battery_is_inverted(self, evaluator, value, level):
        assert evaluator.level_for(MetricKind.BATTERY, value) == level

    def test_inverted_message_says_below(self, evaluator):
        result = evaluator.classify(MetricKind.SIGNAL, -95)
        assert result.level == ThresholdLevel.DANGER
        assert result.message == "Signal (RSSI): -95 dBm below danger threshold"

    def test_battery_percent_has_no_space(self, evaluator):
        result = evaluator.classify(MetricKind.BATTERY, 12)
        assert result.message == "Battery: 12% below danger threshold"

    @pytest.mark.parametrize(
        "metric, value, expected",
        [
            (MetricKind.CO2, 800.4, "Carbon dioxide (CO2): 800.4 ppm exceeds risk threshold"),
            (MetricKind.CO2, 1200.04, "Carbon dioxide (CO2): 1200.04 ppm exceeds danger threshold"),
            (MetricKind.BATTERY, 14.6, "Battery: 14.6% below danger threshold"),
        ],
    )
    def test_rounded_value_still_crosses_threshold(self, evaluator, metric, value, expected):
        assert evaluator.classify(metric, value).message == expected

    def test_unknown_metric_raises_configuration_error(self, evaluator):
        with pytest.raises(ConfigurationError):
            evaluator.classify("radon", 3.0)

    def test_metric_missing_from_table_raises(self):
        evaluator = ThresholdEvaluator({MetricKind.CO2: DEFAULT_LIMITS[MetricKind.CO2]})
        with pytest.raises(ConfigurationError):
            evaluator.classify(MetricKind.OZONE, 0.1)

    def test_inconsistent_table_rejected_at_construction(self):
        with pytest.raises(ConfigurationError):
            ThresholdEvaluator({MetricKind.CO2: Limits(1200, 800, "ppm", "CO2")})

    def test_default_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_LIMITS[MetricKind.CO2] = Limits(1, 2, "ppm", "x")

    def test_evaluate_packet_keeps_input_order(self, evaluator):
        readings = [
            Reading(MetricKind.TEMPERATURE, 30.0),
            Reading(MetricKind.CO2, 500),
            Reading(MetricKind.OZONE, 0.7),
        ]
        alerts = evaluator.evaluate_packet(readings)
        assert alerts == [
            "Temperature: 30.0 ºC exceeds danger threshold",
            "Ozone (O3): 0.700 ppm exceeds risk threshold",
        ]


class TestPresentationHelpers:

    @pytest.mark.parametrize(
        "rssi, bars",
        [(-50, 4), (-60, 4), (-65, 3), (-75, 2), (-80, 2), (-85, 1), (-90, 1), (-91, 0)],
    )
    def test_signal_bars(self, rssi, bars):
        assert signal_bars(rssi) == bars

    def test_battery_low_at_fifteen_percent(self):
        assert is_battery_low(15) is True
        assert is_battery_low(16) is False

    def test_format_value(self):
        assert format_value(21.456, DEFAULT_LIMITS[MetricKind.TEMPERATURE]) == "21.5 ºC"


# =============================================================================
# EXPOSICIÓN
# =============================================================================

class TestExposure:

    def test_any_danger_is_dangerous(self):
        levels = [ThresholdLevel.DANGER] * 5 + [ThresholdLevel.SAFE] * 5
        summary = summarize_exposure(levels)
        assert summary.level == ExposureLevel.DANGEROUS
        assert summary.danger_count == 5
        assert summary.total == 10

    def test_more_than_three_risk_is_caution(self):
        summary = summarize_exposure([ThresholdLevel.RISK] * 4)
        assert summary.level == ExposureLevel.CAUTION

    def test_three_risk_is_still_safe(self):
        summary = summarize_exposure([ThresholdLevel.RISK] * 3 + [ThresholdLevel.SAFE])
        assert summary.level == ExposureLevel.SAFE
        assert summary.risk_count == 3

    def test_empty_series_is_safe(self):
        summary = summarize_exposure([])
        assert summary.level == ExposureLevel.SAFE
        assert summary.total == 0

    def test_evaluate_series_with_five_danger_readings(self):
        """5 lecturas DANGER entre 10 → DANGEROUS."""
        values = [1300, 500, 1250, 600, 1400, 700, 1500, 650, 1210, 400]
        summary = evaluate_series(ThresholdEvaluator(), MetricKind.CO2, values)
        assert summary.level == ExposureLevel.DANGEROUS
        assert summary.danger_count == 5
        assert "DANGEROUS" in summary.explanation
