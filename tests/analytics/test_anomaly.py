"""Tests for network anomaly detection."""

from datetime import datetime, timedelta, timezone

from pnode_analytics.analytics.anomaly import check_series, detect_anomalies
from pnode_analytics.core.models import Severity

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def _hourly(values, start=NOW):
    return [(start + timedelta(hours=i), float(v)) for i, v in enumerate(values)]


BASELINE = [100, 102, 98, 101, 99, 100, 103, 97, 100, 100, 101, 99]


class TestCheckSeries:
    def test_spike_is_flagged(self):
        anomaly = check_series("totalNodes", _hourly(BASELINE + [150]))

        assert anomaly is not None
        assert anomaly.value == 150.0
        assert anomaly.expected == 100.0
        assert anomaly.severity == Severity.CRITICAL.value
        assert anomaly.timestamp == NOW + timedelta(hours=len(BASELINE))

    def test_moderate_deviation_is_warning(self):
        # baseline std ~1.58 -> 105 sits ~3.2 std out
        anomaly = check_series("totalNodes", _hourly(BASELINE + [105]))
        assert anomaly.severity == Severity.WARNING.value

    def test_normal_value_is_ignored(self):
        assert check_series("totalNodes", _hourly(BASELINE + [101])) is None

    def test_below_only_ignores_spikes_up(self):
        assert check_series("healthScore", _hourly(BASELINE + [150]), below_only=True) is None
        assert check_series("healthScore", _hourly(BASELINE + [50]), below_only=True) is not None

    def test_thin_baseline(self):
        assert check_series("totalNodes", _hourly([100, 100, 100, 500])) is None
        assert check_series("totalNodes", []) is None

    def test_points_outside_window_are_ignored(self):
        old = _hourly(BASELINE, start=NOW - timedelta(days=5))
        assert check_series("totalNodes", old + [(NOW, 150.0)]) is None

    def test_flat_baseline_uses_unit_std(self):
        anomaly = check_series("totalNodes", _hourly([100] * 12 + [103]))
        assert anomaly is not None
        assert anomaly.std == 0.0
        assert anomaly.deviation == 3.0


class TestDetectAnomalies:
    def test_health_drop_and_node_surge(self):
        history = {
            "totalNodes": _hourly(BASELINE + [150]),
            "healthScore": _hourly([90] * 12 + [40]),
        }
        found = {a.metric for a in detect_anomalies(history)}
        assert found == {"totalNodes", "healthScore"}

    def test_missing_metrics(self):
        assert detect_anomalies({}) == []
