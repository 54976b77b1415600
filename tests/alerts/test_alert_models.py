"""Tests for alert registries and data structures."""

import pytest

from pnode_analytics.alerts.models import (
    METRICS_BY_SCOPE,
    Alert,
    AlertOperator,
    AlertRule,
    AlertScope,
    breaches,
    classify_severity,
)
from pnode_analytics.core.models import NetworkMetric, NodeMetric, Severity


class TestOperators:
    @pytest.mark.parametrize(
        "value, operator, threshold, expected",
        [
            (49.9, AlertOperator.LT, 50, True),
            (50, AlertOperator.LT, 50, False),
            (50, AlertOperator.LTE, 50, True),
            (50.1, AlertOperator.GT, 50, True),
            (50, AlertOperator.GTE, 50, True),
            (50, AlertOperator.EQ, 50, True),
            (50.0001, AlertOperator.EQ, 50, False),
        ],
    )
    def test_breaches(self, value, operator, threshold, expected):
        assert breaches(value, operator, threshold) is expected


class TestClassifySeverity:
    def test_non_positive_threshold_is_always_warning(self):
        assert classify_severity(-100, AlertOperator.LT, 0, 2.0) == Severity.WARNING
        assert classify_severity(100, AlertOperator.GT, -1, 2.0) == Severity.WARNING

    def test_equality_is_warning(self):
        assert classify_severity(10, AlertOperator.EQ, 10, 2.0) == Severity.WARNING

    def test_above(self):
        assert classify_severity(19, AlertOperator.GT, 10, 2.0) == Severity.WARNING
        assert classify_severity(20, AlertOperator.GT, 10, 2.0) == Severity.CRITICAL


class TestRegistries:
    def test_every_persisted_metric_is_registered(self):
        assert set(METRICS_BY_SCOPE[AlertScope.NETWORK]) == {m.value for m in NetworkMetric}
        assert set(METRICS_BY_SCOPE[AlertScope.PNODE]) == {m.value for m in NodeMetric}


class TestRuleAndAlert:
    def test_ids_are_generated(self, now):
        rule = AlertRule(id="", name="r", metric="latency", operator=AlertOperator.GT, threshold=1)
        alert = Alert(
            id="", rule_id=rule.id, severity=Severity.WARNING, trigger_value=2.0,
            threshold=1.0, message="m", created_at=now,
        )
        assert rule.id.startswith("rule_")
        assert alert.id.startswith("alert_")
        assert alert.is_active

    def test_filter_matching(self):
        rule = AlertRule(
            id="r1", name="r", metric="latency", operator=AlertOperator.GT, threshold=1,
            scope=AlertScope.PNODE, pnode_filter="node-a",
        )
        assert rule.matches("node-a")
        assert not rule.matches("node-b")

    def test_to_dict(self, now):
        alert = Alert(
            id="a1", rule_id="r1", severity=Severity.CRITICAL, trigger_value=2.123456,
            threshold=1.0, message="m", created_at=now, pnode_id="node-a", resolved_at=now,
        )
        data = alert.to_dict()
        assert data["severity"] == "CRITICAL"
        assert data["trigger_value"] == 2.1235
        assert data["resolved_at"] == now.isoformat()
        assert data["is_active"] is False
