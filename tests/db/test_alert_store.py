"""Tests for alert rule / alert persistence."""

from datetime import timedelta

from pnode_analytics.alerts.models import Alert, AlertOperator, AlertRule, AlertScope
from pnode_analytics.core.models import Severity


def _rule(alert_store, **overrides) -> AlertRule:
    fields = dict(
        id="",
        name="Slow node",
        metric="latency",
        operator=AlertOperator.GT,
        threshold=500.0,
        scope=AlertScope.PNODE,
    )
    fields.update(overrides)
    return alert_store.insert_rule(AlertRule(**fields))


def _alert(rule, created_at, pnode_id=None) -> Alert:
    return Alert(
        id="",
        rule_id=rule.id,
        pnode_id=pnode_id,
        severity=Severity.WARNING,
        trigger_value=600.0,
        threshold=rule.threshold,
        message="slow",
        created_at=created_at,
    )


class TestRules:
    def test_round_trip(self, alert_store, now):
        rule = _rule(alert_store, pnode_filter="node-a", cooldown_minutes=5, created_at=now)
        assert alert_store.get_rule(rule.id) == rule

    def test_disabled_rules_hidden_by_default(self, alert_store):
        enabled = _rule(alert_store)
        disabled = _rule(alert_store, enabled=False)

        assert [r.id for r in alert_store.list_rules()] == [enabled.id]
        assert {r.id for r in alert_store.list_rules(include_disabled=True)} == {enabled.id, disabled.id}

    def test_updates_report_unknown_rules(self, alert_store):
        rule = _rule(alert_store)
        assert alert_store.set_enabled(rule.id, False) is True
        assert alert_store.set_threshold(rule.id, 250.0) is True
        assert alert_store.get_rule(rule.id).threshold == 250.0
        assert alert_store.set_enabled("rule_missing", False) is False
        assert alert_store.set_threshold("rule_missing", 1.0) is False


class TestActiveAlertIndex:
    """At most one active alert per (rule, node) pair."""

    def test_second_active_alert_is_rejected(self, alert_store, now):
        rule = _rule(alert_store)
        assert alert_store.insert_alert(_alert(rule, now, "node-a")) is True
        assert alert_store.insert_alert(_alert(rule, now + timedelta(minutes=1), "node-a")) is False
        assert alert_store.insert_alert(_alert(rule, now, "node-b")) is True

    def test_network_scope_pair_uses_null_node(self, alert_store, now):
        rule = _rule(alert_store, scope=AlertScope.NETWORK, metric="healthScore")
        assert alert_store.insert_alert(_alert(rule, now)) is True
        assert alert_store.insert_alert(_alert(rule, now)) is False

    def test_resolved_alert_frees_the_pair(self, alert_store, now):
        rule = _rule(alert_store)
        first = _alert(rule, now, "node-a")
        alert_store.insert_alert(first)

        assert alert_store.resolve(first.id, now + timedelta(minutes=1)) is True
        assert alert_store.resolve(first.id, now + timedelta(minutes=2)) is False
        assert alert_store.get_alert(first.id).resolved_at == now + timedelta(minutes=1)
        assert alert_store.insert_alert(_alert(rule, now + timedelta(minutes=3), "node-a")) is True


class TestQueries:
    def test_active_and_last_created(self, alert_store, now):
        rule = _rule(alert_store)
        old = _alert(rule, now, "node-a")
        alert_store.insert_alert(old)
        alert_store.resolve(old.id, now + timedelta(minutes=1))
        current = _alert(rule, now + timedelta(minutes=30), "node-a")
        alert_store.insert_alert(current)

        assert list(alert_store.active_alerts(rule.id)) == ["node-a"]
        assert alert_store.active_alerts(rule.id)["node-a"].id == current.id
        assert alert_store.last_created(rule.id) == {"node-a": now + timedelta(minutes=30)}

    def test_list_newest_first(self, alert_store, now):
        rule = _rule(alert_store)
        for i, node in enumerate(["a", "b", "c"]):
            alert_store.insert_alert(_alert(rule, now + timedelta(minutes=i), node))
        alert_store.resolve_all_for_rule(rule.id, now + timedelta(hours=1))
        alert_store.insert_alert(_alert(rule, now + timedelta(hours=2), "a"))

        assert [a.pnode_id for a in alert_store.list_alerts()] == ["a", "c", "b", "a"]
        assert [a.pnode_id for a in alert_store.list_alerts(unresolved_only=True)] == ["a"]
        assert len(alert_store.list_alerts(limit=2, offset=3)) == 1
        assert alert_store.counts() == {"total": 4, "active": 1, "critical": 0}

    def test_counts_on_empty_store(self, alert_store):
        assert alert_store.counts() == {"total": 0, "active": 0, "critical": 0}
