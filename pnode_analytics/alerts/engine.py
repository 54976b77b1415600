"""
Alert Rule Engine
Evaluates operator-defined rules against each indexing cycle and manages
the alert lifecycle (trigger, suppress, resolve).

Lifecycle per (rule, node) pair:
    breach + no active alert + cooldown elapsed  -> new alert
    breach otherwise                             -> suppressed
    no breach + active alert                     -> resolved at cycle time
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from pnode_analytics.config import AlertSettings
from pnode_analytics.core.errors import NotFoundError, RuleValidationError
from pnode_analytics.core.events import short_id
from pnode_analytics.core.models import CycleSnapshot, Severity, utc_now

from .models import (
    METRICS_BY_SCOPE,
    Alert,
    AlertOperator,
    AlertRule,
    AlertScope,
    RuleSpec,
    breaches,
    classify_severity,
)

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    triggered: List[Alert] = field(default_factory=list)
    resolved: List[Alert] = field(default_factory=list)
    suppressed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggered": [a.to_dict() for a in self.triggered],
            "resolved": [a.to_dict() for a in self.resolved],
            "suppressed": self.suppressed,
        }


class AlertRuleEngine:
    def __init__(self, store, settings: Optional[AlertSettings] = None):
        """
        Args:
            store: AlertStore holding rules and alerts
            settings: cooldown default and critical multiple
        """
        self.store = store
        self.settings = settings or AlertSettings()
        self._stats = {
            "evaluations": 0,
            "triggers": 0,
            "resolutions": 0,
            "suppressed": 0,
            "last_evaluated_at": None,
        }

    # =========================================================================
    # Rules
    # =========================================================================

    def create_rule(self, spec: Union[RuleSpec, Dict[str, Any]]) -> AlertRule:
        if isinstance(spec, dict):
            try:
                spec = RuleSpec(**spec)
            except ValueError as e:
                raise RuleValidationError(str(e)) from e

        name = (spec.name or "").strip()
        if not name:
            raise RuleValidationError("Rule name is required")

        try:
            scope = AlertScope(spec.scope.upper())
        except ValueError:
            raise RuleValidationError(f"Unknown scope: {spec.scope}")

        if spec.metric not in METRICS_BY_SCOPE[scope]:
            raise RuleValidationError(
                f"Unknown {scope.value} metric: {spec.metric}. "
                f"Allowed: {sorted(METRICS_BY_SCOPE[scope])}"
            )

        try:
            operator = AlertOperator(spec.operator)
        except ValueError:
            raise RuleValidationError(f"Unknown operator: {spec.operator}")

        self._validate_threshold(spec.threshold)

        cooldown = spec.cooldown_minutes
        if cooldown is None:
            cooldown = self.settings.default_cooldown_minutes
        if cooldown < 0:
            raise RuleValidationError("cooldown_minutes must be non-negative")

        if spec.pnode_filter is not None and scope != AlertScope.PNODE:
            raise RuleValidationError("pnode_filter is only valid for PNODE rules")

        rule = AlertRule(
            id="",
            name=name,
            description=spec.description,
            metric=spec.metric,
            operator=operator,
            threshold=float(spec.threshold),
            scope=scope,
            pnode_filter=spec.pnode_filter or None,
            cooldown_minutes=cooldown,
            enabled=spec.enabled,
        )
        self.store.insert_rule(rule)
        logger.info("Created alert rule %s (%s %s %s)", rule.id, rule.metric,
                    rule.operator.value, rule.threshold)
        return rule

    def list_rules(self, include_disabled: bool = False) -> List[AlertRule]:
        return self.store.list_rules(include_disabled=include_disabled)

    def get_rule(self, rule_id: str) -> AlertRule:
        rule = self.store.get_rule(rule_id)
        if rule is None:
            raise NotFoundError("rule", rule_id)
        return rule

    def set_enabled(self, rule_id: str, enabled: bool) -> AlertRule:
        if not self.store.set_enabled(rule_id, enabled):
            raise NotFoundError("rule", rule_id)
        return self.get_rule(rule_id)

    def update_threshold(self, rule_id: str, threshold: float) -> AlertRule:
        self._validate_threshold(threshold)
        if not self.store.set_threshold(rule_id, float(threshold)):
            raise NotFoundError("rule", rule_id)
        return self.get_rule(rule_id)

    @staticmethod
    def _validate_threshold(threshold: Any) -> None:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise RuleValidationError(f"Threshold must be a number: {threshold!r}")
        if not math.isfinite(threshold):
            raise RuleValidationError(f"Threshold must be finite: {threshold!r}")

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, snapshot: CycleSnapshot) -> EvaluationResult:
        result = EvaluationResult()
        self._stats["evaluations"] += 1
        self._stats["last_evaluated_at"] = snapshot.timestamp

        for rule in self.store.list_rules():
            if rule.scope == AlertScope.NETWORK:
                value = snapshot.network.get(rule.metric)
                targets = {None: value} if value is not None else {}
            else:
                targets = {
                    node_id: metrics[rule.metric]
                    for node_id, metrics in snapshot.nodes.items()
                    if rule.matches(node_id) and rule.metric in metrics
                }
            if not targets:
                continue

            active = self.store.active_alerts(rule.id)
            last_created = self.store.last_created(rule.id)

            for pnode_id, value in targets.items():
                if breaches(value, rule.operator, rule.threshold):
                    if pnode_id in active or not self._cooldown_elapsed(
                        rule, last_created.get(pnode_id), snapshot.timestamp
                    ):
                        result.suppressed += 1
                        continue
                    alert = self._build_alert(rule, pnode_id, value, snapshot.timestamp)
                    if self.store.insert_alert(alert):
                        result.triggered.append(alert)
                        logger.info("Alert %s triggered: %s", alert.id, alert.message)
                    else:
                        result.suppressed += 1
                elif pnode_id in active:
                    alert = active[pnode_id]
                    if self.store.resolve(alert.id, snapshot.timestamp):
                        alert.resolved_at = snapshot.timestamp
                        result.resolved.append(alert)
                        logger.info("Alert %s resolved (%s = %s)", alert.id, rule.metric, value)

        self._stats["triggers"] += len(result.triggered)
        self._stats["resolutions"] += len(result.resolved)
        self._stats["suppressed"] += result.suppressed
        return result

    @staticmethod
    def _cooldown_elapsed(rule: AlertRule, last: Optional[datetime], now: datetime) -> bool:
        if last is None:
            return True
        return now - last >= timedelta(minutes=rule.cooldown_minutes)

    def _build_alert(
        self,
        rule: AlertRule,
        pnode_id: Optional[str],
        value: float,
        timestamp: datetime,
    ) -> Alert:
        severity = classify_severity(
            value, rule.operator, rule.threshold, self.settings.critical_multiple
        )
        subject = f"pNode {short_id(pnode_id)}" if pnode_id else "Network"
        message = (
            f"{rule.name}: {subject} {rule.metric} is {value:.2f} "
            f"({rule.operator.value} {rule.threshold:g})"
        )
        return Alert(
            id="",
            rule_id=rule.id,
            pnode_id=pnode_id,
            severity=severity,
            trigger_value=float(value),
            threshold=rule.threshold,
            message=message,
            created_at=timestamp,
        )

    # =========================================================================
    # Manual resolution / queries
    # =========================================================================

    def resolve_alert(self, alert_id: str, at: Optional[datetime] = None) -> Alert:
        """Idempotent: resolving a resolved alert returns it unchanged."""
        alert = self.store.get_alert(alert_id)
        if alert is None:
            raise NotFoundError("alert", alert_id)
        if alert.is_active:
            self.store.resolve(alert_id, at or utc_now())
            alert = self.store.get_alert(alert_id)
            logger.info("Alert %s resolved manually", alert_id)
        return alert

    def resolve_all_for_rule(self, rule_id: str, at: Optional[datetime] = None) -> int:
        self.get_rule(rule_id)
        count = self.store.resolve_all_for_rule(rule_id, at or utc_now())
        if count:
            logger.info("Resolved %d alert(s) for rule %s", count, rule_id)
        return count

    def get_alerts(
        self,
        limit: int = 50,
        offset: int = 0,
        unresolved_only: bool = False,
        severity: Optional[Severity] = None,
        rule_id: Optional[str] = None,
    ) -> List[Alert]:
        return self.store.list_alerts(
            limit=limit,
            offset=offset,
            unresolved_only=unresolved_only,
            severity=severity,
            rule_id=rule_id,
        )

    def stats(self) -> Dict[str, Any]:
        rules = self.store.list_rules(include_disabled=True)
        last = self._stats["last_evaluated_at"]
        return {
            **self._stats,
            "last_evaluated_at": last.isoformat() if last else None,
            "rules_count": len(rules),
            "enabled_rules": sum(1 for r in rules if r.enabled),
            "alerts": self.store.counts(),
        }
