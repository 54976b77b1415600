"""
Alert System
Threshold rules evaluated against every indexing cycle.

Structure:
    alerts/
    ├── models.py    → AlertRule, Alert, RuleSpec, operator / metric registries
    └── engine.py    → AlertRuleEngine (evaluation + lifecycle)

Usage:
    from pnode_analytics.alerts.engine import AlertRuleEngine

    engine = AlertRuleEngine(alert_store, settings.alerts)
    rule = engine.create_rule({
        "name": "Network health low",
        "metric": "healthScore",
        "operator": "<",
        "threshold": 50,
        "scope": "NETWORK",
    })
    result = engine.evaluate(cycle_snapshot)
"""

from .models import (
    METRICS_BY_SCOPE,
    NETWORK_METRICS,
    NODE_METRICS,
    OPERATORS,
    Alert,
    AlertOperator,
    AlertRule,
    AlertScope,
    RuleSpec,
)

__all__ = [
    "METRICS_BY_SCOPE",
    "NETWORK_METRICS",
    "NODE_METRICS",
    "OPERATORS",
    "Alert",
    "AlertOperator",
    "AlertRule",
    "AlertScope",
    "RuleSpec",
]
