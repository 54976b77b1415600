"""
Alert Models
Data structures for alert rules, alerts and the closed metric / operator
registries rules are evaluated through.
"""

import operator as op
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from pnode_analytics.core.models import (
    NetworkMetric,
    NodeMetric,
    Severity,
    utc_now,
)


class AlertOperator(str, Enum):
    """Alert condition operators"""
    LT = "<"
    GT = ">"
    EQ = "=="
    LTE = "<="
    GTE = ">="


class AlertScope(str, Enum):
    """What a rule is evaluated against"""
    NETWORK = "NETWORK"
    PNODE = "PNODE"


# =============================================================================
# Registries
# =============================================================================

OPERATORS: Dict[AlertOperator, Callable[[float, float], bool]] = {
    AlertOperator.LT: op.lt,
    AlertOperator.GT: op.gt,
    AlertOperator.EQ: op.eq,
    AlertOperator.LTE: op.le,
    AlertOperator.GTE: op.ge,
}

# metric name -> human label; the keys are the only metrics a rule may use
NETWORK_METRICS: Dict[str, str] = {
    NetworkMetric.TOTAL_NODES.value: "Total nodes",
    NetworkMetric.ONLINE_NODES.value: "Online nodes",
    NetworkMetric.DELINQUENT_NODES.value: "Delinquent nodes",
    NetworkMetric.OFFLINE_NODES.value: "Offline nodes",
    NetworkMetric.OFFLINE_PERCENT.value: "Offline nodes (%)",
    NetworkMetric.HEALTH_SCORE.value: "Network health",
    NetworkMetric.AVERAGE_PERFORMANCE.value: "Average performance",
    NetworkMetric.AVERAGE_LATENCY.value: "Average latency (ms)",
    NetworkMetric.AVERAGE_UPTIME.value: "Average uptime (%)",
    NetworkMetric.AVERAGE_UTILIZATION.value: "Average storage utilization (%)",
    NetworkMetric.TOTAL_CAPACITY_BYTES.value: "Total capacity (bytes)",
    NetworkMetric.TOTAL_USED_BYTES.value: "Total used (bytes)",
    NetworkMetric.NETWORK_UTILIZATION.value: "Network storage utilization (%)",
}

NODE_METRICS: Dict[str, str] = {
    NodeMetric.PERFORMANCE_SCORE.value: "Performance score",
    NodeMetric.UPTIME.value: "Uptime (%)",
    NodeMetric.UPTIME_SECONDS.value: "Uptime (s)",
    NodeMetric.LATENCY.value: "Latency (ms)",
    NodeMetric.UTILIZATION.value: "Storage utilization (%)",
    NodeMetric.CAPACITY_BYTES.value: "Capacity (bytes)",
    NodeMetric.USED_BYTES.value: "Used (bytes)",
    NodeMetric.STATUS_CODE.value: "Status code (2 online, 1 delinquent, 0 offline)",
}

METRICS_BY_SCOPE: Dict[AlertScope, Dict[str, str]] = {
    AlertScope.NETWORK: NETWORK_METRICS,
    AlertScope.PNODE: NODE_METRICS,
}


def breaches(value: float, operator: AlertOperator, threshold: float) -> bool:
    return OPERATORS[operator](value, threshold)


def classify_severity(
    value: float,
    operator: AlertOperator,
    threshold: float,
    critical_multiple: float,
) -> Severity:
    """
    WARNING by default. A breach past `critical_multiple` of a positive
    threshold is CRITICAL.
    """
    if threshold <= 0:
        return Severity.WARNING
    if operator in (AlertOperator.GT, AlertOperator.GTE) and value >= threshold * critical_multiple:
        return Severity.CRITICAL
    if operator in (AlertOperator.LT, AlertOperator.LTE) and value <= threshold / critical_multiple:
        return Severity.CRITICAL
    return Severity.WARNING


# =============================================================================
# Rule input
# =============================================================================

class RuleSpec(BaseModel):
    """
    Input for AlertRuleEngine.create_rule.

    Metric, operator and scope are plain strings here; the engine validates
    them and raises RuleValidationError.
    """
    name: str
    metric: str
    operator: str
    threshold: float
    scope: str = AlertScope.NETWORK.value
    description: str = ""
    pnode_filter: Optional[str] = None
    cooldown_minutes: Optional[int] = Field(default=None)
    enabled: bool = True


# =============================================================================
# Rule / Alert
# =============================================================================

@dataclass
class AlertRule:
    """
    Operator-defined threshold rule.

    Example:
        "Alert me when healthScore < 50 for the network"
    """
    id: str
    name: str
    metric: str
    operator: AlertOperator
    threshold: float
    scope: AlertScope = AlertScope.NETWORK
    description: str = ""
    pnode_filter: Optional[str] = None
    cooldown_minutes: int = 15
    enabled: bool = True
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.id:
            self.id = f"rule_{uuid.uuid4().hex[:12]}"

    def matches(self, pnode_id: str) -> bool:
        return self.pnode_filter is None or self.pnode_filter == pnode_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metric": self.metric,
            "operator": self.operator.value,
            "threshold": self.threshold,
            "scope": self.scope.value,
            "pnode_filter": self.pnode_filter,
            "cooldown_minutes": self.cooldown_minutes,
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Alert:
    """
    One triggered rule for one (rule, node) pair.

    Active while resolved_at is None.
    """
    id: str
    rule_id: str
    severity: Severity
    trigger_value: float
    threshold: float
    message: str
    created_at: datetime
    pnode_id: Optional[str] = None
    resolved_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            self.id = f"alert_{uuid.uuid4().hex[:12]}"

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "pnode_id": self.pnode_id,
            "severity": self.severity.value,
            "trigger_value": round(self.trigger_value, 4),
            "threshold": self.threshold,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "is_active": self.is_active,
        }
