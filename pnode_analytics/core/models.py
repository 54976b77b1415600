"""
Domain Models
The SINGLE SOURCE OF TRUTH for node, snapshot and cycle formats.

After normalization, the system only sees these types.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


NETWORK_ENTITY = "network"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Enumerations
# =============================================================================

class NodeStatus(str, Enum):
    """Liveness derived from time since last seen"""
    ONLINE = "online"
    DELINQUENT = "delinquent"
    OFFLINE = "offline"

    @property
    def code(self) -> int:
        return STATUS_CODES[self]


STATUS_CODES = {
    NodeStatus.OFFLINE: 0,
    NodeStatus.DELINQUENT: 1,
    NodeStatus.ONLINE: 2,
}


class NodeMetric(str, Enum):
    """Per-node metrics written every cycle"""
    PERFORMANCE_SCORE = "performanceScore"
    UPTIME = "uptime"
    UPTIME_SECONDS = "uptimeSeconds"
    LATENCY = "latency"
    UTILIZATION = "utilization"
    CAPACITY_BYTES = "capacityBytes"
    USED_BYTES = "usedBytes"
    STATUS_CODE = "statusCode"


class NetworkMetric(str, Enum):
    """Network-wide metrics written every cycle under the "network" entity"""
    TOTAL_NODES = "totalNodes"
    ONLINE_NODES = "onlineNodes"
    DELINQUENT_NODES = "delinquentNodes"
    OFFLINE_NODES = "offlineNodes"
    OFFLINE_PERCENT = "offlinePercent"
    HEALTH_SCORE = "healthScore"
    AVERAGE_PERFORMANCE = "averagePerformance"
    AVERAGE_LATENCY = "averageLatency"
    AVERAGE_UPTIME = "averageUptime"
    AVERAGE_UTILIZATION = "averageUtilization"
    TOTAL_CAPACITY_BYTES = "totalCapacityBytes"
    TOTAL_USED_BYTES = "totalUsedBytes"
    NETWORK_UTILIZATION = "networkUtilization"


# Metrics bounded to [0, 100]; forecasts clamp to this range.
PERCENT_METRICS = frozenset({
    NodeMetric.PERFORMANCE_SCORE.value,
    NodeMetric.UPTIME.value,
    NodeMetric.UTILIZATION.value,
    NetworkMetric.HEALTH_SCORE.value,
    NetworkMetric.AVERAGE_PERFORMANCE.value,
    NetworkMetric.AVERAGE_UPTIME.value,
    NetworkMetric.AVERAGE_UTILIZATION.value,
    NetworkMetric.OFFLINE_PERCENT.value,
    NetworkMetric.NETWORK_UTILIZATION.value,
})


class Severity(str, Enum):
    """Shared by alerts and network events"""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    SUCCESS = "SUCCESS"


# =============================================================================
# NodeRecord
# =============================================================================

class StorageMetrics(BaseModel):
    capacity_bytes: float = Field(default=0.0, ge=0)
    used_bytes: float = Field(default=0.0, ge=0)
    reported: bool = False

    @model_validator(mode="after")
    def used_within_capacity(self) -> "StorageMetrics":
        if self.used_bytes > self.capacity_bytes:
            raise ValueError("used_bytes must not exceed capacity_bytes")
        return self

    @property
    def utilization(self) -> float:
        """Percent of capacity in use (0 when capacity is unknown)"""
        if self.capacity_bytes <= 0:
            return 0.0
        return self.used_bytes / self.capacity_bytes * 100.0


class PerformanceMetrics(BaseModel):
    uptime_seconds: Optional[float] = Field(default=None, ge=0)
    average_latency_ms: Optional[float] = Field(default=None, ge=0)
    uptime_ratio: float = Field(default=0.0, ge=0, le=1)


class NodeRecord(BaseModel):
    """
    Canonical node state for one cycle.

    Built only by NodeStateNormalizer; the rest of the system never sees
    raw discovery payloads.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    address: Optional[str] = None
    version: str = "unknown"
    last_seen_at: datetime
    status: NodeStatus
    performance_score: float = Field(..., ge=0, le=100)
    storage: StorageMetrics = Field(default_factory=StorageMetrics)
    performance: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    rpc_endpoint: Optional[str] = None
    transport_endpoints: List[str] = Field(default_factory=list)

    def metrics(self) -> Dict[str, float]:
        """
        Values persisted as one Snapshot each.

        Stats the node did not report are left out rather than written as 0.
        """
        out = {
            NodeMetric.PERFORMANCE_SCORE.value: self.performance_score,
            NodeMetric.UPTIME.value: round(self.performance.uptime_ratio * 100.0, 4),
            NodeMetric.STATUS_CODE.value: float(self.status.code),
        }
        if self.performance.uptime_seconds is not None:
            out[NodeMetric.UPTIME_SECONDS.value] = float(self.performance.uptime_seconds)
        if self.performance.average_latency_ms is not None:
            out[NodeMetric.LATENCY.value] = float(self.performance.average_latency_ms)
        if self.storage.reported:
            out[NodeMetric.UTILIZATION.value] = round(self.storage.utilization, 4)
            out[NodeMetric.CAPACITY_BYTES.value] = float(self.storage.capacity_bytes)
            out[NodeMetric.USED_BYTES.value] = float(self.storage.used_bytes)
        return out


# =============================================================================
# Snapshot
# =============================================================================

class Snapshot(BaseModel):
    """One immutable (entity, metric, value, time) sample"""
    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(..., min_length=1)
    metric: str = Field(..., min_length=1)
    value: float
    timestamp: datetime


class CycleSnapshot(BaseModel):
    """
    Everything one indexing cycle wrote, grouped for rule evaluation.

    network: {metric: value} for the "network" entity
    nodes:   {node_id: {metric: value}}
    """
    timestamp: datetime
    network: Dict[str, float] = Field(default_factory=dict)
    nodes: Dict[str, Dict[str, float]] = Field(default_factory=dict)

    def snapshots(self) -> List[Snapshot]:
        out = [
            Snapshot(entity_id=NETWORK_ENTITY, metric=m, value=v, timestamp=self.timestamp)
            for m, v in self.network.items()
        ]
        for node_id, metrics in self.nodes.items():
            out.extend(
                Snapshot(entity_id=node_id, metric=m, value=v, timestamp=self.timestamp)
                for m, v in metrics.items()
            )
        return out


# =============================================================================
# Network Events
# =============================================================================

class EventType(str, Enum):
    NODE_JOINED = "NODE_JOINED"
    NODE_LEFT = "NODE_LEFT"
    STATUS_CHANGED = "STATUS_CHANGED"
    PERFORMANCE_DEGRADED = "PERFORMANCE_DEGRADED"
    PERFORMANCE_IMPROVED = "PERFORMANCE_IMPROVED"


class NetworkEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    severity: Severity
    message: str
    timestamp: datetime
    pnode_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "pnode_id": self.pnode_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Cycle Result
# =============================================================================

class CycleStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"      # another cycle was in flight
    ABORTED = "aborted"      # nothing survived normalization
    FAILED = "failed"        # discovery source unavailable


class CycleResult(BaseModel):
    """Outcome of one indexing cycle"""
    status: CycleStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    fetched: int = 0
    normalized: int = 0
    skipped: int = 0
    snapshots_written: int = 0
    events_written: int = 0
    alerts_triggered: int = 0
    alerts_resolved: int = 0
    message: str = ""

    @property
    def duration_ms(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000.0

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["duration_ms"] = self.duration_ms
        return data
