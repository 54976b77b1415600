"""
Core Module
Node normalization, event detection and the indexing cycle.

Exports:
    Models: NodeRecord, Snapshot, CycleSnapshot, NetworkEvent, CycleResult
    Normalizer: NodeStateNormalizer
    Collector: Collector, CycleState
    Errors: PNodeAnalyticsError and subclasses
"""

from .models import (
    NETWORK_ENTITY,
    PERCENT_METRICS,
    CycleResult,
    CycleSnapshot,
    CycleStatus,
    EventType,
    NetworkEvent,
    NetworkMetric,
    NodeMetric,
    NodeRecord,
    NodeStatus,
    Severity,
    Snapshot,
    utc_now,
)
from .errors import (
    DiscoveryError,
    NotFoundError,
    PNodeAnalyticsError,
    RuleValidationError,
    StorageError,
)
from .normalizer import NodeStateNormalizer
from .events import detect_events
from .collector import Collector, CycleState

__all__ = [
    # Models
    "NETWORK_ENTITY",
    "PERCENT_METRICS",
    "CycleResult",
    "CycleSnapshot",
    "CycleStatus",
    "EventType",
    "NetworkEvent",
    "NetworkMetric",
    "NodeMetric",
    "NodeRecord",
    "NodeStatus",
    "Severity",
    "Snapshot",
    "utc_now",
    # Errors
    "DiscoveryError",
    "NotFoundError",
    "PNodeAnalyticsError",
    "RuleValidationError",
    "StorageError",
    # Pipeline
    "NodeStateNormalizer",
    "detect_events",
    "Collector",
    "CycleState",
]
