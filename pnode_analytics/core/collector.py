"""
Collector
Runs one indexing cycle: fetch -> normalize -> persist -> evaluate.

State machine:
    IDLE -> FETCHING -> NORMALIZING -> PERSISTING -> EVALUATING -> IDLE

Only one cycle runs at a time. A request that arrives while a cycle is in
flight is dropped (CycleStatus.SKIPPED), never queued.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from .errors import DiscoveryError
from .events import detect_events
from .models import (
    CycleResult,
    CycleSnapshot,
    CycleStatus,
    NetworkMetric,
    NodeRecord,
    NodeStatus,
    ensure_utc,
    utc_now,
)
from .normalizer import NodeStateNormalizer

logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    EVALUATING = "evaluating"


def aggregate_network(records: List[NodeRecord]) -> Dict[str, float]:
    """
    Network-wide metrics for one cycle.

    Averages over optional stats only include nodes that reported them;
    a metric nobody reported is left out.
    """
    total = len(records)
    if total == 0:
        return {}

    online = sum(1 for r in records if r.status == NodeStatus.ONLINE)
    delinquent = sum(1 for r in records if r.status == NodeStatus.DELINQUENT)
    offline = total - online - delinquent

    metrics = {
        NetworkMetric.TOTAL_NODES.value: float(total),
        NetworkMetric.ONLINE_NODES.value: float(online),
        NetworkMetric.DELINQUENT_NODES.value: float(delinquent),
        NetworkMetric.OFFLINE_NODES.value: float(offline),
        NetworkMetric.OFFLINE_PERCENT.value: round(offline / total * 100.0, 4),
        NetworkMetric.HEALTH_SCORE.value: round(online / total * 100.0, 4),
        NetworkMetric.AVERAGE_PERFORMANCE.value: round(float(np.mean([r.performance_score for r in records])), 4),
        NetworkMetric.AVERAGE_UPTIME.value: round(
            float(np.mean([r.performance.uptime_ratio * 100.0 for r in records])), 4
        ),
    }

    latencies = [
        r.performance.average_latency_ms for r in records
        if r.performance.average_latency_ms is not None
    ]
    if latencies:
        metrics[NetworkMetric.AVERAGE_LATENCY.value] = round(float(np.mean(latencies)), 4)

    reporting = [r.storage for r in records if r.storage.reported]
    if reporting:
        capacity = sum(s.capacity_bytes for s in reporting)
        used = sum(s.used_bytes for s in reporting)
        metrics[NetworkMetric.AVERAGE_UTILIZATION.value] = round(
            float(np.mean([s.utilization for s in reporting])), 4
        )
        metrics[NetworkMetric.TOTAL_CAPACITY_BYTES.value] = float(capacity)
        metrics[NetworkMetric.TOTAL_USED_BYTES.value] = float(used)
        if capacity > 0:
            metrics[NetworkMetric.NETWORK_UTILIZATION.value] = round(used / capacity * 100.0, 4)

    return metrics


def build_cycle(records: List[NodeRecord], timestamp: datetime) -> CycleSnapshot:
    return CycleSnapshot(
        timestamp=timestamp,
        network=aggregate_network(records),
        nodes={r.id: r.metrics() for r in records},
    )


class Collector:
    def __init__(
        self,
        source,
        store,
        normalizer: Optional[NodeStateNormalizer] = None,
        alert_engine=None,
    ):
        """
        Args:
            source: anything with fetch_latest() -> List[dict]
            store: TimeSeriesStore; the collector is its only snapshot writer
            normalizer: NodeStateNormalizer (default settings when omitted)
            alert_engine: AlertRuleEngine evaluated after each persisted cycle
        """
        self.source = source
        self.store = store
        self.normalizer = normalizer or NodeStateNormalizer()
        self.alert_engine = alert_engine
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._state = CycleState.IDLE
        self._last_result: Optional[CycleResult] = None
        self._last_success_at: Optional[datetime] = None
        self._stats = {
            "completed": 0,
            "skipped": 0,
            "aborted": 0,
            "failed": 0,
        }

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def last_result(self) -> Optional[CycleResult]:
        return self._last_result

    def run_cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """
        Raises:
            DiscoveryError: the source failed; nothing was written
        """
        started_at = ensure_utc(now) if now is not None else utc_now()

        if not self._lock.acquire(blocking=False):
            logger.info("Indexing cycle already in flight, dropping request")
            self._count("skipped")
            return CycleResult(
                status=CycleStatus.SKIPPED,
                started_at=started_at,
                finished_at=started_at,
                message="Another indexing cycle is in progress",
            )

        try:
            result = self._run(started_at)
        except DiscoveryError as e:
            self._count("failed")
            self._last_result = CycleResult(
                status=CycleStatus.FAILED,
                started_at=started_at,
                finished_at=utc_now(),
                message=str(e),
            )
            raise
        finally:
            self._state = CycleState.IDLE
            self._lock.release()

        self._last_result = result
        self._count(result.status.value)
        return result

    def _count(self, outcome: str) -> None:
        with self._stats_lock:
            self._stats[outcome] += 1

    def _run(self, now: datetime) -> CycleResult:
        logger.info("Indexing cycle started at %s", now.isoformat())

        self._state = CycleState.FETCHING
        try:
            raw = self.source.fetch_latest()
        except DiscoveryError as e:
            logger.warning("Discovery failed: %s", e)
            raise
        if not raw:
            logger.warning("Discovery returned no node records")
            raise DiscoveryError("Discovery source returned no node records")

        self._state = CycleState.NORMALIZING
        records, skipped = self.normalizer.normalize_many(raw, now=now)
        if not records:
            logger.warning("No node record survived normalization (%d skipped); cycle aborted", skipped)
            return CycleResult(
                status=CycleStatus.ABORTED,
                started_at=now,
                finished_at=utc_now(),
                fetched=len(raw),
                skipped=skipped,
                message="No valid node records",
            )

        self._state = CycleState.PERSISTING
        previous = self.store.latest_cycle()
        cycle = build_cycle(records, now)
        events = detect_events(previous, records, now)
        written, events_written = self.store.append_many(cycle.snapshots(), events)
        self._last_success_at = now

        result = CycleResult(
            status=CycleStatus.COMPLETED,
            started_at=now,
            fetched=len(raw),
            normalized=len(records),
            skipped=skipped,
            snapshots_written=written,
            events_written=events_written,
        )

        if self.alert_engine is not None:
            self._state = CycleState.EVALUATING
            evaluation = self.alert_engine.evaluate(cycle)
            result.alerts_triggered = len(evaluation.triggered)
            result.alerts_resolved = len(evaluation.resolved)

        result.finished_at = utc_now()
        result.message = f"Indexed {len(records)} nodes"
        logger.info(
            "Indexing cycle completed: %d nodes, %d skipped, %d snapshots, %d events, "
            "%d alerts triggered, %d resolved",
            len(records), skipped, written, events_written,
            result.alerts_triggered, result.alerts_resolved,
        )
        return result

    def stats(self) -> Dict[str, Any]:
        last = self._last_result
        with self._stats_lock:
            cycles = dict(self._stats)
        return {
            "state": self._state.value,
            "cycles": cycles,
            "last_result": last.to_dict() if last else None,
            "last_success_at": self._last_success_at.isoformat() if self._last_success_at else None,
        }
