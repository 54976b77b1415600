"""
Node State Normalizer
Turns raw discovery records into canonical NodeRecords.

This is the NORMALIZATION POINT. Every discovery payload variant
(get-pods, getClusterNodes, websocket push) goes through here.

Pure transformation:
    - no I/O, no clock reads (callers pass `now`)
    - same inputs -> same NodeRecord
"""

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pnode_analytics.config import NormalizerSettings

from .models import (
    NodeRecord,
    NodeStatus,
    PerformanceMetrics,
    StorageMetrics,
    ensure_utc,
)

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")

# Uptime ratio used when a node does not report uptime.
_STATUS_UPTIME_ESTIMATE = {
    NodeStatus.ONLINE: 1.0,
    NodeStatus.DELINQUENT: 0.5,
    NodeStatus.OFFLINE: 0.0,
}


# =============================================================================
# Field Extraction Helpers
# =============================================================================

def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_float(value: Any, field: str) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} is not numeric: {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"{field} is not finite: {value!r}")
    return number


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, ISO strings and unix seconds / milliseconds."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp out of range: {value!r}") from e
    if isinstance(value, str):
        text = value.strip()
        if text.replace(".", "", 1).isdigit():
            return parse_timestamp(float(text))
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    raise ValueError(f"unsupported timestamp: {value!r}")


def parse_version(version: Optional[str]) -> Optional[Tuple[int, int, int]]:
    if not version:
        return None
    match = _VERSION_RE.search(str(version))
    if not match:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor or 0), int(patch or 0)


def reference_version(raw_records: Iterable[Dict[str, Any]]) -> Optional[Tuple[int, int, int]]:
    """Newest parseable version in a batch; the yardstick for version recency."""
    versions = [parse_version(_first(r, "version")) for r in raw_records if isinstance(r, dict)]
    parsed = [v for v in versions if v is not None]
    return max(parsed) if parsed else None


# =============================================================================
# Normalizer
# =============================================================================

class NodeStateNormalizer:
    """
    Raw record -> NodeRecord | None.

    Usage:
        normalizer = NodeStateNormalizer(settings.normalizer)
        ref = reference_version(raw_records)
        record = normalizer.normalize(raw, now=now, reference=ref)
    """

    def __init__(self, settings: Optional[NormalizerSettings] = None):
        self.settings = settings or NormalizerSettings()
        self._online_after = timedelta(minutes=self.settings.online_threshold_minutes)
        self._offline_after = timedelta(minutes=self.settings.offline_threshold_minutes)

    def classify_status(self, last_seen_at: datetime, now: datetime) -> NodeStatus:
        """
        < online threshold            -> online
        online <= offset < offline    -> delinquent
        >= offline threshold          -> offline
        """
        offset = ensure_utc(now) - ensure_utc(last_seen_at)
        if offset < self._online_after:
            return NodeStatus.ONLINE
        if offset < self._offline_after:
            return NodeStatus.DELINQUENT
        return NodeStatus.OFFLINE

    def version_component(
        self,
        version: Optional[str],
        reference: Optional[Tuple[int, int, int]],
    ) -> float:
        parsed = parse_version(version)
        if parsed is None:
            return 0.0
        if reference is None or parsed >= reference:
            return 1.0
        if parsed[:2] == reference[:2]:
            return 0.75
        if parsed[0] == reference[0]:
            return 0.5
        return 0.25

    def performance_score(
        self,
        status: NodeStatus,
        performance: PerformanceMetrics,
        storage: StorageMetrics,
        version: Optional[str],
        reference: Optional[Tuple[int, int, int]] = None,
    ) -> float:
        """Weighted composite clamped to [0, 100]."""
        s = self.settings

        if performance.uptime_seconds is None:
            uptime = _STATUS_UPTIME_ESTIMATE[status]
        else:
            uptime = performance.uptime_ratio

        if performance.average_latency_ms is None:
            latency = 0.5
        else:
            latency = max(0.0, 1.0 - performance.average_latency_ms / s.max_latency_ms)

        if storage.reported and storage.capacity_bytes > 0:
            balance = 1.0 - 2.0 * abs(storage.utilization / 100.0 - 0.5)
        else:
            balance = 0.5

        weights = s.uptime_weight + s.latency_weight + s.version_weight + s.storage_weight
        composite = (
            s.uptime_weight * uptime
            + s.latency_weight * latency
            + s.version_weight * self.version_component(version, reference)
            + s.storage_weight * balance
        ) / weights

        return round(min(100.0, max(0.0, composite * 100.0)), 2)

    def normalize(
        self,
        raw: Dict[str, Any],
        now: datetime,
        reference: Optional[Tuple[int, int, int]] = None,
    ) -> Optional[NodeRecord]:
        """
        Returns None (with a logged discard) for records missing an id or a
        last-seen timestamp. Raises ValueError for malformed values.
        """
        address = _first(raw, "address", "gossip", "gossipEndpoint")
        node_id = _first(raw, "id", "pubkey") or address
        last_seen_raw = _first(raw, "lastSeenAt", "last_seen_timestamp", "last_seen", "lastSeen")

        if node_id is None or last_seen_raw is None:
            logger.warning(
                "Discarding node record (id=%s, last_seen=%s): missing required field",
                node_id, last_seen_raw,
            )
            return None

        last_seen_at = parse_timestamp(last_seen_raw)
        status = self.classify_status(last_seen_at, now)

        uptime_seconds = _as_float(_first(raw, "uptimeSeconds", "uptime"), "uptime")
        latency_ms = _as_float(_first(raw, "averageLatencyMs", "latency"), "latency")
        performance = PerformanceMetrics(
            uptime_seconds=uptime_seconds,
            average_latency_ms=latency_ms,
            uptime_ratio=(
                min(uptime_seconds / self.settings.uptime_reference_seconds, 1.0)
                if uptime_seconds is not None else _STATUS_UPTIME_ESTIMATE[status]
            ),
        )
        storage = self._storage(raw)

        version = _first(raw, "version") or "unknown"
        score = self.performance_score(status, performance, storage, version, reference)

        return NodeRecord(
            id=str(node_id),
            address=str(address) if address is not None else None,
            version=str(version),
            last_seen_at=last_seen_at,
            status=status,
            performance_score=score,
            storage=storage,
            performance=performance,
            rpc_endpoint=_first(raw, "rpc", "rpcEndpoint"),
            transport_endpoints=self._endpoints(raw),
        )

    def normalize_many(
        self,
        raw_records: List[Dict[str, Any]],
        now: datetime,
    ) -> Tuple[List[NodeRecord], int]:
        """Normalize a batch; a bad record never aborts the rest."""
        reference = reference_version(raw_records)
        records: Dict[str, NodeRecord] = {}
        skipped = 0
        for raw in raw_records:
            try:
                if not isinstance(raw, dict):
                    raise ValueError(f"record is not an object: {type(raw).__name__}")
                record = self.normalize(raw, now=now, reference=reference)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping malformed node record: %s", e)
                skipped += 1
                continue
            if record is None:
                skipped += 1
                continue
            if record.id in records:
                logger.debug("Duplicate node id %s in batch, keeping latest", record.id)
            records[record.id] = record
        return list(records.values()), skipped

    @staticmethod
    def _storage(raw: Dict[str, Any]) -> StorageMetrics:
        capacity = _as_float(_first(raw, "capacityBytes", "storage_committed"), "capacity")
        used = _as_float(_first(raw, "usedBytes", "storage_used"), "used")
        if capacity is None and used is None:
            return StorageMetrics()
        capacity = max(capacity or 0.0, 0.0)
        used = min(max(used or 0.0, 0.0), capacity)
        return StorageMetrics(capacity_bytes=capacity, used_bytes=used, reported=True)

    @staticmethod
    def _endpoints(raw: Dict[str, Any]) -> List[str]:
        endpoints = _first(raw, "transportEndpoints", "tpu")
        if endpoints is None:
            return []
        if isinstance(endpoints, str):
            return [endpoints]
        if not isinstance(endpoints, (list, tuple)):
            raise ValueError(f"transport endpoints malformed: {endpoints!r}")
        return [str(e) for e in endpoints]
