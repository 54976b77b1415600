"""
Network Event Detection
Compares the nodes of the current cycle with the previous cycle's snapshot
and emits join / leave / status / performance events.
"""

from datetime import datetime
from typing import Dict, List, Optional

from .models import (
    CycleSnapshot,
    EventType,
    NetworkEvent,
    NodeMetric,
    NodeRecord,
    NodeStatus,
    Severity,
    STATUS_CODES,
)

PERFORMANCE_CHANGE_POINTS = 10.0

_STATUS_BY_CODE = {code: status for status, code in STATUS_CODES.items()}

_STATUS_SEVERITY = {
    NodeStatus.ONLINE: Severity.SUCCESS,
    NodeStatus.DELINQUENT: Severity.WARNING,
    NodeStatus.OFFLINE: Severity.CRITICAL,
}


def short_id(node_id: str) -> str:
    return f"{node_id[:6]}...{node_id[-4:]}" if len(node_id) > 12 else node_id


def detect_events(
    previous: Optional[CycleSnapshot],
    current: List[NodeRecord],
    timestamp: datetime,
) -> List[NetworkEvent]:
    """
    No previous cycle means first boot: nothing is reported as "joined".
    """
    if previous is None:
        return []

    events: List[NetworkEvent] = []
    seen = set()

    for node in current:
        seen.add(node.id)
        before: Dict[str, float] = previous.nodes.get(node.id) or {}

        if not before:
            events.append(NetworkEvent(
                type=EventType.NODE_JOINED,
                severity=Severity.SUCCESS,
                message=f"pNode {short_id(node.id)} has joined the network",
                timestamp=timestamp,
                pnode_id=node.id,
                metadata={"version": node.version},
            ))
            continue

        code = before.get(NodeMetric.STATUS_CODE.value)
        old_status = _STATUS_BY_CODE.get(int(code)) if code is not None else None
        if old_status is not None and old_status != node.status:
            events.append(NetworkEvent(
                type=EventType.STATUS_CHANGED,
                severity=_STATUS_SEVERITY[node.status],
                message=(
                    f"pNode {short_id(node.id)} changed from "
                    f"{old_status.value} to {node.status.value}"
                ),
                timestamp=timestamp,
                pnode_id=node.id,
                metadata={"previous": old_status.value, "current": node.status.value},
            ))

        old_score = before.get(NodeMetric.PERFORMANCE_SCORE.value)
        if old_score is None:
            continue
        delta = node.performance_score - old_score
        if abs(delta) > PERFORMANCE_CHANGE_POINTS:
            degraded = delta < 0
            events.append(NetworkEvent(
                type=EventType.PERFORMANCE_DEGRADED if degraded else EventType.PERFORMANCE_IMPROVED,
                severity=Severity.WARNING if degraded else Severity.SUCCESS,
                message=(
                    f"pNode {short_id(node.id)} performance "
                    f"{'dropped' if degraded else 'improved'} by {abs(delta):.1f} points"
                ),
                timestamp=timestamp,
                pnode_id=node.id,
                metadata={"previous": old_score, "current": node.performance_score},
            ))

    for node_id in sorted(set(previous.nodes) - seen):
        events.append(NetworkEvent(
            type=EventType.NODE_LEFT,
            severity=Severity.WARNING,
            message=f"pNode {short_id(node_id)} is no longer visible in gossip",
            timestamp=timestamp,
            pnode_id=node_id,
        ))

    return events
