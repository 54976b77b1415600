"""
Network API
Node listing, history and network events.

Endpoints:
    GET /api/network/history     → Network metric history
    GET /api/network/events      → Join / leave / status / performance events
    GET /api/nodes               → Nodes of the latest cycle
    GET /api/nodes/{id}/history  → One node's metric history
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from pnode_analytics.core.models import NetworkMetric, NodeMetric, NodeStatus, Severity

from .query import QueryAPI, get_query

router = APIRouter(tags=["Network"])


@router.get("/network/history")
def network_history(
    metrics: Optional[List[NetworkMetric]] = Query(default=None),
    hours: float = Query(default=24, gt=0, le=24 * 365),
    from_time: Optional[datetime] = Query(default=None, alias="from"),
    to_time: Optional[datetime] = Query(default=None, alias="to"),
    query: QueryAPI = Depends(get_query),
):
    names = [m.value for m in metrics] if metrics else None
    return query.get_network_history(names, hours=hours, from_time=from_time, to_time=to_time)


@router.get("/network/events")
def network_events(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    severity: Optional[Severity] = Query(default=None),
    pnode_id: Optional[str] = Query(default=None),
    query: QueryAPI = Depends(get_query),
):
    return query.list_events(limit=limit, offset=offset, severity=severity, pnode_id=pnode_id)


@router.get("/nodes")
def list_nodes(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    status: Optional[NodeStatus] = Query(default=None),
    query: QueryAPI = Depends(get_query),
):
    return query.list_nodes(limit=limit, offset=offset, status=status.value if status else None)


@router.get("/nodes/{node_id}/history")
def node_history(
    node_id: str,
    metrics: Optional[List[NodeMetric]] = Query(default=None),
    hours: float = Query(default=24, gt=0, le=24 * 365),
    from_time: Optional[datetime] = Query(default=None, alias="from"),
    to_time: Optional[datetime] = Query(default=None, alias="to"),
    query: QueryAPI = Depends(get_query),
):
    names = [m.value for m in metrics] if metrics else None
    return query.get_node_history(node_id, names, hours=hours, from_time=from_time, to_time=to_time)
