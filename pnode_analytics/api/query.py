"""
Query API
Read-mostly facade over the engines, shared by the HTTP routers.

Every method returns plain JSON-ready dicts; pagination is limit / offset.
Engine errors (NotFoundError, RuleValidationError, DiscoveryError,
StorageError) propagate to the caller unchanged.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from fastapi import Request

from pnode_analytics.alerts.models import RuleSpec
from pnode_analytics.analytics.models import AnalyticsStatus
from pnode_analytics.core.errors import NotFoundError
from pnode_analytics.core.models import (
    NETWORK_ENTITY,
    STATUS_CODES,
    NetworkMetric,
    NodeMetric,
    Severity,
    utc_now,
)

MAX_PAGE_SIZE = 500

DEFAULT_NETWORK_HISTORY_METRICS = [
    NetworkMetric.TOTAL_NODES.value,
    NetworkMetric.ONLINE_NODES.value,
    NetworkMetric.HEALTH_SCORE.value,
    NetworkMetric.AVERAGE_PERFORMANCE.value,
]

DEFAULT_NODE_HISTORY_METRICS = [
    NodeMetric.PERFORMANCE_SCORE.value,
    NodeMetric.UPTIME.value,
    NodeMetric.LATENCY.value,
    NodeMetric.UTILIZATION.value,
    NodeMetric.STATUS_CODE.value,
]

_STATUS_BY_CODE = {code: status.value for status, code in STATUS_CODES.items()}


def _page(limit: int, offset: int) -> Tuple[int, int]:
    return max(1, min(int(limit), MAX_PAGE_SIZE)), max(0, int(offset))


def _frame_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame -> list of dicts with NaN as None."""
    if frame.empty:
        return []
    clean = frame.astype(object).where(frame.notna(), None)
    return clean.to_dict(orient="records")


class QueryAPI:
    def __init__(self, store, alert_engine, quant_engine, collector, scheduler=None):
        self.store = store
        self.alert_engine = alert_engine
        self.quant_engine = quant_engine
        self.collector = collector
        self.scheduler = scheduler

    # =========================================================================
    # Alerts
    # =========================================================================

    def list_alerts(
        self,
        limit: int = 50,
        offset: int = 0,
        unresolved_only: bool = False,
        severity: Optional[Severity] = None,
        rule_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        limit, offset = _page(limit, offset)
        alerts = self.alert_engine.get_alerts(
            limit=limit,
            offset=offset,
            unresolved_only=unresolved_only,
            severity=severity,
            rule_id=rule_id,
        )
        return {
            "count": len(alerts),
            "limit": limit,
            "offset": offset,
            "alerts": [a.to_dict() for a in alerts],
        }

    def resolve_alert(self, alert_id: str) -> Dict[str, Any]:
        return self.alert_engine.resolve_alert(alert_id).to_dict()

    def resolve_all_for_rule(self, rule_id: str) -> Dict[str, Any]:
        return {"rule_id": rule_id, "resolved": self.alert_engine.resolve_all_for_rule(rule_id)}

    def list_rules(self, include_disabled: bool = True) -> Dict[str, Any]:
        rules = self.alert_engine.list_rules(include_disabled=include_disabled)
        return {"count": len(rules), "rules": [r.to_dict() for r in rules]}

    def create_rule(self, spec: RuleSpec) -> Dict[str, Any]:
        return self.alert_engine.create_rule(spec).to_dict()

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> Dict[str, Any]:
        return self.alert_engine.set_enabled(rule_id, enabled).to_dict()

    def update_rule_threshold(self, rule_id: str, threshold: float) -> Dict[str, Any]:
        return self.alert_engine.update_threshold(rule_id, threshold).to_dict()

    # =========================================================================
    # Analytics
    # =========================================================================

    def get_risk_profile(self, node_id: str) -> Dict[str, Any]:
        return self.quant_engine.risk_profile(node_id).to_dict()

    def get_benchmark(self, node_id: str) -> Dict[str, Any]:
        return self.quant_engine.benchmark(node_id).to_dict()

    def get_correlation_matrix(
        self,
        metrics: Optional[Sequence[str]] = None,
        pairs: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> Dict[str, Any]:
        return self.quant_engine.correlation_matrix(metrics=metrics, pairs=pairs).to_dict()

    def get_regression(
        self,
        dependent: str = NodeMetric.PERFORMANCE_SCORE.value,
        independent: str = NodeMetric.LATENCY.value,
    ) -> Dict[str, Any]:
        return self.quant_engine.regression(dependent, independent).to_dict()

    def get_network_quant_summary(self) -> Dict[str, Any]:
        return self.quant_engine.network_summary().to_dict()

    def get_forecast(
        self,
        entity_id: str,
        metric: str = NodeMetric.PERFORMANCE_SCORE.value,
        horizon_days: int = 7,
    ) -> Dict[str, Any]:
        result = self.quant_engine.forecast(entity_id, metric, horizon_days=horizon_days)
        if result is None:
            return {
                "status": AnalyticsStatus.INSUFFICIENT_DATA.value,
                "entity_id": entity_id,
                "metric": metric,
                "message": "Not enough history to forecast (need at least 3 points)",
                "forecast": None,
            }
        return {
            "status": AnalyticsStatus.OK.value,
            "entity_id": entity_id,
            "metric": metric,
            "forecast": result.to_dict(),
        }

    def get_anomalies(self) -> Dict[str, Any]:
        anomalies = self.quant_engine.anomalies()
        return {"count": len(anomalies), "anomalies": [a.to_dict() for a in anomalies]}

    # =========================================================================
    # Network / nodes
    # =========================================================================

    def list_events(
        self,
        limit: int = 50,
        offset: int = 0,
        severity: Optional[Severity] = None,
        pnode_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        limit, offset = _page(limit, offset)
        events = self.store.list_events(limit=limit, offset=offset, severity=severity, pnode_id=pnode_id)
        return {
            "count": len(events),
            "limit": limit,
            "offset": offset,
            "events": [e.to_dict() for e in events],
        }

    def _history(
        self,
        entity_id: str,
        metrics: Sequence[str],
        hours: Optional[float],
        from_time: Optional[datetime],
        to_time: Optional[datetime],
    ) -> Dict[str, Any]:
        if from_time is None and hours is not None:
            from_time = (to_time or utc_now()) - timedelta(hours=hours)
        frame = self.store.history_df(entity_id, list(metrics), from_time=from_time, to_time=to_time)
        frame = frame.reset_index()
        if not frame.empty:
            frame["timestamp"] = frame["timestamp"].map(lambda ts: ts.isoformat())
        points = _frame_records(frame)
        return {
            "entity_id": entity_id,
            "metrics": list(metrics),
            "count": len(points),
            "points": points,
        }

    def get_network_history(
        self,
        metrics: Optional[Sequence[str]] = None,
        hours: Optional[float] = 24,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return self._history(
            NETWORK_ENTITY, metrics or DEFAULT_NETWORK_HISTORY_METRICS, hours, from_time, to_time
        )

    def get_node_history(
        self,
        node_id: str,
        metrics: Optional[Sequence[str]] = None,
        hours: Optional[float] = 24,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if not self.store.has_entity(node_id):
            raise NotFoundError("node", node_id)
        return self._history(
            node_id, metrics or DEFAULT_NODE_HISTORY_METRICS, hours, from_time, to_time
        )

    def list_nodes(
        self,
        limit: int = 50,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Nodes of the latest cycle, best performance score first."""
        limit, offset = _page(limit, offset)
        frame = self.store.cross_section()
        if frame.empty:
            return {"count": 0, "total": 0, "limit": limit, "offset": offset, "nodes": []}

        frame = frame.copy()
        code = NodeMetric.STATUS_CODE.value
        frame["status"] = frame[code].map(lambda c: _STATUS_BY_CODE.get(int(c)) if pd.notna(c) else None)
        if status:
            frame = frame[frame["status"] == status]
        frame = frame.sort_values(
            NodeMetric.PERFORMANCE_SCORE.value, ascending=False, kind="mergesort"
        )
        total = len(frame)
        page = frame.iloc[offset:offset + limit].reset_index()
        nodes = _frame_records(page)
        return {
            "count": len(nodes),
            "total": total,
            "limit": limit,
            "offset": offset,
            "timestamp": self._latest_iso(),
            "nodes": nodes,
        }

    def _latest_iso(self) -> Optional[str]:
        latest = self.store.latest_timestamp()
        return latest.isoformat() if latest else None

    # =========================================================================
    # Indexer
    # =========================================================================

    def trigger_indexing_cycle(self) -> Dict[str, Any]:
        return self.collector.run_cycle().to_dict()

    def status(self) -> Dict[str, Any]:
        return {
            "collector": self.collector.stats(),
            "scheduler": self.scheduler.stats() if self.scheduler else None,
            "store": self.store.stats(),
            "alerts": self.alert_engine.stats(),
        }


def get_query(request: Request) -> QueryAPI:
    """FastAPI dependency: the QueryAPI built by the app factory."""
    return request.app.state.query
