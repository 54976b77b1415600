"""
Analytics API
Quant analytics over the node population.

Endpoints:
    GET /api/analytics/nodes/{id}/risk        → Risk profile
    GET /api/analytics/nodes/{id}/benchmark   → Percentiles vs population
    GET /api/analytics/nodes/{id}/forecast    → Linear trend forecast
    GET /api/analytics/network/forecast       → Network metric forecast
    GET /api/analytics/correlation            → Correlation matrix
    GET /api/analytics/regression             → OLS regression
    GET /api/analytics/summary                → Network quant summary
    GET /api/analytics/anomalies              → Network anomalies
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from pnode_analytics.core.models import NETWORK_ENTITY, NetworkMetric, NodeMetric

from .query import QueryAPI, get_query

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def _parse_pairs(pairs: Optional[List[str]]):
    """'performanceScore:latency' -> ('performanceScore', 'latency')"""
    if not pairs:
        return None
    parsed = []
    for item in pairs:
        parts = item.split(":")
        if len(parts) != 2 or not all(parts):
            raise HTTPException(400, f"Invalid pair: {item}. Use metricA:metricB")
        parsed.append((parts[0], parts[1]))
    return parsed


@router.get("/nodes/{node_id}/risk")
def risk_profile(node_id: str, query: QueryAPI = Depends(get_query)):
    return query.get_risk_profile(node_id)


@router.get("/nodes/{node_id}/benchmark")
def benchmark(node_id: str, query: QueryAPI = Depends(get_query)):
    return query.get_benchmark(node_id)


@router.get("/nodes/{node_id}/forecast")
def node_forecast(
    node_id: str,
    metric: NodeMetric = Query(default=NodeMetric.PERFORMANCE_SCORE),
    horizon_days: int = Query(default=7, ge=1, le=90),
    query: QueryAPI = Depends(get_query),
):
    return query.get_forecast(node_id, metric.value, horizon_days=horizon_days)


@router.get("/network/forecast")
def network_forecast(
    metric: NetworkMetric = Query(default=NetworkMetric.HEALTH_SCORE),
    horizon_days: int = Query(default=7, ge=1, le=90),
    query: QueryAPI = Depends(get_query),
):
    return query.get_forecast(NETWORK_ENTITY, metric.value, horizon_days=horizon_days)


@router.get("/correlation")
def correlation(
    metrics: Optional[List[NodeMetric]] = Query(default=None),
    pairs: Optional[List[str]] = Query(default=None, description="metricA:metricB"),
    query: QueryAPI = Depends(get_query),
):
    """
    Cross-sectional Pearson correlation (one sample per node).

    Coefficients are null when a metric has no variance.
    """
    names = [m.value for m in metrics] if metrics else None
    return query.get_correlation_matrix(metrics=names, pairs=_parse_pairs(pairs))


@router.get("/regression")
def regression(
    dependent: NodeMetric = Query(default=NodeMetric.PERFORMANCE_SCORE),
    independent: NodeMetric = Query(default=NodeMetric.LATENCY),
    query: QueryAPI = Depends(get_query),
):
    return query.get_regression(dependent.value, independent.value)


@router.get("/summary")
def summary(query: QueryAPI = Depends(get_query)):
    return query.get_network_quant_summary()


@router.get("/anomalies")
def anomalies(query: QueryAPI = Depends(get_query)):
    return query.get_anomalies()
