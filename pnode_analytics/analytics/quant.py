"""
Quant Analytics
Risk, benchmarking, correlation, regression, forecasting and the network
summary.

Inputs are plain sequences or the cross-section frame from
TimeSeriesStore.cross_section (one row per node, one column per metric).

Design Principles:
    ✓ ALL functions are PURE (inputs → computation → outputs)
    ✓ NO database access
    ✓ Not enough data → None / INSUFFICIENT_DATA, never an exception
"""

from datetime import datetime, timedelta
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from pnode_analytics.core.models import PERCENT_METRICS, NodeMetric

from . import stats as st
from .models import (
    AnalyticsStatus,
    Benchmark,
    CorrelationMatrix,
    CorrelationPair,
    Forecast,
    ForecastPoint,
    MetricBenchmark,
    NetworkQuantSummary,
    RegressionResult,
    RiskProfile,
)

SCORE = NodeMetric.PERFORMANCE_SCORE.value

DEFAULT_CORRELATION_METRICS = [
    NodeMetric.PERFORMANCE_SCORE.value,
    NodeMetric.UPTIME.value,
    NodeMetric.LATENCY.value,
    NodeMetric.UTILIZATION.value,
    NodeMetric.CAPACITY_BYTES.value,
]

# metric -> higher is better
BENCHMARK_METRICS: Dict[str, bool] = {
    NodeMetric.PERFORMANCE_SCORE.value: True,
    NodeMetric.UPTIME.value: True,
    NodeMetric.CAPACITY_BYTES.value: True,
    NodeMetric.LATENCY.value: False,
}

PEER_GROUP_SIZE = 5
PEER_SCORE_DISTANCE = 10.0
SIGNIFICANCE_LEVEL = 0.05
MIN_REGRESSION_POINTS = 3
MIN_FORECAST_POINTS = 3
MIN_SUMMARY_NODES = 3


def _column(frame: pd.DataFrame, metric: str) -> pd.Series:
    if metric not in frame.columns:
        return pd.Series(dtype=float)
    return frame[metric].dropna().astype(float)


# =============================================================================
# Risk
# =============================================================================

def risk_profile(
    node_id: str,
    history: Sequence[float],
    population: pd.Series,
) -> RiskProfile:
    """
    Args:
        node_id: Node being profiled
        history: Node's performance-score history, oldest first
        population: Current performance score per node (index = node id)
    """
    scores = population.dropna().astype(float)
    if node_id in scores.index:
        score = float(scores[node_id])
    elif len(history):
        score = float(history[-1])
    else:
        raise ValueError(f"no performance score for node {node_id}")

    pop_std = st.sample_std(scores.values)
    pop_mean = float(scores.mean()) if len(scores) else score
    relative = (pop_mean - score) / pop_std if pop_std else None

    dd = st.drawdown(history)

    return RiskProfile(
        node_id=node_id,
        performance_score=score,
        volatility=st.sample_std(history),
        downside_deviation=st.downside_deviation(history),
        percentile_rank=st.percentile_rank(scores.values, score),
        relative_risk=relative,
        risk_level=st.risk_level(relative),
        max_drawdown=dd[0] if dd else None,
        current_drawdown=dd[1] if dd else None,
        consistency_score=st.consistency_score(history),
        sharpe_ratio=st.sharpe_ratio(history),
        history_points=len(history),
        population_size=len(scores),
        population_mean=pop_mean,
    )


# =============================================================================
# Benchmark
# =============================================================================

def benchmark(node_id: str, frame: pd.DataFrame) -> Benchmark:
    """
    Percentiles use the rank count 100 * (worse members) / (n - 1), so the
    best node scores 100 and the worst 0.
    """
    results: List[MetricBenchmark] = []
    for metric, higher_is_better in BENCHMARK_METRICS.items():
        column = _column(frame, metric)
        if node_id not in column.index:
            continue
        value = float(column[node_id])
        percentile = st.rank_percentile(column.values, value, higher_is_better)
        z = st.z_score(column.values, value)
        results.append(MetricBenchmark(
            metric=metric,
            value=value,
            percentile=percentile,
            tier=st.tier(percentile),
            population_mean=float(column.mean()),
            population_median=float(column.median()),
            z_score=z if higher_is_better or z is None else -z,
            higher_is_better=higher_is_better,
        ))

    overall = float(np.mean([r.percentile for r in results])) if results else 0.0

    scores = _column(frame, SCORE)
    if node_id in scores.index:
        own = float(scores[node_id])
        rank = int(np.count_nonzero(scores.values > own)) + 1
        others = scores.drop(node_id)
        distance = (others - own).abs()
        close = distance[distance <= PEER_SCORE_DISTANCE]
        peers = sorted(close.index, key=lambda nid: (close[nid], nid))[:PEER_GROUP_SIZE]
    else:
        rank = len(scores) + 1
        peers = []

    return Benchmark(
        node_id=node_id,
        metrics=results,
        overall_percentile=overall,
        overall_tier=st.tier(overall),
        network_rank=rank,
        population_size=len(frame.index),
        peer_group=list(peers),
    )


# =============================================================================
# Correlation
# =============================================================================

def correlation_pair(frame: pd.DataFrame, metric_x: str, metric_y: str) -> CorrelationPair:
    if metric_x in frame.columns and metric_y in frame.columns:
        x = frame[metric_x].astype(float).values
        y = frame[metric_y].astype(float).values
    else:
        x, y = np.array([]), np.array([])
    r, p, n = st.pearson(x, y)
    return CorrelationPair(
        metric_x=metric_x,
        metric_y=metric_y,
        coefficient=r,
        p_value=p,
        sample_size=n,
        strength=st.strength_label(r),
        direction=st.direction_label(r),
        significant=p is not None and p < SIGNIFICANCE_LEVEL,
    )


def correlation_matrix(
    frame: pd.DataFrame,
    metrics: Optional[Sequence[str]] = None,
    pairs: Optional[Sequence[Tuple[str, str]]] = None,
) -> CorrelationMatrix:
    """
    Cross-sectional Pearson correlation (one sample per node).

    With `pairs`, only those pairs are computed; otherwise every pair of
    `metrics` (default set when omitted).
    """
    if pairs:
        wanted = [tuple(p) for p in pairs]
        names = list(dict.fromkeys(m for pair in wanted for m in pair))
    else:
        names = list(metrics or DEFAULT_CORRELATION_METRICS)
        wanted = list(combinations(names, 2))

    results = [correlation_pair(frame, x, y) for x, y in wanted]

    matrix: Dict[str, Dict[str, Optional[float]]] = {m: {} for m in names}
    for m in names:
        matrix[m][m] = correlation_pair(frame, m, m).coefficient
    for pair in results:
        matrix[pair.metric_x][pair.metric_y] = pair.coefficient
        matrix[pair.metric_y][pair.metric_x] = pair.coefficient

    defined = [p for p in results if p.coefficient is not None]
    positive = [p for p in defined if p.coefficient > 0]
    negative = [p for p in defined if p.coefficient < 0]

    return CorrelationMatrix(
        metrics=names,
        matrix=matrix,
        pairs=results,
        strongest_positive=max(positive, key=lambda p: p.coefficient) if positive else None,
        strongest_negative=min(negative, key=lambda p: p.coefficient) if negative else None,
        significant_pairs=sum(1 for p in results if p.significant),
        sample_size=len(frame.index),
    )


# =============================================================================
# Regression
# =============================================================================

def regression(frame: pd.DataFrame, dependent: str, independent: str) -> RegressionResult:
    """
    OLS of dependent on independent across the population.

    Fewer than 3 complete rows or a constant independent variable gives
    status=INSUFFICIENT_DATA.
    """
    if dependent in frame.columns and independent in frame.columns:
        data = frame[[independent, dependent]].astype(float).dropna()
    else:
        data = pd.DataFrame(columns=[independent, dependent])

    n = len(data)
    if n < MIN_REGRESSION_POINTS or np.ptp(data[independent].values) == 0:
        return RegressionResult(
            dependent=dependent,
            independent=independent,
            status=AnalyticsStatus.INSUFFICIENT_DATA,
            sample_size=n,
        )

    fit = stats.linregress(data[independent].values, data[dependent].values)
    slope = float(fit.slope)
    intercept = float(fit.intercept)
    std_err = float(fit.stderr)
    t_stat = slope / std_err if std_err > 0 else None
    p_value = float(fit.pvalue)

    sign = "+" if intercept >= 0 else "-"
    return RegressionResult(
        dependent=dependent,
        independent=independent,
        status=AnalyticsStatus.OK,
        sample_size=n,
        slope=slope,
        intercept=intercept,
        r_squared=float(fit.rvalue ** 2),
        slope_std_error=std_err,
        t_statistic=t_stat,
        p_value=p_value,
        significant=p_value < SIGNIFICANCE_LEVEL,
        equation=f"{dependent} = {slope:.4f} * {independent} {sign} {abs(intercept):.4f}",
    )


# =============================================================================
# Forecast
# =============================================================================

def forecast(
    entity_id: str,
    metric: str,
    series: Sequence[Tuple[datetime, float]],
    horizon_days: int = 7,
) -> Optional[Forecast]:
    """
    Linear trend over (days since first sample, value), projected one point
    per day past the last sample with a 95% prediction band.

    Returns None with fewer than 3 samples or when all samples share one
    timestamp.
    """
    if len(series) < MIN_FORECAST_POINTS or horizon_days < 1:
        return None

    origin = series[0][0]
    x = np.array([(ts - origin).total_seconds() / 86_400.0 for ts, _ in series])
    y = np.array([float(v) for _, v in series])
    n = len(x)

    x_mean = x.mean()
    sxx = float(np.sum((x - x_mean) ** 2))
    if sxx == 0:
        return None

    slope = float(np.sum((x - x_mean) * (y - y.mean())) / sxx)
    intercept = float(y.mean() - slope * x_mean)
    residuals = y - (slope * x + intercept)
    sse = float(np.sum(residuals ** 2))
    sst = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 - sse / sst if sst > 0 else 1.0
    residual_se = float(np.sqrt(sse / (n - 2))) if n > 2 else 0.0
    t_crit = float(stats.t.ppf(0.975, n - 2))

    clamp = metric in PERCENT_METRICS
    last_ts = series[-1][0]
    points: List[ForecastPoint] = []
    for day in range(1, horizon_days + 1):
        ts = last_ts + timedelta(days=day)
        xk = (ts - origin).total_seconds() / 86_400.0
        value = slope * xk + intercept
        margin = t_crit * residual_se * np.sqrt(1.0 + 1.0 / n + (xk - x_mean) ** 2 / sxx)
        lower, upper = value - margin, value + margin
        if clamp:
            value, lower, upper = (min(100.0, max(0.0, v)) for v in (value, lower, upper))
        points.append(ForecastPoint(
            timestamp=ts,
            value=float(value),
            lower=float(lower),
            upper=float(upper),
        ))

    if slope > 0.1:
        trend = "increasing"
    elif slope < -0.1:
        trend = "decreasing"
    else:
        trend = "stable"

    return Forecast(
        entity_id=entity_id,
        metric=metric,
        horizon_days=horizon_days,
        sample_size=n,
        slope_per_day=slope,
        intercept=intercept,
        r_squared=r_squared,
        residual_std_error=residual_se,
        trend=trend,
        points=points,
    )


# =============================================================================
# Network summary
# =============================================================================

def network_summary(
    frame: pd.DataFrame,
    timestamp: Optional[datetime] = None,
    top_n: int = 5,
) -> NetworkQuantSummary:
    scores = _column(frame, SCORE)
    n = len(scores)
    if n < MIN_SUMMARY_NODES:
        return NetworkQuantSummary(
            status=AnalyticsStatus.INSUFFICIENT_DATA,
            node_count=n,
            timestamp=timestamp,
        )

    values = scores.values
    mean = float(values.mean())
    std = st.sample_std(values)

    distribution = {"low": 0, "medium": 0, "high": 0, "very_high": 0}
    if std:
        for v in values:
            distribution[st.risk_level((mean - v) / std)] += 1
    else:
        distribution["medium"] = n

    correlations = correlation_matrix(frame)
    ranked = scores.sort_values(ascending=False, kind="mergesort")

    return NetworkQuantSummary(
        status=AnalyticsStatus.OK,
        node_count=n,
        timestamp=timestamp,
        score_stats={
            "mean": mean,
            "median": float(np.median(values)),
            "q1": float(np.percentile(values, 25)),
            "q3": float(np.percentile(values, 75)),
            "std": std,
            "min": float(values.min()),
            "max": float(values.max()),
        },
        risk_distribution=distribution,
        strongest_positive=correlations.strongest_positive,
        strongest_negative=correlations.strongest_negative,
        regression=regression(frame, SCORE, NodeMetric.LATENCY.value),
        top_performers=[
            {"node_id": nid, "performance_score": float(v)} for nid, v in ranked.head(top_n).items()
        ],
        bottom_performers=[
            {"node_id": nid, "performance_score": float(v)}
            for nid, v in ranked.iloc[::-1].head(top_n).items()
        ],
    )
