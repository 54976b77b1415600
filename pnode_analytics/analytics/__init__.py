"""
Analytics Module
Quant analytics over the stored node population and history.

Structure:
    analytics/
    ├── models.py    → Output types (dataclasses)
    ├── stats.py     → Statistics primitives
    ├── quant.py     → Risk, benchmark, correlation, regression, forecast
    ├── anomaly.py   → Network anomaly detection
    └── engine.py    → QuantAnalyticsEngine (store reads + delegation)

Usage:
    from pnode_analytics.analytics import quant

    frame = store.cross_section()
    matrix = quant.correlation_matrix(frame)
    fit = quant.regression(frame, "performanceScore", "latency")
"""

from . import anomaly
from . import quant
from . import stats

from .models import (
    AnalyticsStatus,
    Anomaly,
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
from .engine import QuantAnalyticsEngine

__all__ = [
    # Modules
    "anomaly",
    "quant",
    "stats",
    # Types
    "AnalyticsStatus",
    "Anomaly",
    "Benchmark",
    "CorrelationMatrix",
    "CorrelationPair",
    "Forecast",
    "ForecastPoint",
    "MetricBenchmark",
    "NetworkQuantSummary",
    "RegressionResult",
    "RiskProfile",
    # Engine
    "QuantAnalyticsEngine",
]
