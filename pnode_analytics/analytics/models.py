"""
Analytics Output Types
Dataclasses for quant analytics results.

All of these are derived views: computed on demand from stored history,
never persisted. Missing inputs show up as None or
status=INSUFFICIENT_DATA, never as a made-up zero.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class AnalyticsStatus(str, Enum):
    OK = "OK"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


# =============================================================================
# Per-node
# =============================================================================

@dataclass
class RiskProfile(_Serializable):
    """
    Risk of one node relative to its own history and to the population.

    relative_risk = (population mean - score) / population std
    Positive means the node sits below the crowd.
    """
    node_id: str
    performance_score: float
    volatility: Optional[float]          # sample std of score history
    downside_deviation: Optional[float]
    percentile_rank: float               # % of population with score <= node's
    relative_risk: Optional[float]
    risk_level: Optional[str]            # low / medium / high / very_high
    max_drawdown: Optional[float]        # percent below running peak
    current_drawdown: Optional[float]
    consistency_score: Optional[float]   # 0-100, 100 = flat history
    sharpe_ratio: Optional[float]        # mean / std of period changes
    history_points: int
    population_size: int
    population_mean: float


@dataclass
class MetricBenchmark(_Serializable):
    metric: str
    value: float
    percentile: float
    tier: str
    population_mean: float
    population_median: float
    z_score: Optional[float]
    higher_is_better: bool = True


@dataclass
class Benchmark(_Serializable):
    node_id: str
    metrics: List[MetricBenchmark]
    overall_percentile: float
    overall_tier: str
    network_rank: int
    population_size: int
    peer_group: List[str] = field(default_factory=list)


# =============================================================================
# Cross-sectional
# =============================================================================

@dataclass
class CorrelationPair(_Serializable):
    metric_x: str
    metric_y: str
    coefficient: Optional[float]   # None: zero variance or too few samples
    p_value: Optional[float]
    sample_size: int
    strength: str                  # none / weak / moderate / strong
    direction: str                 # positive / negative / none
    significant: bool


@dataclass
class CorrelationMatrix(_Serializable):
    metrics: List[str]
    matrix: Dict[str, Dict[str, Optional[float]]]
    pairs: List[CorrelationPair]
    strongest_positive: Optional[CorrelationPair]
    strongest_negative: Optional[CorrelationPair]
    significant_pairs: int
    sample_size: int


@dataclass
class RegressionResult(_Serializable):
    """
    OLS fit: dependent = slope * independent + intercept
    """
    dependent: str
    independent: str
    status: AnalyticsStatus
    sample_size: int
    slope: Optional[float] = None
    intercept: Optional[float] = None
    r_squared: Optional[float] = None
    slope_std_error: Optional[float] = None
    t_statistic: Optional[float] = None
    p_value: Optional[float] = None
    significant: bool = False
    equation: Optional[str] = None


# =============================================================================
# Time series
# =============================================================================

@dataclass
class ForecastPoint(_Serializable):
    timestamp: datetime
    value: float
    lower: float
    upper: float


@dataclass
class Forecast(_Serializable):
    entity_id: str
    metric: str
    horizon_days: int
    sample_size: int
    slope_per_day: float
    intercept: float
    r_squared: float
    residual_std_error: float
    trend: str                     # increasing / decreasing / stable
    points: List[ForecastPoint]


@dataclass
class Anomaly(_Serializable):
    metric: str
    value: float
    expected: float
    std: float
    deviation: float               # |value - expected| / (std or 1)
    severity: str
    timestamp: datetime
    message: str


# =============================================================================
# Network
# =============================================================================

@dataclass
class NetworkQuantSummary(_Serializable):
    status: AnalyticsStatus
    node_count: int
    timestamp: Optional[datetime] = None
    score_stats: Dict[str, float] = field(default_factory=dict)
    risk_distribution: Dict[str, int] = field(default_factory=dict)
    strongest_positive: Optional[CorrelationPair] = None
    strongest_negative: Optional[CorrelationPair] = None
    regression: Optional[RegressionResult] = None
    top_performers: List[Dict[str, Any]] = field(default_factory=list)
    bottom_performers: List[Dict[str, Any]] = field(default_factory=list)
