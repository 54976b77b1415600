"""
Statistics Primitives
Small numeric building blocks shared by the quant functions.

Every function is pure and returns None when the input cannot support the
statistic (too few points, zero variance). Callers decide how to report it.
"""

import math
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats


def _array(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    return arr[~np.isnan(arr)]


# =============================================================================
# Dispersion
# =============================================================================

def sample_std(values: Sequence[float]) -> Optional[float]:
    arr = _array(values)
    if len(arr) < 2:
        return None
    return float(np.std(arr, ddof=1))


def downside_deviation(values: Sequence[float]) -> Optional[float]:
    """
    RMS of shortfalls below the series mean; points at or above the mean
    count as zero.
    """
    arr = _array(values)
    if len(arr) < 2:
        return None
    shortfall = np.minimum(arr - arr.mean(), 0.0)
    return float(np.sqrt(np.mean(shortfall ** 2)))


def drawdown(values: Sequence[float]) -> Optional[Tuple[float, float]]:
    """
    (max drawdown, current drawdown) in percent below the running peak.
    """
    arr = _array(values)
    if len(arr) < 2:
        return None
    peaks = np.maximum.accumulate(arr)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peaks > 0, (peaks - arr) / peaks * 100.0, 0.0)
    return float(dd.max()), float(dd[-1])


def consistency_score(values: Sequence[float]) -> Optional[float]:
    """
    0-100 from the coefficient of variation: CV 0 -> 100, CV >= 0.5 -> 0.
    """
    arr = _array(values)
    if len(arr) < 2:
        return None
    mean = arr.mean()
    cv = 0.0 if mean == 0 else float(np.std(arr, ddof=1) / abs(mean))
    return float(max(0.0, min(100.0, 100.0 * (1.0 - min(cv * 2.0, 1.0)))))


def sharpe_ratio(values: Sequence[float]) -> Optional[float]:
    """Mean / std of period-over-period changes."""
    arr = _array(values)
    if len(arr) < 3:
        return None
    changes = np.diff(arr)
    std = float(np.std(changes, ddof=1))
    if std == 0:
        return None
    return float(changes.mean() / std)


# =============================================================================
# Ranking
# =============================================================================

def percentile_rank(population: Sequence[float], value: float) -> float:
    """Percent of the population at or below value."""
    arr = _array(population)
    if len(arr) == 0:
        return 0.0
    return float(np.count_nonzero(arr <= value) / len(arr) * 100.0)


def rank_percentile(
    population: Sequence[float],
    value: float,
    higher_is_better: bool = True,
) -> float:
    """
    100 * (members strictly worse than value) / (n - 1).

    Best member gets 100, worst gets 0; a population of one gets 100.
    """
    arr = _array(population)
    n = len(arr)
    if n <= 1:
        return 100.0
    worse = np.count_nonzero(arr < value) if higher_is_better else np.count_nonzero(arr > value)
    return float(worse / (n - 1) * 100.0)


def tier(percentile: float) -> str:
    if percentile >= 90:
        return "top"
    if percentile >= 10:
        return "mid"
    return "bottom"


def z_score(population: Sequence[float], value: float) -> Optional[float]:
    std = sample_std(population)
    if not std:
        return None
    return float((value - _array(population).mean()) / std)


def risk_level(relative_risk: Optional[float]) -> Optional[str]:
    if relative_risk is None:
        return None
    if relative_risk >= 1.5:
        return "very_high"
    if relative_risk >= 0.5:
        return "high"
    if relative_risk >= -0.5:
        return "medium"
    return "low"


# =============================================================================
# Correlation
# =============================================================================

def pearson(x: Sequence[float], y: Sequence[float]) -> Tuple[Optional[float], Optional[float], int]:
    """
    (r, p_value, n) over pairs where both values are present.

    r is None with fewer than 2 pairs or a constant series; the p-value
    (two-tailed t-test) needs n > 2.
    """
    xa = np.asarray(x, dtype=float)
    ya = np.asarray(y, dtype=float)
    mask = ~(np.isnan(xa) | np.isnan(ya))
    xa, ya = xa[mask], ya[mask]
    n = len(xa)

    if n < 2 or np.ptp(xa) == 0 or np.ptp(ya) == 0:
        return None, None, n

    xd = xa - xa.mean()
    yd = ya - ya.mean()
    r = float(np.sum(xd * yd) / math.sqrt(np.sum(xd ** 2) * np.sum(yd ** 2)))
    r = max(-1.0, min(1.0, r))

    if n <= 2:
        return r, None, n
    if abs(r) == 1.0:
        return r, 0.0, n
    t_stat = r * math.sqrt((n - 2) / (1 - r * r))
    p_value = float(2 * stats.t.sf(abs(t_stat), n - 2))
    return r, p_value, n


def strength_label(r: Optional[float]) -> str:
    if r is None:
        return "none"
    magnitude = abs(r)
    if magnitude >= 0.7:
        return "strong"
    if magnitude >= 0.4:
        return "moderate"
    if magnitude >= 0.2:
        return "weak"
    return "none"


def direction_label(r: Optional[float]) -> str:
    if r is None:
        return "none"
    if r > 0.1:
        return "positive"
    if r < -0.1:
        return "negative"
    return "none"
