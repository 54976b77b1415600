"""
Anomaly Detection
Flags network metrics whose latest value sits far outside the preceding
window.

deviation = |latest - window mean| / (window std or 1)
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from pnode_analytics.core.models import NetworkMetric, Severity

from .models import Anomaly

# metric -> only flag drops below the mean
ANOMALY_METRICS: Dict[str, bool] = {
    NetworkMetric.TOTAL_NODES.value: False,
    NetworkMetric.HEALTH_SCORE.value: True,
}


def check_series(
    metric: str,
    series: Sequence[Tuple[datetime, float]],
    threshold: float = 2.5,
    window: timedelta = timedelta(hours=24),
    min_points: int = 10,
    below_only: bool = False,
) -> Optional[Anomaly]:
    """
    Compare the last point of `series` (ascending) with the points inside
    `window` before it. None when the window is too thin or nothing is off.
    """
    if len(series) < 2:
        return None

    latest_ts, latest = series[-1]
    start = latest_ts - window
    baseline = np.array([v for ts, v in series[:-1] if start <= ts < latest_ts], dtype=float)
    if len(baseline) < min_points:
        return None

    expected = float(baseline.mean())
    std = float(baseline.std())
    deviation = abs(latest - expected) / (std or 1.0)

    if deviation <= threshold:
        return None
    if below_only and latest >= expected:
        return None

    return Anomaly(
        metric=metric,
        value=float(latest),
        expected=expected,
        std=std,
        deviation=deviation,
        severity=(Severity.CRITICAL if deviation > threshold * 2 else Severity.WARNING).value,
        timestamp=latest_ts,
        message=f"Unusual {metric}: expected ~{expected:.1f}, got {latest:.1f}",
    )


def detect_anomalies(
    history: Dict[str, Sequence[Tuple[datetime, float]]],
    threshold: float = 2.5,
    window: timedelta = timedelta(hours=24),
    min_points: int = 10,
) -> List[Anomaly]:
    """
    Args:
        history: metric -> ascending (timestamp, value) for the network entity
    """
    anomalies = []
    for metric, below_only in ANOMALY_METRICS.items():
        found = check_series(
            metric,
            history.get(metric, []),
            threshold=threshold,
            window=window,
            min_points=min_points,
            below_only=below_only,
        )
        if found is not None:
            anomalies.append(found)
    return anomalies
