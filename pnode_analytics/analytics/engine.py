"""
Quant Analytics Engine
Reads history from the time-series store and hands it to the pure
functions in quant.py / anomaly.py.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from pnode_analytics.config import AnalyticsSettings
from pnode_analytics.core.errors import NotFoundError
from pnode_analytics.core.models import NETWORK_ENTITY, NodeMetric, utc_now

from . import quant
from .anomaly import ANOMALY_METRICS, detect_anomalies
from .models import (
    Anomaly,
    Benchmark,
    CorrelationMatrix,
    Forecast,
    NetworkQuantSummary,
    RegressionResult,
    RiskProfile,
)

logger = logging.getLogger(__name__)

SCORE = NodeMetric.PERFORMANCE_SCORE.value


class QuantAnalyticsEngine:
    def __init__(self, store, settings: Optional[AnalyticsSettings] = None):
        self.store = store
        self.settings = settings or AnalyticsSettings()

    def _require_entity(self, entity_id: str) -> None:
        if entity_id != NETWORK_ENTITY and not self.store.has_entity(entity_id):
            raise NotFoundError("node", entity_id)

    def _window_start(self, now: Optional[datetime] = None) -> datetime:
        return (now or utc_now()) - timedelta(days=self.settings.history_days)

    # =========================================================================
    # Per-node
    # =========================================================================

    def risk_profile(self, node_id: str, now: Optional[datetime] = None) -> RiskProfile:
        """
        Raises:
            NotFoundError: unknown node, or a node with no performance score
        """
        self._require_entity(node_id)
        history = [v for _, v in self.store.query(node_id, SCORE, from_time=self._window_start(now))]
        population = self.store.cross_section([SCORE])[SCORE]

        # Departed nodes fall back to their last known score
        if not history and node_id not in population.dropna().index:
            latest = self.store.latest(node_id, SCORE)
            if latest is None:
                raise NotFoundError("performance score for node", node_id)
            history = [latest]

        return quant.risk_profile(node_id, history, population)

    def benchmark(self, node_id: str) -> Benchmark:
        self._require_entity(node_id)
        frame = self.store.cross_section(list(quant.BENCHMARK_METRICS))
        return quant.benchmark(node_id, frame)

    def forecast(
        self,
        entity_id: str,
        metric: str,
        horizon_days: int = 7,
        now: Optional[datetime] = None,
    ) -> Optional[Forecast]:
        self._require_entity(entity_id)
        series = self.store.query(entity_id, metric, from_time=self._window_start(now))
        result = quant.forecast(entity_id, metric, series, horizon_days=horizon_days)
        if result is None:
            logger.debug("Not enough history to forecast %s/%s (%d points)",
                         entity_id, metric, len(series))
        return result

    # =========================================================================
    # Cross-sectional
    # =========================================================================

    def correlation_matrix(
        self,
        metrics: Optional[Sequence[str]] = None,
        pairs: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> CorrelationMatrix:
        frame = self.store.cross_section()
        return quant.correlation_matrix(frame, metrics=metrics, pairs=pairs)

    def regression(self, dependent: str, independent: str) -> RegressionResult:
        frame = self.store.cross_section([dependent, independent])
        return quant.regression(frame, dependent, independent)

    def network_summary(self) -> NetworkQuantSummary:
        frame = self.store.cross_section()
        return quant.network_summary(frame, timestamp=self.store.latest_timestamp())

    # =========================================================================
    # Anomalies
    # =========================================================================

    def anomalies(self) -> List[Anomaly]:
        latest = self.store.latest_timestamp()
        if latest is None:
            return []
        window = timedelta(hours=self.settings.anomaly_window_hours)
        history = {
            metric: self.store.query(NETWORK_ENTITY, metric, from_time=latest - window)
            for metric in ANOMALY_METRICS
        }
        found = detect_anomalies(
            history,
            threshold=self.settings.anomaly_threshold_stddev,
            window=window,
            min_points=self.settings.anomaly_min_points,
        )
        for anomaly in found:
            logger.info("Anomaly detected: %s", anomaly.message)
        return found
