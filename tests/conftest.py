"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from pnode_analytics.alerts.engine import AlertRuleEngine
from pnode_analytics.config import AlertSettings, AnalyticsSettings, NormalizerSettings
from pnode_analytics.core.collector import Collector
from pnode_analytics.core.errors import DiscoveryError
from pnode_analytics.core.normalizer import NodeStateNormalizer
from pnode_analytics.db.alert_store import AlertStore
from pnode_analytics.db.sqlite import SQLiteDatabase, TimeSeriesStore

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class StaticSource:
    """Discovery source returning a preset list (or raising)."""

    def __init__(self, records: List[Dict[str, Any]] = None):
        self.records = records or []
        self.error: Exception = None
        self.calls = 0

    def fetch_latest(self) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)

    def fail(self, message: str = "upstream down") -> None:
        self.error = DiscoveryError(message)


@pytest.fixture
def now() -> datetime:
    """Fixed cycle time used across tests."""
    return NOW


@pytest.fixture
def make_raw():
    """Factory for raw discovery records."""

    def _make(
        node_id: str,
        seen_minutes_ago: float = 1.0,
        now: datetime = NOW,
        **extra: Any,
    ) -> Dict[str, Any]:
        record = {
            "pubkey": node_id,
            "address": f"10.0.0.{sum(node_id.encode()) % 250}:9001",
            "version": "0.7.3",
            "last_seen_timestamp": (now - timedelta(minutes=seen_minutes_ago)).timestamp(),
        }
        record.update(extra)
        return record

    return _make


@pytest.fixture
def db():
    database = SQLiteDatabase(":memory:")
    yield database
    database.close()


@pytest.fixture
def store(db) -> TimeSeriesStore:
    return TimeSeriesStore(db)


@pytest.fixture
def alert_store(db) -> AlertStore:
    return AlertStore(db)


@pytest.fixture
def alert_engine(alert_store) -> AlertRuleEngine:
    return AlertRuleEngine(alert_store, AlertSettings())


@pytest.fixture
def normalizer() -> NodeStateNormalizer:
    return NodeStateNormalizer(NormalizerSettings())


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings()


@pytest.fixture
def source() -> StaticSource:
    return StaticSource()


@pytest.fixture
def collector(source, store, normalizer, alert_engine) -> Collector:
    return Collector(source, store, normalizer=normalizer, alert_engine=alert_engine)
