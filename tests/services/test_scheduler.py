"""Tests for the periodic indexing driver."""

import threading
from unittest.mock import MagicMock

from pnode_analytics.core.errors import DiscoveryError, StorageError
from pnode_analytics.services.scheduler import IndexingScheduler


class TestTick:
    def test_runs_one_cycle(self):
        collector = MagicMock()
        scheduler = IndexingScheduler(collector, interval_seconds=60)

        scheduler.tick()

        collector.run_cycle.assert_called_once_with()
        assert scheduler.stats()["ticks"] == 1
        assert scheduler.stats()["errors"] == 0

    def test_failures_do_not_stop_the_schedule(self):
        collector = MagicMock()
        collector.run_cycle.side_effect = [DiscoveryError("down"), StorageError("locked"), RuntimeError("bug"), None]
        scheduler = IndexingScheduler(collector)

        for _ in range(4):
            scheduler.tick()

        assert scheduler.stats()["ticks"] == 4
        assert scheduler.stats()["errors"] == 3


class TestLifecycle:
    def test_start_and_stop(self):
        ran = threading.Event()
        collector = MagicMock()
        collector.run_cycle.side_effect = lambda: ran.set()
        scheduler = IndexingScheduler(collector, interval_seconds=3600)

        assert scheduler.start()["status"] == "started"
        assert ran.wait(5)
        assert scheduler.is_running
        assert scheduler.start() == {"status": "already_running"}

        stopped = scheduler.stop()

        assert stopped["status"] == "stopped"
        assert not scheduler.is_running
        assert scheduler.stats()["started_at"] is not None

    def test_stop_when_idle(self):
        assert IndexingScheduler(MagicMock()).stop() == {"status": "not_running"}
