"""
Indexing Scheduler
Background thread that runs Collector.run_cycle every interval.

Usage:
    scheduler = IndexingScheduler(collector, interval_seconds=30)
    scheduler.start()
    # cycles run until
    scheduler.stop()
"""

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from pnode_analytics.core.errors import DiscoveryError, PNodeAnalyticsError
from pnode_analytics.core.models import utc_now

logger = logging.getLogger(__name__)


class IndexingScheduler:
    def __init__(self, collector, interval_seconds: float = 30.0):
        self.collector = collector
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at: Optional[datetime] = None
        self._ticks = 0
        self._errors = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> Dict[str, Any]:
        if self.is_running:
            return {"status": "already_running"}

        self._stop.clear()
        self._started_at = utc_now()
        self._thread = threading.Thread(target=self._loop, name="indexing-scheduler", daemon=True)
        self._thread.start()
        logger.info("Indexing scheduler started (every %.0fs)", self.interval_seconds)
        return {"status": "started", "interval_seconds": self.interval_seconds}

    def stop(self, timeout: float = 10.0) -> Dict[str, Any]:
        if not self.is_running:
            return {"status": "not_running"}

        self._stop.set()
        self._thread.join(timeout)
        logger.info("Indexing scheduler stopped after %d cycles", self._ticks)
        return {"status": "stopped", "cycles": self._ticks}

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval_seconds)

    def tick(self) -> None:
        """Run one cycle; failures are logged and the schedule continues."""
        self._ticks += 1
        try:
            self.collector.run_cycle()
        except DiscoveryError:
            self._errors += 1
        except PNodeAnalyticsError:
            self._errors += 1
            logger.exception("Indexing cycle failed")
        except Exception:
            self._errors += 1
            logger.exception("Unexpected error in indexing cycle")

    def stats(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "interval_seconds": self.interval_seconds,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "ticks": self._ticks,
            "errors": self._errors,
        }
