"""
SQLite Storage
Persistent, append-only time-series of node and network snapshots.

Responsibilities:
- Own the SQLite connection and schema
- Append snapshots and network events (one transaction per cycle)
- Read history, latest values and cross-sections

NOT responsible for:
- Normalization (done upstream)
- Analytics (done elsewhere)
- Alert state (alert_store.py)
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from pnode_analytics.core.errors import StorageError
from pnode_analytics.core.models import (
    NETWORK_ENTITY,
    CycleSnapshot,
    EventType,
    NetworkEvent,
    Severity,
    Snapshot,
    ensure_utc,
)

logger = logging.getLogger(__name__)


SCHEMA = """
    CREATE TABLE IF NOT EXISTS snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity_id TEXT NOT NULL,
        metric TEXT NOT NULL,
        value REAL NOT NULL,
        ts REAL NOT NULL,
        UNIQUE(entity_id, metric, ts, value)
    );

    CREATE INDEX IF NOT EXISTS idx_snapshots_entity_metric_ts
    ON snapshots(entity_id, metric, ts);

    CREATE INDEX IF NOT EXISTS idx_snapshots_ts
    ON snapshots(ts);

    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        type TEXT NOT NULL,
        severity TEXT NOT NULL,
        pnode_id TEXT,
        message TEXT NOT NULL,
        metadata TEXT NOT NULL DEFAULT '{}',
        ts REAL NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);

    CREATE TABLE IF NOT EXISTS alert_rules (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        metric TEXT NOT NULL,
        operator TEXT NOT NULL,
        threshold REAL NOT NULL,
        scope TEXT NOT NULL,
        pnode_filter TEXT,
        cooldown_minutes INTEGER NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1,
        created_at REAL NOT NULL
    );

    CREATE TABLE IF NOT EXISTS alerts (
        id TEXT PRIMARY KEY,
        rule_id TEXT NOT NULL REFERENCES alert_rules(id),
        pnode_id TEXT,
        severity TEXT NOT NULL,
        trigger_value REAL NOT NULL,
        threshold REAL NOT NULL,
        message TEXT NOT NULL,
        created_at REAL NOT NULL,
        resolved_at REAL
    );

    CREATE INDEX IF NOT EXISTS idx_alerts_created ON alerts(created_at);

    CREATE INDEX IF NOT EXISTS idx_alerts_rule_pair
    ON alerts(rule_id, pnode_id, created_at);

    CREATE UNIQUE INDEX IF NOT EXISTS idx_alerts_one_active
    ON alerts(rule_id, COALESCE(pnode_id, '')) WHERE resolved_at IS NULL;
"""


def to_epoch(value: datetime) -> float:
    return ensure_utc(value).timestamp()


def from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


# =============================================================================
# Connection
# =============================================================================

class SQLiteDatabase:
    """
    One shared connection guarded by a lock.

    Every write happens inside `transaction()`, so a reader either sees a
    whole cycle or none of it.
    """

    def __init__(self, db_path: str = "data/pnodes.db"):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._ensure_directory()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {db_path}: {e}") from e

    def _ensure_directory(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# =============================================================================
# Time-Series Store
# =============================================================================

class TimeSeriesStore:
    """
    Append-only (entity, metric, value, timestamp) history.

    Re-appending a bit-identical tuple is ignored; nothing is ever merged,
    updated or deleted.
    """

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    # =========================================================================
    # Write Operations
    # =========================================================================

    def append(self, snapshot: Snapshot) -> bool:
        written, _ = self.append_many([snapshot])
        return written == 1

    def append_many(
        self,
        snapshots: Sequence[Snapshot],
        events: Iterable[NetworkEvent] = (),
    ) -> Tuple[int, int]:
        """Write snapshots and events atomically. Returns (snapshots, events) written."""
        events = list(events)
        if not snapshots and not events:
            return 0, 0

        with self.db.transaction() as conn:
            before = conn.total_changes
            conn.executemany(
                """INSERT OR IGNORE INTO snapshots (entity_id, metric, value, ts)
                   VALUES (?, ?, ?, ?)""",
                [
                    (s.entity_id, s.metric, float(s.value), to_epoch(s.timestamp))
                    for s in snapshots
                ],
            )
            written = conn.total_changes - before
            conn.executemany(
                """INSERT INTO events (type, severity, pnode_id, message, metadata, ts)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (e.type.value, e.severity.value, e.pnode_id, e.message,
                     json.dumps(e.metadata, default=str), to_epoch(e.timestamp))
                    for e in events
                ],
            )
        return written, len(events)

    # =========================================================================
    # Read Operations
    # =========================================================================

    def query(
        self,
        entity_id: str,
        metric: str,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> List[Tuple[datetime, float]]:
        """Ascending (timestamp, value) pairs; empty when there is no data."""
        sql = "SELECT ts, value FROM snapshots WHERE entity_id = ? AND metric = ?"
        params: List[Any] = [entity_id, metric]
        if from_time is not None:
            sql += " AND ts >= ?"
            params.append(to_epoch(from_time))
        if to_time is not None:
            sql += " AND ts <= ?"
            params.append(to_epoch(to_time))
        sql += " ORDER BY ts ASC, id ASC"

        with self.db.read() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [(from_epoch(row["ts"]), row["value"]) for row in rows]

    def latest(self, entity_id: str, metric: str) -> Optional[float]:
        with self.db.read() as conn:
            row = conn.execute(
                """SELECT value FROM snapshots
                   WHERE entity_id = ? AND metric = ?
                   ORDER BY ts DESC, id DESC LIMIT 1""",
                [entity_id, metric],
            ).fetchone()
        return row["value"] if row else None

    def latest_timestamp(self) -> Optional[datetime]:
        """Time of the most recent cycle (marked by its network snapshot)."""
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT MAX(ts) AS ts FROM snapshots WHERE entity_id = ?",
                [NETWORK_ENTITY],
            ).fetchone()
        return from_epoch(row["ts"]) if row and row["ts"] is not None else None

    def cycle_at(self, timestamp: datetime) -> CycleSnapshot:
        with self.db.read() as conn:
            rows = conn.execute(
                "SELECT entity_id, metric, value FROM snapshots WHERE ts = ? ORDER BY id",
                [to_epoch(timestamp)],
            ).fetchall()

        cycle = CycleSnapshot(timestamp=timestamp)
        for row in rows:
            if row["entity_id"] == NETWORK_ENTITY:
                cycle.network[row["metric"]] = row["value"]
            else:
                cycle.nodes.setdefault(row["entity_id"], {})[row["metric"]] = row["value"]
        return cycle

    def latest_cycle(self) -> Optional[CycleSnapshot]:
        ts = self.latest_timestamp()
        if ts is None:
            return None
        return self.cycle_at(ts)

    def node_ids(self, at: Optional[datetime] = None) -> List[str]:
        """Nodes present in the given (default: latest) cycle."""
        ts = at or self.latest_timestamp()
        if ts is None:
            return []
        with self.db.read() as conn:
            rows = conn.execute(
                """SELECT DISTINCT entity_id FROM snapshots
                   WHERE ts = ? AND entity_id != ? ORDER BY entity_id""",
                [to_epoch(ts), NETWORK_ENTITY],
            ).fetchall()
        return [row["entity_id"] for row in rows]

    def has_entity(self, entity_id: str) -> bool:
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT 1 FROM snapshots WHERE entity_id = ? LIMIT 1",
                [entity_id],
            ).fetchone()
        return row is not None

    def cross_section(
        self,
        metrics: Optional[Sequence[str]] = None,
        at: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """
        One row per node of a cycle, one column per metric.

        This is the population every cross-sectional statistic runs on.
        """
        ts = at or self.latest_timestamp()
        if ts is None:
            return pd.DataFrame(columns=list(metrics or []))

        sql = "SELECT entity_id, metric, value FROM snapshots WHERE ts = ? AND entity_id != ?"
        params: List[Any] = [to_epoch(ts), NETWORK_ENTITY]
        if metrics:
            sql += f" AND metric IN ({','.join('?' * len(metrics))})"
            params.extend(metrics)

        with self.db.read() as conn:
            df = pd.read_sql_query(sql, conn, params=params)

        if df.empty:
            return pd.DataFrame(columns=list(metrics or []))

        frame = df.pivot_table(index="entity_id", columns="metric", values="value", aggfunc="last")
        frame.columns.name = None
        frame.index.name = "node_id"
        if metrics:
            frame = frame.reindex(columns=list(metrics))
        return frame.sort_index()

    def history_df(
        self,
        entity_id: str,
        metrics: Sequence[str],
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """Wide frame indexed by timestamp (for analytics and exports)."""
        sql = (
            f"SELECT ts, metric, value FROM snapshots WHERE entity_id = ? "
            f"AND metric IN ({','.join('?' * len(metrics))})"
        )
        params: List[Any] = [entity_id, *metrics]
        if from_time is not None:
            sql += " AND ts >= ?"
            params.append(to_epoch(from_time))
        if to_time is not None:
            sql += " AND ts <= ?"
            params.append(to_epoch(to_time))

        with self.db.read() as conn:
            df = pd.read_sql_query(sql, conn, params=params)

        if df.empty:
            return pd.DataFrame(columns=list(metrics))

        frame = df.pivot_table(index="ts", columns="metric", values="value", aggfunc="last")
        frame.columns.name = None
        frame.index = pd.to_datetime(frame.index, unit="s", utc=True)
        frame.index.name = "timestamp"
        return frame.reindex(columns=list(metrics)).sort_index()

    def list_events(
        self,
        limit: int = 50,
        offset: int = 0,
        severity: Optional[Severity] = None,
        pnode_id: Optional[str] = None,
    ) -> List[NetworkEvent]:
        sql = "SELECT * FROM events WHERE 1 = 1"
        params: List[Any] = []
        if severity is not None:
            sql += " AND severity = ?"
            params.append(severity.value)
        if pnode_id is not None:
            sql += " AND pnode_id = ?"
            params.append(pnode_id)
        sql += " ORDER BY ts DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self.db.read() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [
            NetworkEvent(
                id=row["id"],
                type=EventType(row["type"]),
                severity=Severity(row["severity"]),
                pnode_id=row["pnode_id"],
                message=row["message"],
                metadata=json.loads(row["metadata"] or "{}"),
                timestamp=from_epoch(row["ts"]),
            )
            for row in rows
        ]

    def stats(self) -> Dict[str, Any]:
        with self.db.read() as conn:
            snapshot_count = conn.execute("SELECT COUNT(*) FROM snapshots").fetchone()[0]
            cycle_count = conn.execute(
                "SELECT COUNT(DISTINCT ts) FROM snapshots WHERE entity_id = ?",
                [NETWORK_ENTITY],
            ).fetchone()[0]
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

        latest = self.latest_timestamp()
        return {
            "snapshot_count": snapshot_count,
            "cycle_count": cycle_count,
            "event_count": event_count,
            "latest_cycle_at": latest.isoformat() if latest else None,
            "db_path": self.db.db_path,
        }
