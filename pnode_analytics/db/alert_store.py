"""
Alert Storage
Persistence for alert rules and alert lifecycle rows.

Shares the SQLiteDatabase connection (and its lock) with the time-series
store. The partial unique index on active alerts backs the
one-active-alert-per-pair rule.
"""

import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from pnode_analytics.alerts.models import Alert, AlertOperator, AlertRule, AlertScope
from pnode_analytics.core.models import Severity

from .sqlite import SQLiteDatabase, from_epoch, to_epoch


def _row_to_rule(row: sqlite3.Row) -> AlertRule:
    return AlertRule(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        metric=row["metric"],
        operator=AlertOperator(row["operator"]),
        threshold=row["threshold"],
        scope=AlertScope(row["scope"]),
        pnode_filter=row["pnode_filter"],
        cooldown_minutes=row["cooldown_minutes"],
        enabled=bool(row["enabled"]),
        created_at=from_epoch(row["created_at"]),
    )


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        id=row["id"],
        rule_id=row["rule_id"],
        pnode_id=row["pnode_id"],
        severity=Severity(row["severity"]),
        trigger_value=row["trigger_value"],
        threshold=row["threshold"],
        message=row["message"],
        created_at=from_epoch(row["created_at"]),
        resolved_at=from_epoch(row["resolved_at"]) if row["resolved_at"] is not None else None,
    )


class AlertStore:
    def __init__(self, db: SQLiteDatabase):
        self.db = db

    # =========================================================================
    # Rules
    # =========================================================================

    def insert_rule(self, rule: AlertRule) -> AlertRule:
        with self.db.transaction() as conn:
            conn.execute(
                """INSERT INTO alert_rules
                   (id, name, description, metric, operator, threshold, scope,
                    pnode_filter, cooldown_minutes, enabled, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    rule.id, rule.name, rule.description, rule.metric,
                    rule.operator.value, rule.threshold, rule.scope.value,
                    rule.pnode_filter, rule.cooldown_minutes, int(rule.enabled),
                    to_epoch(rule.created_at),
                ),
            )
        return rule

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self.db.read() as conn:
            row = conn.execute("SELECT * FROM alert_rules WHERE id = ?", [rule_id]).fetchone()
        return _row_to_rule(row) if row else None

    def list_rules(self, include_disabled: bool = False) -> List[AlertRule]:
        sql = "SELECT * FROM alert_rules"
        if not include_disabled:
            sql += " WHERE enabled = 1"
        sql += " ORDER BY created_at ASC, id ASC"
        with self.db.read() as conn:
            rows = conn.execute(sql).fetchall()
        return [_row_to_rule(row) for row in rows]

    def set_enabled(self, rule_id: str, enabled: bool) -> bool:
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE alert_rules SET enabled = ? WHERE id = ?",
                [int(enabled), rule_id],
            )
        return cur.rowcount > 0

    def set_threshold(self, rule_id: str, threshold: float) -> bool:
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE alert_rules SET threshold = ? WHERE id = ?",
                [threshold, rule_id],
            )
        return cur.rowcount > 0

    # =========================================================================
    # Alerts
    # =========================================================================

    def insert_alert(self, alert: Alert) -> bool:
        """False when the pair already has an active alert."""
        with self.db.transaction() as conn:
            try:
                conn.execute(
                    """INSERT INTO alerts
                       (id, rule_id, pnode_id, severity, trigger_value, threshold,
                        message, created_at, resolved_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL)""",
                    (
                        alert.id, alert.rule_id, alert.pnode_id, alert.severity.value,
                        alert.trigger_value, alert.threshold, alert.message,
                        to_epoch(alert.created_at),
                    ),
                )
            except sqlite3.IntegrityError:
                return False
        return True

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self.db.read() as conn:
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", [alert_id]).fetchone()
        return _row_to_alert(row) if row else None

    def active_alerts(self, rule_id: str) -> Dict[Optional[str], Alert]:
        """Active alerts of a rule keyed by pnode_id (None for network scope)."""
        with self.db.read() as conn:
            rows = conn.execute(
                "SELECT * FROM alerts WHERE rule_id = ? AND resolved_at IS NULL",
                [rule_id],
            ).fetchall()
        return {row["pnode_id"]: _row_to_alert(row) for row in rows}

    def last_created(self, rule_id: str) -> Dict[Optional[str], datetime]:
        """Creation time of the most recent alert per pair, active or not."""
        with self.db.read() as conn:
            rows = conn.execute(
                """SELECT pnode_id, MAX(created_at) AS created_at FROM alerts
                   WHERE rule_id = ? GROUP BY pnode_id""",
                [rule_id],
            ).fetchall()
        return {row["pnode_id"]: from_epoch(row["created_at"]) for row in rows}

    def resolve(self, alert_id: str, resolved_at: datetime) -> bool:
        """Resolve one alert; False when it was already resolved."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE alerts SET resolved_at = ? WHERE id = ? AND resolved_at IS NULL",
                [to_epoch(resolved_at), alert_id],
            )
        return cur.rowcount > 0

    def resolve_all_for_rule(self, rule_id: str, resolved_at: datetime) -> int:
        with self.db.transaction() as conn:
            cur = conn.execute(
                "UPDATE alerts SET resolved_at = ? WHERE rule_id = ? AND resolved_at IS NULL",
                [to_epoch(resolved_at), rule_id],
            )
        return cur.rowcount

    def list_alerts(
        self,
        limit: int = 50,
        offset: int = 0,
        unresolved_only: bool = False,
        severity: Optional[Severity] = None,
        rule_id: Optional[str] = None,
    ) -> List[Alert]:
        sql = "SELECT * FROM alerts WHERE 1 = 1"
        params: List[Any] = []
        if unresolved_only:
            sql += " AND resolved_at IS NULL"
        if severity is not None:
            sql += " AND severity = ?"
            params.append(severity.value)
        if rule_id is not None:
            sql += " AND rule_id = ?"
            params.append(rule_id)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self.db.read() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_alert(row) for row in rows]

    def counts(self) -> Dict[str, int]:
        with self.db.read() as conn:
            row = conn.execute(
                """SELECT COUNT(*) AS total,
                          COALESCE(SUM(CASE WHEN resolved_at IS NULL THEN 1 ELSE 0 END), 0) AS active,
                          COALESCE(SUM(CASE WHEN resolved_at IS NULL AND severity = 'CRITICAL'
                                            THEN 1 ELSE 0 END), 0) AS critical
                   FROM alerts"""
            ).fetchone()
        return {"total": row["total"], "active": row["active"], "critical": row["critical"]}
