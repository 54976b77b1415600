"""
Database Layer
SQLite persistence for snapshots, events, rules and alerts.
"""

from .sqlite import SQLiteDatabase, TimeSeriesStore

__all__ = ["SQLiteDatabase", "TimeSeriesStore"]
