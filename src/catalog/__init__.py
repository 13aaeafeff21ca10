"""Data access layer for catalogue snapshots."""

from .sqlite_source import check_connection, init_db, insert_snapshot, load_snapshot
from .csv_source import load_snapshot_from_csv

__all__ = [
    "check_connection",
    "init_db",
    "insert_snapshot",
    "load_snapshot",
    "load_snapshot_from_csv",
]
