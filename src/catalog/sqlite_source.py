"""
Catalogue Snapshot Module

Reads the extensions, categories and category_extensions tables from a
SQLite catalogue into an immutable Snapshot. The pipeline never writes;
the write helpers exist for bootstrapping and fixtures.
"""

import logging
import math
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from opportunity.models import CategoryLink, CategoryRecord, ExtensionRecord, Snapshot

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS extensions (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    canonical_url TEXT,
    users INTEGER,
    rating REAL,
    rating_votes INTEGER,
    languages TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS category_extensions (
    category_id INTEGER NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    extension_id INTEGER NOT NULL REFERENCES extensions(id) ON DELETE CASCADE,
    PRIMARY KEY (category_id, extension_id)
);
"""

TABLES = ("extensions", "categories", "category_extensions")


def _get_connection(db_path: str, read_only: bool = True) -> sqlite3.Connection:
    """Open a connection with row factory; read-only connections never create files."""
    path = Path(db_path)
    if read_only:
        if not path.exists():
            raise FileNotFoundError(f"Catalogue database not found: {db_path}")
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
        conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    return conn


def _non_negative_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def _rating(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rating):
        return None
    return min(max(rating, 0.0), 5.0)


def extension_from_row(row: Dict[str, Any]) -> ExtensionRecord:
    """Convert a raw catalogue row, coercing NULLs and out-of-range values."""
    url = row.get("canonical_url")
    updated_at = row.get("updated_at")
    return ExtensionRecord(
        id=int(row["id"]),
        name=str(row.get("name") or ""),
        url=str(url) if url else None,
        users=_non_negative_int(row.get("users")),
        rating=_rating(row.get("rating")),
        rating_votes=_non_negative_int(row.get("rating_votes")),
        languages=str(row.get("languages") or ""),
        updated_at=str(updated_at) if updated_at else None,
    )


def init_db(db_path: str) -> None:
    """Create catalogue tables if they do not exist."""
    conn = _get_connection(db_path, read_only=False)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


def insert_snapshot(
    db_path: str,
    extensions: Iterable[Dict[str, Any]],
    categories: Iterable[Dict[str, Any]],
    links: Iterable[Dict[str, Any]],
) -> None:
    """
    Insert raw rows into the catalogue (used for bootstrapping and tests).

    Args:
        db_path: SQLite file path
        extensions: Dicts with extensions table columns
        categories: Dicts with id and name
        links: Dicts with category_id and extension_id
    """
    init_db(db_path)
    conn = _get_connection(db_path, read_only=False)
    try:
        conn.executemany(
            """
            INSERT OR REPLACE INTO extensions (
                id, name, canonical_url, users, rating, rating_votes, languages, updated_at
            ) VALUES (
                :id, :name, :canonical_url, :users, :rating, :rating_votes, :languages, :updated_at
            )
            """,
            [
                {
                    "canonical_url": None,
                    "users": None,
                    "rating": None,
                    "rating_votes": None,
                    "languages": None,
                    "updated_at": None,
                    **ext,
                }
                for ext in extensions
            ],
        )
        conn.executemany(
            "INSERT OR REPLACE INTO categories (id, name) VALUES (:id, :name)",
            list(categories),
        )
        conn.executemany(
            """
            INSERT OR IGNORE INTO category_extensions (category_id, extension_id)
            VALUES (:category_id, :extension_id)
            """,
            list(links),
        )
        conn.commit()
    finally:
        conn.close()


def load_snapshot(db_path: str) -> Snapshot:
    """
    Load the full catalogue as an immutable Snapshot.

    Raises:
        FileNotFoundError: If the database file does not exist
        sqlite3.Error: On connectivity or schema problems
    """
    conn = _get_connection(db_path)
    try:
        extension_rows = conn.execute(
            """
            SELECT id, name, canonical_url, users, rating, rating_votes, languages, updated_at
            FROM extensions
            ORDER BY id
            """
        ).fetchall()
        category_rows = conn.execute(
            "SELECT id, name FROM categories ORDER BY id"
        ).fetchall()
        link_rows = conn.execute(
            """
            SELECT category_id, extension_id
            FROM category_extensions
            ORDER BY category_id, extension_id
            """
        ).fetchall()
    finally:
        conn.close()

    snapshot = Snapshot.build(
        (extension_from_row(dict(row)) for row in extension_rows),
        (CategoryRecord(id=int(row["id"]), name=str(row["name"])) for row in category_rows),
        (
            CategoryLink(category_id=int(row["category_id"]), extension_id=int(row["extension_id"]))
            for row in link_rows
        ),
    )

    logger.info(
        f"Loaded snapshot from {db_path}: {len(snapshot.extensions)} extensions, "
        f"{len(snapshot.categories)} categories, {len(snapshot.links)} links"
    )
    return snapshot


def check_connection(db_path: str) -> Dict[str, Any]:
    """
    Open the catalogue read-only and report basic health information.

    Returns:
        Dict with database path, sqlite version, utc_now and table row counts
    """
    conn = _get_connection(db_path)
    try:
        version = conn.execute("SELECT sqlite_version()").fetchone()[0]
        counts = {
            table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in TABLES
        }
    finally:
        conn.close()

    return {
        "database": str(Path(db_path).resolve()),
        "sqlite_version": version,
        "utc_now": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "row_counts": counts,
    }
