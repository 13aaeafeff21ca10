"""Snapshot loader for CSV exports of the catalogue tables."""

import logging
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from opportunity.models import CategoryLink, CategoryRecord, Snapshot

from .sqlite_source import extension_from_row

logger = logging.getLogger(__name__)

EXTENSIONS_FILE = "extensions.csv"
CATEGORIES_FILE = "categories.csv"
LINKS_FILE = "category_extensions.csv"

REQUIRED_COLUMNS = {
    EXTENSIONS_FILE: ["id", "name"],
    CATEGORIES_FILE: ["id", "name"],
    LINKS_FILE: ["category_id", "extension_id"],
}


def _read_table(directory: Path, filename: str) -> pd.DataFrame:
    path = directory / filename
    if not path.exists():
        raise FileNotFoundError(f"Missing catalogue export: {path}")

    frame = pd.read_csv(path, keep_default_na=True)
    missing = [col for col in REQUIRED_COLUMNS[filename] if col not in frame.columns]
    if missing:
        raise ValueError(f"{path}: missing required columns: {', '.join(missing)}")
    return frame


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with NaN replaced by None."""
    cleaned = frame.astype(object).where(pd.notna(frame), None)
    return cleaned.to_dict(orient="records")


def load_snapshot_from_csv(directory: str) -> Snapshot:
    """
    Load a snapshot from ``extensions.csv``, ``categories.csv`` and
    ``category_extensions.csv`` in ``directory``.

    Optional extension columns (canonical_url, users, rating, rating_votes,
    languages, updated_at) default to empty when absent.

    Raises:
        FileNotFoundError: If one of the three files is missing
        ValueError: If a file lacks its required columns
    """
    base = Path(directory)
    extensions = _read_table(base, EXTENSIONS_FILE).sort_values("id", kind="mergesort")
    categories = _read_table(base, CATEGORIES_FILE).sort_values("id", kind="mergesort")
    links = (
        _read_table(base, LINKS_FILE)
        .dropna(subset=["category_id", "extension_id"])
        .drop_duplicates(subset=["category_id", "extension_id"])
        .sort_values(["category_id", "extension_id"], kind="mergesort")
    )

    snapshot = Snapshot.build(
        (extension_from_row(row) for row in _records(extensions)),
        (CategoryRecord(id=int(row["id"]), name=str(row["name"])) for row in _records(categories)),
        (
            CategoryLink(category_id=int(row["category_id"]), extension_id=int(row["extension_id"]))
            for row in _records(links)
        ),
    )

    logger.info(
        f"Loaded snapshot from {base}: {len(snapshot.extensions)} extensions, "
        f"{len(snapshot.categories)} categories, {len(snapshot.links)} links"
    )
    return snapshot
