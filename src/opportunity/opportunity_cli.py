#!/usr/bin/env python3
"""
CLI wrapper for the opportunity views - prints one JSON document on stdout.

Usage:
    python3 opportunity_cli.py market --db-path data/catalog.db --exclude-top-pct 5
    python3 opportunity_cli.py category 12 --sort-by rating_gap --page 2
    python3 opportunity_cli.py opportunities --limit 100 --page 2 --lang de
    python3 opportunity_cli.py model
    python3 opportunity_cli.py health --db-path data/catalog.db
"""

import argparse
import json
import logging
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from opportunity.config import catalog_db_path, load_constants
from opportunity.params import (
    parse_category_table_params,
    parse_filter_criteria,
    parse_market_params,
    parse_opportunities_params,
)
from opportunity.views import (
    build_category_explorer,
    build_market_view,
    build_opportunities_view,
    describe_scoring_model,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BAD_REQUEST = 2

# Failures of the catalogue source, reported without a traceback
DATA_SOURCE_ERRORS = (FileNotFoundError, ValueError, sqlite3.Error)

# CLI flag -> query parameter name understood by opportunity.params
QUERY_FLAGS = {
    "min_users": "minUsers",
    "max_users": "maxUsers",
    "rating_min": "ratingMin",
    "rating_max": "ratingMax",
    "exclude_top_pct": "excludeTopPct",
    "lang": "lang",
    "ext_name": "extName",
    "page": "page",
    "page_size": "pageSize",
    "limit": "limit",
    "sort_by": "sortBy",
    "sort_dir": "sortDir",
}


def _add_filter_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("filters")
    group.add_argument("--min-users", help="Minimum users (default 0)")
    group.add_argument("--max-users", help="Maximum users (unset by default)")
    group.add_argument("--rating-min", help="Minimum rating, 0-5")
    group.add_argument("--rating-max", help="Maximum rating, 0-5")
    group.add_argument("--exclude-top-pct", help="Drop the top N%% by users, 0-50")
    group.add_argument("--lang", help="Languages substring (case-insensitive)")
    group.add_argument("--ext-name", help="Extension name substring (case-insensitive)")

    source = parser.add_argument_group("data source")
    source.add_argument("--db-path", default=None, help="SQLite catalogue (default: $CATALOG_DB_PATH)")
    source.add_argument("--csv-dir", default=None, help="Directory with CSV exports instead of SQLite")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extension opportunity scanner")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    market = sub.add_parser("market", help="Category market overview")
    _add_filter_args(market)
    market.add_argument("--sort-by", help="total_users | extension_count | avg_rating | underserved_index")
    market.add_argument("--sort-dir", help="asc | desc")

    category = sub.add_parser("category", help="Category explorer")
    category.add_argument("category_id", help="Category id")
    _add_filter_args(category)
    category.add_argument("--page", help="Table page (1-based)")
    category.add_argument("--page-size", help="Table page size, 10-200")
    category.add_argument("--sort-by", help="users | rating | rating_gap")
    category.add_argument("--sort-dir", help="asc | desc")
    category.add_argument("--parallel", action="store_true", help="Compute sections concurrently")

    opportunities = sub.add_parser("opportunities", help="Cross-category opportunity leaderboard")
    _add_filter_args(opportunities)
    opportunities.add_argument("--page", help="Table page (1-based)")
    opportunities.add_argument("--limit", help="Bubble set size, 1-500")
    opportunities.add_argument("--page-size", help="Alias for --limit")
    opportunities.add_argument("--sort-by", help="score | users | rating_gap | competition_count")
    opportunities.add_argument("--sort-dir", help="asc | desc")

    sub.add_parser("model", help="Describe the scoring model and active constants")

    health = sub.add_parser("health", help="Check the SQLite catalogue")
    health.add_argument("--db-path", default=None, help="SQLite catalogue (default: $CATALOG_DB_PATH)")

    return parser


def _query(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        name: getattr(args, flag)
        for flag, name in QUERY_FLAGS.items()
        if getattr(args, flag, None) is not None
    }


def _load(args: argparse.Namespace):
    # Data-source imports are deferred so `model` runs without the catalogue stack
    if args.csv_dir:
        from catalog.csv_source import load_snapshot_from_csv

        return load_snapshot_from_csv(args.csv_dir)

    from catalog.sqlite_source import load_snapshot

    return load_snapshot(args.db_path or catalog_db_path())


def parse_category_id(raw: str) -> Optional[int]:
    try:
        value = float(raw)
    except ValueError:
        return None
    if not value.is_integer() or value <= 0:
        return None
    return int(value)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per log record; tracebacks are folded into the `exc` field."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLineFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, handlers=[handler])


def _envelope(**payload: Any) -> Dict[str, Any]:
    return {
        "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        **payload,
    }


def _emit(document: Dict[str, Any], stream=None) -> None:
    print(json.dumps(document, ensure_ascii=False), file=stream or sys.stdout)


def _error(message: str) -> None:
    _emit({"ok": False, "error": message}, sys.stderr)


def run(args: argparse.Namespace) -> int:
    constants = load_constants()

    if args.command == "model":
        _emit(_envelope(model=describe_scoring_model(constants)))
        return EXIT_OK

    if args.command == "health":
        from catalog.sqlite_source import check_connection

        _emit(_envelope(ok=True, **check_connection(args.db_path or catalog_db_path())))
        return EXIT_OK

    query = _query(args)
    criteria = parse_filter_criteria(query)

    if args.command == "market":
        params = parse_market_params(query)
        categories = build_market_view(_load(args), criteria, params, constants)
        _emit(
            _envelope(
                filters_applied=criteria.to_dict(),
                sort_applied=params.to_dict(),
                categories=[c.to_dict() for c in categories],
            )
        )
        return EXIT_OK

    if args.command == "category":
        category_id = parse_category_id(args.category_id)
        if category_id is None:
            _error("Invalid category id")
            return EXIT_BAD_REQUEST

        table = parse_category_table_params(query)
        explorer = build_category_explorer(
            _load(args), category_id, criteria, table, constants, parallel=args.parallel
        )
        if explorer is None:
            _error("Category not found")
            return EXIT_BAD_REQUEST

        _emit(
            _envelope(
                filters_applied=criteria.to_dict(),
                table_applied=table.to_dict(),
                **explorer.to_dict(),
            )
        )
        return EXIT_OK

    params = parse_opportunities_params(query)
    view = build_opportunities_view(_load(args), criteria, params, constants)
    _emit(
        _envelope(
            filters_applied=criteria.to_dict(),
            table_applied=params.to_dict(),
            **view.to_dict(),
        )
    )
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging(args.verbose)

    try:
        return run(args)
    except DATA_SOURCE_ERRORS as exc:
        logger.error(f"{args.command} failed: {exc}")
        _error(str(exc))
        return EXIT_FAILURE
    except Exception as exc:  # pragma: no cover - top-level CLI guard
        logger.exception(f"{args.command} failed")
        _error(str(exc))
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
