"""
Request parameter parsing with clamping.

Every parser accepts a plain mapping of query-string values and never raises:
out-of-range values are clamped, unrecognized enums fall back to defaults.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .config import (
    CATEGORY_SORT_KEYS,
    DEFAULT_CATEGORY_SORT,
    DEFAULT_MARKET_SORT,
    DEFAULT_OPPORTUNITY_SORT,
    DEFAULT_SORT_DIRECTION,
    DEFAULT_TABLE_PAGE_SIZE,
    MARKET_SORT_KEYS,
    MAX_EXCLUDE_TOP_PCT,
    MAX_TABLE_PAGE_SIZE,
    MIN_PAGE,
    MIN_TABLE_PAGE_SIZE,
    OPPORTUNITIES_DEFAULT_LIMIT,
    OPPORTUNITIES_MAX_LIMIT,
    OPPORTUNITIES_MIN_LIMIT,
    OPPORTUNITY_SORT_KEYS,
    RATING_CEILING,
    RATING_FLOOR,
)
from .models import FilterCriteria


@dataclass(frozen=True)
class CategoryTableParams:
    page: int = MIN_PAGE
    page_size: int = DEFAULT_TABLE_PAGE_SIZE
    sort_by: str = DEFAULT_CATEGORY_SORT
    sort_dir: str = DEFAULT_SORT_DIRECTION

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "sortBy": self.sort_by,
            "sortDir": self.sort_dir,
        }


@dataclass(frozen=True)
class OpportunitiesParams:
    page: int = MIN_PAGE
    limit: int = OPPORTUNITIES_DEFAULT_LIMIT
    sort_by: str = DEFAULT_OPPORTUNITY_SORT
    sort_dir: str = DEFAULT_SORT_DIRECTION

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "sortBy": self.sort_by,
            "sortDir": self.sort_dir,
        }


@dataclass(frozen=True)
class MarketParams:
    sort_by: str = DEFAULT_MARKET_SORT
    sort_dir: str = DEFAULT_SORT_DIRECTION

    def to_dict(self) -> dict[str, Any]:
        return {"sortBy": self.sort_by, "sortDir": self.sort_dir}


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a query value into a finite float.

    Blank strings, None and non-finite or unparsable values return None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        parsed = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = float(text)
        except ValueError:
            return None
    return parsed if math.isfinite(parsed) else None


def clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


def _text(query: Mapping[str, Any], key: str) -> str:
    raw = query.get(key)
    return "" if raw is None else str(raw).strip()


def _sort_dir(query: Mapping[str, Any]) -> str:
    raw = _text(query, "sortDir").lower()
    return raw if raw in ("asc", "desc") else DEFAULT_SORT_DIRECTION


def _sort_by(query: Mapping[str, Any], allowed: tuple[str, ...], default: str) -> str:
    raw = _text(query, "sortBy")
    return raw if raw in allowed else default


def _page(query: Mapping[str, Any]) -> int:
    raw = parse_number(query.get("page"))
    return int(math.floor(raw)) if raw is not None and raw >= MIN_PAGE else MIN_PAGE


def parse_filter_criteria(query: Mapping[str, Any]) -> FilterCriteria:
    """
    Parse global filter query parameters.

    Rules:
    - minUsers: floored, negative or missing -> 0
    - maxUsers: floored, negative or missing -> unset; below minUsers -> unset
    - ratingMin/ratingMax: clamped to [0, 5]; inverted pair resets to (0, 5)
    - excludeTopPct: integral values clamped to [0, 50], anything else -> 0
    - lang/extName: trimmed, empty means no filter
    """
    min_users_raw = parse_number(query.get("minUsers"))
    max_users_raw = parse_number(query.get("maxUsers"))
    rating_min_raw = parse_number(query.get("ratingMin"))
    rating_max_raw = parse_number(query.get("ratingMax"))
    exclude_raw = parse_number(query.get("excludeTopPct"))

    min_users = int(math.floor(min_users_raw)) if min_users_raw is not None and min_users_raw >= 0 else 0
    max_users = int(math.floor(max_users_raw)) if max_users_raw is not None and max_users_raw >= 0 else None

    rating_min = clamp(rating_min_raw, RATING_FLOOR, RATING_CEILING) if rating_min_raw is not None else RATING_FLOOR
    rating_max = clamp(rating_max_raw, RATING_FLOOR, RATING_CEILING) if rating_max_raw is not None else RATING_CEILING

    if rating_min > rating_max:
        rating_min, rating_max = RATING_FLOOR, RATING_CEILING

    if max_users is not None and max_users < min_users:
        max_users = None

    if exclude_raw is not None and exclude_raw == int(exclude_raw):
        exclude_top_pct = int(clamp(int(exclude_raw), 0, MAX_EXCLUDE_TOP_PCT))
    else:
        exclude_top_pct = 0

    return FilterCriteria(
        min_users=min_users,
        max_users=max_users,
        rating_min=rating_min,
        rating_max=rating_max,
        exclude_top_pct=exclude_top_pct,
        language_substring=_text(query, "lang"),
        name_substring=_text(query, "extName"),
    )


def parse_category_table_params(query: Mapping[str, Any]) -> CategoryTableParams:
    page_size_raw = parse_number(query.get("pageSize"))
    page_size = int(math.floor(page_size_raw)) if page_size_raw is not None else DEFAULT_TABLE_PAGE_SIZE
    page_size = int(clamp(page_size, MIN_TABLE_PAGE_SIZE, MAX_TABLE_PAGE_SIZE))

    return CategoryTableParams(
        page=_page(query),
        page_size=page_size,
        sort_by=_sort_by(query, CATEGORY_SORT_KEYS, DEFAULT_CATEGORY_SORT),
        sort_dir=_sort_dir(query),
    )


def parse_opportunities_params(query: Mapping[str, Any]) -> OpportunitiesParams:
    """Parse opportunities params; ``pageSize`` is accepted as an alias for ``limit``."""
    limit_raw = parse_number(query.get("limit"))
    if limit_raw is None:
        limit_raw = parse_number(query.get("pageSize"))
    limit = int(math.floor(limit_raw)) if limit_raw is not None else OPPORTUNITIES_DEFAULT_LIMIT
    limit = int(clamp(limit, OPPORTUNITIES_MIN_LIMIT, OPPORTUNITIES_MAX_LIMIT))

    return OpportunitiesParams(
        page=_page(query),
        limit=limit,
        sort_by=_sort_by(query, OPPORTUNITY_SORT_KEYS, DEFAULT_OPPORTUNITY_SORT),
        sort_dir=_sort_dir(query),
    )


def parse_market_params(query: Mapping[str, Any]) -> MarketParams:
    return MarketParams(
        sort_by=_sort_by(query, MARKET_SORT_KEYS, DEFAULT_MARKET_SORT),
        sort_dir=_sort_dir(query),
    )
