"""Deterministic ordering and pagination for every view."""

import logging
from typing import Any, Callable, Sequence, TypeVar

from .config import (
    DEFAULT_CATEGORY_SORT,
    DEFAULT_MARKET_SORT,
    DEFAULT_OPPORTUNITY_SORT,
    MIN_PAGE,
)
from .models import ExtensionPoint, MarketCategory, OpportunityPoint, Page

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Each chain: primary field (direction follows the request) followed by
# fixed descending tie-breaks. Identity ascending is appended by the key builders.
OPPORTUNITY_TIE_BREAKS: dict[str, tuple[str, ...]] = {
    "score": ("users", "rating_votes"),
    "users": ("score", "rating_votes"),
    "rating_gap": ("score", "users"),
    "competition_count": ("score", "users"),
}

CATEGORY_FIELDS: dict[str, str] = {
    "users": "users",
    "rating": "rating",
    "rating_gap": "rating_gap",
}

MARKET_FIELDS: dict[str, str] = {
    "total_users": "total_users",
    "extension_count": "extension_count",
    "avg_rating": "avg_rating",
    "underserved_index": "underserved_index",
}


def _signed(value: Any, descending: bool) -> float:
    value = float(value or 0)
    return -value if descending else value


def opportunity_sort_key(sort_by: str, sort_dir: str) -> Callable[[OpportunityPoint], tuple]:
    if sort_by not in OPPORTUNITY_TIE_BREAKS:
        sort_by = DEFAULT_OPPORTUNITY_SORT
    descending = sort_dir != "asc"
    tie_breaks = OPPORTUNITY_TIE_BREAKS[sort_by]

    def key(point: OpportunityPoint) -> tuple:
        return (
            _signed(getattr(point, sort_by), descending),
            *(_signed(getattr(point, name), True) for name in tie_breaks),
            point.extension_id,
            point.category_id,
        )

    return key


def rank_opportunities(
    points: Sequence[OpportunityPoint], sort_by: str, sort_dir: str
) -> list[OpportunityPoint]:
    """
    Order scored candidates with a total, deterministic order.

    Unknown sort keys fall back to ``score``.
    """
    return sorted(points, key=opportunity_sort_key(sort_by, sort_dir))


def rank_category_rows(
    rows: Sequence[ExtensionPoint], sort_by: str, sort_dir: str
) -> list[ExtensionPoint]:
    """Category explorer table order: chosen field, then extension id asc."""
    field_name = CATEGORY_FIELDS.get(sort_by, CATEGORY_FIELDS[DEFAULT_CATEGORY_SORT])
    descending = sort_dir != "asc"
    return sorted(
        rows,
        key=lambda row: (_signed(getattr(row, field_name), descending), row.extension_id),
    )


def rank_market(
    categories: Sequence[MarketCategory], sort_by: str, sort_dir: str
) -> list[MarketCategory]:
    """Market view order: chosen field, then category id asc."""
    field_name = MARKET_FIELDS.get(sort_by, MARKET_FIELDS[DEFAULT_MARKET_SORT])
    descending = sort_dir != "asc"
    return sorted(
        categories,
        key=lambda cat: (_signed(getattr(cat, field_name), descending), cat.category_id),
    )


def paginate(rows: Sequence[T], page: int, page_size: int) -> Page:
    """
    Slice ``[offset, offset + page_size)`` where offset = (page - 1) * page_size.

    Pages past the end return an empty row set with the true total.
    """
    page = max(page, MIN_PAGE)
    page_size = max(page_size, 1)
    offset = (page - 1) * page_size
    sliced = tuple(rows[offset : offset + page_size])

    logger.debug(f"Page {page} (size {page_size}): {len(sliced)} of {len(rows)} rows")
    return Page(page=page, page_size=page_size, total=len(rows), rows=sliced)
