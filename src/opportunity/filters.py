"""Record filter and top-slice exclusion for the extension snapshot."""

import logging
import math
from typing import Callable, Iterable

from .models import ExtensionRecord, FilterCriteria

logger = logging.getLogger(__name__)

Predicate = Callable[[ExtensionRecord, FilterCriteria], bool]


def _contains(haystack: str, needle: str) -> bool:
    """Case-insensitive substring match; an empty needle always matches."""
    if not needle:
        return True
    return needle.casefold() in (haystack or "").casefold()


# Every predicate must hold for a record to survive the filter
FILTER_PREDICATES: dict[str, Predicate] = {
    "min_users": lambda e, c: e.users >= c.min_users,
    "max_users": lambda e, c: c.max_users is None or e.users <= c.max_users,
    "rated": lambda e, c: e.rating is not None,
    "rating_range": lambda e, c: e.rating is not None
    and c.rating_min <= e.rating <= c.rating_max,
    "language": lambda e, c: _contains(e.languages, c.language_substring),
    "name": lambda e, c: _contains(e.name, c.name_substring),
}


def passes_filter(extension: ExtensionRecord, criteria: FilterCriteria) -> bool:
    return all(check(extension, criteria) for check in FILTER_PREDICATES.values())


def filter_extensions(
    extensions: Iterable[ExtensionRecord], criteria: FilterCriteria
) -> list[ExtensionRecord]:
    """
    Apply filter criteria to the extension snapshot.

    Unrated extensions never survive: the scoring pipeline only works on
    rated records. Input order is preserved.

    Args:
        extensions: Raw snapshot records
        criteria: Clamped filter criteria

    Returns:
        Records satisfying every predicate in FILTER_PREDICATES
    """
    return [ext for ext in extensions if passes_filter(ext, criteria)]


def excluded_count(total: int, exclude_top_pct: int) -> int:
    """Number of records removed by the top slice: ceil(N * pct / 100)."""
    if exclude_top_pct <= 0 or total <= 0:
        return 0
    return min(total, math.ceil(total * exclude_top_pct / 100))


def exclude_top_slice(
    extensions: list[ExtensionRecord], exclude_top_pct: int
) -> list[ExtensionRecord]:
    """
    Drop the top ``exclude_top_pct`` percent of records by users.

    Records are ordered by users descending, ties broken by id ascending.
    The survivors keep that order.

    Args:
        extensions: Filtered records
        exclude_top_pct: Percentage (0-50) of the population to remove

    Returns:
        Surviving records ordered by users desc, id asc
    """
    ordered = sorted(extensions, key=lambda e: (-e.users, e.id))
    cut = excluded_count(len(ordered), exclude_top_pct)
    if cut:
        logger.debug(
            f"Excluding top {exclude_top_pct}% by users: {cut} of {len(ordered)} records"
        )
    return ordered[cut:]


def select_candidates(
    extensions: Iterable[ExtensionRecord], criteria: FilterCriteria
) -> list[ExtensionRecord]:
    """Filter then exclude the top slice; the result feeds every aggregation."""
    filtered = filter_extensions(extensions, criteria)
    survivors = exclude_top_slice(filtered, criteria.exclude_top_pct)

    if not survivors:
        logger.warning("No extensions left after filtering")
    else:
        logger.info(
            f"Candidate selection: {len(filtered)} filtered, {len(survivors)} kept"
        )

    return survivors
