"""Percentile ceilings over the candidate and category populations."""

import logging
from typing import Sequence

import numpy as np

from .config import DEFAULT_CONSTANTS, NormalizationConstants
from .models import CandidateRow, CategoryStats, Distribution

logger = logging.getLogger(__name__)


def percentile(values: Sequence[float], q: float) -> float:
    """
    Continuous percentile with linear interpolation between closest ranks.

    Args:
        values: Population (any order)
        q: Quantile in [0, 1]

    Returns:
        The interpolated value, or 0.0 for an empty population

    Examples:
        >>> percentile([1, 2, 3, 4], 0.5)
        2.5
        >>> percentile([], 0.95)
        0.0
    """
    if len(values) == 0:
        return 0.0
    result = float(np.quantile(np.asarray(values, dtype=float), q))
    return result if np.isfinite(result) else 0.0


def compute_distribution(
    candidates: Sequence[CandidateRow],
    categories: Sequence[CategoryStats],
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> Distribution:
    """
    Compute normalization ceilings for the opportunities pipeline.

    users and votes ceilings are taken over candidate rows (one row per
    extension per category), the competition ceiling over populated
    categories, and the gap cap over the non-negative rating gaps.
    """
    distribution = Distribution(
        users_ceiling=percentile(
            [row.extension.users for row in candidates], constants.users_percentile
        ),
        votes_ceiling=percentile(
            [row.extension.rating_votes for row in candidates], constants.votes_percentile
        ),
        competition_ceiling=percentile(
            [cat.member_count for cat in categories if cat.member_count > 0],
            constants.competition_percentile,
        ),
        gap_cap=percentile(
            [row.rating_gap for row in candidates], constants.gap_cap_percentile
        ),
    )

    logger.debug(
        f"Distribution: users p={distribution.users_ceiling:.1f}, "
        f"votes p={distribution.votes_ceiling:.1f}, "
        f"competition p={distribution.competition_ceiling:.1f}, "
        f"gap cap={distribution.gap_cap:.3f}"
    )
    return distribution


def market_users_ceiling(
    categories: Sequence[CategoryStats],
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> float:
    """Percentile of total users across populated categories (market view)."""
    return percentile(
        [cat.total_users for cat in categories if cat.member_count > 0],
        constants.users_percentile,
    )
