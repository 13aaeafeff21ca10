"""Candidate construction and composite opportunity scoring."""

import logging
from typing import Sequence

from .config import DEFAULT_CONSTANTS, NormalizationConstants
from .models import (
    CandidateRow,
    CategoryStats,
    Distribution,
    ExtensionRecord,
    OpportunityPoint,
    OpportunityScore,
    Snapshot,
)
from .normalize import finite_or_zero, linear_norm, log_norm, rating_gap

logger = logging.getLogger(__name__)


def build_candidates(
    snapshot: Snapshot,
    candidates: Sequence[ExtensionRecord],
    stats: dict[int, CategoryStats],
) -> list[CandidateRow]:
    """
    Expand surviving extensions into one row per category membership.

    Each row carries its category's smoothed average and the extension's
    non-negative rating gap against it. Rows are ordered by
    (extension id, category id).
    """
    by_id = {ext.id: ext for ext in candidates}
    rows: list[CandidateRow] = []

    for category_id, extension_ids in snapshot.members_by_category().items():
        category = stats.get(category_id)
        if category is None or category.member_count == 0:
            continue
        for extension_id in extension_ids:
            ext = by_id.get(extension_id)
            if ext is None:
                continue
            rows.append(
                CandidateRow(
                    category_id=category_id,
                    category_name=category.category_name,
                    extension=ext,
                    category_avg_rating=category.avg_rating,
                    competition_count=category.member_count,
                    rating_gap=rating_gap(category.avg_rating, ext.rating),
                )
            )

    rows.sort(key=lambda row: row.identity)
    return rows


def calculate_opportunity_score(
    demand_norm: float,
    gap_effective: float,
    competition_norm: float,
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> float:
    """
    Weighted composite of the normalized factors.

    score = SCALE * (W_demand * demand + W_gap * gap_effective
                     + W_inv_comp * (1 - competition))

    Args:
        demand_norm: Normalized demand in [0, 1]
        gap_effective: Confidence-weighted rating gap in [0, 1]
        competition_norm: Normalized competition in [0, 1]
        constants: Weights and scale

    Returns:
        Opportunity score from 0 to constants.score_scale
    """
    composite = (
        constants.demand_weight * demand_norm
        + constants.gap_weight * gap_effective
        + constants.inverse_competition_weight * (1.0 - competition_norm)
    )
    return finite_or_zero(constants.score_scale * composite)


def score_candidate(
    row: CandidateRow,
    distribution: Distribution,
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> OpportunityScore:
    demand = log_norm(row.extension.users, distribution.users_ceiling)
    competition = log_norm(row.competition_count, distribution.competition_ceiling)
    confidence = log_norm(row.extension.rating_votes, distribution.votes_ceiling)
    gap_norm = linear_norm(row.rating_gap, distribution.gap_cap)
    gap_effective = finite_or_zero(gap_norm * confidence)

    return OpportunityScore(
        demand_norm=demand,
        competition_norm=competition,
        confidence_norm=confidence,
        rating_gap_norm=gap_norm,
        gap_effective=gap_effective,
        score=calculate_opportunity_score(demand, gap_effective, competition, constants),
    )


def to_point(row: CandidateRow, score: OpportunityScore) -> OpportunityPoint:
    ext = row.extension
    return OpportunityPoint(
        category_id=row.category_id,
        category_name=row.category_name,
        extension_id=ext.id,
        extension_name=ext.name,
        extension_url=ext.url,
        users=ext.users,
        rating=ext.rating,
        rating_votes=ext.rating_votes,
        category_avg_rating=finite_or_zero(row.category_avg_rating),
        competition_count=row.competition_count,
        demand_norm=score.demand_norm,
        competition_norm=score.competition_norm,
        rating_gap=finite_or_zero(row.rating_gap),
        confidence_norm=score.confidence_norm,
        gap_effective=score.gap_effective,
        score=score.score,
    )


def score_candidates(
    rows: Sequence[CandidateRow],
    distribution: Distribution,
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> list[OpportunityPoint]:
    """Score every candidate row; output order matches input order."""
    points = [to_point(row, score_candidate(row, distribution, constants)) for row in rows]

    if points:
        top = max(point.score for point in points)
        logger.info(f"Scoring complete: {len(points)} candidate rows, top score {top:.2f}")
    else:
        logger.warning("No candidate rows to score")

    return points
