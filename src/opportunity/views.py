"""
Analytical views built from one catalogue snapshot.

Each builder re-runs the full pipeline for its request:

    filter -> exclude top slice -> global prior -> category aggregates
           -> distribution -> normalize -> score -> rank / paginate

Nothing is cached or persisted between calls, so identical inputs always
produce identical output.
"""

import concurrent.futures
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from .aggregation import aggregate_categories, global_average_rating, populated_categories
from .composite import build_candidates, score_candidates
from .config import (
    DEFAULT_CONSTANTS,
    DEFAULT_TABLE_PAGE_SIZE,
    NormalizationConstants,
    constants_as_dict,
)
from .distribution import compute_distribution, market_users_ceiling
from .filters import select_candidates
from .histograms import rating_histogram, users_histogram
from .models import (
    CategoryStats,
    ExtensionPoint,
    ExtensionRecord,
    FilterCriteria,
    HistogramBucket,
    MarketCategory,
    OpportunityPoint,
    Page,
    Snapshot,
)
from .normalize import finite_or_zero, rating_gap, underserved_index
from .params import CategoryTableParams, MarketParams, OpportunitiesParams
from .ranking import paginate, rank_category_rows, rank_market, rank_opportunities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineState:
    """Intermediate results shared by every view."""

    candidates: list[ExtensionRecord]
    global_avg_rating: float
    categories: dict[int, CategoryStats]


@dataclass(frozen=True)
class CategorySummary:
    id: int
    name: str
    avg_rating: float
    extension_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avg_rating": self.avg_rating,
            "extension_count": self.extension_count,
        }


@dataclass(frozen=True)
class CategoryExplorer:
    category: CategorySummary
    scatter_points: tuple[ExtensionPoint, ...]
    users_histogram: tuple[HistogramBucket, ...]
    rating_histogram: tuple[HistogramBucket, ...]
    table: Page

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.to_dict(),
            "scatter_points": [p.to_dict() for p in self.scatter_points],
            "users_histogram": [b.to_dict() for b in self.users_histogram],
            "rating_histogram": [b.to_dict() for b in self.rating_histogram],
            "table": self.table.to_dict(),
        }


@dataclass(frozen=True)
class OpportunitiesView:
    """
    Bubble set and table page over ONE ordered materialization.

    ``table.rows`` is always a slice of ``bubble_points``.
    """

    bubble_points: tuple[OpportunityPoint, ...]
    table: Page

    def to_dict(self) -> dict[str, Any]:
        return {
            "bubble_points": [p.to_dict() for p in self.bubble_points],
            "table": self.table.to_dict(),
        }


def prepare(
    snapshot: Snapshot,
    criteria: FilterCriteria,
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> PipelineState:
    """Run the filter and aggregation stages shared by every view."""
    candidates = select_candidates(snapshot.extensions, criteria)
    global_avg = global_average_rating(candidates)
    categories = aggregate_categories(snapshot, candidates, global_avg, constants)
    return PipelineState(candidates, global_avg, categories)


def build_market_view(
    snapshot: Snapshot,
    criteria: FilterCriteria,
    params: MarketParams = MarketParams(),
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> list[MarketCategory]:
    """
    Per-category market overview with the underserved index.

    Categories without surviving members are left out.
    """
    state = prepare(snapshot, criteria, constants)
    populated = populated_categories(state.categories)
    ceiling = market_users_ceiling(populated, constants)

    market = [
        MarketCategory(
            category_id=cat.category_id,
            category_name=cat.category_name,
            extension_count=cat.member_count,
            total_users=cat.total_users,
            avg_rating=finite_or_zero(cat.avg_rating),
            underserved_index=underserved_index(cat.total_users, cat.avg_rating, ceiling),
        )
        for cat in populated
    ]

    logger.info(f"Market view: {len(market)} categories")
    return rank_market(market, params.sort_by, params.sort_dir)


def _extension_point(ext: ExtensionRecord, category_avg: float) -> ExtensionPoint:
    return ExtensionPoint(
        extension_id=ext.id,
        extension_name=ext.name,
        extension_url=ext.url,
        users=ext.users,
        users_log=finite_or_zero(math.log1p(max(ext.users, 0))),
        rating=finite_or_zero(ext.rating),
        rating_votes=ext.rating_votes,
        updated_at=ext.updated_at,
        rating_gap=rating_gap(category_avg, ext.rating),
    )


def build_category_explorer(
    snapshot: Snapshot,
    category_id: int,
    criteria: FilterCriteria,
    table: CategoryTableParams = CategoryTableParams(),
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
    parallel: bool = False,
) -> Optional[CategoryExplorer]:
    """
    Drill-down view for one category.

    Args:
        snapshot: Catalogue snapshot
        category_id: Requested category
        criteria: Global filters
        table: Table page and sort parameters
        constants: Normalization constants
        parallel: Compute the independent sections on a thread pool

    Returns:
        CategoryExplorer, or None if the category does not exist in the snapshot.
        An existing category with no surviving members yields an empty explorer.
    """
    category = snapshot.category_by_id(category_id)
    if category is None:
        logger.warning(f"Category {category_id} not found")
        return None

    state = prepare(snapshot, criteria, constants)
    stats = state.categories[category_id]

    member_ids = set(snapshot.members_by_category().get(category_id, []))
    members = [ext for ext in state.candidates if ext.id in member_ids]
    points = [_extension_point(ext, stats.avg_rating) for ext in members]

    sections = {
        "scatter": lambda: tuple(sorted(points, key=lambda p: (-p.users, p.extension_id))),
        "users_histogram": lambda: tuple(users_histogram(ext.users for ext in members)),
        "rating_histogram": lambda: tuple(rating_histogram(ext.rating for ext in members)),
        "table": lambda: paginate(
            rank_category_rows(points, table.sort_by, table.sort_dir),
            table.page,
            table.page_size,
        ),
    }

    if parallel:
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(sections)) as executor:
            futures = {name: executor.submit(fn) for name, fn in sections.items()}
            results = {name: future.result() for name, future in futures.items()}
    else:
        results = {name: fn() for name, fn in sections.items()}

    logger.info(
        f"Category {category_id} explorer: {len(members)} extensions, "
        f"avg rating {stats.avg_rating:.3f}"
    )

    return CategoryExplorer(
        category=CategorySummary(
            id=category.id,
            name=category.name,
            avg_rating=finite_or_zero(stats.avg_rating),
            extension_count=stats.member_count,
        ),
        scatter_points=results["scatter"],
        users_histogram=results["users_histogram"],
        rating_histogram=results["rating_histogram"],
        table=results["table"],
    )


def score_opportunities(
    snapshot: Snapshot,
    criteria: FilterCriteria,
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> list[OpportunityPoint]:
    """Unordered scored candidate rows (extension x category)."""
    state = prepare(snapshot, criteria, constants)
    rows = build_candidates(snapshot, state.candidates, state.categories)
    distribution = compute_distribution(rows, populated_categories(state.categories), constants)
    return score_candidates(rows, distribution, constants)


def build_opportunities_view(
    snapshot: Snapshot,
    criteria: FilterCriteria,
    params: OpportunitiesParams = OpportunitiesParams(),
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
    page_size: int = DEFAULT_TABLE_PAGE_SIZE,
) -> OpportunitiesView:
    """
    Cross-category leaderboard.

    The scored rows are ranked once and cut to ``params.limit``; the table
    page is then sliced from that same tuple, so it can never contain a row
    missing from the bubble set.
    """
    ranked = rank_opportunities(
        score_opportunities(snapshot, criteria, constants), params.sort_by, params.sort_dir
    )
    bubble = tuple(ranked[: params.limit])
    return OpportunitiesView(
        bubble_points=bubble,
        table=paginate(bubble, params.page, page_size),
    )


def _percent(value: float) -> str:
    return f"{round(value * 100)}%"


def describe_scoring_model(
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> dict[str, Any]:
    """Human-readable description of the scoring model and its active constants."""
    return {
        "formula": (
            f"score = {constants.score_scale:g} * ("
            f"{constants.demand_weight:g} * demand_norm + "
            f"{constants.gap_weight:g} * gap_effective + "
            f"{constants.inverse_competition_weight:g} * (1 - competition_norm))"
        ),
        "factors": {
            "demand_norm": "ln(users + 1) / ln(users ceiling + 1), clamped to [0, 1]",
            "gap_effective": "rating_gap / gap cap (clamped to [0, 1]) * confidence_norm",
            "competition_norm": "ln(category size + 1) / ln(competition ceiling + 1), clamped to [0, 1]",
            "confidence_norm": "ln(votes + 1) / ln(votes ceiling + 1), clamped to [0, 1]",
        },
        "ceilings": {
            "users": _percent(constants.users_percentile),
            "votes": _percent(constants.votes_percentile),
            "competition": _percent(constants.competition_percentile),
            "gap_cap": _percent(constants.gap_cap_percentile),
        },
        "bayes_prior_weight": constants.bayes_prior_weight,
        "constants": constants_as_dict(constants),
    }
