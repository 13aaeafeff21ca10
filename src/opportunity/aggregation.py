"""Global rating prior and per-category aggregates with Bayesian smoothing."""

import logging
from typing import Iterable

from .config import DEFAULT_CONSTANTS, NormalizationConstants
from .models import CategoryStats, ExtensionRecord, Snapshot

logger = logging.getLogger(__name__)


def _weighted_sums(extensions: Iterable[ExtensionRecord]) -> tuple[float, float]:
    """Return (sum(rating * votes), sum(votes)) over rated records with votes > 0."""
    weighted_sum = 0.0
    weight_sum = 0.0
    for ext in extensions:
        if ext.rating is None or ext.rating_votes <= 0:
            continue
        weighted_sum += ext.rating * ext.rating_votes
        weight_sum += ext.rating_votes
    return weighted_sum, weight_sum


def global_average_rating(extensions: Iterable[ExtensionRecord]) -> float:
    """
    Vote-weighted average rating over the candidate population.

    avg = sum(rating * votes) / sum(votes), restricted to votes > 0.
    Returns 0.0 when there are no votes at all.
    """
    weighted_sum, weight_sum = _weighted_sums(extensions)
    if weight_sum <= 0:
        return 0.0
    return weighted_sum / weight_sum


def bayesian_average(
    weighted_sum: float,
    weight_sum: float,
    prior: float,
    prior_weight: float,
) -> float:
    """
    Shrink a weighted average toward ``prior``.

    avg = (W / (W + K)) * (S / W) + (K / (W + K)) * prior

    With W == 0 the prior is returned unchanged.
    """
    if weight_sum <= 0:
        return prior
    total = weight_sum + prior_weight
    return (weight_sum / total) * (weighted_sum / weight_sum) + (
        prior_weight / total
    ) * prior


def aggregate_categories(
    snapshot: Snapshot,
    candidates: list[ExtensionRecord],
    global_avg: float,
    constants: NormalizationConstants = DEFAULT_CONSTANTS,
) -> dict[int, CategoryStats]:
    """
    Aggregate surviving candidates per category.

    Every category of the snapshot gets an entry so lookups never miss;
    categories without surviving members have member_count == 0 and
    avg_rating == global_avg. Callers drop those from category-level output.

    Args:
        snapshot: Catalogue snapshot (categories and links)
        candidates: Records surviving filter and exclusion
        global_avg: Prior from global_average_rating()
        constants: Supplies the Bayesian prior weight

    Returns:
        Mapping category id -> CategoryStats, in category id order
    """
    by_id = {ext.id: ext for ext in candidates}
    members = snapshot.members_by_category()
    stats: dict[int, CategoryStats] = {}

    for category in sorted(snapshot.categories, key=lambda c: c.id):
        surviving = [by_id[eid] for eid in members.get(category.id, []) if eid in by_id]
        weighted_sum, weight_sum = _weighted_sums(surviving)

        stats[category.id] = CategoryStats(
            category_id=category.id,
            category_name=category.name,
            member_count=len(surviving),
            total_users=sum(ext.users for ext in surviving),
            rating_weighted_sum=weighted_sum,
            rating_weight_sum=weight_sum,
            avg_rating=bayesian_average(
                weighted_sum, weight_sum, global_avg, constants.bayes_prior_weight
            ),
        )

    populated = sum(1 for s in stats.values() if s.member_count > 0)
    logger.debug(
        f"Aggregated {len(stats)} categories ({populated} with members), "
        f"global avg rating {global_avg:.3f}"
    )
    return stats


def populated_categories(stats: dict[int, CategoryStats]) -> list[CategoryStats]:
    """Categories with at least one surviving member, in category id order."""
    return [s for s in stats.values() if s.member_count > 0]
