"""Scoring configuration, pagination limits and sort-key registry."""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Literal, Mapping, Optional

logger = logging.getLogger(__name__)

SortDirection = Literal["asc", "desc"]
OpportunitySortKey = Literal["score", "users", "rating_gap", "competition_count"]
CategorySortKey = Literal["users", "rating", "rating_gap"]
MarketSortKey = Literal["total_users", "extension_count", "avg_rating", "underserved_index"]

OPPORTUNITY_SORT_KEYS: tuple[str, ...] = ("score", "users", "rating_gap", "competition_count")
CATEGORY_SORT_KEYS: tuple[str, ...] = ("users", "rating", "rating_gap")
MARKET_SORT_KEYS: tuple[str, ...] = (
    "total_users",
    "extension_count",
    "avg_rating",
    "underserved_index",
)

DEFAULT_OPPORTUNITY_SORT = "score"
DEFAULT_CATEGORY_SORT = "users"
DEFAULT_MARKET_SORT = "total_users"
DEFAULT_SORT_DIRECTION = "desc"

# Pagination
DEFAULT_TABLE_PAGE_SIZE = 20
MIN_TABLE_PAGE_SIZE = 10
MAX_TABLE_PAGE_SIZE = 200
MIN_PAGE = 1

OPPORTUNITIES_DEFAULT_LIMIT = 100
OPPORTUNITIES_MIN_LIMIT = 1
OPPORTUNITIES_MAX_LIMIT = 500

# Filter bounds
RATING_FLOOR = 0.0
RATING_CEILING = 5.0
MAX_EXCLUDE_TOP_PCT = 50

# Histogram bucket width for ratings
RATING_BUCKET_WIDTH = 0.25


@dataclass(frozen=True)
class NormalizationConstants:
    """
    Fixed constants for Bayesian smoothing, percentile ceilings and score weights.

    The three score weights add up to 1.0 by convention, so ``score_scale``
    is the maximum attainable opportunity score.
    """

    bayes_prior_weight: float = 5000.0
    users_percentile: float = 0.95
    votes_percentile: float = 0.95
    competition_percentile: float = 0.95
    gap_cap_percentile: float = 0.90
    demand_weight: float = 0.45
    gap_weight: float = 0.35
    inverse_competition_weight: float = 0.20
    score_scale: float = 100.0

    @property
    def weight_total(self) -> float:
        return self.demand_weight + self.gap_weight + self.inverse_competition_weight


DEFAULT_CONSTANTS = NormalizationConstants()

# Environment variable -> (field, lower bound, upper bound)
CONSTANT_ENV_VARS: dict[str, tuple[str, float, Optional[float]]] = {
    "OPPORTUNITY_BAYES_PRIOR_WEIGHT": ("bayes_prior_weight", 0.0, None),
    "OPPORTUNITY_USERS_P": ("users_percentile", 0.0, 1.0),
    "OPPORTUNITY_VOTES_P": ("votes_percentile", 0.0, 1.0),
    "OPPORTUNITY_COMPETITION_P": ("competition_percentile", 0.0, 1.0),
    "OPPORTUNITY_GAP_CAP_P": ("gap_cap_percentile", 0.0, 1.0),
    "OPPORTUNITY_DEMAND_WEIGHT": ("demand_weight", 0.0, 1.0),
    "OPPORTUNITY_GAP_WEIGHT": ("gap_weight", 0.0, 1.0),
    "OPPORTUNITY_INVERSE_COMPETITION_WEIGHT": ("inverse_competition_weight", 0.0, 1.0),
    "OPPORTUNITY_SCORE_SCALE": ("score_scale", 0.0, None),
}

CATALOG_DB_ENV_VAR = "CATALOG_DB_PATH"
DEFAULT_CATALOG_DB_PATH = "data/catalog.db"


def _parse_bounded(
    raw: str, lower: float, upper: Optional[float]
) -> Optional[float]:
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    if value != value or value in (float("inf"), float("-inf")):
        return None
    if value < lower or (upper is not None and value > upper):
        return None
    return value


def load_constants(
    environ: Optional[Mapping[str, str]] = None,
    base: NormalizationConstants = DEFAULT_CONSTANTS,
) -> NormalizationConstants:
    """
    Build normalization constants from optional environment overrides.

    Args:
        environ: Mapping to read overrides from (defaults to ``os.environ``)
        base: Constants used for every variable that is unset or invalid

    Returns:
        A new immutable NormalizationConstants instance
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, float] = {}

    for env_name, (field_name, lower, upper) in CONSTANT_ENV_VARS.items():
        raw = env.get(env_name)
        if raw is None or not raw.strip():
            continue
        value = _parse_bounded(raw, lower, upper)
        if value is None:
            logger.warning(
                f"Ignoring invalid {env_name}={raw!r}, keeping {getattr(base, field_name)}"
            )
            continue
        overrides[field_name] = value

    constants = replace(base, **overrides) if overrides else base

    if abs(constants.weight_total - 1.0) > 1e-9:
        logger.warning(
            f"Score weights sum to {constants.weight_total:.4f}, expected 1.0"
        )

    return constants


def constants_as_dict(constants: NormalizationConstants) -> dict[str, float]:
    return {f.name: getattr(constants, f.name) for f in fields(constants)}


def catalog_db_path(environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return env.get(CATALOG_DB_ENV_VAR) or DEFAULT_CATALOG_DB_PATH
