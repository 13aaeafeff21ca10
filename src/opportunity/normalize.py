"""Map raw magnitudes into bounded [0, 1] factors."""

import math
from typing import Optional

from .config import RATING_CEILING


def finite_or_zero(value: Optional[float]) -> float:
    """Coerce None, NaN and infinities to 0.0."""
    if value is None:
        return 0.0
    value = float(value)
    return value if math.isfinite(value) else 0.0


def clamp_unit(value: float) -> float:
    return min(max(finite_or_zero(value), 0.0), 1.0)


def log_norm(value: float, ceiling: float) -> float:
    """
    Log-compressed normalization against a percentile ceiling.

    norm = clamp(ln(v + 1) / ln(p + 1), 0, 1), and 0 when p <= 0.
    Values at or above the ceiling saturate at 1.
    """
    ceiling = finite_or_zero(ceiling)
    if ceiling <= 0:
        return 0.0
    value = max(finite_or_zero(value), 0.0)
    return clamp_unit(math.log1p(value) / math.log1p(ceiling))


def linear_norm(value: float, ceiling: float) -> float:
    """clamp(v / p, 0, 1), and 0 when p <= 0."""
    ceiling = finite_or_zero(ceiling)
    if ceiling <= 0:
        return 0.0
    return clamp_unit(finite_or_zero(value) / ceiling)


def rating_norm(avg_rating: float) -> float:
    return clamp_unit(finite_or_zero(avg_rating) / RATING_CEILING)


def underserved_index(total_users: float, avg_rating: float, users_ceiling: float) -> float:
    """
    Category heuristic: high demand and weak quality.

    index = log_norm(total_users, ceiling) * (1 - rating_norm(avg_rating))
    """
    return finite_or_zero(
        log_norm(total_users, users_ceiling) * (1.0 - rating_norm(avg_rating))
    )


def rating_gap(category_avg_rating: float, rating: Optional[float]) -> float:
    """Shortfall of a rating below its category average, floored at zero."""
    if rating is None:
        return 0.0
    return max(finite_or_zero(category_avg_rating - rating), 0.0)
