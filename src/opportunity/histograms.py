"""Users and rating histograms for the category explorer."""

import math
from collections import Counter
from typing import Iterable, Optional

from .config import RATING_BUCKET_WIDTH, RATING_CEILING
from .models import HistogramBucket


def users_bucket(users: int) -> int:
    """
    Log10-decade bucket index.

    0 -> bucket 0, 1..9 -> bucket 1, 10..99 -> bucket 2, and in general
    bucket k covers 10^(k-1) .. 10^k - 1, i.e. k is the digit count.
    """
    if users <= 0:
        return 0
    return len(str(int(users)))


def users_bucket_bounds(bucket: int) -> tuple[int, int]:
    if bucket == 0:
        return 0, 0
    return 10 ** (bucket - 1), 10**bucket - 1


def users_histogram(users: Iterable[int]) -> list[HistogramBucket]:
    """Non-empty log10-decade buckets in ascending order."""
    counts = Counter(users_bucket(value) for value in users)
    buckets = []
    for bucket in sorted(counts):
        start, end = users_bucket_bounds(bucket)
        buckets.append(HistogramBucket(bucket_start=start, bucket_end=end, item_count=counts[bucket]))
    return buckets


def rating_bucket_start(rating: float) -> float:
    return math.floor(rating / RATING_BUCKET_WIDTH) * RATING_BUCKET_WIDTH


def rating_histogram(ratings: Iterable[Optional[float]]) -> list[HistogramBucket]:
    """
    Non-empty 0.25-wide rating buckets in ascending order.

    A perfect 5.0 lands in the degenerate bucket [5.0, 5.0].
    """
    counts = Counter(rating_bucket_start(r) for r in ratings if r is not None)
    return [
        HistogramBucket(
            bucket_start=start,
            bucket_end=min(start + RATING_BUCKET_WIDTH, RATING_CEILING),
            item_count=counts[start],
        )
        for start in sorted(counts)
    ]
