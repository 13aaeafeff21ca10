"""Typed records flowing through the opportunity pipeline."""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class ExtensionRecord:
    """One extension row from the catalogue snapshot."""

    id: int
    name: str
    url: Optional[str] = None
    users: int = 0
    rating: Optional[float] = None
    rating_votes: int = 0
    languages: str = ""
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    name: str


@dataclass(frozen=True)
class CategoryLink:
    category_id: int
    extension_id: int


@dataclass(frozen=True)
class Snapshot:
    """
    Read-only view over the three catalogue collections.

    Links whose endpoints are missing are ignored by the lookups, so a
    snapshot taken mid-delete still behaves as if the link was cascaded.
    """

    extensions: tuple[ExtensionRecord, ...] = ()
    categories: tuple[CategoryRecord, ...] = ()
    links: tuple[CategoryLink, ...] = ()

    @classmethod
    def build(
        cls,
        extensions: Iterable[ExtensionRecord],
        categories: Iterable[CategoryRecord],
        links: Iterable[CategoryLink],
    ) -> "Snapshot":
        return cls(tuple(extensions), tuple(categories), tuple(links))

    def category_by_id(self, category_id: int) -> Optional[CategoryRecord]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def members_by_category(self) -> dict[int, list[int]]:
        """Map category id -> sorted, de-duplicated extension ids."""
        extension_ids = {ext.id for ext in self.extensions}
        category_ids = {cat.id for cat in self.categories}
        members: dict[int, set[int]] = defaultdict(set)
        for link in self.links:
            if link.category_id in category_ids and link.extension_id in extension_ids:
                members[link.category_id].add(link.extension_id)
        return {cid: sorted(ids) for cid, ids in members.items()}


@dataclass(frozen=True)
class FilterCriteria:
    """Already-clamped filter parameters (see ``params.parse_filter_criteria``)."""

    min_users: int = 0
    max_users: Optional[int] = None
    rating_min: float = 0.0
    rating_max: float = 5.0
    exclude_top_pct: int = 0
    language_substring: str = ""
    name_substring: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "minUsers": self.min_users,
            "maxUsers": self.max_users,
            "ratingMin": self.rating_min,
            "ratingMax": self.rating_max,
            "excludeTopPct": self.exclude_top_pct,
            "lang": self.language_substring,
            "extName": self.name_substring,
        }


@dataclass(frozen=True)
class CategoryStats:
    """Aggregates for one category over the surviving candidates."""

    category_id: int
    category_name: str
    member_count: int
    total_users: int
    rating_weighted_sum: float
    rating_weight_sum: float
    avg_rating: float


@dataclass(frozen=True)
class Distribution:
    """Percentile ceilings used as normalization denominators."""

    users_ceiling: float = 0.0
    votes_ceiling: float = 0.0
    competition_ceiling: float = 0.0
    gap_cap: float = 0.0


@dataclass(frozen=True)
class CandidateRow:
    """One extension x one category membership after filtering."""

    category_id: int
    category_name: str
    extension: ExtensionRecord
    category_avg_rating: float
    competition_count: int
    rating_gap: float

    @property
    def identity(self) -> tuple[int, int]:
        return (self.extension.id, self.category_id)


@dataclass(frozen=True)
class OpportunityScore:
    demand_norm: float
    competition_norm: float
    confidence_norm: float
    rating_gap_norm: float
    gap_effective: float
    score: float


@dataclass(frozen=True)
class OpportunityPoint:
    """A scored candidate row as exposed by the opportunities view."""

    category_id: int
    category_name: str
    extension_id: int
    extension_name: str
    extension_url: Optional[str]
    users: int
    rating: Optional[float]
    rating_votes: int
    category_avg_rating: float
    competition_count: int
    demand_norm: float
    competition_norm: float
    rating_gap: float
    confidence_norm: float
    gap_effective: float
    score: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MarketCategory:
    category_id: int
    category_name: str
    extension_count: int
    total_users: int
    avg_rating: float
    underserved_index: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ExtensionPoint:
    """Category explorer row: used for both scatter points and table rows."""

    extension_id: int
    extension_name: str
    extension_url: Optional[str]
    users: int
    users_log: float
    rating: float
    rating_votes: int
    updated_at: Optional[str]
    rating_gap: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HistogramBucket:
    bucket_start: float
    bucket_end: float
    item_count: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Page:
    page: int
    page_size: int
    total: int
    rows: tuple[Any, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "total": self.total,
            "rows": [row.to_dict() for row in self.rows],
        }
