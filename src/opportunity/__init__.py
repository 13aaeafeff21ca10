"""Opportunity scoring and ranking for browser-extension catalogues."""

from .config import DEFAULT_CONSTANTS, NormalizationConstants, load_constants
from .models import (
    CategoryLink,
    CategoryRecord,
    ExtensionRecord,
    FilterCriteria,
    OpportunityPoint,
    Snapshot,
)
from .params import (
    parse_category_table_params,
    parse_filter_criteria,
    parse_market_params,
    parse_opportunities_params,
)
from .views import (
    build_category_explorer,
    build_market_view,
    build_opportunities_view,
    describe_scoring_model,
)

__all__ = [
    "DEFAULT_CONSTANTS",
    "NormalizationConstants",
    "load_constants",
    "CategoryLink",
    "CategoryRecord",
    "ExtensionRecord",
    "FilterCriteria",
    "OpportunityPoint",
    "Snapshot",
    "parse_category_table_params",
    "parse_filter_criteria",
    "parse_market_params",
    "parse_opportunities_params",
    "build_category_explorer",
    "build_market_view",
    "build_opportunities_view",
    "describe_scoring_model",
]
