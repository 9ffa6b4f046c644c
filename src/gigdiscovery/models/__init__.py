"""
Data models and schemas for the gig discovery pipeline.
"""

from .listing import Coordinate, Listing, ListingPage, ListingStatus, WorkType
from .query import (
    ActiveFilter,
    DiscoveryView,
    FilterCriteria,
    ListingView,
    QueryState,
    SortOption,
    Urgency,
    WorkTypeFilter,
)

__all__ = [
    "ActiveFilter",
    "Coordinate",
    "DiscoveryView",
    "FilterCriteria",
    "Listing",
    "ListingPage",
    "ListingStatus",
    "ListingView",
    "QueryState",
    "SortOption",
    "Urgency",
    "WorkType",
    "WorkTypeFilter",
]
