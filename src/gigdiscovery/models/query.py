"""Query state, view and option models for the discovery pipeline."""

from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field, model_validator

from .listing import Listing


class WorkTypeFilter(str, Enum):
    ALL = "all"
    REMOTE = "remote"
    PHYSICAL = "physical"


class Urgency(str, Enum):
    ALL = "all"
    URGENT = "urgent"
    WEEK = "week"
    MONTH = "month"


# Inclusive day limits for each urgency bucket.
URGENCY_DAY_LIMITS: Dict[Urgency, int] = {
    Urgency.URGENT: 3,
    Urgency.WEEK: 7,
    Urgency.MONTH: 30,
}


class SortOption(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    BUDGET_HIGH = "budget-high"
    BUDGET_LOW = "budget-low"
    DEADLINE_SOON = "deadline-soon"
    MOST_APPLICATIONS = "most-applications"
    LEAST_APPLICATIONS = "least-applications"


class FilterCriteria(BaseModel):
    """Everything the user has chosen to narrow the listing set by.

    Empty ``durations`` / ``skills`` mean "no restriction on that axis".
    """
    search_term: str = ""
    category: str = ""
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)
    durations: List[str] = Field(default_factory=list)
    work_type: WorkTypeFilter = WorkTypeFilter.ALL
    urgency: Urgency = Urgency.ALL
    skills: List[str] = Field(default_factory=list)
    show_nearby_only: bool = False
    radius_km: float = Field(default=25.0, gt=0)

    @model_validator(mode="after")
    def _check_budget_bounds(self) -> "FilterCriteria":
        if (
            self.budget_min is not None
            and self.budget_max is not None
            and self.budget_min > self.budget_max
        ):
            raise ValueError("budget_min must not exceed budget_max")
        return self


class QueryState(BaseModel):
    """Serializable snapshot of the controller's query intent."""
    criteria: FilterCriteria = Field(default_factory=FilterCriteria)
    sort_option: Optional[SortOption] = SortOption.NEWEST
    status: str = "open"


class ActiveFilter(BaseModel):
    """A removable chip describing one active restriction."""
    key: str
    label: str
    value: Optional[str] = None


class ListingView(BaseModel):
    """A listing annotated with actor-scoped auxiliary data."""
    listing: Listing
    application_count: int = 0
    has_applied: bool = False
    distance_km: Optional[float] = None


class DiscoveryView(BaseModel):
    """The view model published to presentation after each recomputation."""
    listings: List[ListingView] = Field(default_factory=list)
    result_count: int = 0
    has_more: bool = False
    is_loading: bool = False
    is_loading_more: bool = False
    no_matches: bool = False
    is_fallback: bool = False
    location_available: bool = False
    active_filters: List[ActiveFilter] = Field(default_factory=list)
    query: QueryState = Field(default_factory=QueryState)


class FilterPreset(BaseModel):
    id: str
    name: str
    description: str
    filters: Dict[str, Any] = Field(default_factory=dict)
    sort_option: Optional[SortOption] = None


class BudgetRange(BaseModel):
    label: str
    min: float
    max: Optional[float] = None


DURATION_OPTIONS: List[str] = [
    "1-3 days",
    "1 week",
    "1 month",
    "1-3 months",
    "3-6 months",
    "6+ months",
    "Ongoing",
]

BUDGET_RANGES: List[BudgetRange] = [
    BudgetRange(label="Under R500", min=0, max=500),
    BudgetRange(label="R500 - R1,000", min=500, max=1000),
    BudgetRange(label="R1,000 - R5,000", min=1000, max=5000),
    BudgetRange(label="R5,000+", min=5000),
]

RADIUS_OPTIONS: List[int] = [5, 10, 25, 50, 100, 500]

CATEGORIES: List[str] = [
    "Technology",
    "Design",
    "Writing",
    "Marketing",
    "Construction",
    "Transportation",
    "Cleaning",
    "Education",
    "Other",
]

FILTER_PRESETS: Dict[str, FilterPreset] = {
    preset.id: preset
    for preset in [
        FilterPreset(
            id="quick-work",
            name="Quick Work",
            description="Urgent gigs nearby",
            filters={
                "urgency": Urgency.URGENT,
                "durations": ["1-3 days"],
                "show_nearby_only": True,
            },
        ),
        FilterPreset(
            id="high-value",
            name="High Value",
            description="Budget over R5,000",
            filters={"budget_min": 5000, "budget_max": None},
        ),
        FilterPreset(
            id="remote-only",
            name="Remote Only",
            description="Work from anywhere",
            filters={"work_type": WorkTypeFilter.REMOTE},
        ),
        FilterPreset(
            id="best-chance",
            name="Best Chance",
            description="Fewer applicants",
            sort_option=SortOption.LEAST_APPLICATIONS,
        ),
    ]
}

# Filter fields whose change requires a trip to the listing source.
FETCH_FIELDS: Set[str] = {"search_term", "category", "show_nearby_only", "radius_km"}
