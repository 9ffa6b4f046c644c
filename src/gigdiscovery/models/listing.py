"""Listing models for the gig discovery pipeline."""

from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..utils.dates import to_instant


class WorkType(str, Enum):
    REMOTE = "remote"
    PHYSICAL = "physical"
    HYBRID = "hybrid"


class ListingStatus(str, Enum):
    OPEN = "open"
    REVIEWING = "reviewing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class Coordinate(BaseModel):
    """A point on the earth's surface, in decimal degrees."""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class Listing(BaseModel):
    """A gig post available for discovery.

    Accepts both snake_case and the camelCase field names used by the
    listing store, and normalises every timestamp through ``to_instant``.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    id: str
    title: str
    description: str = ""
    category: str = ""
    location: str = ""
    coordinates: Optional[Coordinate] = None
    budget: float = Field(default=0.0, ge=0)
    duration: str = ""
    skills_required: List[str] = Field(default_factory=list)
    work_type: Optional[WorkType] = None
    status: ListingStatus = ListingStatus.OPEN
    max_applicants: Optional[int] = Field(default=None, ge=0)
    deadline: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    employer_id: Optional[str] = None
    employer_name: Optional[str] = None

    @field_validator("created_at", "updated_at", "deadline", mode="before")
    @classmethod
    def _normalise_timestamp(cls, value):
        if value is None:
            return None
        return to_instant(value)


class ListingPage(NamedTuple):
    """One page from the listing source plus its continuation cursor."""
    listings: List[Listing]
    cursor: Optional[str] = None
