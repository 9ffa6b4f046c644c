"""Filter predicate engine.

Each filter axis is an independent predicate over a single listing; a listing
is kept only if every axis accepts it. Filtering never reorders or invents
listings.
"""

import math
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ...models.listing import Coordinate, Listing
from ...models.query import (
    ActiveFilter,
    FilterCriteria,
    URGENCY_DAY_LIMITS,
    Urgency,
    WorkTypeFilter,
)
from ...utils.geo import distance

Predicate = Callable[[Listing], bool]

SECONDS_PER_DAY = 24 * 60 * 60


def matches_search_term(listing: Listing, term: str) -> bool:
    """Case-insensitive match of ``term`` against title, description or skills."""
    needle = term.strip().lower()
    if not needle:
        return True
    return (
        needle in listing.title.lower()
        or needle in listing.description.lower()
        or any(needle in skill.lower() for skill in listing.skills_required)
    )


def days_until(deadline: datetime, now: datetime) -> int:
    """Calendar-day ceiling of the time left before ``deadline``."""
    return math.ceil((deadline - now).total_seconds() / SECONDS_PER_DAY)


def budget_predicate(criteria: FilterCriteria) -> Optional[Predicate]:
    low, high = criteria.budget_min, criteria.budget_max
    if low is None and high is None:
        return None
    return lambda listing: (low is None or listing.budget >= low) and (
        high is None or listing.budget <= high
    )


def duration_predicate(criteria: FilterCriteria) -> Optional[Predicate]:
    if not criteria.durations:
        return None
    allowed = set(criteria.durations)
    return lambda listing: listing.duration in allowed


def work_type_predicate(criteria: FilterCriteria) -> Optional[Predicate]:
    if criteria.work_type is WorkTypeFilter.ALL:
        return None
    wanted = criteria.work_type.value
    return lambda listing: listing.work_type is not None and listing.work_type.value == wanted


def urgency_predicate(criteria: FilterCriteria, now: datetime) -> Optional[Predicate]:
    if criteria.urgency is Urgency.ALL:
        return None
    limit = URGENCY_DAY_LIMITS[criteria.urgency]

    def accept(listing: Listing) -> bool:
        if listing.deadline is None:
            return False
        return 0 <= days_until(listing.deadline, now) <= limit

    return accept


def skills_predicate(criteria: FilterCriteria) -> Optional[Predicate]:
    wanted = [skill.lower() for skill in criteria.skills if skill.strip()]
    if not wanted:
        return None
    return lambda listing: any(
        skill in required.lower()
        for skill in wanted
        for required in listing.skills_required
    )


def radius_predicate(
    criteria: FilterCriteria, reference: Optional[Coordinate]
) -> Optional[Predicate]:
    # Without a reference position the axis does not apply at all.
    if not criteria.show_nearby_only or reference is None:
        return None
    radius = criteria.radius_km
    return lambda listing: (
        listing.coordinates is not None
        and distance(reference, listing.coordinates) <= radius
    )


def build_predicates(
    criteria: FilterCriteria,
    reference: Optional[Coordinate] = None,
    now: Optional[datetime] = None,
) -> List[Predicate]:
    """Return the predicates for every axis that currently restricts results."""
    now = now or datetime.now(timezone.utc)
    candidates = [
        budget_predicate(criteria),
        duration_predicate(criteria),
        work_type_predicate(criteria),
        urgency_predicate(criteria, now),
        skills_predicate(criteria),
        radius_predicate(criteria, reference),
    ]
    return [predicate for predicate in candidates if predicate is not None]


def apply_filters(
    criteria: FilterCriteria,
    listings: Sequence[Listing],
    reference: Optional[Coordinate] = None,
    now: Optional[datetime] = None,
) -> List[Listing]:
    """Keep the listings accepted by every active filter axis.

    Args:
        criteria: The filter selection
        listings: Candidate listings, in display order
        reference: The actor's position, if known
        now: Evaluation time for the urgency axis; defaults to the current time

    Returns:
        List[Listing]: The accepted listings in their original relative order
    """
    predicates = build_predicates(criteria, reference, now)
    return [
        listing
        for listing in listings
        if all(predicate(listing) for predicate in predicates)
    ]


URGENCY_LABELS = {
    Urgency.URGENT: "Urgent (3 days)",
    Urgency.WEEK: "This Week",
    Urgency.MONTH: "This Month",
}


def _format_amount(amount: float) -> str:
    return f"R{amount:g}"


def active_filters(criteria: FilterCriteria) -> List[ActiveFilter]:
    """Describe every active restriction as a removable chip."""
    chips: List[ActiveFilter] = []

    if criteria.budget_min is not None or criteria.budget_max is not None:
        low = _format_amount(criteria.budget_min or 0)
        if criteria.budget_max is None:
            label = f"{low}+"
        else:
            label = f"{low} - {_format_amount(criteria.budget_max)}"
        chips.append(ActiveFilter(key="budget", label=f"Budget: {label}"))

    for duration in criteria.durations:
        chips.append(ActiveFilter(key="durations", label=f"Duration: {duration}", value=duration))

    if criteria.work_type is not WorkTypeFilter.ALL:
        label = "Remote Only" if criteria.work_type is WorkTypeFilter.REMOTE else "Physical Only"
        chips.append(ActiveFilter(key="work_type", label=label))

    if criteria.urgency is not Urgency.ALL:
        chips.append(ActiveFilter(key="urgency", label=URGENCY_LABELS[criteria.urgency]))

    for skill in criteria.skills:
        chips.append(ActiveFilter(key="skills", label=f"Skill: {skill}", value=skill))

    if criteria.show_nearby_only:
        chips.append(ActiveFilter(key="show_nearby_only", label=f"Within {criteria.radius_km:g}km"))

    return chips


def remove_filter(
    criteria: FilterCriteria, key: str, value: Optional[str] = None
) -> FilterCriteria:
    """Return a copy of ``criteria`` with one chip's restriction removed.

    Raises:
        ValueError: If ``key`` does not name a removable filter
    """
    if key == "budget":
        update = {"budget_min": None, "budget_max": None}
    elif key == "durations":
        update = {"durations": [d for d in criteria.durations if value is not None and d != value]}
    elif key == "skills":
        update = {"skills": [s for s in criteria.skills if value is not None and s != value]}
    elif key == "work_type":
        update = {"work_type": WorkTypeFilter.ALL}
    elif key == "urgency":
        update = {"urgency": Urgency.ALL}
    elif key == "show_nearby_only":
        update = {"show_nearby_only": False}
    else:
        raise ValueError(f"Unknown filter key: {key}")
    return criteria.model_copy(update=update)


def clear_filters(criteria: FilterCriteria) -> FilterCriteria:
    """Reset every filter axis, keeping the search, category and location choices."""
    return FilterCriteria(
        search_term=criteria.search_term,
        category=criteria.category,
        show_nearby_only=criteria.show_nearby_only,
        radius_km=criteria.radius_km,
    )
