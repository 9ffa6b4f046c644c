"""Sort engine for listing collections.

All orderings are stable: listings with equal keys keep their input order.
"""

from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ...models.listing import Coordinate, Listing
from ...models.query import SortOption
from ...utils import geo


def _sort_deadline(listings: Sequence[Listing]) -> List[Listing]:
    # Listings without a deadline sort after every dated listing.
    dated = [listing for listing in listings if listing.deadline is not None]
    undated = [listing for listing in listings if listing.deadline is None]
    return sorted(dated, key=lambda listing: listing.deadline) + undated


def sort_listings(
    option: Optional[SortOption],
    listings: Sequence[Listing],
    application_counts: Optional[Mapping[str, int]] = None,
) -> List[Listing]:
    """Order ``listings`` by ``option``.

    Args:
        option: The active sort option; None keeps the input order
        listings: Listings to order
        application_counts: Per-listing application counts; missing ids count as 0

    Returns:
        List[Listing]: A new, stably sorted list
    """
    counts = application_counts or {}

    if option is None:
        return list(listings)
    if option is SortOption.DEADLINE_SOON:
        return _sort_deadline(listings)

    keys: Dict[SortOption, Tuple[Callable[[Listing], object], bool]] = {
        SortOption.NEWEST: (lambda listing: listing.created_at, True),
        SortOption.OLDEST: (lambda listing: listing.created_at, False),
        SortOption.BUDGET_HIGH: (lambda listing: listing.budget, True),
        SortOption.BUDGET_LOW: (lambda listing: listing.budget, False),
        SortOption.MOST_APPLICATIONS: (lambda listing: counts.get(listing.id, 0), True),
        SortOption.LEAST_APPLICATIONS: (lambda listing: counts.get(listing.id, 0), False),
    }
    key, descending = keys[SortOption(option)]
    # sorted() keeps equal elements in input order even with reverse=True.
    return sorted(listings, key=key, reverse=descending)


def sort_by_distance(listings: Sequence[Listing], reference: Coordinate) -> List[Listing]:
    """Nearest first; listings without coordinates keep their order at the end."""
    return geo.sort_by_distance(listings, reference, lambda listing: listing.coordinates)
