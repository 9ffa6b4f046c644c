"""
Gig Discovery Service

Filtering, sorting, paging and the query controller that coordinates them.
"""

from .controller import DiscoveryController
from .filtering import apply_filters
from .sorting import sort_listings

__all__ = ["DiscoveryController", "apply_filters", "sort_listings"]
