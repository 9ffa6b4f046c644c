"""Collaborator boundaries of the discovery pipeline.

The listing source and the location service live outside the pipeline; these
protocols describe exactly what the controller consumes from them.
"""

from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable

from ...models.listing import Coordinate, Listing, ListingPage


class DiscoveryError(Exception):
    """Base exception for discovery errors."""
    pass


class SourceUnavailable(DiscoveryError):
    """Exception raised when the listing source cannot serve a request."""
    pass


@runtime_checkable
class ListingSource(Protocol):
    async def fetch_by_status(
        self, status: str, page_size: int, cursor: Optional[str] = None
    ) -> ListingPage:
        ...

    async def search(
        self, term: str, category: Optional[str] = None, limit: int = 100
    ) -> List[Listing]:
        ...

    async def count_applications(self, listing_id: str) -> int:
        ...

    async def has_applied(self, listing_id: str, actor_id: str) -> bool:
        ...


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PENDING = "pending"


@runtime_checkable
class LocationProvider(Protocol):
    @property
    def permission(self) -> PermissionState:
        ...

    async def current_coordinate(self) -> Optional[Coordinate]:
        ...


class StaticLocationProvider:
    """Location provider backed by a coordinate reported by the client."""

    def __init__(
        self,
        coordinate: Optional[Coordinate] = None,
        permission: Optional[PermissionState] = None,
    ):
        self._coordinate = coordinate
        if permission is None:
            permission = PermissionState.GRANTED if coordinate is not None else PermissionState.PENDING
        self._permission = permission

    @property
    def permission(self) -> PermissionState:
        return self._permission

    def update(self, coordinate: Optional[Coordinate]) -> None:
        """Record a new client position (None when the client revoked access)."""
        self._coordinate = coordinate
        self._permission = PermissionState.GRANTED if coordinate is not None else PermissionState.DENIED

    async def current_coordinate(self) -> Optional[Coordinate]:
        if self._permission is not PermissionState.GRANTED:
            return None
        return self._coordinate
