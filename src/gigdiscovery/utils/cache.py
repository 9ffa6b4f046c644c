"""Short-lived cache for the first page of listings.

The cache exists to skip a network round-trip on revisits over slow mobile
connections. It is process-wide and session-scoped: entries expire after a
TTL and are otherwise only replaced by fresher writes.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

from ..config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached payload and the time it was stored."""

    key: str
    payload: T
    stored_at: float
    expires_at: float


class ListingCache(Generic[T]):
    """Key/value store with time-to-live expiry."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        *,
        prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Maximum age of an entry; defaults to the configured TTL
            prefix: Namespace prepended to every key
            clock: Source of the current time in seconds
        """
        self.ttl_seconds = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.prefix = settings.cache_key_prefix if prefix is None else prefix
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def set(self, key: str, payload: T) -> None:
        """Store ``payload`` under ``key``, superseding any earlier entry."""
        now = self._clock()
        self._entries[self._key(key)] = CacheEntry(
            key=key,
            payload=payload,
            stored_at=now,
            expires_at=now + self.ttl_seconds,
        )
        logger.debug("Cached payload", extra={"cache_key": key})

    def get(self, key: str) -> Optional[T]:
        """Return the payload for ``key``, or None on a miss or expired entry."""
        entry = self._entries.get(self._key(key))
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            self.remove(key)
            logger.debug("Cache entry expired", extra={"cache_key": key})
            return None
        return entry.payload

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def age(self, key: str) -> Optional[int]:
        """Age of the entry in whole seconds, or None if absent."""
        entry = self._entries.get(self._key(key))
        if entry is None:
            return None
        return int(self._clock() - entry.stored_at)

    def remove(self, key: str) -> None:
        self._entries.pop(self._key(key), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide cache shared by every discovery session
listing_cache: "ListingCache" = ListingCache()
