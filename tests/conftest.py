"""Test configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

# Test configuration
TEST_LOG_DIR = "test_logs"
os.environ.setdefault("LOG_DIR", TEST_LOG_DIR)

from gigdiscovery.config import Settings  # noqa: E402
from gigdiscovery.models.listing import Coordinate, Listing, ListingPage  # noqa: E402
from gigdiscovery.utils.cache import ListingCache  # noqa: E402

JOHANNESBURG = Coordinate(latitude=-26.2041, longitude=28.0473)
CAPE_TOWN = Coordinate(latitude=-33.9249, longitude=18.4241)
BASE_TIME = datetime(2024, 9, 1, tzinfo=timezone.utc)


class FakeListingSource:
    """In-memory listing source that records every call it receives."""

    def __init__(self, listings: Optional[List[Listing]] = None):
        self.listings: List[Listing] = list(listings or [])
        self.applications: Dict[str, int] = {}
        self.applied: Set[str] = set()
        self.fetch_calls: List[Optional[str]] = []
        self.search_calls: List[tuple] = []
        self.count_calls: List[str] = []
        self.fail_with: Optional[Exception] = None

    async def fetch_by_status(self, status, page_size, cursor=None):
        self.fetch_calls.append(cursor)
        if self.fail_with is not None:
            raise self.fail_with
        matching = [listing for listing in self.listings if listing.status.value == status]
        start = int(cursor) if cursor is not None else 0
        page = matching[start:start + page_size]
        end = start + len(page)
        next_cursor = str(end) if len(page) == page_size else None
        return ListingPage(listings=page, cursor=next_cursor)

    async def search(self, term, category=None, limit=100):
        self.search_calls.append((term, category, limit))
        if self.fail_with is not None:
            raise self.fail_with
        needle = term.lower()
        results = [
            listing
            for listing in self.listings
            if (not category or listing.category == category)
            and (needle in listing.title.lower() or needle in listing.description.lower())
        ]
        return results[:limit]

    async def count_applications(self, listing_id):
        self.count_calls.append(listing_id)
        return self.applications.get(listing_id, 0)

    async def has_applied(self, listing_id, actor_id):
        return listing_id in self.applied


def build_listing(index: int = 0, **overrides) -> Listing:
    """Build a listing with sensible defaults; ``index`` makes ids and times unique."""
    data = {
        "id": f"gig-{index}",
        "title": f"Gig number {index}",
        "description": "General help needed",
        "category": "Other",
        "location": "Johannesburg",
        "budget": 1000,
        "duration": "1 week",
        "skills_required": [],
        "created_at": BASE_TIME + timedelta(hours=index),
    }
    data.update(overrides)
    return Listing(**data)


@pytest.fixture
def make_listing():
    return build_listing


@pytest.fixture
def fast_settings():
    """Settings with debounce windows short enough for tests."""
    return Settings(
        page_size=5,
        search_limit=50,
        search_debounce_seconds=0.05,
        location_debounce_seconds=0.03,
        filter_debounce_seconds=0.01,
        cache_ttl_seconds=300,
    )


@pytest.fixture
def cache():
    return ListingCache(ttl_seconds=300, prefix="test_")


@pytest.fixture
def source():
    return FakeListingSource()
