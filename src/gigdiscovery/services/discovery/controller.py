"""Query state controller for gig discovery.

The controller owns the actor's query intent (search term, category, filters,
sort and location opt-in), decides when an intent needs a trip to the listing
source, and republishes a filtered, sorted view after every change.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ...config import Settings, settings as default_settings
from ...models.listing import Coordinate, Listing, ListingStatus
from ...models.query import (
    CATEGORIES,
    FETCH_FIELDS,
    FILTER_PRESETS,
    DiscoveryView,
    FilterCriteria,
    ListingView,
    QueryState,
    SortOption,
)
from ...utils.cache import ListingCache, listing_cache
from ...utils.debounce import Debouncer
from ...utils.geo import distance_info
from . import filtering
from .fallback import DemoFallbackProvider, FallbackProvider
from .pagination import CursorManager
from .sorting import sort_by_distance, sort_listings
from .sources import ListingSource, LocationProvider, PermissionState, StaticLocationProvider

logger = logging.getLogger(__name__)

SEARCH = "search"
CATEGORY = "category"
LOCATION = "location"
FILTERS = "filters"

ViewListener = Callable[[DiscoveryView], None]


class DiscoveryController:
    """Coordinates fetching, filtering, sorting and paging for one actor."""

    def __init__(
        self,
        source: ListingSource,
        *,
        location: Optional[LocationProvider] = None,
        cache: Optional[ListingCache] = None,
        fallback: Optional[FallbackProvider] = None,
        config: Optional[Settings] = None,
        actor_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the controller.

        Args:
            source: Where listings, application counts and applied flags come from
            location: Provider of the actor's position; defaults to "unknown"
            cache: First-page cache; defaults to the process-wide cache
            fallback: Listings to show when the source fails
            config: Runtime settings; defaults to the global settings
            actor_id: The authenticated actor, or None for anonymous browsing
            clock: Source of "now" for urgency filtering
        """
        self.config = config or default_settings
        self.source = source
        self.location = location or StaticLocationProvider()
        self.cache = listing_cache if cache is None else cache
        self.fallback = fallback or DemoFallbackProvider()
        self.actor_id = actor_id
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.state = QueryState(
            criteria=FilterCriteria(radius_km=self.config.default_radius_km),
            status=self.config.listing_status,
        )
        self.pages = CursorManager(self.config.page_size)
        self._debouncer = Debouncer()

        self._listings: List[Listing] = []
        self._application_counts: Dict[str, int] = {}
        self._applied: Set[str] = set()
        self._reference: Optional[Coordinate] = None
        self._fetch_seq = 0
        self._loaded = False
        self._is_loading = False
        self._is_loading_more = False
        self._is_fallback = False

        self._listeners: List[ViewListener] = []
        self._view = DiscoveryView(query=self.state.model_copy(deep=True))

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------
    @property
    def view(self) -> DiscoveryView:
        return self._view

    @property
    def listings(self) -> List[Listing]:
        """The in-memory listing set the view is computed from."""
        return list(self._listings)

    def add_listener(self, listener: ViewListener) -> None:
        self._listeners.append(listener)

    @property
    def cache_key(self) -> str:
        return f"{self.state.status}_gigs_page_1"

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------
    def set_search_term(self, term: str) -> None:
        """Record typed text; fetches once typing pauses."""
        self.state.criteria.search_term = term
        if not term.strip():
            # An empty box is "no active text search", not a query.
            self._debouncer.cancel(SEARCH)
            return
        self._debouncer.schedule(SEARCH, self.config.search_debounce_seconds, self.refresh)

    def set_category(self, category: Optional[str]) -> None:
        """Select a category; fetches right away.

        Raises:
            ValueError: If the category is not one of the known categories
        """
        self.check_category(category)
        self.state.criteria.category = category or ""
        self._debouncer.schedule(CATEGORY, 0, self.refresh)

    @staticmethod
    def check_category(category: Optional[str]) -> None:
        if category and category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")

    def set_nearby_only(self, enabled: bool) -> None:
        self.state.criteria.show_nearby_only = bool(enabled)
        self._debouncer.schedule(LOCATION, self.config.location_debounce_seconds, self.refresh)

    def set_radius(self, radius_km: float) -> None:
        if radius_km <= 0:
            raise ValueError("radius_km must be positive")
        self.state.criteria.radius_km = float(radius_km)
        self._debouncer.schedule(LOCATION, self.config.location_debounce_seconds, self.refresh)

    def location_changed(self) -> None:
        """The location provider has a new position or permission state."""
        self._debouncer.schedule(LOCATION, self.config.location_debounce_seconds, self.refresh)

    def update_filters(self, **changes: Any) -> None:
        """Change filter axes that only narrow the listings already fetched.

        Raises:
            ValueError: If a change names a field that requires a fetch
            pydantic.ValidationError: If a value is invalid
        """
        self.state.criteria = self.validate_filters(**changes)
        self._schedule_recompute()

    def validate_filters(self, **changes: Any) -> FilterCriteria:
        """Return the criteria ``changes`` would produce, without applying them."""
        fetching = FETCH_FIELDS.intersection(changes)
        if fetching:
            raise ValueError(f"Fields {sorted(fetching)} must be changed through their own intents")
        merged = {**self.state.criteria.model_dump(), **changes}
        return FilterCriteria.model_validate(merged)

    def set_sort(self, option: Optional[SortOption]) -> None:
        self.state.sort_option = SortOption(option) if option is not None else None
        self._schedule_recompute()

    def remove_filter(self, key: str, value: Optional[str] = None) -> None:
        """Drop one active-filter chip."""
        if key == "show_nearby_only":
            self.set_nearby_only(False)
            return
        self.state.criteria = filtering.remove_filter(self.state.criteria, key, value)
        self._schedule_recompute()

    def clear_filters(self) -> None:
        self.state.criteria = filtering.clear_filters(self.state.criteria)
        self._schedule_recompute()

    def apply_preset(self, preset_id: str) -> None:
        """Apply one of the quick-filter presets.

        Raises:
            ValueError: If the preset is unknown
        """
        preset = FILTER_PRESETS.get(preset_id)
        if preset is None:
            raise ValueError(f"Unknown filter preset: {preset_id}")

        changes = dict(preset.filters)
        nearby = changes.pop("show_nearby_only", None)
        if changes:
            self.update_filters(**changes)
        if preset.sort_option is not None:
            self.set_sort(preset.sort_option)
        if nearby is not None:
            self.set_nearby_only(nearby)
        logger.info("Applied filter preset", extra={"preset": preset_id})

    def _schedule_recompute(self) -> None:
        self._debouncer.schedule(FILTERS, self.config.filter_debounce_seconds, self._recompute_job)

    async def _recompute_job(self) -> None:
        self.recompute()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    async def start(self) -> DiscoveryView:
        """Run the initial load."""
        await self.refresh()
        return self.view

    async def submit_search(self) -> DiscoveryView:
        """Search right away instead of waiting for the typing pause."""
        self._debouncer.cancel(SEARCH)
        await self.refresh()
        return self.view

    async def refresh(self) -> None:
        """Fetch the first page of the current base query and republish.

        Only the most recently issued fetch may replace the listing set;
        results of superseded fetches are dropped when they arrive.
        """
        self._fetch_seq += 1
        seq = self._fetch_seq
        self.pages.reset()
        self._is_loading = True
        self._is_loading_more = False
        self._publish()

        reference = await self._resolve_reference()
        is_fallback = False
        try:
            listings, cursor, from_cache = await self._fetch_first_page()
        except Exception as e:
            logger.error(
                "Listing fetch failed, showing fallback listings",
                extra={"error": str(e), "fetch_seq": seq},
            )
            listings, cursor, from_cache = self.fallback.fallback_listings(), None, False
            is_fallback = True

        if not listings and not is_fallback and self._is_default_query() and self.config.demo_when_empty:
            listings, cursor, from_cache = self.fallback.demo_listings(), None, False
            is_fallback = True

        if seq != self._fetch_seq:
            logger.info("Discarding superseded fetch", extra={"fetch_seq": seq, "latest_seq": self._fetch_seq})
            return

        counts, applied = await self._load_auxiliary(listings)
        if seq != self._fetch_seq:
            logger.info("Discarding superseded fetch", extra={"fetch_seq": seq, "latest_seq": self._fetch_seq})
            return

        self._listings = list(listings)
        self._application_counts = counts
        self._applied = applied
        self._reference = reference
        self._is_fallback = is_fallback
        if is_fallback:
            self.pages.mark_exhausted()
        elif from_cache:
            self.pages.seed_from_cache(len(listings))
        else:
            self.pages.record_page(len(listings), cursor)
        self._loaded = True
        self._is_loading = False

        logger.info("Listings loaded", extra={
            "fetch_seq": seq,
            "listing_count": len(listings),
            "from_cache": from_cache,
            "fallback": is_fallback,
            "page_state": self.pages.state.value,
        })
        self.recompute()

    async def load_more(self) -> DiscoveryView:
        """Append the next page, if there is one and no load is running."""
        if not self.pages.begin_load():
            return self.view

        if self.pages.cursor is None:
            # A cache-seeded first page has no remote cursor to continue from.
            self.pages.end_load()
            self.pages.mark_exhausted()
            self.recompute()
            return self.view

        seq = self._fetch_seq
        self._is_loading_more = True
        self._publish()
        try:
            page = await self.source.fetch_by_status(
                self.state.status, self.pages.page_size, self.pages.cursor
            )
            if seq != self._fetch_seq:
                logger.info("Discarding page for superseded query", extra={"fetch_seq": seq})
                return self.view

            counts, applied = await self._load_auxiliary(page.listings)
            if seq != self._fetch_seq:
                logger.info("Discarding page for superseded query", extra={"fetch_seq": seq})
                return self.view

            known = {listing.id for listing in self._listings}
            self._listings.extend(listing for listing in page.listings if listing.id not in known)
            self._application_counts.update(counts)
            self._applied |= applied
            self.pages.record_page(len(page.listings), page.cursor)
            logger.info("Loaded more listings", extra={
                "page_count": len(page.listings),
                "listing_count": len(self._listings),
                "page_state": self.pages.state.value,
            })
        except Exception as e:
            logger.error("Loading more listings failed", extra={"error": str(e)})
            if seq == self._fetch_seq:
                self.pages.mark_exhausted()
        finally:
            if seq == self._fetch_seq:
                self.pages.end_load()
                self._is_loading_more = False

        self.recompute()
        return self.view

    def _is_default_query(self) -> bool:
        criteria = self.state.criteria
        return not criteria.search_term.strip() and not criteria.category

    async def _fetch_first_page(self) -> Tuple[List[Listing], Optional[str], bool]:
        """Returns the listings, the continuation cursor and whether they came from cache."""
        criteria = self.state.criteria
        status = self.state.status

        if not self._is_default_query():
            results = await self.source.search(
                criteria.search_term.strip(),
                criteria.category or None,
                self.config.search_limit,
            )
            return [listing for listing in results if listing.status.value == status], None, False

        cacheable = status == ListingStatus.OPEN.value
        if cacheable:
            cached = self.cache.get(self.cache_key)
            if cached:
                logger.debug("Serving first page from cache", extra={"cache_key": self.cache_key})
                return list(cached), None, True

        page = await self.source.fetch_by_status(status, self.pages.page_size)
        if cacheable and page.listings:
            self.cache.set(self.cache_key, list(page.listings))
        return list(page.listings), page.cursor, False

    async def _resolve_reference(self) -> Optional[Coordinate]:
        if self.location.permission is not PermissionState.GRANTED:
            return None
        try:
            return await self.location.current_coordinate()
        except Exception as e:
            logger.warning("Location unavailable", extra={"error": str(e)})
            return None

    async def _load_auxiliary(self, listings: List[Listing]) -> Tuple[Dict[str, int], Set[str]]:
        """Load application counts and applied flags for the signed-in actor."""
        counts: Dict[str, int] = {}
        applied: Set[str] = set()
        if self.actor_id is None or not listings:
            return counts, applied

        async def lookup(listing: Listing) -> Tuple[int, bool]:
            count, has_applied = await asyncio.gather(
                self.source.count_applications(listing.id),
                self.source.has_applied(listing.id, self.actor_id),
            )
            return count, has_applied

        results = await asyncio.gather(*(lookup(listing) for listing in listings), return_exceptions=True)
        for listing, result in zip(listings, results):
            if isinstance(result, Exception):
                logger.warning("Auxiliary lookup failed", extra={
                    "listing_id": listing.id,
                    "error": str(result),
                })
                continue
            count, has_applied = result
            counts[listing.id] = count
            if has_applied:
                applied.add(listing.id)
        return counts, applied

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------
    def recompute(self) -> DiscoveryView:
        """Re-run filtering and sorting over the fetched listings and publish."""
        criteria = self.state.criteria
        reference = self._reference

        visible = filtering.apply_filters(criteria, self._listings, reference, self._clock())
        if criteria.show_nearby_only and reference is not None:
            # Nearest first; an explicit sort option below takes precedence.
            visible = sort_by_distance(visible, reference)
        visible = sort_listings(self.state.sort_option, visible, self._application_counts)

        self._view = self._build_view(visible)
        self._notify()
        return self._view

    def _publish(self) -> None:
        self._view = self._view.model_copy(update={
            "is_loading": self._is_loading,
            "is_loading_more": self._is_loading_more,
            "has_more": self.pages.has_more,
        })
        self._notify()

    def _build_view(self, visible: List[Listing]) -> DiscoveryView:
        reference = self._reference
        entries = []
        for listing in visible:
            distance_km = None
            if reference is not None and listing.coordinates is not None:
                distance_km = distance_info(reference, listing.coordinates).distance_km
            entries.append(ListingView(
                listing=listing,
                application_count=self._application_counts.get(listing.id, 0),
                has_applied=listing.id in self._applied,
                distance_km=distance_km,
            ))

        return DiscoveryView(
            listings=entries,
            result_count=len(entries),
            has_more=self.pages.has_more,
            is_loading=self._is_loading,
            is_loading_more=self._is_loading_more,
            no_matches=self._loaded and not self._is_loading and not entries,
            is_fallback=self._is_fallback,
            location_available=reference is not None,
            active_filters=filtering.active_filters(self.state.criteria),
            query=self.state.model_copy(deep=True),
        )

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._view)
            except Exception:
                logger.exception("View listener failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def drain(self) -> None:
        """Wait for every scheduled and running piece of work to settle."""
        await self._debouncer.drain()

    async def close(self) -> None:
        await self._debouncer.close()
