"""Tests for the discovery controller."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from gigdiscovery.models.query import SortOption, Urgency
from gigdiscovery.services.discovery.controller import DiscoveryController
from gigdiscovery.services.discovery.pagination import PageState
from gigdiscovery.services.discovery.sources import (
    PermissionState,
    SourceUnavailable,
    StaticLocationProvider,
)

from tests.conftest import BASE_TIME, CAPE_TOWN, JOHANNESBURG, FakeListingSource, build_listing


class GatedListingSource(FakeListingSource):
    """Listing source whose calls wait until the test opens their gate."""

    def __init__(self, listings=None):
        super().__init__(listings)
        self.gates = {}

    def gate(self, key):
        return self.gates.setdefault(key, asyncio.Event())

    async def search(self, term, category=None, limit=100):
        await self.gate(("search", term)).wait()
        return await super().search(term, category, limit)

    async def fetch_by_status(self, status, page_size, cursor=None):
        if cursor is not None:
            self.fetch_calls.append(cursor)
            await self.gate(("page", cursor)).wait()
            self.fetch_calls.pop()
        return await super().fetch_by_status(status, page_size, cursor)


async def wait_for(condition, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0)


def visible_ids(controller):
    return [entry.listing.id for entry in controller.view.listings]


@pytest.fixture
def listings():
    return [build_listing(i) for i in range(12)]


@pytest.fixture
def make_controller(fast_settings, cache):
    def factory(source, **kwargs):
        kwargs.setdefault("cache", cache)
        kwargs.setdefault("config", fast_settings)
        kwargs.setdefault("clock", lambda: BASE_TIME)
        return DiscoveryController(source, **kwargs)

    return factory


@pytest.mark.asyncio
async def test_initial_load_fetches_first_page(make_controller, listings):
    source = FakeListingSource(listings)
    controller = make_controller(source)

    view = await controller.start()

    assert source.fetch_calls == [None]
    assert view.result_count == 5
    assert view.has_more
    assert not view.is_loading
    assert visible_ids(controller) == ["gig-4", "gig-3", "gig-2", "gig-1", "gig-0"]
    assert controller.pages.state is PageState.HAS_MORE
    await controller.close()


@pytest.mark.asyncio
async def test_load_more_until_exhausted(make_controller, listings):
    source = FakeListingSource(listings)
    controller = make_controller(source)
    await controller.start()

    lengths = [len(controller.listings)]
    while controller.view.has_more:
        await controller.load_more()
        lengths.append(len(controller.listings))

    assert lengths == [5, 10, 12]
    assert lengths == sorted(lengths)
    assert controller.pages.exhausted
    assert len({listing.id for listing in controller.listings}) == 12

    calls = len(source.fetch_calls)
    await controller.load_more()
    assert len(source.fetch_calls) == calls
    await controller.close()


@pytest.mark.asyncio
async def test_cached_first_page_skips_fetch(make_controller, listings, cache):
    await make_controller(FakeListingSource(listings)).start()

    source = FakeListingSource(listings)
    controller = make_controller(source)
    view = await controller.start()

    assert source.fetch_calls == []
    assert view.result_count == 5
    assert cache.has("open_gigs_page_1")

    # A cached page carries no cursor, so there is nothing to continue from.
    await controller.load_more()
    assert source.fetch_calls == []
    assert controller.pages.exhausted
    await controller.close()


@pytest.mark.asyncio
async def test_empty_first_page_is_not_cached(make_controller, cache):
    controller = make_controller(FakeListingSource([]))
    view = await controller.start()

    assert view.no_matches
    assert not view.is_fallback
    assert not cache.has("open_gigs_page_1")
    await controller.close()


@pytest.mark.asyncio
async def test_source_failure_shows_fallback(make_controller):
    source = FakeListingSource()
    source.fail_with = SourceUnavailable("listing store offline")
    controller = make_controller(source)

    view = await controller.start()

    assert view.is_fallback
    assert visible_ids(controller) == ["demo-fallback"]
    assert not view.has_more
    assert not view.is_loading
    await controller.close()


@pytest.mark.asyncio
async def test_demo_listings_when_enabled_and_empty(make_controller, fast_settings):
    config = fast_settings.model_copy(update={"demo_when_empty": True})
    controller = make_controller(FakeListingSource([]), config=config)

    view = await controller.start()

    assert view.is_fallback
    assert view.result_count == 6
    await controller.close()


@pytest.mark.asyncio
async def test_search_is_debounced(make_controller, listings):
    source = FakeListingSource(listings)
    controller = make_controller(source)
    await controller.start()

    for term in ["n", "nu", "number", "number 1"]:
        controller.set_search_term(term)
        await asyncio.sleep(0.01)
    assert source.search_calls == []

    await controller.drain()

    assert source.search_calls == [("number 1", None, 50)]
    assert visible_ids(controller) == ["gig-11", "gig-10", "gig-1"]
    assert controller.pages.exhausted
    await controller.close()


@pytest.mark.asyncio
async def test_submit_search_skips_the_typing_pause(make_controller, listings):
    source = FakeListingSource(listings)
    controller = make_controller(source)
    await controller.start()

    controller.set_search_term("number 7")
    view = await controller.submit_search()

    assert source.search_calls == [("number 7", None, 50)]
    assert [entry.listing.id for entry in view.listings] == ["gig-7"]
    await controller.drain()
    assert len(source.search_calls) == 1
    await controller.close()


@pytest.mark.asyncio
async def test_clearing_search_term_cancels_pending_search(make_controller, listings):
    source = FakeListingSource(listings)
    controller = make_controller(source)
    await controller.start()

    controller.set_search_term("number")
    controller.set_search_term("")
    await controller.drain()

    assert source.search_calls == []
    await controller.close()


@pytest.mark.asyncio
async def test_category_fetches_immediately(make_controller):
    source = FakeListingSource([
        build_listing(0, category="Design"),
        build_listing(1, category="Writing"),
    ])
    controller = make_controller(source)
    await controller.start()

    controller.set_category("Design")
    await asyncio.sleep(0.005)

    assert source.search_calls == [("", "Design", 50)]
    await controller.drain()
    assert visible_ids(controller) == ["gig-0"]
    await controller.close()


@pytest.mark.asyncio
async def test_superseded_fetch_is_discarded(make_controller):
    source = GatedListingSource([
        build_listing(0, title="Plumbing repair"),
        build_listing(1, title="Garden work"),
    ])
    controller = make_controller(source)

    controller.state.criteria.search_term = "plumbing"
    first = asyncio.ensure_future(controller.refresh())
    await wait_for(lambda: ("search", "plumbing") in source.gates)

    controller.state.criteria.search_term = "garden"
    second = asyncio.ensure_future(controller.refresh())
    await wait_for(lambda: ("search", "garden") in source.gates)

    source.gate(("search", "garden")).set()
    await second
    assert visible_ids(controller) == ["gig-1"]

    source.gate(("search", "plumbing")).set()
    await first
    assert visible_ids(controller) == ["gig-1"]
    await controller.close()


@pytest.mark.asyncio
async def test_load_more_is_not_reentrant(make_controller, listings):
    source = GatedListingSource(listings)
    controller = make_controller(source)
    await controller.start()

    first = asyncio.ensure_future(controller.load_more())
    await wait_for(lambda: ("page", "5") in source.gates)
    assert controller.view.is_loading_more

    await controller.load_more()
    assert source.fetch_calls == [None, "5"]

    source.gate(("page", "5")).set()
    await first
    assert len(controller.listings) == 10
    assert not controller.view.is_loading_more
    await controller.close()


@pytest.mark.asyncio
async def test_load_more_for_superseded_query_is_dropped(make_controller, listings):
    source = GatedListingSource(listings)
    source.gate(("search", "number 3")).set()
    controller = make_controller(source)
    await controller.start()

    pending = asyncio.ensure_future(controller.load_more())
    await wait_for(lambda: ("page", "5") in source.gates)

    controller.set_search_term("number 3")
    await controller.submit_search()
    source.gate(("page", "5")).set()
    await pending

    assert [listing.id for listing in controller.listings] == ["gig-3"]
    await controller.close()


@pytest.mark.asyncio
async def test_auxiliary_data_only_for_signed_in_actor(make_controller, listings):
    source = FakeListingSource(listings)
    source.applications = {"gig-2": 4}
    source.applied = {"gig-2"}

    anonymous = make_controller(source)
    await anonymous.start()
    assert source.count_calls == []

    signed_in = make_controller(source, actor_id="worker-1")
    await signed_in.start()

    assert sorted(source.count_calls) == ["gig-0", "gig-1", "gig-2", "gig-3", "gig-4"]
    entry = next(e for e in signed_in.view.listings if e.listing.id == "gig-2")
    assert entry.application_count == 4
    assert entry.has_applied
    await anonymous.close()
    await signed_in.close()


@pytest.mark.asyncio
async def test_failed_auxiliary_lookup_degrades_to_defaults(make_controller, listings):
    class FlakyCounts(FakeListingSource):
        async def count_applications(self, listing_id):
            if listing_id == "gig-1":
                raise SourceUnavailable("count timed out")
            return 3

    controller = make_controller(FlakyCounts(listings), actor_id="worker-1")
    await controller.start()

    counts = {e.listing.id: e.application_count for e in controller.view.listings}
    assert counts == {"gig-4": 3, "gig-3": 3, "gig-2": 3, "gig-1": 0, "gig-0": 3}
    await controller.close()


@pytest.mark.asyncio
async def test_filters_narrow_locally_without_fetching(make_controller):
    source = FakeListingSource([
        build_listing(i, budget=b) for i, b in enumerate([3500, 15000, 8000, 600])
    ])
    controller = make_controller(source)
    await controller.start()

    controller.update_filters(budget_min=5000, budget_max=15000)
    await controller.drain()

    assert source.fetch_calls == [None]
    assert sorted(e.listing.budget for e in controller.view.listings) == [8000, 15000]
    assert [chip.key for chip in controller.view.active_filters] == ["budget"]
    await controller.close()


@pytest.mark.asyncio
async def test_update_filters_rejects_fetching_fields(make_controller):
    controller = make_controller(FakeListingSource())
    with pytest.raises(ValueError):
        controller.update_filters(category="Design")
    await controller.close()


@pytest.mark.asyncio
async def test_no_matches_after_filtering_everything_out(make_controller, listings):
    controller = make_controller(FakeListingSource(listings))
    await controller.start()

    controller.update_filters(budget_min=1_000_000)
    await controller.drain()

    assert controller.view.no_matches
    assert controller.view.result_count == 0
    await controller.close()


@pytest.mark.asyncio
async def test_sort_change_reorders_without_fetching(make_controller):
    source = FakeListingSource([
        build_listing(i, budget=b) for i, b in enumerate([800, 200, 500])
    ])
    controller = make_controller(source)
    await controller.start()

    controller.set_sort(SortOption.BUDGET_LOW)
    await controller.drain()

    assert [e.listing.budget for e in controller.view.listings] == [200, 500, 800]
    assert source.fetch_calls == [None]
    await controller.close()


@pytest.mark.asyncio
async def test_urgency_uses_controller_clock(make_controller):
    source = FakeListingSource([
        build_listing(0, deadline=BASE_TIME + timedelta(days=2)),
        build_listing(1, deadline=BASE_TIME + timedelta(days=10)),
        build_listing(2),
    ])
    controller = make_controller(source)
    await controller.start()

    controller.update_filters(urgency=Urgency.WEEK)
    await controller.drain()

    assert visible_ids(controller) == ["gig-0"]
    await controller.close()


@pytest.mark.asyncio
async def test_nearby_only_keeps_listings_within_radius(make_controller):
    source = FakeListingSource([
        build_listing(0, coordinates=CAPE_TOWN),
        build_listing(1, coordinates=JOHANNESBURG),
    ])
    controller = make_controller(source, location=StaticLocationProvider(JOHANNESBURG))
    await controller.start()
    assert len(controller.view.listings) == 2

    controller.set_radius(10)
    controller.set_nearby_only(True)
    await controller.drain()

    view = controller.view
    assert view.location_available
    assert visible_ids(controller) == ["gig-1"]
    assert view.listings[0].distance_km == 0.0
    assert view.active_filters[-1].label == "Within 10km"
    await controller.close()


@pytest.mark.asyncio
async def test_nearby_without_location_skips_radius(make_controller):
    source = FakeListingSource([
        build_listing(0, coordinates=CAPE_TOWN),
        build_listing(1, coordinates=JOHANNESBURG),
    ])
    location = StaticLocationProvider(JOHANNESBURG, permission=PermissionState.DENIED)
    controller = make_controller(source, location=location)
    await controller.start()

    controller.set_nearby_only(True)
    await controller.drain()

    assert not controller.view.location_available
    assert len(controller.view.listings) == 2
    await controller.close()


@pytest.mark.asyncio
async def test_set_radius_rejects_non_positive(make_controller):
    controller = make_controller(FakeListingSource())
    with pytest.raises(ValueError):
        controller.set_radius(0)
    await controller.close()


@pytest.mark.asyncio
async def test_presets(make_controller, listings):
    controller = make_controller(FakeListingSource(listings))
    await controller.start()

    controller.apply_preset("high-value")
    controller.apply_preset("best-chance")
    await controller.drain()

    assert controller.state.criteria.budget_min == 5000
    assert controller.state.sort_option is SortOption.LEAST_APPLICATIONS

    with pytest.raises(ValueError):
        controller.apply_preset("no-such-preset")
    await controller.close()


@pytest.mark.asyncio
async def test_remove_and_clear_filters(make_controller, listings):
    controller = make_controller(FakeListingSource(listings))
    await controller.start()

    controller.update_filters(budget_min=5000, skills=["React", "Figma"])
    controller.remove_filter("skills", "React")
    await controller.drain()
    assert controller.state.criteria.skills == ["Figma"]

    controller.clear_filters()
    await controller.drain()
    assert controller.view.active_filters == []
    assert controller.view.result_count == 5
    await controller.close()


@pytest.mark.asyncio
async def test_listeners_receive_every_published_view(make_controller, listings):
    controller = make_controller(FakeListingSource(listings))
    seen = []
    controller.add_listener(lambda view: seen.append(view.is_loading))

    await controller.start()

    assert seen[0] is True
    assert seen[-1] is False
    await controller.close()


@pytest.mark.asyncio
async def test_location_failure_degrades_to_no_reference(make_controller, listings):
    location = MagicMock()
    location.permission = PermissionState.GRANTED
    location.current_coordinate = AsyncMock(side_effect=RuntimeError("GPS timeout"))
    controller = make_controller(FakeListingSource(listings), location=location)

    view = await controller.start()

    location.current_coordinate.assert_awaited_once()
    assert not view.location_available
    assert view.result_count == 5
    await controller.close()


@pytest.mark.asyncio
async def test_location_is_not_read_without_permission(make_controller, listings):
    location = MagicMock()
    location.permission = PermissionState.PENDING
    location.current_coordinate = AsyncMock(return_value=JOHANNESBURG)
    controller = make_controller(FakeListingSource(listings), location=location)

    view = await controller.start()

    location.current_coordinate.assert_not_awaited()
    assert not view.location_available
    await controller.close()


@pytest.mark.asyncio
async def test_unknown_category_is_rejected(make_controller):
    source = FakeListingSource()
    controller = make_controller(source)

    with pytest.raises(ValueError):
        controller.set_category("Astrology")
    await controller.drain()

    assert controller.state.criteria.category == ""
    assert source.search_calls == []
    await controller.close()


@pytest.mark.asyncio
async def test_validate_filters_leaves_state_untouched(make_controller):
    controller = make_controller(FakeListingSource())

    criteria = controller.validate_filters(budget_min=100, budget_max=500)
    assert criteria.budget_max == 500
    assert controller.state.criteria.budget_min is None

    with pytest.raises(ValueError):
        controller.validate_filters(budget_min=900, budget_max=500)
    await controller.close()
