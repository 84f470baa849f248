"""Event catalogue tests: live reads, cache and demo fallback, featured events."""

import asyncio

import pytest

from community_client.app.core.errors import NetworkError, NotFound, ServerError
from community_client.app.schemas.event import EventFilters

from tests.conftest import PASSWORD


@pytest.mark.asyncio
async def test_list_events_live(client):
    page = await client.events.list_events(EventFilters(limit=2))

    assert page.source == "live"
    assert [event.id for event in page.events] == ["evt-open", "evt-full"]
    assert page.pagination.total == 4
    assert page.pagination.has_next
    # Every listed event is known to the coordinator.
    assert client.registrations.event("evt-full").is_full


@pytest.mark.asyncio
async def test_filters_are_sent_as_query_params(client):
    page = await client.events.list_events(EventFilters(search="  python  "))
    assert [event.id for event in page.events] == ["evt-open"]


def test_filters_render_booleans():
    params = EventFilters(upcoming=True, past=False, category=None).to_params()
    assert params == {"page": "1", "limit": "10", "upcoming": "true", "past": "false"}


@pytest.mark.asyncio
async def test_failed_listing_serves_cached_page(client, backend):
    await client.events.list_events()
    backend.fail_events = True

    page = await client.events.list_events()

    assert page.source == "cache"
    assert len(page.events) == 4
    assert client.events.last_page is page


@pytest.mark.asyncio
async def test_failed_listing_without_cache_serves_demo(client, backend):
    backend.fail_events = True

    page = await client.events.list_events()

    assert page.source == "demo"
    assert page.events
    assert all(not event.registration_open for event in page.events)
    # Demo events are never handed to the coordinator.
    assert client.registrations.event(page.events[0].id) is None


@pytest.mark.asyncio
async def test_failed_listing_can_raise(client, backend):
    backend.fail_events = True
    with pytest.raises(ServerError) as excinfo:
        await client.events.list_events(fallback=False)
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_network_failure_falls_back(client, monkeypatch):
    async def offline(*args, **kwargs):
        raise NetworkError()

    monkeypatch.setattr(client.gateway, "get", offline)

    page = await client.events.list_events()
    assert page.source == "demo"


@pytest.mark.asyncio
async def test_get_event_with_user_registration(client, verified_user):
    await client.auth.login("ada@example.com", PASSWORD)
    await client.events.list_events()
    await client.registrations.register("evt-open")
    client.registrations.reset()

    event, registration = await client.events.get_event("evt-open")

    assert event.current_attendees == 11
    assert registration is not None and registration.event_id == "evt-open"
    assert client.registrations.is_registered("evt-open")


@pytest.mark.asyncio
async def test_get_missing_event(client):
    with pytest.raises(NotFound):
        await client.events.get_event("nope")


@pytest.mark.asyncio
async def test_featured_events_are_best_effort(client, backend):
    featured = await client.events.featured_events()
    assert [event.id for event in featured] == ["evt-open"]

    backend.fail_featured = True
    assert [event.id for event in await client.events.featured_events()] == ["evt-open"]


@pytest.mark.asyncio
async def test_featured_events_failure_without_cache(client, backend):
    backend.fail_featured = True
    assert await client.events.featured_events() == []


@pytest.mark.asyncio
async def test_auto_refresh_updates_last_page(client, backend):
    refresher = client.events.start_auto_refresh(interval=0.01)
    for _ in range(200):
        if refresher.runs >= 2:
            break
        await asyncio.sleep(0.01)

    await client.events.stop_auto_refresh()

    assert refresher.runs >= 2
    assert not refresher.running
    assert client.events.last_page.source == "live"
    assert backend.calls("GET", "/api/events") >= 2
