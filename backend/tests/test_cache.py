"""
Tests for the advisory capacity cache and store commit hooks.

Redis is replaced with fakeredis; the module-level client is swapped in
directly so get_redis() never tries to connect.
"""

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from rsvp_engine.services import cache_service
from rsvp_engine.services.records import EventCapacityConfig


@pytest_asyncio.fixture
async def fake_redis(monkeypatch):
    client = FakeRedis(decode_responses=True)
    monkeypatch.setattr(cache_service, "_redis_client", client)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.mark.asyncio
async def test_disabled_cache_is_a_noop():
    assert await cache_service.get_redis() is None
    assert await cache_service.get_cached_capacity("evt") is None
    await cache_service.set_cached_capacity("evt", {"capacity": 1})
    assert await cache_service.get_cache_stats() == {"status": "disabled"}


@pytest.mark.asyncio
async def test_peek_populates_cache(fake_redis, service, small_event):
    eid = small_event.event_id
    await service.request_status(eid, "A", "going")

    state = await service.get_capacity(eid)

    assert state.going_count == 1
    assert await fake_redis.exists(f"capacity:{eid}") == 1
    assert 0 < await fake_redis.ttl(f"capacity:{eid}") <= cache_service.settings.REDIS_CACHE_TTL


@pytest.mark.asyncio
async def test_peek_serves_cached_snapshot(fake_redis, service, store, small_event):
    """Display reads may be stale until the key is invalidated."""
    eid = small_event.event_id
    await service.get_capacity(eid)
    store._events[eid].config.capacity = 10

    state = await service.get_capacity(eid)

    assert state.capacity == 2
    assert state.available == 2


@pytest.mark.asyncio
async def test_commit_hook_invalidates(fake_redis, service, store, small_event):
    eid = small_event.event_id
    store.add_commit_hook(cache_service.invalidate_on_commit)
    await service.get_capacity(eid)

    await service.request_status(eid, "A", "going")

    assert await fake_redis.exists(f"capacity:{eid}") == 0
    state = await service.get_capacity(eid)
    assert state.going_count == 1
    assert state.has_room


@pytest.mark.asyncio
async def test_register_event_invalidates(fake_redis, service, small_event):
    eid = small_event.event_id
    await service.get_capacity(eid)

    await service.register_event(EventCapacityConfig(event_id=eid, capacity=5, waitlist_enabled=True))

    state = await service.get_capacity(eid)
    assert state.capacity == 5


@pytest.mark.asyncio
async def test_failing_hook_does_not_fail_the_write(service, store, small_event):
    async def broken_hook(event_id, written, deleted):
        raise RuntimeError("cache down")

    store.add_commit_hook(broken_hook)

    settled = await service.request_status(small_event.event_id, "A", "going")

    assert settled.decision == "admitted"
    going = [a.user_id for a in await store.list_attendees(small_event.event_id)]
    assert going == ["A"]


@pytest.mark.asyncio
async def test_hooks_not_called_for_read_only_transactions(service, store, small_event):
    calls = []

    async def recording_hook(event_id, written, deleted):
        calls.append((event_id, [a.user_id for a in written], deleted))

    store.add_commit_hook(recording_hook)
    await service.request_status(small_event.event_id, "A", "going")
    await service.request_status(small_event.event_id, "A", "going")

    assert calls == [(small_event.event_id, ["A"], [])]

