"""
Concurrency tests for the optimistic transaction path.

The in-memory store is given a small latency after each snapshot so that
concurrent coroutines interleave between read and commit, the same way
requests do against PostgreSQL.
"""

import asyncio

import pytest

from rsvp_engine.core.exceptions import CapacityExceededError, WaitlistTransactionConflictError
from rsvp_engine.infrastructure import InMemoryAttendeeStore, StaticMembershipDirectory
from rsvp_engine.services.records import EventCapacityConfig, RSVPStatus
from rsvp_engine.services.rsvp_service import RsvpService


def make_service(store: InMemoryAttendeeStore) -> RsvpService:
    return RsvpService(store, StaticMembershipDirectory(), max_attempts=2, max_backoff_ms=5)


async def resubmit_on_conflict(fn, *args):
    """What a client does with a retryable error: send the request again."""
    for _ in range(50):
        try:
            return await fn(*args)
        except WaitlistTransactionConflictError:
            await asyncio.sleep(0)
    raise AssertionError("request never settled")


@pytest.mark.asyncio
async def test_concurrent_waitlist_joins_get_distinct_positions():
    """Five simultaneous joins end up at exactly positions 1..5."""
    store = InMemoryAttendeeStore(latency=0.01)
    service = make_service(store)
    await store.register_event(EventCapacityConfig(event_id="evt-busy", capacity=1, waitlist_enabled=True))
    await service.request_status("evt-busy", "holder", "going")

    users = [f"u{i}" for i in range(5)]
    await asyncio.gather(*(resubmit_on_conflict(service.join_waitlist, "evt-busy", u) for u in users))

    queue = [a for a in await store.list_attendees("evt-busy") if a.rsvp_status == RSVPStatus.WAITLISTED]
    assert sorted(a.waitlist_position for a in queue) == [1, 2, 3, 4, 5]
    assert {a.user_id for a in queue} == set(users)


@pytest.mark.asyncio
async def test_concurrent_going_requests_never_overbook():
    store = InMemoryAttendeeStore(latency=0.01)
    service = make_service(store)
    await store.register_event(EventCapacityConfig(event_id="evt-rush", capacity=3, waitlist_enabled=False))

    async def request(user):
        try:
            return await resubmit_on_conflict(service.request_status, "evt-rush", user, "going")
        except CapacityExceededError as e:
            return e

    results = await asyncio.gather(*(request(f"u{i}") for i in range(10)))

    admitted = [r for r in results if not isinstance(r, CapacityExceededError)]
    rejected = [r for r in results if isinstance(r, CapacityExceededError)]
    assert len(admitted) == 3
    assert len(rejected) == 7
    going = [a for a in await store.list_attendees("evt-rush") if a.rsvp_status == RSVPStatus.GOING]
    assert len(going) == 3


@pytest.mark.asyncio
async def test_concurrent_requests_with_waitlist_stay_consistent():
    store = InMemoryAttendeeStore(latency=0.005)
    service = make_service(store)
    await store.register_event(EventCapacityConfig(event_id="evt-mixed", capacity=2, waitlist_enabled=True))

    await asyncio.gather(
        *(resubmit_on_conflict(service.request_status, "evt-mixed", f"u{i}", "going") for i in range(6))
    )

    attendees = await store.list_attendees("evt-mixed")
    going = [a for a in attendees if a.rsvp_status == RSVPStatus.GOING]
    queue = sorted(a.waitlist_position for a in attendees if a.rsvp_status == RSVPStatus.WAITLISTED)
    assert len(going) == 2
    assert queue == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_events_do_not_conflict_with_each_other():
    store = InMemoryAttendeeStore(latency=0.01)
    service = RsvpService(store, StaticMembershipDirectory(), max_attempts=1, max_backoff_ms=0)
    for eid in ("evt-1", "evt-2", "evt-3"):
        await store.register_event(EventCapacityConfig(event_id=eid, capacity=5))

    # One writer per event: with no retries allowed, any cross-event conflict would surface
    results = await asyncio.gather(
        *(service.request_status(eid, "alice", "going") for eid in ("evt-1", "evt-2", "evt-3"))
    )

    assert [r.status for r in results] == [RSVPStatus.GOING] * 3
