"""
Tests for waitlist position assignment, leave/renumber and repair.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from rsvp_engine.core.exceptions import (
    AttendeeNotFoundError,
    CapacityExceededError,
    EventNotFoundError,
    InvalidStatusTransitionError,
)
from rsvp_engine.infrastructure import InMemoryAttendeeStore
from rsvp_engine.services.records import (
    Attendee,
    EventCapacityConfig,
    MembershipTier,
    RSVPStatus,
    utcnow,
)
from rsvp_engine.services.waitlist_ledger import WaitlistLedger

EVENT_ID = "evt-ledger"


@pytest_asyncio.fixture
async def ledger(store: InMemoryAttendeeStore) -> WaitlistLedger:
    await store.register_event(EventCapacityConfig(event_id=EVENT_ID, capacity=1, waitlist_enabled=True))
    return WaitlistLedger(store, max_attempts=2, max_backoff_ms=5)


async def positions_by_user(store, event_id=EVENT_ID) -> dict:
    return {
        a.user_id: a.waitlist_position
        for a in await store.list_attendees(event_id)
        if a.rsvp_status == RSVPStatus.WAITLISTED
    }


def assert_gap_free(positions: dict):
    assert sorted(positions.values()) == list(range(1, len(positions) + 1))


@pytest.mark.asyncio
async def test_first_join_takes_position_one(ledger, store):
    """First entry on an empty waitlist is #1 with a join timestamp."""
    attendee = await ledger.join(EVENT_ID, "alice", MembershipTier.FREE)

    assert attendee.rsvp_status == RSVPStatus.WAITLISTED
    assert attendee.waitlist_position == 1
    assert attendee.waitlist_joined_at is not None
    assert attendee.status_history[-1].status == RSVPStatus.WAITLISTED
    assert await positions_by_user(store) == {"alice": 1}


@pytest.mark.asyncio
async def test_free_members_queue_in_arrival_order(ledger, store):
    for user in ("a", "b", "c"):
        await ledger.join(EVENT_ID, user, MembershipTier.FREE)

    assert await positions_by_user(store) == {"a": 1, "b": 2, "c": 3}


@pytest.mark.asyncio
async def test_rejoin_is_idempotent(ledger, store):
    """Joining again keeps the position and the original join time, and writes nothing."""
    first = await ledger.join(EVENT_ID, "alice", MembershipTier.FREE)
    await ledger.join(EVENT_ID, "bob", MembershipTier.FREE)
    version = store._events[EVENT_ID].version

    again = await ledger.join(EVENT_ID, "alice", MembershipTier.FREE)

    assert again.waitlist_position == 1
    assert again.waitlist_joined_at == first.waitlist_joined_at
    assert store._events[EVENT_ID].version == version


@pytest.mark.asyncio
async def test_vip_jumps_to_front_and_others_shift(ledger, store):
    for user in ("a", "b", "c"):
        await ledger.join(EVENT_ID, user, MembershipTier.FREE)

    vip = await ledger.join(EVENT_ID, "vip", MembershipTier.VIP)

    assert vip.waitlist_position == 1
    assert await positions_by_user(store) == {"vip": 1, "a": 2, "b": 3, "c": 4}


@pytest.mark.asyncio
async def test_premium_lands_at_thirty_percent(ledger, store):
    """Raw position 11 -> floor(11 * 0.3) = 3; entries from #3 back move down one."""
    for i in range(10):
        await ledger.join(EVENT_ID, f"u{i}", MembershipTier.FREE)

    premium = await ledger.join(EVENT_ID, "premium", MembershipTier.PREMIUM)

    positions = await positions_by_user(store)
    assert premium.waitlist_position == 3
    assert positions["u0"] == 1
    assert positions["u1"] == 2
    assert positions["u2"] == 4
    assert positions["u9"] == 11
    assert_gap_free(positions)


@pytest.mark.asyncio
async def test_basic_member_on_short_queue(ledger, store):
    """Raw 2 -> max(1, floor(1.4)) = 1."""
    await ledger.join(EVENT_ID, "a", MembershipTier.FREE)
    basic = await ledger.join(EVENT_ID, "basic", MembershipTier.BASIC)

    assert basic.waitlist_position == 1
    assert await positions_by_user(store) == {"basic": 1, "a": 2}


@pytest.mark.asyncio
async def test_join_rejected_when_waitlist_disabled(store):
    await store.register_event(EventCapacityConfig(event_id="evt-off", capacity=1, waitlist_enabled=False))
    ledger = WaitlistLedger(store, max_attempts=2, max_backoff_ms=5)

    with pytest.raises(CapacityExceededError) as exc_info:
        await ledger.join("evt-off", "alice", MembershipTier.FREE)

    assert exc_info.value.reason == "waitlist_disabled"
    assert await store.list_attendees("evt-off") == []


@pytest.mark.asyncio
async def test_join_rejected_when_waitlist_full(store):
    await store.register_event(
        EventCapacityConfig(event_id="evt-capped", capacity=1, waitlist_enabled=True, waitlist_limit=2)
    )
    ledger = WaitlistLedger(store, max_attempts=2, max_backoff_ms=5)
    await ledger.join("evt-capped", "a", MembershipTier.FREE)
    await ledger.join("evt-capped", "b", MembershipTier.FREE)

    with pytest.raises(CapacityExceededError) as exc_info:
        await ledger.join("evt-capped", "c", MembershipTier.VIP)

    assert exc_info.value.reason == "waitlist_full"
    assert exc_info.value.to_dict()["code"] == "capacity_exceeded"


@pytest.mark.asyncio
async def test_going_attendee_cannot_join(ledger, store):
    going = Attendee(event_id=EVENT_ID, user_id="alice", rsvp_status=RSVPStatus.GOING)
    store._events[EVENT_ID].attendees[going.attendee_id] = going

    with pytest.raises(InvalidStatusTransitionError):
        await ledger.join(EVENT_ID, "alice", MembershipTier.FREE)


@pytest.mark.asyncio
async def test_leave_renumbers_remaining(ledger, store):
    for user in ("a", "b", "c"):
        await ledger.join(EVENT_ID, user, MembershipTier.FREE)

    left = await ledger.leave(EVENT_ID, "b")

    assert left.rsvp_status == RSVPStatus.NOT_GOING
    assert left.waitlist_position is None
    assert await positions_by_user(store) == {"a": 1, "c": 2}


@pytest.mark.asyncio
async def test_join_then_leave_restores_positions(ledger, store):
    for user in ("a", "b", "c"):
        await ledger.join(EVENT_ID, user, MembershipTier.FREE)
    before = await positions_by_user(store)

    await ledger.join(EVENT_ID, "d", MembershipTier.PREMIUM)
    await ledger.leave(EVENT_ID, "d")

    assert await positions_by_user(store) == before


@pytest.mark.asyncio
async def test_rejoin_keeps_original_join_time(ledger, store):
    first = await ledger.join(EVENT_ID, "alice", MembershipTier.FREE)
    await ledger.leave(EVENT_ID, "alice")

    again = await ledger.join(EVENT_ID, "alice", MembershipTier.FREE)

    assert again.attendee_id == first.attendee_id
    assert again.waitlist_joined_at == first.waitlist_joined_at


@pytest.mark.asyncio
async def test_leave_unknown_user(ledger):
    with pytest.raises(AttendeeNotFoundError):
        await ledger.leave(EVENT_ID, "nobody")


@pytest.mark.asyncio
async def test_leave_when_not_waitlisted_is_noop(ledger, store):
    going = Attendee(event_id=EVENT_ID, user_id="alice", rsvp_status=RSVPStatus.GOING)
    store._events[EVENT_ID].attendees[going.attendee_id] = going
    version = store._events[EVENT_ID].version

    result = await ledger.leave(EVENT_ID, "alice")

    assert result.rsvp_status == RSVPStatus.GOING
    assert store._events[EVENT_ID].version == version


@pytest.mark.asyncio
async def test_recalculate_repairs_duplicates_and_gaps(ledger, store):
    for user in ("a", "b", "c"):
        await ledger.join(EVENT_ID, user, MembershipTier.FREE)

    # Corrupt positions out-of-band: a duplicate and a gap
    base = utcnow()
    rows = {a.user_id: a for a in store._events[EVENT_ID].attendees.values()}
    for offset, (user, position) in enumerate([("a", 2), ("b", 2), ("c", 7)]):
        rows[user].waitlist_position = position
        rows[user].waitlist_joined_at = base + timedelta(seconds=offset)

    count = await ledger.recalculate(EVENT_ID)

    assert count == 3
    assert await positions_by_user(store) == {"a": 1, "b": 2, "c": 3}


@pytest.mark.asyncio
async def test_recalculate_is_idempotent(ledger, store):
    for user in ("a", "b"):
        await ledger.join(EVENT_ID, user, MembershipTier.FREE)
    await ledger.recalculate(EVENT_ID)
    version = store._events[EVENT_ID].version
    positions = await positions_by_user(store)

    assert await ledger.recalculate(EVENT_ID) == 2
    assert await positions_by_user(store) == positions
    assert store._events[EVENT_ID].version == version


@pytest.mark.asyncio
async def test_recalculate_empty_waitlist(ledger):
    assert await ledger.recalculate(EVENT_ID) == 0


@pytest.mark.asyncio
async def test_position_of(ledger):
    await ledger.join(EVENT_ID, "a", MembershipTier.FREE)
    await ledger.join(EVENT_ID, "b", MembershipTier.FREE)

    assert await ledger.position_of(EVENT_ID, "b") == 2
    assert await ledger.position_of(EVENT_ID, "nobody") is None


@pytest.mark.asyncio
async def test_unknown_event(ledger):
    with pytest.raises(EventNotFoundError):
        await ledger.join("missing", "alice", MembershipTier.FREE)
