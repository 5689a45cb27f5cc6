"""
Capacity reads.

Two kinds of read, never to be confused:

- `get_state(txn)` is computed from a transaction's own snapshot. It is the
  only capacity read allowed to gate a commit: if another writer changes
  the going count after we read it, our commit fails on the version check.
- `peek(event_id)` and `counts(event_id)` are display reads taken outside
  any transaction. `peek` is served from Redis when it can be. Both may be
  stale and must never decide an admission.

Only primaries count toward capacity. Dependents are exempt so that a
family is never split by the capacity limit.
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Optional

from rsvp_engine.core.logging import get_logger
from rsvp_engine.services import cache_service
from rsvp_engine.services.interfaces.store import AttendeeStore, EventTransaction
from rsvp_engine.services.records import AttendeeType, RSVPStatus

logger = get_logger(__name__)


@dataclass
class CapacityState:
    capacity: Optional[int]
    going_count: int
    waitlisted_count: int = 0
    waitlist_enabled: bool = False
    waitlist_limit: Optional[int] = None

    @property
    def has_room(self) -> bool:
        return self.capacity is None or self.going_count < self.capacity

    @property
    def available(self) -> Optional[int]:
        if self.capacity is None:
            return None
        return max(0, self.capacity - self.going_count)

    def to_dict(self) -> dict:
        return {**asdict(self), "has_room": self.has_room, "available": self.available}

    @classmethod
    def from_dict(cls, data: dict) -> "CapacityState":
        return cls(
            capacity=data["capacity"],
            going_count=data["going_count"],
            waitlisted_count=data.get("waitlisted_count", 0),
            waitlist_enabled=data.get("waitlist_enabled", False),
            waitlist_limit=data.get("waitlist_limit"),
        )


@dataclass
class AttendeeCounts:
    going: int = 0
    not_going: int = 0
    pending: int = 0
    waitlisted: int = 0
    going_primaries: int = 0
    going_dependents: int = 0
    going_by_age_group: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.going + self.not_going + self.pending + self.waitlisted


class CapacityOracle:

    def __init__(self, store: AttendeeStore):
        self.store = store

    def get_state(self, txn: EventTransaction) -> CapacityState:
        """Capacity as seen by this transaction. Safe to gate a commit on."""
        config = txn.config
        return CapacityState(
            capacity=config.capacity,
            going_count=txn.going_primary_count(),
            waitlisted_count=len(txn.waitlisted()),
            waitlist_enabled=config.waitlist_enabled,
            waitlist_limit=config.waitlist_limit,
        )

    async def peek(self, event_id: str) -> CapacityState:
        """Advisory capacity for display. May be stale."""
        cached = await cache_service.get_cached_capacity(event_id)
        if cached is not None:
            return CapacityState.from_dict(cached)

        config = await self.store.get_event_config(event_id)
        attendees = await self.store.list_attendees(event_id)
        state = CapacityState(
            capacity=config.capacity,
            going_count=sum(
                1 for a in attendees
                if a.rsvp_status == RSVPStatus.GOING and a.attendee_type == AttendeeType.PRIMARY
            ),
            waitlisted_count=sum(1 for a in attendees if a.rsvp_status == RSVPStatus.WAITLISTED),
            waitlist_enabled=config.waitlist_enabled,
            waitlist_limit=config.waitlist_limit,
        )
        await cache_service.set_cached_capacity(event_id, state.to_dict())
        return state

    async def counts(self, event_id: str) -> AttendeeCounts:
        """Tallies by status, attendee type and age group."""
        attendees = await self.store.list_attendees(event_id)
        by_status = Counter(a.rsvp_status for a in attendees)
        going = [a for a in attendees if a.rsvp_status == RSVPStatus.GOING]
        age_groups = Counter(a.age_group.value for a in going if a.age_group is not None)

        return AttendeeCounts(
            going=by_status[RSVPStatus.GOING],
            not_going=by_status[RSVPStatus.NOT_GOING],
            pending=by_status[RSVPStatus.PENDING],
            waitlisted=by_status[RSVPStatus.WAITLISTED],
            going_primaries=sum(1 for a in going if a.is_primary),
            going_dependents=sum(1 for a in going if not a.is_primary),
            going_by_age_group=dict(age_groups),
        )
