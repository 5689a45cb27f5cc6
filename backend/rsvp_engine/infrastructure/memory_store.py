"""
In-process attendee store.

Keeps every event in a dict and hands transactions deep copies, so it has
the same isolation and conflict behaviour as the SQL store: a commit whose
snapshot version is stale raises TransactionConflict and writes nothing.

Use when:
- Running the test suite
- Local development without PostgreSQL
"""

import asyncio
import copy
from dataclasses import dataclass, field

from rsvp_engine.core.exceptions import EventNotFoundError
from rsvp_engine.services.interfaces.store import (
    AttendeeStore,
    EventTransaction,
    TransactionConflict,
)
from rsvp_engine.services.records import Attendee, EventCapacityConfig


@dataclass
class _EventState:
    config: EventCapacityConfig
    version: int = 1
    attendees: dict[str, Attendee] = field(default_factory=dict)


class InMemoryAttendeeStore(AttendeeStore):

    def __init__(self, latency: float = 0.0):
        """
        Args:
            latency: seconds to yield after taking a snapshot, so concurrent
                transactions interleave the way they do against a network store
        """
        super().__init__()
        self._events: dict[str, _EventState] = {}
        self._latency = latency

    def _state(self, event_id: str) -> _EventState:
        state = self._events.get(event_id)
        if state is None:
            raise EventNotFoundError(f"Event {event_id} not found", event_id=event_id)
        return state

    async def _begin(self, event_id: str) -> EventTransaction:
        state = self._state(event_id)
        txn = EventTransaction(
            config=copy.deepcopy(state.config),
            version=state.version,
            attendees=[copy.deepcopy(a) for a in state.attendees.values()],
        )
        await asyncio.sleep(self._latency)
        return txn

    async def _commit(self, txn: EventTransaction) -> None:
        # No awaits below: check-and-apply runs as one step on the event loop
        state = self._state(txn.event_id)
        if state.version != txn.version:
            raise TransactionConflict(txn.event_id)

        for attendee_id in txn.deleted:
            state.attendees.pop(attendee_id, None)
        for attendee in txn.written:
            state.attendees[attendee.attendee_id] = copy.deepcopy(attendee)
        state.version += 1

    async def _abort(self, txn: EventTransaction) -> None:
        pass

    async def get_event_config(self, event_id: str) -> EventCapacityConfig:
        return copy.deepcopy(self._state(event_id).config)

    async def register_event(self, config: EventCapacityConfig) -> EventCapacityConfig:
        state = self._events.get(config.event_id)
        if state is None:
            self._events[config.event_id] = _EventState(config=copy.deepcopy(config))
        else:
            state.config = copy.deepcopy(config)
            state.version += 1
        return copy.deepcopy(config)

    async def delete_event(self, event_id: str) -> int:
        state = self._events.pop(event_id, None)
        if state is None:
            raise EventNotFoundError(f"Event {event_id} not found", event_id=event_id)
        return len(state.attendees)

    async def list_attendees(self, event_id: str) -> list[Attendee]:
        state = self._state(event_id)
        return [copy.deepcopy(a) for a in state.attendees.values()]
