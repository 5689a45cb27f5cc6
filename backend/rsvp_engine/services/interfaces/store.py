"""
Attendee store interface.

The engine never talks to a database directly. Every mutating operation
opens one transaction scoped to a single event's attendee set, edits the
records it was handed, and lets the store commit them atomically.

Stores implement optimistic concurrency: each event carries a version that
is read when the transaction begins and compared-and-bumped at commit. If
another writer committed in between, the commit fails with
TransactionConflict and nothing is written.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from rsvp_engine.core.logging import get_logger
from rsvp_engine.services.records import (
    Attendee,
    AttendeeType,
    EventCapacityConfig,
    RSVPStatus,
)

logger = get_logger(__name__)

# hook(event_id, written_attendees, deleted_attendee_ids)
CommitHook = Callable[[str, list[Attendee], list[str]], Awaitable[None]]


class TransactionConflict(Exception):
    """The event's version moved between begin and commit."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Concurrent modification of event {event_id}")


class EventTransaction:
    """
    Working copy of one event's attendee set.

    Services read and mutate the records returned here and call ``put`` /
    ``delete`` to stage writes. Nothing is visible to other transactions
    until the store commits.
    """

    def __init__(self, config: EventCapacityConfig, version: int, attendees: list[Attendee]):
        self.config = config
        self.version = version
        self._attendees: dict[str, Attendee] = {a.attendee_id: a for a in attendees}
        self._written: dict[str, Attendee] = {}
        self._deleted: set[str] = set()

    @property
    def event_id(self) -> str:
        return self.config.event_id

    # Reads

    def attendees(self) -> list[Attendee]:
        return list(self._attendees.values())

    def get(self, attendee_id: str) -> Optional[Attendee]:
        return self._attendees.get(attendee_id)

    def primary_for(self, user_id: str) -> Optional[Attendee]:
        for attendee in self._attendees.values():
            if attendee.user_id == user_id and attendee.attendee_type == AttendeeType.PRIMARY:
                return attendee
        return None

    def dependents_of(self, user_id: str) -> list[Attendee]:
        dependents = [
            a for a in self._attendees.values()
            if a.user_id == user_id and a.attendee_type == AttendeeType.DEPENDENT
        ]
        return sorted(dependents, key=lambda a: (a.created_at, a.attendee_id))

    def waitlisted(self) -> list[Attendee]:
        """Waitlisted attendees in position order; entries missing a position sort last."""
        queue = [a for a in self._attendees.values() if a.rsvp_status == RSVPStatus.WAITLISTED]
        return sorted(
            queue,
            key=lambda a: (
                a.waitlist_position is None,
                a.waitlist_position or 0,
                a.waitlist_joined_at or a.created_at,
                a.attendee_id,
            ),
        )

    def going_primary_count(self) -> int:
        return sum(
            1 for a in self._attendees.values()
            if a.rsvp_status == RSVPStatus.GOING and a.attendee_type == AttendeeType.PRIMARY
        )

    # Writes

    def put(self, attendee: Attendee) -> None:
        self._attendees[attendee.attendee_id] = attendee
        self._written[attendee.attendee_id] = attendee
        self._deleted.discard(attendee.attendee_id)

    def delete(self, attendee_id: str) -> None:
        self._attendees.pop(attendee_id, None)
        self._written.pop(attendee_id, None)
        self._deleted.add(attendee_id)

    @property
    def written(self) -> list[Attendee]:
        return list(self._written.values())

    @property
    def deleted(self) -> list[str]:
        return sorted(self._deleted)

    @property
    def has_changes(self) -> bool:
        return bool(self._written or self._deleted)


class AttendeeStore(ABC):
    """
    Interface for attendee persistence.

    Implementations:
    - SqlAttendeeStore: PostgreSQL via SQLAlchemy, version column on events
    - InMemoryAttendeeStore: single-process store for tests and local runs
    """

    def __init__(self) -> None:
        self._commit_hooks: list[CommitHook] = []

    def add_commit_hook(self, hook: CommitHook) -> None:
        """Register a coroutine called after every committed write."""
        self._commit_hooks.append(hook)

    @asynccontextmanager
    async def transaction(self, event_id: str) -> AsyncIterator[EventTransaction]:
        """
        Run one all-or-nothing transaction over an event's attendees.

        Raises:
            EventNotFoundError: the event has no capacity config
            TransactionConflict: another writer committed first
        """
        txn = await self._begin(event_id)
        try:
            yield txn
        except BaseException:
            await self._abort(txn)
            raise

        if not txn.has_changes:
            await self._abort(txn)
            return

        await self._commit(txn)
        await self._run_commit_hooks(txn)

    async def _run_commit_hooks(self, txn: EventTransaction) -> None:
        for hook in self._commit_hooks:
            try:
                await hook(txn.event_id, txn.written, txn.deleted)
            except Exception:
                # The write is already durable; a failing hook must not report it as failed
                logger.exception("commit_hook_failed", event_id=txn.event_id, hook=getattr(hook, "__name__", repr(hook)))

    @abstractmethod
    async def _begin(self, event_id: str) -> EventTransaction:
        """Snapshot the event's config, version and attendees."""
        pass

    @abstractmethod
    async def _commit(self, txn: EventTransaction) -> None:
        """Compare-and-bump the version, then persist staged writes."""
        pass

    @abstractmethod
    async def _abort(self, txn: EventTransaction) -> None:
        """Discard the transaction."""
        pass

    @abstractmethod
    async def get_event_config(self, event_id: str) -> EventCapacityConfig:
        """Capacity config for an event. Raises EventNotFoundError."""
        pass

    @abstractmethod
    async def register_event(self, config: EventCapacityConfig) -> EventCapacityConfig:
        """
        Create or update an event's capacity config (sync from the events service).
        Updating bumps the version so in-flight transactions re-read capacity.
        """
        pass

    @abstractmethod
    async def delete_event(self, event_id: str) -> int:
        """Delete an event and all of its attendees. Returns attendees removed."""
        pass

    @abstractmethod
    async def list_attendees(self, event_id: str) -> list[Attendee]:
        """Non-transactional read for display. May be stale."""
        pass

    async def close(self) -> None:
        """Release connections. No-op by default."""
        pass
