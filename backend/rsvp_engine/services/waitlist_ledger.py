"""
Waitlist ledger.

Owns one invariant: for every event, the positions held by waitlisted
attendees are exactly 1..M with no gaps and no duplicates, where M is the
number of waitlisted attendees.

HOW POSITIONS ARE ASSIGNED
==========================

Join:
  1. Read the waitlisted attendees inside the transaction and collect the
     occupied positions
  2. raw = smallest positive integer not occupied (M + 1 on a healthy queue)
  3. adjusted = priority.adjust(tier, raw), clamped into [1, raw]
  4. If adjusted is occupied, every entry at or behind it moves back one
     slot and the newcomer takes adjusted. With no collision the newcomer
     simply takes it.
  5. waitlist_joined_at is kept from an earlier stay on the list, else now

Leave:
  The departing attendee's position is cleared and the remaining entries
  are renumbered 1..M by waitlist_joined_at ascending. Arrival order wins
  over whatever numeric slot an entry happened to hold.

Recalculate:
  The same renumbering as leave, run on its own as an admin repair for
  duplicate or missing positions. Idempotent.

There is no stored counter: positions are always derived from the rows in
the current snapshot, so nothing needs compacting. Concurrent joins on the
same event are serialized by the store's version check; the loser re-reads
and computes again from the winner's committed queue.
"""

from typing import Optional

from rsvp_engine.core.exceptions import (
    AttendeeNotFoundError,
    CapacityExceededError,
    InvalidStatusTransitionError,
)
from rsvp_engine.core.logging import get_logger
from rsvp_engine.core.metrics import record_waitlist_operation
from rsvp_engine.services import priority
from rsvp_engine.services.interfaces.store import AttendeeStore, EventTransaction
from rsvp_engine.services.records import (
    Attendee,
    MembershipTier,
    RSVPStatus,
    utcnow,
)
from rsvp_engine.services.retry import with_optimistic_retry

logger = get_logger(__name__)


class WaitlistLedger:

    def __init__(
        self,
        store: AttendeeStore,
        max_attempts: Optional[int] = None,
        max_backoff_ms: Optional[int] = None,
    ):
        self.store = store
        self.max_attempts = max_attempts
        self.max_backoff_ms = max_backoff_ms

    async def _retry(self, fn, operation: str):
        return await with_optimistic_retry(
            fn,
            max_attempts=self.max_attempts,
            max_backoff_ms=self.max_backoff_ms,
            operation=operation,
        )

    # In-transaction primitives. Callers own the transaction.

    def ensure_accepting(self, txn: EventTransaction) -> None:
        """Raise CapacityExceededError unless the event's waitlist can take one more entry."""
        config = txn.config
        queue_length = len(txn.waitlisted())
        if not config.waitlist_enabled:
            reason = "waitlist_disabled"
        elif config.waitlist_limit is not None and queue_length >= config.waitlist_limit:
            reason = "waitlist_full"
        else:
            return

        logger.info(
            "waitlist_rejected",
            event_id=txn.event_id,
            reason=reason,
            waitlisted=queue_length,
            waitlist_limit=config.waitlist_limit,
        )
        raise CapacityExceededError(
            event_id=txn.event_id,
            going_count=txn.going_primary_count(),
            capacity=config.capacity,
            waitlist_enabled=config.waitlist_enabled,
            reason=reason,
        )

    def place(
        self,
        txn: EventTransaction,
        attendee: Attendee,
        tier: MembershipTier,
        changed_by: str,
    ) -> int:
        """Put `attendee` on the waitlist and return its position. No-op if already there."""
        if attendee.rsvp_status == RSVPStatus.WAITLISTED and attendee.waitlist_position is not None:
            return attendee.waitlist_position

        queue = [a for a in txn.waitlisted() if a.attendee_id != attendee.attendee_id]
        occupied = {a.waitlist_position for a in queue if a.waitlist_position is not None}

        raw = 1
        while raw in occupied:
            raw += 1

        adjusted = min(raw, max(1, priority.adjust(tier, raw)))

        shifted = 0
        if adjusted in occupied:
            for entry in queue:
                if entry.waitlist_position is not None and entry.waitlist_position >= adjusted:
                    entry.waitlist_position += 1
                    entry.updated_at = utcnow()
                    txn.put(entry)
                    shifted += 1

        now = utcnow()
        attendee.waitlist_position = adjusted
        if attendee.waitlist_joined_at is None:
            attendee.waitlist_joined_at = now
        attendee.set_status(RSVPStatus.WAITLISTED, changed_by, at=now)
        txn.put(attendee)

        logger.info(
            "waitlist_placed",
            event_id=txn.event_id,
            attendee_id=attendee.attendee_id,
            tier=tier.value,
            raw_position=raw,
            position=adjusted,
            shifted=shifted,
        )
        return adjusted

    def release(
        self,
        txn: EventTransaction,
        attendee: Attendee,
        new_status: RSVPStatus,
        changed_by: str,
    ) -> Optional[int]:
        """Take `attendee` off the waitlist with `new_status` and close the gap. Returns the old position."""
        old_position = attendee.waitlist_position
        attendee.waitlist_position = None
        attendee.set_status(new_status, changed_by)
        txn.put(attendee)
        self.renumber(txn)
        return old_position

    def renumber(self, txn: EventTransaction) -> int:
        """
        Reassign 1..M in waitlist_joined_at order.

        Also clears positions left on rows that are no longer waitlisted.
        Only rows whose position actually changes are written.

        Returns:
            Number of waitlisted attendees (M)
        """
        for attendee in txn.attendees():
            if attendee.rsvp_status != RSVPStatus.WAITLISTED and attendee.waitlist_position is not None:
                attendee.waitlist_position = None
                txn.put(attendee)

        queue = [a for a in txn.attendees() if a.rsvp_status == RSVPStatus.WAITLISTED]
        queue.sort(key=lambda a: (a.waitlist_joined_at or a.created_at, a.waitlist_position or 0, a.attendee_id))

        for position, attendee in enumerate(queue, start=1):
            if attendee.waitlist_position != position:
                attendee.waitlist_position = position
                attendee.updated_at = utcnow()
                txn.put(attendee)

        return len(queue)

    # Atomic operations. Each runs in its own transaction with one retry.

    async def join(self, event_id: str, user_id: str, tier: MembershipTier) -> Attendee:
        """
        Put a user's primary attendee on the waitlist.

        Creates the attendee on first action. Joining again while already
        waitlisted returns the current entry unchanged.

        Raises:
            CapacityExceededError: waitlist disabled or full
            InvalidStatusTransitionError: the attendee is already going
            WaitlistTransactionConflictError: lost the race twice
        """

        async def attempt() -> Attendee:
            async with self.store.transaction(event_id) as txn:
                attendee = txn.primary_for(user_id)
                if attendee is None:
                    attendee = Attendee(event_id=event_id, user_id=user_id)

                if attendee.rsvp_status == RSVPStatus.WAITLISTED:
                    return attendee
                if attendee.rsvp_status == RSVPStatus.GOING:
                    raise InvalidStatusTransitionError(
                        "Already going; cancel before joining the waitlist.",
                        event_id=event_id,
                        attendee_id=attendee.attendee_id,
                    )

                self.ensure_accepting(txn)
                self.place(txn, attendee, tier, changed_by=user_id)
                return attendee

        attendee = await self._retry(attempt, "waitlist_join")
        record_waitlist_operation("join")
        logger.info(
            "waitlist_joined",
            event_id=event_id,
            user_id=user_id,
            attendee_id=attendee.attendee_id,
            position=attendee.waitlist_position,
        )
        return attendee

    async def leave(
        self,
        event_id: str,
        user_id: str,
        new_status: RSVPStatus = RSVPStatus.NOT_GOING,
        changed_by: Optional[str] = None,
    ) -> Attendee:
        """
        Take a user's primary attendee off the waitlist and renumber the rest.

        Leaving when not waitlisted is a no-op.

        Raises:
            AttendeeNotFoundError: the user has no attendee for this event
            WaitlistTransactionConflictError: lost the race twice
        """

        async def attempt() -> tuple[Attendee, Optional[int]]:
            async with self.store.transaction(event_id) as txn:
                attendee = txn.primary_for(user_id)
                if attendee is None:
                    raise AttendeeNotFoundError(
                        f"No RSVP for user {user_id} on event {event_id}",
                        event_id=event_id,
                        user_id=user_id,
                    )
                if attendee.rsvp_status != RSVPStatus.WAITLISTED:
                    return attendee, None
                old_position = self.release(txn, attendee, new_status, changed_by or user_id)
                return attendee, old_position

        attendee, old_position = await self._retry(attempt, "waitlist_leave")
        if old_position is not None:
            record_waitlist_operation("leave")
            logger.info(
                "waitlist_left",
                event_id=event_id,
                user_id=user_id,
                attendee_id=attendee.attendee_id,
                old_position=old_position,
                new_status=attendee.rsvp_status.value,
            )
        return attendee

    async def recalculate(self, event_id: str) -> int:
        """Re-derive positions from join order. Returns the number of waitlisted attendees."""

        async def attempt() -> tuple[int, int]:
            async with self.store.transaction(event_id) as txn:
                count = self.renumber(txn)
                return count, len(txn.written)

        count, repaired = await self._retry(attempt, "waitlist_recalculate")
        record_waitlist_operation("recalculate")
        logger.info("waitlist_recalculated", event_id=event_id, count=count, repaired=repaired)
        return count

    async def position_of(self, event_id: str, user_id: str) -> Optional[int]:
        """Current position of a user's primary attendee. Display read, may be stale."""
        for attendee in await self.store.list_attendees(event_id):
            if attendee.user_id == user_id and attendee.is_primary:
                if attendee.rsvp_status == RSVPStatus.WAITLISTED:
                    return attendee.waitlist_position
                return None
        return None
