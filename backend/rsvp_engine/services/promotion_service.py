"""
Waitlist promotion.

Runs synchronously after anything that can free a seat (a going primary
cancels or is withdrawn, capacity is raised, someone leaves the queue).
There is no background poller.

Each promotion is its own transaction:
  1. Re-read capacity from the snapshot; stop if there is no room or the
     queue is empty
  2. Take the entry at the lowest position
  3. Set it going, clear its waitlist fields, stamp promoted_at, and
     renumber the rest of the queue
  4. Commit. The version check fails if a concurrent admission took the
     seat in the meantime; after the one retry the race is considered
     lost, the attendee stays waitlisted and this invocation stops.
     The next seat-freeing event tries again.

The promoted primary's dependents are updated afterwards. That fan-out
runs after the promotion committed, so a conflict there never fails the
caller: the primary is retried once more at the end of the invocation,
and if it still conflicts it is kept as pending and retried at the start
of the next invocation for the same event.

The loop is bounded by the queue length seen at the start, so one
invocation never spins.
"""

from dataclasses import dataclass, field
from typing import Optional

from rsvp_engine.core.exceptions import WaitlistTransactionConflictError
from rsvp_engine.core.logging import get_logger
from rsvp_engine.core.metrics import promotion_races_lost, promotions
from rsvp_engine.services.capacity_oracle import CapacityOracle
from rsvp_engine.services.cascade_service import CascadeEngine
from rsvp_engine.services.interfaces.store import AttendeeStore
from rsvp_engine.services.records import RSVPStatus, utcnow
from rsvp_engine.services.retry import with_optimistic_retry
from rsvp_engine.services.waitlist_ledger import WaitlistLedger

logger = get_logger(__name__)


@dataclass
class PromotedAttendee:
    attendee_id: str
    user_id: str
    promoted_from_position: int
    promotion_number: int


@dataclass
class PromotionResult:
    event_id: str
    promoted: list[PromotedAttendee] = field(default_factory=list)
    stopped_reason: str = "waitlist_empty"  # waitlist_empty, no_room, race_lost
    cascade_pending: list[str] = field(default_factory=list)  # user ids whose dependents lag behind

    @property
    def promotions_count(self) -> int:
        return len(self.promoted)


class PromotionTrigger:

    def __init__(
        self,
        store: AttendeeStore,
        oracle: CapacityOracle,
        ledger: WaitlistLedger,
        cascade: CascadeEngine,
        max_attempts: Optional[int] = None,
        max_backoff_ms: Optional[int] = None,
    ):
        self.store = store
        self.oracle = oracle
        self.ledger = ledger
        self.cascade = cascade
        self.max_attempts = max_attempts
        self.max_backoff_ms = max_backoff_ms
        # event_id -> {user_id: changed_by}
        self._unsynced: dict[str, dict[str, str]] = {}

    async def _promote_head(self, event_id: str, changed_by: str) -> tuple[Optional[PromotedAttendee], str]:
        async with self.store.transaction(event_id) as txn:
            state = self.oracle.get_state(txn)
            queue = txn.waitlisted()
            if not queue:
                return None, "waitlist_empty"
            if not state.has_room:
                return None, "no_room"

            head = queue[0]
            position = head.waitlist_position
            self.ledger.release(txn, head, RSVPStatus.GOING, changed_by)
            head.promoted_at = utcnow()
            txn.put(head)
            return PromotedAttendee(
                attendee_id=head.attendee_id,
                user_id=head.user_id,
                promoted_from_position=position,
                promotion_number=0,
            ), "promoted"

    async def _sync_dependents(self, event_id: str, pending: dict[str, str]) -> dict[str, str]:
        """Fan each primary's status out to its dependents. Returns the ones that still conflicted."""
        failed = {}
        for user_id, changed_by in pending.items():
            try:
                await self.cascade.propagate(event_id, user_id, changed_by)
            except WaitlistTransactionConflictError:
                failed[user_id] = changed_by
        return failed

    async def trigger(self, event_id: str, changed_by: str = "system") -> PromotionResult:
        """Promote from the head of the waitlist while seats are free."""
        result = PromotionResult(event_id=event_id)

        carried = self._unsynced.pop(event_id, {})
        if carried:
            logger.info("cascade_retry_deferred", event_id=event_id, users=sorted(carried))
        unsynced = await self._sync_dependents(event_id, carried)

        candidates = sum(
            1 for a in await self.store.list_attendees(event_id)
            if a.rsvp_status == RSVPStatus.WAITLISTED
        )

        for _ in range(candidates):
            try:
                promoted, outcome = await with_optimistic_retry(
                    lambda: self._promote_head(event_id, changed_by),
                    max_attempts=self.max_attempts,
                    max_backoff_ms=self.max_backoff_ms,
                    operation="promotion",
                )
            except WaitlistTransactionConflictError:
                promotion_races_lost.inc()
                logger.warning("promotion_race_lost", event_id=event_id, promoted=result.promotions_count)
                result.stopped_reason = "race_lost"
                break

            if promoted is None:
                result.stopped_reason = outcome
                break

            promoted.promotion_number = result.promotions_count + 1
            result.promoted.append(promoted)
            promotions.inc()
            logger.info(
                "attendee_promoted",
                event_id=event_id,
                attendee_id=promoted.attendee_id,
                user_id=promoted.user_id,
                from_position=promoted.promoted_from_position,
                promotion_number=promoted.promotion_number,
            )

            unsynced.update(await self._sync_dependents(event_id, {promoted.user_id: changed_by}))

        if unsynced:
            unsynced = await self._sync_dependents(event_id, unsynced)
        if unsynced:
            self._unsynced.setdefault(event_id, {}).update(unsynced)
            result.cascade_pending = sorted(unsynced)
            logger.warning("cascade_deferred", event_id=event_id, users=result.cascade_pending)

        if result.promoted:
            logger.info(
                "promotion_completed",
                event_id=event_id,
                promoted=result.promotions_count,
                stopped_reason=result.stopped_reason,
            )
        return result

    def forget(self, event_id: str) -> None:
        """Drop deferred fan-outs for an event that no longer exists."""
        self._unsynced.pop(event_id, None)
