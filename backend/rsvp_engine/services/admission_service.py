"""
Admission control for RSVP status changes.

Decides, inside one store transaction, what a requested status turns into:

    requested      attendee     outcome
    ---------      --------     -------
    not-going      any          committed; a waitlisted attendee leaves the
                                queue and the rest are renumbered
    pending        new          committed (first RSVP action)
    pending        responded    InvalidStatusTransitionError
    going          primary      room -> going
                                full, waitlist on -> waitlisted
                                full, waitlist off -> CapacityExceededError
    going          dependent    going if the primary is going, no capacity
                                check (PrimaryNotGoingError otherwise)
    waitlisted     any          InvalidStatusTransitionError; the waitlist
                                is reached by asking for going

Capacity is read from the same snapshot the commit is validated against,
so two requests racing for the last seat cannot both be admitted: the
second commit fails its version check, re-reads, and sees no room.

Cascade and promotion are NOT done here; the caller runs them after this
transaction commits.
"""

from dataclasses import dataclass, field
from typing import Optional

from rsvp_engine.core.exceptions import (
    AttendeeNotFoundError,
    CapacityExceededError,
    InvalidStatusTransitionError,
)
from rsvp_engine.core.logging import get_logger
from rsvp_engine.core.metrics import record_admission
from rsvp_engine.services.capacity_oracle import CapacityOracle
from rsvp_engine.services.cascade_service import CascadeEngine
from rsvp_engine.services.interfaces.store import AttendeeStore, EventTransaction
from rsvp_engine.services.records import Attendee, MembershipTier, RSVPStatus
from rsvp_engine.services.retry import with_optimistic_retry
from rsvp_engine.services.waitlist_ledger import WaitlistLedger

logger = get_logger(__name__)

REQUESTABLE_STATUSES = (RSVPStatus.PENDING, RSVPStatus.GOING, RSVPStatus.NOT_GOING)


@dataclass
class AdmissionOutcome:
    attendee: Attendee
    previous_status: Optional[RSVPStatus]
    decision: str  # admitted, waitlisted, updated, unchanged


@dataclass
class WithdrawalOutcome:
    attendee: Attendee
    removed_ids: list[str] = field(default_factory=list)
    freed_seat: bool = False


def parse_requested_status(requested) -> RSVPStatus:
    try:
        status = RSVPStatus(requested)
    except ValueError:
        raise InvalidStatusTransitionError(f"Unknown RSVP status: {requested!r}", requested=str(requested)) from None
    if status not in REQUESTABLE_STATUSES:
        raise InvalidStatusTransitionError(
            "The waitlist cannot be requested directly; request 'going' instead.",
            requested=status.value,
        )
    return status


class AdmissionController:

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

    def _resolve(self, txn: EventTransaction, user_id: str, attendee_id: Optional[str]) -> tuple[Attendee, bool]:
        """Find the attendee the request is about. Primaries are created on first action."""
        if attendee_id is not None:
            attendee = txn.get(attendee_id)
            if attendee is None or attendee.user_id != user_id:
                raise AttendeeNotFoundError(
                    f"Attendee {attendee_id} not found",
                    event_id=txn.event_id,
                    attendee_id=attendee_id,
                )
            return attendee, False

        attendee = txn.primary_for(user_id)
        if attendee is not None:
            return attendee, False
        return Attendee(event_id=txn.event_id, user_id=user_id), True

    def _decide(
        self,
        txn: EventTransaction,
        attendee: Attendee,
        created: bool,
        requested: RSVPStatus,
        tier: MembershipTier,
        user_id: str,
    ) -> str:
        previous = attendee.rsvp_status

        if requested == previous:
            if created:
                attendee.set_status(requested, user_id)
                txn.put(attendee)
            return "unchanged"

        if not attendee.is_primary and requested != RSVPStatus.GOING:
            raise InvalidStatusTransitionError(
                "Family members follow the primary attendee's status; withdraw them instead.",
                event_id=txn.event_id,
                attendee_id=attendee.attendee_id,
                requested=requested.value,
            )

        if requested == RSVPStatus.PENDING:
            raise InvalidStatusTransitionError(
                "An RSVP cannot return to pending once answered.",
                event_id=txn.event_id,
                attendee_id=attendee.attendee_id,
                current=previous.value,
            )

        if requested == RSVPStatus.NOT_GOING:
            if previous == RSVPStatus.WAITLISTED:
                self.ledger.release(txn, attendee, requested, user_id)
            else:
                attendee.set_status(requested, user_id)
                txn.put(attendee)
            return "updated"

        # requested == GOING
        if not attendee.is_primary:
            self.cascade.check_primary_going(txn, user_id)
            attendee.set_status(RSVPStatus.GOING, user_id)
            txn.put(attendee)
            return "admitted"

        if previous == RSVPStatus.WAITLISTED:
            # Already queued; promotion decides when the seat is granted
            return "waitlisted"

        state = self.oracle.get_state(txn)
        if state.has_room:
            attendee.set_status(RSVPStatus.GOING, user_id)
            txn.put(attendee)
            return "admitted"

        if not state.waitlist_enabled:
            raise CapacityExceededError(
                event_id=txn.event_id,
                going_count=state.going_count,
                capacity=state.capacity,
                waitlist_enabled=False,
            )

        self.ledger.ensure_accepting(txn)
        self.ledger.place(txn, attendee, tier, changed_by=user_id)
        return "waitlisted"

    async def request_status(
        self,
        event_id: str,
        user_id: str,
        requested,
        tier: MembershipTier = MembershipTier.FREE,
        attendee_id: Optional[str] = None,
    ) -> AdmissionOutcome:
        """
        Apply a requested status change as one atomic transaction.

        Raises:
            InvalidStatusTransitionError: status not requestable from here
            AttendeeNotFoundError: attendee_id unknown or not the caller's
            CapacityExceededError: event full and no waitlist space
            PrimaryNotGoingError: dependent asked for going without its primary
            WaitlistTransactionConflictError: lost the race twice
        """
        requested = parse_requested_status(requested)

        async def attempt() -> AdmissionOutcome:
            async with self.store.transaction(event_id) as txn:
                attendee, created = self._resolve(txn, user_id, attendee_id)
                previous = None if created else attendee.rsvp_status
                decision = self._decide(txn, attendee, created, requested, tier, user_id)
                return AdmissionOutcome(attendee=attendee, previous_status=previous, decision=decision)

        try:
            outcome = await with_optimistic_retry(
                attempt,
                max_attempts=self.max_attempts,
                max_backoff_ms=self.max_backoff_ms,
                operation="request_status",
            )
        except CapacityExceededError as e:
            record_admission("rejected")
            logger.warning(
                "admission_rejected",
                event_id=event_id,
                user_id=user_id,
                reason=e.reason,
                going_count=e.context.get("going_count"),
                capacity=e.context.get("capacity"),
            )
            raise

        if requested == RSVPStatus.GOING and outcome.decision in ("admitted", "waitlisted"):
            record_admission(outcome.decision)

        logger.info(
            "status_settled",
            event_id=event_id,
            user_id=user_id,
            attendee_id=outcome.attendee.attendee_id,
            requested=requested.value,
            previous=outcome.previous_status.value if outcome.previous_status else None,
            status=outcome.attendee.rsvp_status.value,
            decision=outcome.decision,
            position=outcome.attendee.waitlist_position,
        )
        return outcome

    async def withdraw(self, event_id: str, user_id: str, attendee_id: str) -> WithdrawalOutcome:
        """
        Remove an attendee. Withdrawing a primary also removes its dependents.

        Raises:
            AttendeeNotFoundError: attendee unknown or not the caller's
        """

        async def attempt() -> WithdrawalOutcome:
            async with self.store.transaction(event_id) as txn:
                attendee = txn.get(attendee_id)
                if attendee is None or attendee.user_id != user_id:
                    raise AttendeeNotFoundError(
                        f"Attendee {attendee_id} not found",
                        event_id=event_id,
                        attendee_id=attendee_id,
                    )

                removed = [attendee_id]
                if attendee.is_primary:
                    removed.extend(d.attendee_id for d in txn.dependents_of(user_id))
                    self.cascade.remove_dependents(txn, user_id)
                txn.delete(attendee_id)

                if attendee.rsvp_status == RSVPStatus.WAITLISTED:
                    self.ledger.renumber(txn)

                return WithdrawalOutcome(
                    attendee=attendee,
                    removed_ids=removed,
                    freed_seat=attendee.is_primary and attendee.rsvp_status == RSVPStatus.GOING,
                )

        outcome = await with_optimistic_retry(
            attempt,
            max_attempts=self.max_attempts,
            max_backoff_ms=self.max_backoff_ms,
            operation="withdraw",
        )
        logger.info(
            "attendee_withdrawn",
            event_id=event_id,
            user_id=user_id,
            attendee_id=attendee_id,
            removed=len(outcome.removed_ids),
            freed_seat=outcome.freed_seat,
        )
        return outcome
