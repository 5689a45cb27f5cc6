"""
RSVP service: the operations the API exposes.

Wires the engine components together and sequences them:

    request_status   admission txn -> cascade to dependents -> promotion
                     after any non-going answer, or a repeated going
                     request from the queue
    join_waitlist    ledger join txn -> cascade -> promotion (the queue
                     may be joinable while a seat is free)
    leave_waitlist   ledger leave txn -> cascade -> promotion
    withdraw         delete txn -> promotion when a primary is removed

Each step is its own transaction. Cascade and promotion run after the
triggering commit, never inside it, so a failure in a later step never
undoes an earlier one.
"""

from dataclasses import dataclass, field
from typing import Optional

from rsvp_engine.core.logging import get_logger
from rsvp_engine.core.metrics import admission_latency
from rsvp_engine.services import cache_service
from rsvp_engine.services.admission_service import (
    AdmissionController,
    AdmissionOutcome,
    WithdrawalOutcome,
)
from rsvp_engine.services.capacity_oracle import AttendeeCounts, CapacityOracle, CapacityState
from rsvp_engine.services.cascade_service import CascadeEngine
from rsvp_engine.services.interfaces.membership import MembershipDirectory
from rsvp_engine.services.interfaces.store import AttendeeStore
from rsvp_engine.services.promotion_service import PromotedAttendee, PromotionResult, PromotionTrigger
from rsvp_engine.services.records import (
    AgeGroup,
    Attendee,
    EventCapacityConfig,
    Relationship,
    RSVPStatus,
)
from rsvp_engine.services.waitlist_ledger import WaitlistLedger

logger = get_logger(__name__)


@dataclass
class SettledStatus:
    event_id: str
    user_id: str
    attendee_id: str
    attendee_type: str
    status: RSVPStatus
    previous_status: Optional[RSVPStatus]
    decision: str
    waitlist_position: Optional[int] = None
    dependents_updated: int = 0
    promotions: list[PromotedAttendee] = field(default_factory=list)


class RsvpService:

    def __init__(
        self,
        store: AttendeeStore,
        memberships: MembershipDirectory,
        max_dependents: Optional[int] = None,
        max_attempts: Optional[int] = None,
        max_backoff_ms: Optional[int] = None,
    ):
        retry = {"max_attempts": max_attempts, "max_backoff_ms": max_backoff_ms}
        self.store = store
        self.memberships = memberships
        self.oracle = CapacityOracle(store)
        self.ledger = WaitlistLedger(store, **retry)
        self.cascade = CascadeEngine(store, max_dependents=max_dependents, **retry)
        self.admission = AdmissionController(store, self.oracle, self.ledger, self.cascade, **retry)
        self.promotion = PromotionTrigger(store, self.oracle, self.ledger, self.cascade, **retry)

    @staticmethod
    def _apply_promotions(attendee: Attendee, result: PromotionResult) -> None:
        """Reflect a promotion of `attendee` made after its own transaction committed."""
        for promoted in result.promoted:
            if promoted.attendee_id == attendee.attendee_id:
                attendee.rsvp_status = RSVPStatus.GOING
                attendee.waitlist_position = None

    async def request_status(
        self,
        event_id: str,
        user_id: str,
        status,
        attendee_id: Optional[str] = None,
    ) -> SettledStatus:
        tier = await self.memberships.get_user_tier(user_id)

        with admission_latency.time():
            outcome: AdmissionOutcome = await self.admission.request_status(
                event_id, user_id, status, tier=tier, attendee_id=attendee_id
            )

        attendee = outcome.attendee
        dependents_updated = 0
        promotion = PromotionResult(event_id=event_id)

        if attendee.is_primary:
            dependents_updated = await self.cascade.propagate(event_id, user_id)

            still_queued = (
                outcome.previous_status == RSVPStatus.WAITLISTED
                and attendee.rsvp_status == RSVPStatus.WAITLISTED
            )
            # Any answer other than going may leave a seat free, including one left over from a lost promotion race
            answered_not_going = attendee.rsvp_status in (RSVPStatus.NOT_GOING, RSVPStatus.PENDING)
            if answered_not_going or still_queued:
                promotion = await self.promotion.trigger(event_id)
                self._apply_promotions(attendee, promotion)

        return SettledStatus(
            event_id=event_id,
            user_id=user_id,
            attendee_id=attendee.attendee_id,
            attendee_type=attendee.attendee_type.value,
            status=attendee.rsvp_status,
            previous_status=outcome.previous_status,
            decision=outcome.decision,
            waitlist_position=attendee.waitlist_position,
            dependents_updated=dependents_updated,
            promotions=promotion.promoted,
        )

    async def join_waitlist(self, event_id: str, user_id: str) -> dict:
        tier = await self.memberships.get_user_tier(user_id)
        attendee = await self.ledger.join(event_id, user_id, tier)
        await self.cascade.propagate(event_id, user_id)

        promotion = await self.promotion.trigger(event_id)
        self._apply_promotions(attendee, promotion)

        return {
            "attendee_id": attendee.attendee_id,
            "position": attendee.waitlist_position,
            "status": attendee.rsvp_status,
        }

    async def leave_waitlist(self, event_id: str, user_id: str) -> dict:
        await self.ledger.leave(event_id, user_id, RSVPStatus.NOT_GOING)
        await self.cascade.propagate(event_id, user_id)
        await self.promotion.trigger(event_id)
        return {}

    async def get_waitlist_position(self, event_id: str, user_id: str) -> Optional[int]:
        return await self.ledger.position_of(event_id, user_id)

    async def recalculate_positions(self, event_id: str) -> dict:
        count = await self.ledger.recalculate(event_id)
        return {"count": count}

    async def add_dependent(
        self,
        event_id: str,
        user_id: str,
        name: str,
        relationship: Relationship = Relationship.GUEST,
        age_group: AgeGroup = AgeGroup.ADULT,
    ) -> Attendee:
        return await self.cascade.add_dependent(event_id, user_id, name, relationship, age_group)

    async def withdraw(self, event_id: str, user_id: str, attendee_id: str) -> tuple[WithdrawalOutcome, PromotionResult]:
        outcome = await self.admission.withdraw(event_id, user_id, attendee_id)
        promotion = PromotionResult(event_id=event_id)
        if outcome.attendee.is_primary:
            promotion = await self.promotion.trigger(event_id)
        return outcome, promotion

    async def get_capacity(self, event_id: str) -> CapacityState:
        return await self.oracle.peek(event_id)

    async def get_counts(self, event_id: str) -> AttendeeCounts:
        return await self.oracle.counts(event_id)

    async def trigger_promotions(self, event_id: str) -> PromotionResult:
        return await self.promotion.trigger(event_id, changed_by="admin")

    async def register_event(self, config: EventCapacityConfig) -> tuple[EventCapacityConfig, PromotionResult]:
        """Sync an event's capacity config. A raised capacity promotes from the waitlist."""
        config = await self.store.register_event(config)
        await cache_service.invalidate_capacity(config.event_id)
        promotion = await self.promotion.trigger(config.event_id)
        return config, promotion

    async def delete_event(self, event_id: str) -> int:
        removed = await self.store.delete_event(event_id)
        self.promotion.forget(event_id)
        await cache_service.invalidate_capacity(event_id)
        logger.info("event_deleted", event_id=event_id, attendees_removed=removed)
        return removed

    async def close(self) -> None:
        await self.store.close()
