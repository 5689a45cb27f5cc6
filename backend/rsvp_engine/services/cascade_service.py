"""
Family (dependent) rules.

Dependents are family members registered under a primary attendee. They
never hold their own admission decision:

- A dependent can only be created or set to going while its primary is
  going (PrimaryNotGoingError otherwise)
- A primary has at most MAX_DEPENDENTS_PER_PRIMARY dependents per event
  (FamilyLimitExceededError otherwise)
- Once a primary's status settles, the same status is written to all of
  its dependents in one batch. A waitlisted primary's dependents go back
  to pending: dependents never hold a waitlist position of their own.

Dependents are not counted against event capacity, so a family admitted
together is never split by the limit.
"""

from typing import Optional

from rsvp_engine.core.config import get_settings
from rsvp_engine.core.exceptions import FamilyLimitExceededError, PrimaryNotGoingError
from rsvp_engine.core.logging import get_logger
from rsvp_engine.core.metrics import cascade_updates
from rsvp_engine.services.interfaces.store import AttendeeStore, EventTransaction
from rsvp_engine.services.records import (
    AgeGroup,
    Attendee,
    AttendeeType,
    Relationship,
    RSVPStatus,
)
from rsvp_engine.services.retry import with_optimistic_retry

logger = get_logger(__name__)

DEPENDENT_STATUS = {
    RSVPStatus.GOING: RSVPStatus.GOING,
    RSVPStatus.NOT_GOING: RSVPStatus.NOT_GOING,
    RSVPStatus.PENDING: RSVPStatus.PENDING,
    RSVPStatus.WAITLISTED: RSVPStatus.PENDING,
}


class CascadeEngine:

    def __init__(
        self,
        store: AttendeeStore,
        max_dependents: Optional[int] = None,
        max_attempts: Optional[int] = None,
        max_backoff_ms: Optional[int] = None,
    ):
        self.store = store
        self.max_dependents = (
            max_dependents if max_dependents is not None else get_settings().MAX_DEPENDENTS_PER_PRIMARY
        )
        self.max_attempts = max_attempts
        self.max_backoff_ms = max_backoff_ms

    # Pre-checks, run inside the caller's transaction

    def check_primary_going(self, txn: EventTransaction, user_id: str) -> Attendee:
        primary = txn.primary_for(user_id)
        if primary is None or primary.rsvp_status != RSVPStatus.GOING:
            current = primary.rsvp_status.value if primary else None
            raise PrimaryNotGoingError(
                "Family members can only attend when the primary attendee is going.",
                event_id=txn.event_id,
                user_id=user_id,
                primary_status=current,
            )
        return primary

    def check_family_limit(self, txn: EventTransaction, user_id: str) -> None:
        count = len(txn.dependents_of(user_id))
        if count >= self.max_dependents:
            raise FamilyLimitExceededError(
                f"A primary attendee can register at most {self.max_dependents} family members.",
                event_id=txn.event_id,
                user_id=user_id,
                dependents=count,
                limit=self.max_dependents,
            )

    async def add_dependent(
        self,
        event_id: str,
        user_id: str,
        name: str,
        relationship: Relationship = Relationship.GUEST,
        age_group: AgeGroup = AgeGroup.ADULT,
    ) -> Attendee:
        """
        Register a family member as going under the user's primary attendee.

        Raises:
            PrimaryNotGoingError: the primary is not going
            FamilyLimitExceededError: the family is already at the limit
        """

        async def attempt() -> Attendee:
            async with self.store.transaction(event_id) as txn:
                self.check_primary_going(txn, user_id)
                self.check_family_limit(txn, user_id)

                dependent = Attendee(
                    event_id=event_id,
                    user_id=user_id,
                    attendee_type=AttendeeType.DEPENDENT,
                    name=name,
                    relationship=relationship,
                    age_group=age_group,
                )
                dependent.set_status(RSVPStatus.GOING, user_id)
                txn.put(dependent)
                return dependent

        dependent = await with_optimistic_retry(
            attempt,
            max_attempts=self.max_attempts,
            max_backoff_ms=self.max_backoff_ms,
            operation="dependent_add",
        )
        logger.info(
            "dependent_added",
            event_id=event_id,
            user_id=user_id,
            attendee_id=dependent.attendee_id,
            relationship=relationship.value,
            age_group=age_group.value,
        )
        return dependent

    async def propagate(self, event_id: str, user_id: str, changed_by: Optional[str] = None) -> int:
        """
        Write the primary's settled status to all of its dependents in one batch.

        The primary's status is re-read inside the transaction, so a fan-out
        that races a newer change still converges on the latest status.

        Returns:
            Number of dependents updated
        """

        async def attempt() -> tuple[int, Optional[RSVPStatus]]:
            async with self.store.transaction(event_id) as txn:
                primary = txn.primary_for(user_id)
                if primary is None:
                    return 0, None
                target = DEPENDENT_STATUS[primary.rsvp_status]
                updated = 0
                for dependent in txn.dependents_of(user_id):
                    if dependent.rsvp_status != target:
                        dependent.set_status(target, changed_by or user_id)
                        txn.put(dependent)
                        updated += 1
                return updated, target

        updated, target = await with_optimistic_retry(
            attempt,
            max_attempts=self.max_attempts,
            max_backoff_ms=self.max_backoff_ms,
            operation="cascade",
        )
        if updated:
            cascade_updates.inc(updated)
            logger.info(
                "cascade_applied",
                event_id=event_id,
                user_id=user_id,
                status=target.value,
                dependents_updated=updated,
            )
        return updated

    def remove_dependents(self, txn: EventTransaction, user_id: str) -> int:
        """Delete every dependent of the user's primary. Runs in the caller's transaction."""
        dependents = txn.dependents_of(user_id)
        for dependent in dependents:
            txn.delete(dependent.attendee_id)
        return len(dependents)
