"""
Domain errors raised by the admission engine.

Every error carries a stable ``code`` so callers can branch on the reason
without parsing messages. Only ``WaitlistTransactionConflictError`` is
retryable; business-rule violations are terminal.
"""

from typing import Any, Optional


class AdmissionError(Exception):
    code: str = "admission_error"
    retryable: bool = False

    def __init__(self, message: Optional[str] = None, **context: Any) -> None:
        self.message = message or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            **self.context,
        }


class CapacityExceededError(AdmissionError):
    code = "capacity_exceeded"

    def __init__(
        self,
        event_id: str,
        going_count: int,
        capacity: Optional[int],
        waitlist_enabled: bool,
        reason: str = "capacity_exceeded",
    ) -> None:
        detail = f" ({going_count}/{capacity})" if capacity is not None else ""
        if reason == "waitlist_full":
            message = f"Event is full{detail} and its waitlist is full."
        else:
            message = f"Event is full{detail}. No more RSVPs can be accepted."
        super().__init__(
            message,
            event_id=event_id,
            going_count=going_count,
            capacity=capacity,
            waitlist_enabled=waitlist_enabled,
            reason=reason,
        )
        self.reason = reason


class PrimaryNotGoingError(AdmissionError):
    code = "primary_not_going"


class FamilyLimitExceededError(AdmissionError):
    code = "family_limit_exceeded"


class WaitlistTransactionConflictError(AdmissionError):
    code = "transaction_conflict"
    retryable = True


class AttendeeNotFoundError(AdmissionError):
    code = "attendee_not_found"


class EventNotFoundError(AdmissionError):
    code = "event_not_found"


class InvalidStatusTransitionError(AdmissionError):
    code = "invalid_status_transition"
