from rsvp_engine.schemas.rsvp import (
    RSVPRequest, SettledStatusResponse, DependentCreate, AttendeeResponse, WithdrawalResponse,
    PromotedAttendeeResponse,
)
from rsvp_engine.schemas.waitlist import WaitlistJoinResponse, WaitlistPositionResponse, RecalculateResponse
from rsvp_engine.schemas.event import (
    EventCapacityUpdate, EventCapacityResponse, CapacityResponse, CountsResponse,
    PromotionResponse, EventDeleteResponse,
)

__all__ = [
    "RSVPRequest", "SettledStatusResponse", "DependentCreate", "AttendeeResponse", "WithdrawalResponse",
    "PromotedAttendeeResponse",
    "WaitlistJoinResponse", "WaitlistPositionResponse", "RecalculateResponse",
    "EventCapacityUpdate", "EventCapacityResponse", "CapacityResponse", "CountsResponse",
    "PromotionResponse", "EventDeleteResponse",
]
