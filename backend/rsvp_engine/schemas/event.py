"""
Pydantic schemas for event capacity, counts and promotions.
"""

from typing import Optional
from pydantic import BaseModel, Field

from rsvp_engine.schemas.rsvp import PromotedAttendeeResponse


class EventCapacityUpdate(BaseModel):
    capacity: Optional[int] = Field(None, ge=0, le=100000)
    waitlist_enabled: bool = False
    waitlist_limit: Optional[int] = Field(None, ge=0, le=100000)


class EventCapacityResponse(BaseModel):
    event_id: str
    capacity: Optional[int]
    waitlist_enabled: bool
    waitlist_limit: Optional[int]
    promotions: list[PromotedAttendeeResponse] = []


class CapacityResponse(BaseModel):
    event_id: str
    capacity: Optional[int]
    going_count: int
    waitlisted_count: int
    waitlist_enabled: bool
    waitlist_limit: Optional[int]
    has_room: bool
    available: Optional[int]


class CountsResponse(BaseModel):
    event_id: str
    going: int
    not_going: int
    pending: int
    waitlisted: int
    going_primaries: int
    going_dependents: int
    going_by_age_group: dict[str, int]
    total: int


class PromotionResponse(BaseModel):
    event_id: str
    promoted: list[PromotedAttendeeResponse]
    promotions_count: int
    stopped_reason: str

    model_config = {"from_attributes": True}


class EventDeleteResponse(BaseModel):
    event_id: str
    attendees_removed: int
