"""
Pydantic schemas for RSVP and attendee request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from rsvp_engine.services.records import AgeGroup, AttendeeType, Relationship, RSVPStatus


class RSVPRequest(BaseModel):
    # Plain string so "waitlisted" and typos reach the engine and get its error body
    status: str = Field(..., min_length=1, max_length=20)
    attendee_id: Optional[str] = Field(None, max_length=64)


class PromotedAttendeeResponse(BaseModel):
    attendee_id: str
    user_id: str
    promoted_from_position: int
    promotion_number: int

    model_config = {"from_attributes": True}


class SettledStatusResponse(BaseModel):
    event_id: str
    user_id: str
    attendee_id: str
    attendee_type: AttendeeType
    status: RSVPStatus
    previous_status: Optional[RSVPStatus]
    decision: str
    waitlist_position: Optional[int]
    dependents_updated: int
    promotions: list[PromotedAttendeeResponse]

    model_config = {"from_attributes": True}


class DependentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    relationship: Relationship = Relationship.GUEST
    age_group: AgeGroup = AgeGroup.ADULT


class AttendeeResponse(BaseModel):
    attendee_id: str
    event_id: str
    user_id: str
    attendee_type: AttendeeType
    rsvp_status: RSVPStatus
    waitlist_position: Optional[int]
    waitlist_joined_at: Optional[datetime]
    promoted_at: Optional[datetime]
    name: Optional[str]
    relationship: Optional[Relationship]
    age_group: Optional[AgeGroup]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WithdrawalResponse(BaseModel):
    attendee_id: str
    removed_ids: list[str]
    freed_seat: bool
    promotions: list[PromotedAttendeeResponse]
