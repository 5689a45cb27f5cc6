"""
Pydantic schemas for waitlist responses.
"""

from typing import Optional
from pydantic import BaseModel

from rsvp_engine.services.records import RSVPStatus


class WaitlistJoinResponse(BaseModel):
    attendee_id: str
    position: Optional[int]
    status: RSVPStatus


class WaitlistPositionResponse(BaseModel):
    event_id: str
    user_id: str
    position: Optional[int]


class RecalculateResponse(BaseModel):
    event_id: str
    count: int
