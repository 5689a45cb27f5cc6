"""
Waitlist endpoints.
"""

from fastapi import APIRouter, Depends, Response, status

from rsvp_engine.api.dependencies import get_current_user_id, get_rsvp_service
from rsvp_engine.schemas.waitlist import WaitlistJoinResponse, WaitlistPositionResponse
from rsvp_engine.services.rsvp_service import RsvpService

router = APIRouter(prefix="/events", tags=["Waitlist"])


@router.post("/{event_id}/waitlist", response_model=WaitlistJoinResponse)
async def join_waitlist_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RsvpService = Depends(get_rsvp_service),
):
    """
    Join the event's waitlist.

    Idempotent: joining again returns the current position. If a seat is
    free the entry is promoted straight away and the status comes back
    "going" with no position.
    """
    result = await service.join_waitlist(event_id, user_id)
    return WaitlistJoinResponse(**result)


@router.delete("/{event_id}/waitlist", status_code=status.HTTP_204_NO_CONTENT)
async def leave_waitlist_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RsvpService = Depends(get_rsvp_service),
):
    """Leave the waitlist. Everyone behind moves up."""
    await service.leave_waitlist(event_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{event_id}/waitlist/position", response_model=WaitlistPositionResponse)
async def get_waitlist_position_endpoint(
    event_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RsvpService = Depends(get_rsvp_service),
):
    """Caller's waitlist position, or null when not waitlisted."""
    position = await service.get_waitlist_position(event_id, user_id)
    return WaitlistPositionResponse(event_id=event_id, user_id=user_id, position=position)
