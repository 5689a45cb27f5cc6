"""
RSVP endpoints: status changes, family members, withdrawal and capacity reads.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from rsvp_engine.api.dependencies import get_current_user_id, get_rsvp_service
from rsvp_engine.schemas.event import CapacityResponse, CountsResponse
from rsvp_engine.schemas.rsvp import (
    AttendeeResponse,
    DependentCreate,
    PromotedAttendeeResponse,
    RSVPRequest,
    SettledStatusResponse,
    WithdrawalResponse,
)
from rsvp_engine.services.rsvp_service import RsvpService

router = APIRouter(prefix="/events", tags=["RSVP"])


@router.post("/{event_id}/rsvp", response_model=SettledStatusResponse)
async def request_status_endpoint(
    event_id: str,
    rsvp: RSVPRequest,
    user_id: str = Depends(get_current_user_id),
    service: RsvpService = Depends(get_rsvp_service),
):
    """
    Request an RSVP status.

    Asking for "going" on a full event returns status "waitlisted" when the
    event has a waitlist, and 409 capacity_exceeded when it does not.
    """
    settled = await service.request_status(event_id, user_id, rsvp.status, attendee_id=rsvp.attendee_id)
    return SettledStatusResponse.model_validate(settled)


@router.post("/{event_id}/dependents", response_model=AttendeeResponse, status_code=status.HTTP_201_CREATED)
async def add_dependent_endpoint(
    event_id: str,
    dependent: DependentCreate,
    user_id: str = Depends(get_current_user_id),
    service: RsvpService = Depends(get_rsvp_service),
):
    """Register a family member. The caller must already be going."""
    attendee = await service.add_dependent(
        event_id, user_id, dependent.name, dependent.relationship, dependent.age_group
    )
    return AttendeeResponse.model_validate(attendee)


@router.delete("/{event_id}/attendees/{attendee_id}", response_model=WithdrawalResponse)
async def withdraw_endpoint(
    event_id: str,
    attendee_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RsvpService = Depends(get_rsvp_service),
):
    """Withdraw an attendee. Withdrawing yourself also removes your family members."""
    outcome, promotion = await service.withdraw(event_id, user_id, attendee_id)
    return WithdrawalResponse(
        attendee_id=outcome.attendee.attendee_id,
        removed_ids=outcome.removed_ids,
        freed_seat=outcome.freed_seat,
        promotions=[PromotedAttendeeResponse.model_validate(p) for p in promotion.promoted],
    )


@router.get("/{event_id}/capacity", response_model=CapacityResponse)
async def get_capacity_endpoint(
    event_id: str,
    service: RsvpService = Depends(get_rsvp_service),
):
    """Advisory capacity for display. Cached in Redis, may lag a few seconds."""
    state = await service.get_capacity(event_id)
    return CapacityResponse(event_id=event_id, **state.to_dict())


@router.get("/{event_id}/counts", response_model=CountsResponse)
async def get_counts_endpoint(
    event_id: str,
    service: RsvpService = Depends(get_rsvp_service),
):
    """Attendee tallies by status, type and age group."""
    counts = await service.get_counts(event_id)
    return CountsResponse(event_id=event_id, total=counts.total, **asdict(counts))
