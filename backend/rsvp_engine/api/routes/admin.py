"""
Administrative endpoints: capacity sync from the events service, waitlist
repair and manual promotion.
"""

from fastapi import APIRouter, Depends

from rsvp_engine.api.dependencies import get_rsvp_service
from rsvp_engine.schemas.event import (
    EventCapacityResponse,
    EventCapacityUpdate,
    EventDeleteResponse,
    PromotionResponse,
)
from rsvp_engine.schemas.rsvp import PromotedAttendeeResponse
from rsvp_engine.schemas.waitlist import RecalculateResponse
from rsvp_engine.services.records import EventCapacityConfig
from rsvp_engine.services.rsvp_service import RsvpService

router = APIRouter(prefix="/admin/events", tags=["Admin"])


@router.put("/{event_id}", response_model=EventCapacityResponse)
async def register_event_endpoint(
    event_id: str,
    update: EventCapacityUpdate,
    service: RsvpService = Depends(get_rsvp_service),
):
    """
    Create or update an event's capacity config.

    Raising the capacity promotes from the waitlist immediately. Lowering it
    below the current going count admits nobody new but demotes nobody.
    """
    config, promotion = await service.register_event(
        EventCapacityConfig(
            event_id=event_id,
            capacity=update.capacity,
            waitlist_enabled=update.waitlist_enabled,
            waitlist_limit=update.waitlist_limit,
        )
    )
    return EventCapacityResponse(
        event_id=config.event_id,
        capacity=config.capacity,
        waitlist_enabled=config.waitlist_enabled,
        waitlist_limit=config.waitlist_limit,
        promotions=[PromotedAttendeeResponse.model_validate(p) for p in promotion.promoted],
    )


@router.delete("/{event_id}", response_model=EventDeleteResponse)
async def delete_event_endpoint(
    event_id: str,
    service: RsvpService = Depends(get_rsvp_service),
):
    """Delete an event and every attendee row it has."""
    removed = await service.delete_event(event_id)
    return EventDeleteResponse(event_id=event_id, attendees_removed=removed)


@router.post("/{event_id}/waitlist/recalculate", response_model=RecalculateResponse)
async def recalculate_positions_endpoint(
    event_id: str,
    service: RsvpService = Depends(get_rsvp_service),
):
    """Repair duplicate or missing waitlist positions. Safe to run repeatedly."""
    result = await service.recalculate_positions(event_id)
    return RecalculateResponse(event_id=event_id, **result)


@router.post("/{event_id}/promotions", response_model=PromotionResponse)
async def trigger_promotions_endpoint(
    event_id: str,
    service: RsvpService = Depends(get_rsvp_service),
):
    """Promote from the waitlist while seats are free."""
    result = await service.trigger_promotions(event_id)
    return PromotionResponse.model_validate(result)
