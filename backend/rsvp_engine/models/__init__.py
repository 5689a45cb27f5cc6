from rsvp_engine.models.attendee import Attendee
from rsvp_engine.models.event import Event
from rsvp_engine.models.membership import Membership

__all__ = ["Event", "Attendee", "Membership"]
