"""
Event capacity model.

Key design decisions:
- Only the capacity-related fields live here; titles, dates and the rest
  belong to the events service, which syncs capacity config in
- `capacity` NULL means unlimited
- `version` is the optimistic lock for the whole attendee set of the event:
  every committed attendee write bumps it, so two transactions touching
  the same event can never both commit from the same snapshot
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String

from rsvp_engine.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(64), primary_key=True)
    capacity = Column(Integer, nullable=True)
    waitlist_enabled = Column(Boolean, nullable=False, default=False)
    waitlist_limit = Column(Integer, nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_event_capacity_non_negative"),
        CheckConstraint("waitlist_limit IS NULL OR waitlist_limit >= 0", name="check_event_waitlist_limit_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, capacity={self.capacity}, waitlist={self.waitlist_enabled}, version={self.version})>"
