"""
Attendee model: one row per (event, person).

Key design decisions:
- `waitlist_position` is NOT unique at the DB level: renumbering shifts
  many rows in one transaction and per-row unique checks would trip on the
  intermediate states. Gap-free ordering is owned by the waitlist ledger and
  serialized by the event version.
- The CHECK constraint still guarantees a position exists iff the row is
  waitlisted
- `status_history` is an append-only JSON log stored with the row
- Composite index on (event_id, rsvp_status) covers capacity counts and
  waitlist scans
"""

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String

from rsvp_engine.db.base import Base, TimestampMixin


class Attendee(Base, TimestampMixin):
    __tablename__ = "attendees"

    id = Column(String(64), primary_key=True)
    event_id = Column(String(64), ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(128), nullable=False)
    attendee_type = Column(String(20), nullable=False, default="primary")
    rsvp_status = Column(String(20), nullable=False, default="pending")
    waitlist_position = Column(Integer, nullable=True)
    waitlist_joined_at = Column(DateTime(timezone=True), nullable=True)
    promoted_at = Column(DateTime(timezone=True), nullable=True)
    name = Column(String(200), nullable=True)
    relationship = Column(String(20), nullable=True)
    age_group = Column(String(10), nullable=True)
    status_history = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint(
            "attendee_type IN ('primary', 'dependent')",
            name="check_attendee_type",
        ),
        CheckConstraint(
            "rsvp_status IN ('pending', 'going', 'not-going', 'waitlisted')",
            name="check_attendee_rsvp_status",
        ),
        CheckConstraint(
            "(rsvp_status = 'waitlisted') = (waitlist_position IS NOT NULL)",
            name="check_attendee_position_iff_waitlisted",
        ),
        CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position > 0",
            name="check_attendee_position_positive",
        ),
        Index("ix_attendees_event_user", "event_id", "user_id"),
        Index("ix_attendees_event_status", "event_id", "rsvp_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Attendee(id={self.id}, event={self.event_id}, user={self.user_id}, "
            f"type={self.attendee_type}, status={self.rsvp_status}, position={self.waitlist_position})>"
        )
