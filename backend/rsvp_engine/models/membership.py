"""
Membership tier mirror, synced from the profiles service.
"""

from sqlalchemy import CheckConstraint, Column, String

from rsvp_engine.db.base import Base, TimestampMixin


class Membership(Base, TimestampMixin):
    __tablename__ = "memberships"

    user_id = Column(String(128), primary_key=True)
    tier = Column(String(20), nullable=False, default="free")

    __table_args__ = (
        CheckConstraint("tier IN ('vip', 'premium', 'basic', 'free')", name="check_membership_tier"),
    )

    def __repr__(self) -> str:
        return f"<Membership(user={self.user_id}, tier={self.tier})>"
