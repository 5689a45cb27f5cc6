"""
Domain records shared by every attendee store implementation.

Records are plain dataclasses: stores load them into an EventTransaction,
services mutate them, and the store persists whatever was marked dirty.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_attendee_id() -> str:
    return uuid.uuid4().hex


class RSVPStatus(str, enum.Enum):
    PENDING = "pending"
    GOING = "going"
    NOT_GOING = "not-going"
    WAITLISTED = "waitlisted"


class AttendeeType(str, enum.Enum):
    PRIMARY = "primary"
    DEPENDENT = "dependent"


class MembershipTier(str, enum.Enum):
    VIP = "vip"
    PREMIUM = "premium"
    BASIC = "basic"
    FREE = "free"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["MembershipTier"] = None) -> "MembershipTier":
        """Unknown or missing tiers fall back to ``default`` (free)."""
        try:
            return cls(value)
        except ValueError:
            return default or cls.FREE


class Relationship(str, enum.Enum):
    SELF = "self"
    SPOUSE = "spouse"
    CHILD = "child"
    GUEST = "guest"


class AgeGroup(str, enum.Enum):
    INFANT = "0-2"
    TODDLER = "3-5"
    CHILD = "6-10"
    TEEN = "11+"
    ADULT = "adult"


@dataclass
class EventCapacityConfig:
    event_id: str
    capacity: Optional[int] = None  # None = unlimited
    waitlist_enabled: bool = False
    waitlist_limit: Optional[int] = None  # None = unbounded waitlist


@dataclass
class StatusChange:
    status: RSVPStatus
    changed_by: str
    changed_at: datetime

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatusChange":
        changed_at = datetime.fromisoformat(data["changed_at"])
        if changed_at.tzinfo is None:
            changed_at = changed_at.replace(tzinfo=timezone.utc)
        return cls(
            status=RSVPStatus(data["status"]),
            changed_by=data["changed_by"],
            changed_at=changed_at,
        )


@dataclass
class Attendee:
    event_id: str
    user_id: str
    attendee_type: AttendeeType = AttendeeType.PRIMARY
    attendee_id: str = field(default_factory=new_attendee_id)
    rsvp_status: RSVPStatus = RSVPStatus.PENDING
    waitlist_position: Optional[int] = None
    waitlist_joined_at: Optional[datetime] = None
    promoted_at: Optional[datetime] = None
    name: Optional[str] = None
    relationship: Optional[Relationship] = None
    age_group: Optional[AgeGroup] = None
    status_history: list[StatusChange] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_primary(self) -> bool:
        return self.attendee_type == AttendeeType.PRIMARY

    def set_status(self, status: RSVPStatus, changed_by: str, at: Optional[datetime] = None) -> None:
        """Change status and append to the history log. Waitlist fields are the caller's job."""
        at = at or utcnow()
        self.rsvp_status = status
        self.status_history.append(StatusChange(status=status, changed_by=changed_by, changed_at=at))
        self.updated_at = at
