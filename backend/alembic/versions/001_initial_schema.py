"""Initial schema: events, attendees, memberships with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Events table: capacity config synced from the events service
    op.create_table(
        "events",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("waitlist_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("waitlist_limit", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("capacity IS NULL OR capacity >= 0", name="check_event_capacity_non_negative"),
        sa.CheckConstraint(
            "waitlist_limit IS NULL OR waitlist_limit >= 0",
            name="check_event_waitlist_limit_non_negative",
        ),
    )

    # Attendees table
    op.create_table(
        "attendees",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("event_id", sa.String(64), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("attendee_type", sa.String(20), nullable=False, server_default=sa.text("'primary'")),
        sa.Column("rsvp_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("waitlist_joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("relationship", sa.String(20), nullable=True),
        sa.Column("age_group", sa.String(10), nullable=True),
        sa.Column("status_history", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("attendee_type IN ('primary', 'dependent')", name="check_attendee_type"),
        sa.CheckConstraint(
            "rsvp_status IN ('pending', 'going', 'not-going', 'waitlisted')",
            name="check_attendee_rsvp_status",
        ),
        # A position exists exactly when the row is waitlisted
        sa.CheckConstraint(
            "(rsvp_status = 'waitlisted') = (waitlist_position IS NOT NULL)",
            name="check_attendee_position_iff_waitlisted",
        ),
        sa.CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position > 0",
            name="check_attendee_position_positive",
        ),
    )
    # Every transaction loads one event's attendees; RSVP lookups go by (event, user)
    op.create_index("ix_attendees_event_user", "attendees", ["event_id", "user_id"])
    # Capacity counts and waitlist scans filter on status within an event
    op.create_index("ix_attendees_event_status", "attendees", ["event_id", "rsvp_status"])

    # Membership tier mirror
    op.create_table(
        "memberships",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("tier", sa.String(20), nullable=False, server_default=sa.text("'free'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("tier IN ('vip', 'premium', 'basic', 'free')", name="check_membership_tier"),
    )


def downgrade() -> None:
    op.drop_index("ix_attendees_event_status", table_name="attendees")
    op.drop_index("ix_attendees_event_user", table_name="attendees")
    op.drop_table("attendees")
    op.drop_table("memberships")
    op.drop_table("events")
