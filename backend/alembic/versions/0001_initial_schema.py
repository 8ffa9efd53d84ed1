"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates all tables for Partito: events, rsvps, event_updates, rate_limits.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- events ---
    op.create_table(
        "events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(80), nullable=False, unique=True),
        sa.Column("edit_token", sa.String(64), nullable=False, unique=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("cover_image", sa.String(1000), nullable=True),
        sa.Column("host_name", sa.String(100), nullable=False),
        sa.Column("host_email", sa.String(255), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("location_type", sa.String(20), nullable=False, server_default="in_person"),
        sa.Column("venue_name", sa.String(255), nullable=True),
        sa.Column("address", sa.String(500), nullable=True),
        sa.Column("location_visibility", sa.String(20), nullable=False, server_default="full"),
        sa.Column("virtual_link", sa.String(1000), nullable=True),
        sa.Column("virtual_link_visibility", sa.String(20), nullable=False, server_default="public"),
        sa.Column("allow_going", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("allow_maybe", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("allow_not_going", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("allow_plus_ones", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("max_plus_ones", sa.Integer, nullable=False, server_default="0"),
        sa.Column("capacity", sa.Integer, nullable=True),
        sa.Column("enable_waitlist", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("guest_list_visibility", sa.String(20), nullable=False, server_default="names"),
        sa.Column("collect_email", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("collect_dietary", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("custom_questions", sa.JSON, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("password_hint", sa.String(255), nullable=True),
        sa.Column("notify_on_rsvp", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("auto_delete_days", sa.Integer, nullable=False, server_default="30"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_events_slug", "events", ["slug"])
    op.create_index("ix_events_edit_token", "events", ["edit_token"])

    # --- rsvps ---
    op.create_table(
        "rsvps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="going"),
        sa.Column("plus_ones", sa.Integer, nullable=False, server_default="0"),
        sa.Column("dietary_note", sa.String(500), nullable=True),
        sa.Column("notifications_enabled", sa.Boolean, nullable=False, server_default="1"),
        sa.Column("waitlist_position", sa.Integer, nullable=True),
        sa.Column("custom_answers", sa.JSON, nullable=False),
        sa.Column("fingerprint", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "fingerprint", name="uq_rsvps_event_fingerprint"),
    )
    op.create_index("ix_rsvps_event_id", "rsvps", ["event_id"])

    # --- event_updates ---
    op.create_table(
        "event_updates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("recipient_filter", sa.String(20), nullable=True),
        sa.Column("recipient_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("sent_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_event_updates_event_id", "event_updates", ["event_id"])

    # --- rate_limits ---
    op.create_table(
        "rate_limits",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ip_address", sa.String(64), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_rate_limits_ip_address", "rate_limits", ["ip_address"])
    op.create_index("ix_rate_limits_created_at", "rate_limits", ["created_at"])


def downgrade() -> None:
    op.drop_table("rate_limits")
    op.drop_table("event_updates")
    op.drop_table("rsvps")
    op.drop_table("events")
