"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17

Creates all tables for the Outing Planner:
recurring_event_templates, events, event_participants, venue_options,
votes, waitlist_entries, event_transitions.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EVENT_STATUS = sa.Enum(
    "draft", "planning", "inviting", "gathering_preferences", "ai_recommending",
    "voting", "confirmed", "completed", "cancelled",
    name="eventstatus",
)
TRIGGER = sa.Enum("organizer", "system", "coordinator", "scheduler", name="transitiontrigger")


def upgrade() -> None:
    # --- recurring_event_templates ---
    op.create_table(
        "recurring_event_templates",
        sa.Column("template_id", sa.Uuid, primary_key=True),
        sa.Column("organizer_id", sa.Uuid, nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False, server_default="team_outing"),
        sa.Column(
            "recurrence_pattern",
            sa.Enum("daily", "weekly", "monthly", "yearly", name="recurrencepattern"),
            nullable=False,
        ),
        sa.Column("days_of_week", sa.JSON, nullable=True),
        sa.Column("day_of_month", sa.Integer, nullable=True),
        sa.Column("month", sa.Integer, nullable=True),
        sa.Column("scheduled_time", sa.Time, nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        sa.Column("expected_attendees", sa.Integer, nullable=False),
        sa.Column("max_attendees", sa.Integer, nullable=True),
        sa.Column("acceptance_threshold", sa.Float, nullable=False, server_default="0.7"),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("occurrence_count", sa.Integer, nullable=True),
        sa.Column("auto_create_events", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("days_in_advance", sa.Integer, nullable=False, server_default="7"),
        sa.Column(
            "status", sa.Enum("active", "paused", name="templatestatus"), nullable=False, server_default="active",
        ),
        sa.Column("last_generated_date", sa.Date, nullable=True),
        sa.Column("occurrences_generated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- events ---
    op.create_table(
        "events",
        sa.Column("event_id", sa.Uuid, primary_key=True),
        sa.Column("organizer_id", sa.Uuid, nullable=False, index=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False, server_default="team_outing"),
        sa.Column("status", EVENT_STATUS, nullable=False, server_default="draft", index=True),
        sa.Column("scheduled_date", sa.Date, nullable=False),
        sa.Column("scheduled_time", sa.Time, nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        sa.Column("expected_attendees", sa.Integer, nullable=False),
        sa.Column("max_attendees", sa.Integer, nullable=True),
        sa.Column("acceptance_threshold", sa.Float, nullable=False, server_default="0.7"),
        sa.Column("privacy", sa.Enum("public", "private", name="privacy"), nullable=False, server_default="public"),
        sa.Column("rsvp_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_place_id", sa.Uuid, nullable=True),
        sa.Column("final_option_id", sa.Uuid, nullable=True),
        sa.Column("ai_analysis_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_analysis_progress", sa.JSON, nullable=True),
        sa.Column(
            "recurring_template_id", sa.Uuid,
            sa.ForeignKey("recurring_event_templates.template_id"), nullable=True,
        ),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Uuid, nullable=True),
        sa.Column("cancel_reason", sa.String(500), nullable=True),
        sa.Column("previous_scheduled_date", sa.Date, nullable=True),
        sa.Column("previous_scheduled_time", sa.Time, nullable=True),
        sa.Column("previous_timezone", sa.String(50), nullable=True),
        sa.Column("reschedule_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("claimed_by", sa.String(100), nullable=True),
        sa.Column("claim_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- event_participants ---
    op.create_table(
        "event_participants",
        sa.Column("event_id", sa.Uuid, sa.ForeignKey("events.event_id"), primary_key=True),
        sa.Column("user_id", sa.Uuid, primary_key=True),
        sa.Column(
            "invitation_status",
            sa.Enum("pending", "accepted", "declined", name="invitationstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("invited_by", sa.Uuid, nullable=True),
        sa.Column("invited_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("preferences", sa.JSON, nullable=True),
    )

    # --- venue_options ---
    op.create_table(
        "venue_options",
        sa.Column("option_id", sa.Uuid, primary_key=True),
        sa.Column("event_id", sa.Uuid, sa.ForeignKey("events.event_id"), nullable=False, index=True),
        sa.Column("place_id", sa.Uuid, nullable=True),
        sa.Column("external_place_name", sa.String(200), nullable=True),
        sa.Column("ai_score", sa.Float, nullable=True),
        sa.Column(
            "verification_status",
            sa.Enum("pending", "approved", "rejected", name="verificationstatus"),
            nullable=True,
        ),
        sa.Column(
            "suggested_by", sa.Enum("ai", "organizer", name="suggestionsource"), nullable=False, server_default="ai",
        ),
        sa.Column("reasoning", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # --- votes ---
    op.create_table(
        "votes",
        sa.Column("vote_id", sa.Uuid, primary_key=True),
        sa.Column("event_id", sa.Uuid, sa.ForeignKey("events.event_id"), nullable=False, index=True),
        sa.Column("option_id", sa.Uuid, sa.ForeignKey("venue_options.option_id"), nullable=False),
        sa.Column("voter_id", sa.Uuid, nullable=False),
        sa.Column("vote_value", sa.Integer, nullable=False),
        sa.Column("comment", sa.String(500), nullable=True),
        sa.Column("voted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "option_id", "voter_id", name="uq_vote_event_option_voter"),
    )

    # --- waitlist_entries ---
    op.create_table(
        "waitlist_entries",
        sa.Column("entry_id", sa.Uuid, primary_key=True),
        sa.Column("event_id", sa.Uuid, sa.ForeignKey("events.event_id"), nullable=False, index=True),
        sa.Column("user_id", sa.Uuid, nullable=False),
        sa.Column(
            "status",
            sa.Enum("waiting", "promoted", "expired", name="waitliststatus"),
            nullable=False,
            server_default="waiting",
        ),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_waitlist_waiting",
        "waitlist_entries",
        ["event_id", "user_id"],
        unique=True,
        sqlite_where=sa.text("status = 'waiting'"),
        postgresql_where=sa.text("status = 'waiting'"),
    )

    # --- event_transitions ---
    op.create_table(
        "event_transitions",
        sa.Column("transition_id", sa.Uuid, primary_key=True),
        sa.Column("event_id", sa.Uuid, sa.ForeignKey("events.event_id"), nullable=False, index=True),
        sa.Column("from_status", EVENT_STATUS, nullable=True),
        sa.Column("to_status", EVENT_STATUS, nullable=False),
        sa.Column("trigger", TRIGGER, nullable=False),
        sa.Column("actor_user_id", sa.Uuid, nullable=True),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("event_transitions")
    op.drop_index("uq_waitlist_waiting", table_name="waitlist_entries")
    op.drop_table("waitlist_entries")
    op.drop_table("votes")
    op.drop_table("venue_options")
    op.drop_table("event_participants")
    op.drop_table("events")
    op.drop_table("recurring_event_templates")
    bind = op.get_bind()
    for name in (
        "eventstatus", "transitiontrigger", "recurrencepattern", "templatestatus", "privacy",
        "invitationstatus", "verificationstatus", "suggestionsource", "waitliststatus",
    ):
        sa.Enum(name=name).drop(bind, checkfirst=True)
