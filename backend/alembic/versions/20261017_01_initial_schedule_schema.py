"""Initial schedule, student and plan persistence schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_01_initial_schedule_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "schedule_days",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("plan_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.UniqueConstraint("user_id", "plan_id", "date", name="uq_schedule_days_user_plan_date"),
    )
    op.create_index("ix_schedule_days_user_plan", "schedule_days", ["user_id", "plan_id"])

    op.create_table(
        "student_profiles",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=True),
        sa.Column("current_plan_id", sa.String(length=128), nullable=True),
        sa.Column("routine", sa.JSON(), nullable=False),
        sa.Column("study_profile", sa.JSON(), nullable=False),
        sa.Column("is_plan_paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("lifetime_minutes", sa.Float(), nullable=False, server_default="0"),
        sa.Column("plan_stats", sa.JSON(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_student_profiles_user_id", "student_profiles", ["user_id"], unique=True)

    op.create_table(
        "study_plans",
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("title", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("structure", sa.JSON(), nullable=False),
        sa.Column("last_modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "persistence_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_persistence_audit_events_user_id", "persistence_audit_events", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_persistence_audit_events_user_id", table_name="persistence_audit_events")
    op.drop_table("persistence_audit_events")
    op.drop_table("study_plans")
    op.drop_index("ix_student_profiles_user_id", table_name="student_profiles")
    op.drop_table("student_profiles")
    op.drop_index("ix_schedule_days_user_plan", table_name="schedule_days")
    op.drop_table("schedule_days")
