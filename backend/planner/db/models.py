"""ORM models backing the Insanus Planner persistence layer."""

from __future__ import annotations

import datetime as dt
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Date, DateTime, Float, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _new_id() -> str:
    return str(uuid.uuid4())


class ScheduleDayModel(TimestampMixin, Base):
    """One schedule document: every event a student has on a plan date."""

    __tablename__ = "schedule_days"
    __table_args__ = (
        UniqueConstraint("user_id", "plan_id", "date", name="uq_schedule_days_user_plan_date"),
        Index("ix_schedule_days_user_plan", "user_id", "plan_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    plan_id: Mapped[str] = mapped_column(String(128), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    items: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)


class StudentProfileModel(TimestampMixin, Base):
    __tablename__ = "student_profiles"
    __table_args__ = (Index("ix_student_profiles_user_id", "user_id", unique=True),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    current_plan_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    routine: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    study_profile: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    is_plan_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lifetime_minutes: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    plan_stats: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class StudyPlanModel(TimestampMixin, Base):
    """Admin-authored curriculum tree stored as a single JSON document."""

    __tablename__ = "study_plans"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str] = mapped_column(String(256), default="", nullable=False)
    structure: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    last_modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PersistenceAuditEventModel(Base):
    __tablename__ = "persistence_audit_events"
    __table_args__ = (Index("ix_persistence_audit_events_user_id", "user_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


__all__ = [
    "PersistenceAuditEventModel",
    "ScheduleDayModel",
    "StudentProfileModel",
    "StudyPlanModel",
]
