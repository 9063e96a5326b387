"""Curriculum, student and schedule models shared by the scheduling engines."""

from __future__ import annotations

import datetime as dt
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

MetaType = Literal["lesson", "material", "questions", "law", "review", "summary", "simulado"]
EventStatus = Literal["pending", "completed"]
StudyLevel = Literal["beginner", "intermediate", "advanced"]

REVIEW_LABEL_PREFIX = "REV."
DEFAULT_REVIEW_COLOR = "#a855f7"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Curriculum tree
# ---------------------------------------------------------------------------


class SpacedReviewConfig(BaseModel):
    active: bool = False
    intervals: str = ""
    repeat_last: bool = False

    def offsets(self) -> List[int]:
        return parse_review_intervals(self.intervals)


class VideoLesson(BaseModel):
    title: str = ""
    link: str = ""
    duration: int = Field(default=0, ge=0)


class Meta(BaseModel):
    """A single study goal authored inside a topic."""

    id: str
    title: str
    type: MetaType
    order: int = 0
    color: Optional[str] = None
    videos: List[VideoLesson] = Field(default_factory=list)
    page_count: Optional[int] = Field(default=None, ge=0)
    questions_minutes: Optional[int] = Field(default=None, ge=0)
    law_pages: Optional[int] = Field(default=None, ge=0)
    summary_minutes: Optional[int] = Field(default=None, ge=0)
    flashcard_minutes: Optional[int] = Field(default=None, ge=0)
    review_config: Optional[SpacedReviewConfig] = None


class Topic(BaseModel):
    id: str
    name: str
    order: int = 0
    metas: List[Meta] = Field(default_factory=list)


class Discipline(BaseModel):
    id: str
    name: str
    order: int = 0
    folder_id: Optional[str] = None
    topics: List[Topic] = Field(default_factory=list)


class Folder(BaseModel):
    id: str
    name: str
    order: int = 0


class CycleItem(BaseModel):
    id: str
    type: Literal["discipline", "folder", "simulado"]
    reference_id: str
    order: int = 0
    topics_per_turn: int = Field(default=1, ge=1)
    simulado_title: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)


class Cycle(BaseModel):
    id: str
    name: str = ""
    order: int = 0
    items: List[CycleItem] = Field(default_factory=list)


class Plan(BaseModel):
    """Admin-authored study plan (cycles referencing disciplines, topics and goals)."""

    id: str
    title: str = ""
    cycles: List[Cycle] = Field(default_factory=list)
    disciplines: List[Discipline] = Field(default_factory=list)
    folders: List[Folder] = Field(default_factory=list)
    last_modified_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Student
# ---------------------------------------------------------------------------


class StudyProfile(BaseModel):
    level: StudyLevel = "intermediate"
    semi_active_class: bool = False
    semi_active_material: bool = False
    semi_active_law: bool = False
    smart_merge_tolerance: int = Field(default=20, ge=15, le=60)


class PlanStats(BaseModel):
    minutes: float = Field(default=0.0, ge=0.0)
    last_synced_at: Optional[datetime] = None


class StudentProfile(BaseModel):
    user_id: str
    timezone: Optional[str] = None
    current_plan_id: Optional[str] = None
    routine: Dict[int, int] = Field(default_factory=dict)
    study_profile: StudyProfile = Field(default_factory=StudyProfile)
    is_plan_paused: bool = False
    lifetime_minutes: float = Field(default=0.0, ge=0.0)
    plan_stats: Dict[str, PlanStats] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=_now)

    @field_validator("routine")
    @classmethod
    def _validate_routine(cls, value: Dict[int, int]) -> Dict[int, int]:
        return normalize_routine(value)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class WorkUnit(BaseModel):
    """Ordered unit of study produced by the curriculum reader or a melt pass."""

    meta_id: str
    title: str
    type: MetaType
    discipline_name: str = ""
    topic_name: str = ""
    duration_minutes: int = Field(default=0, ge=0)
    color: Optional[str] = None
    order: Optional[int] = None
    review_intervals: Optional[str] = None
    original_duration: Optional[int] = None
    original_event_id: Optional[str] = None
    original_type: Optional[MetaType] = None
    review_label: Optional[str] = None
    reference_color: Optional[str] = None
    recorded_minutes: float = 0.0
    part_offset: int = Field(default=0, ge=0)
    event_ids: List[str] = Field(default_factory=list)


class SmartExtension(BaseModel):
    minutes: int = Field(ge=0)
    type: Literal["overflow"] = "overflow"


class ScheduledEvent(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    plan_id: str
    date: dt.date
    meta_id: str
    type: MetaType
    title: str
    discipline_name: str = ""
    topic_name: str = ""
    duration_minutes: int = Field(default=0, ge=0)
    original_duration: Optional[int] = None
    order: int = 0
    global_sequence: Optional[int] = None
    part: Optional[int] = Field(default=None, ge=1)
    status: EventStatus = "pending"
    recorded_minutes: float = Field(default=0.0, ge=0.0)
    completed_at: Optional[datetime] = None
    color: Optional[str] = None
    review_intervals: Optional[str] = None
    original_event_id: Optional[str] = None
    original_type: Optional[MetaType] = None
    review_label: Optional[str] = None
    reference_color: Optional[str] = None
    smart_extension: Optional[SmartExtension] = None
    extension_merged: bool = False


class DateRange(BaseModel):
    start: date
    end: date

    @field_validator("end")
    @classmethod
    def _validate_order(cls, value: date, info) -> date:  # type: ignore[no-untyped-def]
        start = info.data.get("start")
        if start is not None and value < start:
            raise ValueError("Date range end must not precede its start.")
        return value

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class Dashboard(BaseModel):
    plan_id: Optional[str] = None
    today: List[ScheduledEvent] = Field(default_factory=list)
    overdue_reviews: List[ScheduledEvent] = Field(default_factory=list)
    overdue_general: List[ScheduledEvent] = Field(default_factory=list)


class AnticipationOffer(BaseModel):
    candidate_events: List[ScheduledEvent] = Field(default_factory=list)
    budget_minutes: int = Field(default=0, ge=0)


class MergeOffer(BaseModel):
    event_id: str
    overflow_minutes: int = Field(ge=1)
    tolerance_minutes: int


class ComputedSimulado(BaseModel):
    id: str
    reference_id: str
    title: str
    duration_minutes: int
    status: Literal["blocked", "released", "scheduled"] = "blocked"
    cycle_index: int
    item_index: int
    scheduled_date: Optional[date] = None


class SyncStatus(BaseModel):
    has_pending_changes: bool
    last_modified_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_routine(routine: Dict[int, int]) -> Dict[int, int]:
    normalized: Dict[int, int] = {}
    for key, minutes in (routine or {}).items():
        weekday = int(key)
        if weekday < 0 or weekday > 6:
            raise ValueError(f"Routine weekday must be between 0 and 6, got {weekday}.")
        value = int(minutes)
        if value < 0:
            raise ValueError(f"Routine minutes must be non-negative, got {value} for weekday {weekday}.")
        normalized[weekday] = value
    return normalized


def routine_minutes(routine: Dict[int, int], day: date) -> int:
    """Budget for a calendar day, indexing weekdays 0=Sunday..6=Saturday."""
    return int(routine.get(sunday_weekday(day), 0) or 0)


def sunday_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def parse_review_intervals(raw: Optional[str]) -> List[int]:
    offsets: List[int] = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            value = int(chunk)
        except ValueError:
            continue
        if value > 0:
            offsets.append(value)
    return offsets


def is_spaced_review(event: ScheduledEvent) -> bool:
    if event.type != "review":
        return False
    return bool(event.original_event_id) or bool(
        event.review_label and event.review_label.startswith(REVIEW_LABEL_PREFIX)
    )


def is_simulado(event: ScheduledEvent) -> bool:
    return event.type == "simulado"


__all__ = [
    "AnticipationOffer",
    "ComputedSimulado",
    "Cycle",
    "CycleItem",
    "Dashboard",
    "DateRange",
    "DEFAULT_REVIEW_COLOR",
    "Discipline",
    "EventStatus",
    "Folder",
    "MergeOffer",
    "Meta",
    "MetaType",
    "Plan",
    "PlanStats",
    "REVIEW_LABEL_PREFIX",
    "ScheduledEvent",
    "SmartExtension",
    "SpacedReviewConfig",
    "StudentProfile",
    "StudyProfile",
    "SyncStatus",
    "Topic",
    "VideoLesson",
    "WorkUnit",
    "is_simulado",
    "is_spaced_review",
    "normalize_routine",
    "parse_review_intervals",
    "routine_minutes",
    "sunday_weekday",
]
