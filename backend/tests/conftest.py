from __future__ import annotations

import os
from datetime import date, datetime, time
from typing import Dict, List, Optional

os.environ.setdefault("INSANUS_PERSISTENCE_MODE", "memory")
os.environ.setdefault("INSANUS_DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

from planner.cache import schedule_cache  # noqa: E402
from planner.models import DateRange, ScheduledEvent, StudentProfile  # noqa: E402
from planner.schedule_store import schedule_store  # noqa: E402
from planner.student_store import student_store  # noqa: E402
from planner.telemetry import clear_listeners  # noqa: E402

TIMEZONE = "America/Sao_Paulo"
WEEKDAYS_ONLY: Dict[int, int] = {0: 0, 1: 60, 2: 60, 3: 60, 4: 60, 5: 60, 6: 0}


@pytest.fixture(autouse=True)
def _reset_state():
    schedule_store.reset()
    student_store.reset()
    schedule_cache.clear()
    clear_listeners()
    yield
    schedule_store.reset()
    student_store.reset()
    schedule_cache.clear()
    clear_listeners()


def local_dt(day: date, hour: int = 10, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour=hour, minute=minute), tzinfo=ZoneInfo(TIMEZONE))


def make_event(
    day: date,
    meta_id: str,
    minutes: int,
    *,
    order: int = 0,
    user_id: str = "student-1",
    plan_id: str = "plan-1",
    **extra,
) -> ScheduledEvent:
    payload = dict(
        user_id=user_id,
        plan_id=plan_id,
        date=day,
        meta_id=meta_id,
        type="lesson",
        title=f"Goal {meta_id}",
        duration_minutes=minutes,
        original_duration=minutes,
        order=order,
    )
    payload.update(extra)
    return ScheduledEvent(**payload)


def seed_student(
    events: List[ScheduledEvent],
    *,
    user_id: str = "student-1",
    plan_id: str = "plan-1",
    routine: Optional[Dict[int, int]] = None,
    tolerance: int = 20,
) -> StudentProfile:
    profile = StudentProfile(
        user_id=user_id,
        timezone=TIMEZONE,
        current_plan_id=plan_id,
        routine=routine if routine is not None else WEEKDAYS_ONLY,
        study_profile={"smart_merge_tolerance": tolerance},
    )
    student_store.upsert_profile(profile)
    if events:
        dates = [event.date for event in events]
        schedule_store.replace_range(user_id, plan_id, DateRange(start=min(dates), end=max(dates)), events)
    return profile
