"""Per-request student context and atomic layout commits."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence

from .clock import local_now, resolve_timezone
from .models import DateRange, ScheduledEvent, StudentProfile
from .schedule_store import ScheduleStore, schedule_store
from .student_store import StudentStore, student_store

logger = logging.getLogger(__name__)

DEFAULT_DAY_START = time(hour=8)


@dataclass
class StudentContext:
    profile: StudentProfile
    plan_id: str
    now: datetime

    @property
    def user_id(self) -> str:
        return self.profile.user_id

    @property
    def today(self) -> date:
        return self.now.date()

    @property
    def routine(self) -> Dict[int, int]:
        return self.profile.routine

    @property
    def tolerance(self) -> int:
        return self.profile.study_profile.smart_merge_tolerance


def load_context(
    user_id: str,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
    students: Optional[StudentStore] = None,
) -> StudentContext:
    """Resolve the student's profile, active plan and local clock."""
    students = students or student_store
    profile = students.require_profile(user_id)
    resolved_plan = plan_id or profile.current_plan_id
    if not resolved_plan:
        raise LookupError(f"Student '{user_id}' has no active plan.")
    if now is None:
        if today is not None:
            now = datetime.combine(today, DEFAULT_DAY_START, tzinfo=resolve_timezone(profile.timezone))
        else:
            now = local_now(profile.timezone)
    return StudentContext(profile=profile, plan_id=resolved_plan, now=now)


def _by_date(events: Sequence[ScheduledEvent]) -> Dict[date, List[dict]]:
    grouped: Dict[date, List[dict]] = defaultdict(list)
    for event in sorted(events, key=lambda item: (item.date, item.order)):
        grouped[event.date].append(event.model_dump())
    return grouped


def changed_range(before: Sequence[ScheduledEvent], after: Sequence[ScheduledEvent]) -> Optional[DateRange]:
    """Smallest date range covering every day whose document differs."""
    old = _by_date(before)
    new = _by_date(after)
    changed = [day for day in set(old) | set(new) if old.get(day) != new.get(day)]
    if not changed:
        return None
    return DateRange(start=min(changed), end=max(changed))


def commit_layout(
    user_id: str,
    plan_id: str,
    before: Sequence[ScheduledEvent],
    after: Sequence[ScheduledEvent],
    *,
    store: Optional[ScheduleStore] = None,
) -> Optional[DateRange]:
    """Persist ``after`` over the span where it differs from ``before`` in one replace."""
    store = store or schedule_store
    span = changed_range(before, after)
    if span is None:
        logger.debug("Layout unchanged for user=%s plan=%s", user_id, plan_id)
        return None
    store.replace_range(user_id, plan_id, span, [event for event in after if span.contains(event.date)])
    return span


__all__ = ["StudentContext", "changed_range", "commit_layout", "load_context"]
