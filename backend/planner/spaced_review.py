"""Spaced-repetition review events spawned by completed goals."""

from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import TYPE_CHECKING, List, Optional

from .allocator import TimeBudgetAllocator
from .config import get_settings
from .models import (
    DEFAULT_REVIEW_COLOR,
    REVIEW_LABEL_PREFIX,
    DateRange,
    ScheduledEvent,
    WorkUnit,
    parse_review_intervals,
)
from .telemetry import emit_event

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


def review_label(position: int, total: int) -> str:
    return f"{REVIEW_LABEL_PREFIX} {position}/{total}"


def review_duration(event: ScheduledEvent) -> int:
    settings = get_settings()
    base = event.original_duration or event.duration_minutes
    scaled = int(math.floor(base * settings.review_duration_ratio + 0.5))
    return max(settings.review_min_minutes, scaled)


def review_units(event: ScheduledEvent, intervals: Optional[str] = None) -> List[tuple[date, WorkUnit]]:
    """One review unit per configured offset, keyed by its target date."""
    offsets = parse_review_intervals(intervals if intervals is not None else event.review_intervals)
    completed_on = event.completed_at.date() if event.completed_at else event.date
    total = len(offsets)
    duration = review_duration(event)
    planned: List[tuple[date, WorkUnit]] = []
    for position, offset in enumerate(offsets, start=1):
        unit = WorkUnit(
            meta_id=event.meta_id,
            title=event.title,
            type="review",
            discipline_name=event.discipline_name,
            topic_name=event.topic_name,
            duration_minutes=duration,
            color=DEFAULT_REVIEW_COLOR,
            original_duration=duration,
            original_event_id=event.id,
            original_type=event.type,
            review_label=review_label(position, total),
            reference_color=event.color,
        )
        planned.append((completed_on + timedelta(days=offset), unit))
    return planned


def generate_spaced_reviews(
    event: ScheduledEvent,
    completion_date: Optional[date] = None,
    *,
    store: Optional["ScheduleStore"] = None,
    allocator: Optional[TimeBudgetAllocator] = None,
) -> List[ScheduledEvent]:
    """Persist the review events for ``event`` one at a time.

    Each review lands on its exact target date after that day's existing
    events, regardless of the remaining budget. A review that fails to
    persist is logged and skipped.
    """
    if store is None:
        from .schedule_store import schedule_store as store
    allocator = allocator or TimeBudgetAllocator()
    if completion_date is not None:
        event = event.model_copy(update={"completed_at": None, "date": completion_date})

    created: List[ScheduledEvent] = []
    failures = 0
    for target, unit in review_units(event):
        try:
            same_day = store.get(event.user_id, event.plan_id, DateRange(start=target, end=target))
            floor = max((item.order for item in same_day), default=-1)
            review = allocator.append_to_day(
                unit,
                target,
                user_id=event.user_id,
                plan_id=event.plan_id,
                order_floor=floor,
            )
            created.append(store.upsert_single_event(review))
        except Exception:  # noqa: BLE001
            failures += 1
            logger.exception(
                "Failed to persist review %s for event %s on %s",
                unit.review_label,
                event.id,
                target,
            )

    emit_event(
        "spaced_reviews_generated",
        user_id=event.user_id,
        plan_id=event.plan_id,
        event_id=event.id,
        meta_id=event.meta_id,
        created=len(created),
        failed=failures,
        dates=[review.date.isoformat() for review in created],
    )
    return created


__all__ = ["generate_spaced_reviews", "review_duration", "review_label", "review_units"]
