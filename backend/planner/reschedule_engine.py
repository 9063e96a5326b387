"""Melt pending events and re-cast them through the allocator.

The functions here operate on in-memory event lists only. Callers load a
student's events, compute the new layout with :func:`melt_and_recast` (or
:func:`reflow_from`), and persist the result in a single atomic write.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .allocator import TimeBudgetAllocator
from .errors import NoBudgetAvailableError
from .models import ScheduledEvent, WorkUnit, is_simulado, is_spaced_review

logger = logging.getLogger(__name__)

_UNSEQUENCED = 10**9


@dataclass
class RecastResult:
    """New full layout for a student/plan plus bookkeeping for the caller."""

    events: List[ScheduledEvent]
    moved_count: int = 0
    melted_count: int = 0
    anchor: Optional[date] = None
    placed: List[ScheduledEvent] = field(default_factory=list)


def _review_unit(event: ScheduledEvent) -> WorkUnit:
    return WorkUnit(
        meta_id=event.meta_id,
        title=event.title,
        type=event.type,
        discipline_name=event.discipline_name,
        topic_name=event.topic_name,
        duration_minutes=event.duration_minutes,
        color=event.color,
        order=event.global_sequence,
        original_duration=event.original_duration,
        original_event_id=event.original_event_id,
        original_type=event.original_type,
        review_label=event.review_label,
        reference_color=event.reference_color,
        recorded_minutes=event.recorded_minutes,
        event_ids=[event.id],
    )


def _group_key(event: ScheduledEvent) -> tuple:
    sequence = event.global_sequence if event.global_sequence is not None else _UNSEQUENCED
    return (sequence, event.date, event.order)


def consolidate(events: Sequence[ScheduledEvent], fixed: Sequence[ScheduledEvent]) -> List[WorkUnit]:
    """Collapse pending fragments into one work unit per goal, in curriculum order."""
    groups: "OrderedDict[str, List[ScheduledEvent]]" = OrderedDict()
    for event in sorted(events, key=_group_key):
        groups.setdefault(event.meta_id, []).append(event)

    fixed_parts: Dict[str, int] = defaultdict(int)
    for event in fixed:
        if is_spaced_review(event) or is_simulado(event):
            continue
        fixed_parts[event.meta_id] = max(fixed_parts[event.meta_id], event.part or 1)

    units: List[WorkUnit] = []
    for meta_id, group in groups.items():
        group.sort(key=lambda item: (item.date, item.part or 0, item.order))
        base = group[0]
        units.append(
            WorkUnit(
                meta_id=meta_id,
                title=base.title,
                type=base.type,
                discipline_name=base.discipline_name,
                topic_name=base.topic_name,
                duration_minutes=sum(item.duration_minutes for item in group),
                color=base.color,
                order=base.global_sequence,
                review_intervals=base.review_intervals,
                original_duration=base.original_duration,
                recorded_minutes=sum(item.recorded_minutes for item in group),
                part_offset=fixed_parts.get(meta_id, 0),
                event_ids=[item.id for item in group],
            )
        )
    return units


def reserved_load(
    fixed: Iterable[ScheduledEvent],
    today: date,
    anchor: date,
) -> tuple[Dict[date, int], Dict[date, int], Set[date]]:
    """Minutes already spoken for, highest order and blocked dates from ``anchor`` on."""
    reserved: Dict[date, int] = defaultdict(int)
    floors: Dict[date, int] = {}
    blocked: Set[date] = set()
    for event in fixed:
        floors[event.date] = max(floors.get(event.date, -1), event.order)
        if event.date < anchor:
            continue
        if event.status == "completed":
            minutes = event.recorded_minutes if event.date == today else event.duration_minutes
            reserved[event.date] += int(math.ceil(minutes))
        else:
            reserved[event.date] += event.duration_minutes
            if is_simulado(event):
                blocked.add(event.date)
    return dict(reserved), floors, blocked


def count_moved(melted: Sequence[ScheduledEvent], placed: Sequence[ScheduledEvent]) -> int:
    positions = {event.id: (event.date, event.duration_minutes) for event in placed}
    moved = 0
    for event in melted:
        if positions.get(event.id) != (event.date, event.duration_minutes):
            moved += 1
    return moved


def _recast(
    events: Sequence[ScheduledEvent],
    should_melt: Callable[[ScheduledEvent], bool],
    routine: Mapping[int, int],
    today: date,
    anchor: date,
    *,
    user_id: str,
    plan_id: str,
    tolerance: Optional[int],
    allocator: Optional[TimeBudgetAllocator],
    extra_blocked: Iterable[date] = (),
) -> RecastResult:
    if not any(minutes > 0 for minutes in routine.values()):
        raise NoBudgetAvailableError()

    fixed: List[ScheduledEvent] = []
    reviews: List[ScheduledEvent] = []
    general: List[ScheduledEvent] = []
    for event in events:
        if not should_melt(event):
            fixed.append(event)
        elif is_spaced_review(event):
            reviews.append(event)
        else:
            general.append(event)

    melted = reviews + general
    if not melted:
        return RecastResult(events=list(events), anchor=anchor)

    reviews.sort(key=lambda item: (item.date, item.order))
    units = [_review_unit(event) for event in reviews] + consolidate(general, fixed)
    reserved, floors, blocked = reserved_load(fixed, today, anchor)
    blocked.update(extra_blocked)

    allocator = allocator or TimeBudgetAllocator()
    placed = allocator.allocate(
        units,
        routine,
        anchor,
        user_id=user_id,
        plan_id=plan_id,
        reserved=reserved,
        order_floor=floors,
        blocked_dates=blocked,
        tolerance=tolerance,
    )
    moved = count_moved(melted, placed)
    logger.debug(
        "Recast %d melted events for user=%s plan=%s from %s (%d moved)",
        len(melted),
        user_id,
        plan_id,
        anchor,
        moved,
    )
    return RecastResult(
        events=fixed + placed,
        moved_count=moved,
        melted_count=len(melted),
        anchor=anchor,
        placed=placed,
    )


def melt_and_recast(
    events: Sequence[ScheduledEvent],
    routine: Mapping[int, int],
    today: date,
    *,
    preserve_today: bool = False,
    user_id: str,
    plan_id: str,
    tolerance: Optional[int] = None,
    allocator: Optional[TimeBudgetAllocator] = None,
) -> RecastResult:
    """Push overdue and future pending work forward from today (or tomorrow).

    Completed events, booked mock exams and future spaced reviews stay where
    they are. With ``preserve_today`` every event dated today is left intact.
    Overdue spaced reviews are placed ahead of general work.
    """
    anchor = today + timedelta(days=1) if preserve_today else today

    def should_melt(event: ScheduledEvent) -> bool:
        if event.status != "pending" or is_simulado(event):
            return False
        if event.date < today:
            return True
        if event.date == today and preserve_today:
            return False
        return not is_spaced_review(event)

    return _recast(
        events,
        should_melt,
        routine,
        today,
        anchor,
        user_id=user_id,
        plan_id=plan_id,
        tolerance=tolerance,
        allocator=allocator,
    )


def reflow_from(
    events: Sequence[ScheduledEvent],
    routine: Mapping[int, int],
    start: date,
    today: date,
    *,
    user_id: str,
    plan_id: str,
    blocked_dates: Iterable[date] = (),
    tolerance: Optional[int] = None,
    allocator: Optional[TimeBudgetAllocator] = None,
) -> RecastResult:
    """Re-flow pending general work dated ``start`` or later around blocked days."""

    def should_melt(event: ScheduledEvent) -> bool:
        return (
            event.status == "pending"
            and event.date >= start
            and not is_simulado(event)
            and not is_spaced_review(event)
        )

    return _recast(
        events,
        should_melt,
        routine,
        today,
        start,
        user_id=user_id,
        plan_id=plan_id,
        tolerance=tolerance,
        allocator=allocator,
        extra_blocked=blocked_dates,
    )


__all__ = [
    "RecastResult",
    "consolidate",
    "count_moved",
    "melt_and_recast",
    "reflow_from",
    "reserved_load",
]
