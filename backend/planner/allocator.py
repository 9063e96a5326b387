"""Pack ordered work units into calendar days bounded by a weekday routine."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .config import get_settings
from .errors import NoBudgetAvailableError
from .models import ScheduledEvent, SmartExtension, WorkUnit, routine_minutes

logger = logging.getLogger(__name__)

ATOMIC_TYPES = frozenset({"summary", "review"})
EXTENDABLE_TYPES = frozenset({"material", "questions", "law"})


class TimeBudgetAllocator:
    """Greedy day packer shared by generation, reschedule and gap-filling passes.

    Each call walks a cursor forward from ``start_date``. A day's budget is its
    routine minutes minus any ``reserved`` load, or zero when the date is
    ``blocked``. Units that do not fit are split into ``part`` fragments whose
    durations add up exactly to the unit duration.
    """

    def __init__(self, *, max_horizon_days: Optional[int] = None) -> None:
        self._max_horizon_days = max_horizon_days or get_settings().max_horizon_days

    def allocate(
        self,
        units: Sequence[WorkUnit],
        routine: Mapping[int, int],
        start_date: date,
        *,
        user_id: str,
        plan_id: str,
        reserved: Optional[Mapping[date, int]] = None,
        order_floor: Optional[Mapping[date, int]] = None,
        blocked_dates: Iterable[date] = (),
        tolerance: Optional[int] = None,
    ) -> List[ScheduledEvent]:
        if not any(minutes > 0 for minutes in routine.values()):
            raise NoBudgetAvailableError()
        if not units:
            return []

        cursor = _Cursor(
            routine=routine,
            start=start_date,
            horizon_end=start_date + timedelta(days=self._max_horizon_days),
            reserved=reserved or {},
            order_floor=order_floor or {},
            blocked=set(blocked_dates),
        )
        if tolerance is None:
            tolerance = get_settings().default_smart_merge_tolerance

        events: List[ScheduledEvent] = []
        for unit in units:
            events.extend(self._place_unit(unit, cursor, user_id, plan_id, tolerance))
        logger.debug(
            "Allocated %d units into %d events from %s through %s",
            len(units),
            len(events),
            start_date,
            cursor.day,
        )
        return events

    def append_to_day(
        self,
        unit: WorkUnit,
        day: date,
        *,
        user_id: str,
        plan_id: str,
        order_floor: int = -1,
    ) -> ScheduledEvent:
        """Single-day allocation that ignores the day's remaining budget."""
        event_id = unit.event_ids[0] if unit.event_ids else None
        return _build_event(unit, day, order_floor + 1, user_id, plan_id, unit.duration_minutes, None, event_id)

    def _place_unit(
        self,
        unit: WorkUnit,
        cursor: "_Cursor",
        user_id: str,
        plan_id: str,
        tolerance: int,
    ) -> List[ScheduledEvent]:
        cursor.ensure_budget()
        if unit.duration_minutes == 0:
            event_id = unit.event_ids[0] if unit.event_ids else None
            return [_build_event(unit, cursor.day, cursor.next_order(), user_id, plan_id, 0, None, event_id)]

        # Summaries and reviews only split when even a fresh day cannot hold them.
        while (
            unit.type in ATOMIC_TYPES
            and unit.duration_minutes > cursor.remaining
            and cursor.partly_used()
            and unit.duration_minutes <= cursor.fresh_budget()
        ):
            cursor.advance()

        left = unit.duration_minutes
        chunks: List[tuple[date, int, int]] = []
        while left > 0:
            cursor.ensure_budget()
            take = min(left, cursor.remaining)
            chunks.append((cursor.day, take, cursor.next_order()))
            cursor.consume(take)
            left -= take

        split = len(chunks) > 1 or unit.part_offset > 0
        placed: List[ScheduledEvent] = []
        consumed = 0
        for index, (day, minutes, order) in enumerate(chunks):
            consumed += minutes
            part = unit.part_offset + index + 1 if split else None
            extension = None
            leftover = unit.duration_minutes - consumed
            if unit.type in EXTENDABLE_TYPES and 0 < leftover <= tolerance:
                extension = SmartExtension(minutes=leftover)
            event_id = unit.event_ids[index] if index < len(unit.event_ids) else None
            event = _build_event(unit, day, order, user_id, plan_id, minutes, part, event_id)
            event.smart_extension = extension
            if index > 0:
                event.recorded_minutes = 0.0
            placed.append(event)
        return placed


class _Cursor:
    def __init__(
        self,
        *,
        routine: Mapping[int, int],
        start: date,
        horizon_end: date,
        reserved: Mapping[date, int],
        order_floor: Mapping[date, int],
        blocked: Set[date],
    ) -> None:
        self._routine = routine
        self._horizon_end = horizon_end
        self._reserved = reserved
        self._order_floor = order_floor
        self._blocked = blocked
        self._next_orders: Dict[date, int] = {}
        self.day = start
        self.remaining = self._budget(start)

    def _budget(self, day: date) -> int:
        if day in self._blocked:
            return 0
        return max(0, routine_minutes(self._routine, day) - int(self._reserved.get(day, 0)))

    def fresh_budget(self) -> int:
        return routine_minutes(self._routine, self.day)

    def partly_used(self) -> bool:
        return self.remaining < self.fresh_budget()

    def consume(self, minutes: int) -> None:
        self.remaining -= minutes

    def next_order(self) -> int:
        order = self._next_orders.get(self.day, self._order_floor.get(self.day, -1) + 1)
        self._next_orders[self.day] = order + 1
        return order

    def advance(self) -> None:
        day = self.day + timedelta(days=1)
        while day <= self._horizon_end and self._budget(day) <= 0:
            day += timedelta(days=1)
        if day > self._horizon_end:
            raise NoBudgetAvailableError(
                f"No study time available before {self._horizon_end.isoformat()}."
            )
        self.day = day
        self.remaining = self._budget(day)

    def ensure_budget(self) -> None:
        if self.remaining <= 0:
            self.advance()


def _build_event(
    unit: WorkUnit,
    day: date,
    order: int,
    user_id: str,
    plan_id: str,
    minutes: int,
    part: Optional[int],
    event_id: Optional[str],
) -> ScheduledEvent:
    payload = dict(
        user_id=user_id,
        plan_id=plan_id,
        date=day,
        meta_id=unit.meta_id,
        type=unit.type,
        title=unit.title,
        discipline_name=unit.discipline_name,
        topic_name=unit.topic_name,
        duration_minutes=minutes,
        original_duration=unit.original_duration or unit.duration_minutes,
        order=order,
        global_sequence=unit.order,
        part=part,
        recorded_minutes=unit.recorded_minutes,
        color=unit.color,
        review_intervals=unit.review_intervals,
        original_event_id=unit.original_event_id,
        original_type=unit.original_type,
        review_label=unit.review_label,
        reference_color=unit.reference_color,
    )
    if event_id:
        payload["id"] = event_id
    return ScheduledEvent(**payload)


__all__ = ["ATOMIC_TYPES", "EXTENDABLE_TYPES", "TimeBudgetAllocator"]
