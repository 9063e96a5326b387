"""Persisted schedule store keyed by (user_id, plan_id, date).

``ScheduleStore`` delegates to a database or in-memory backend depending on
``INSANUS_PERSISTENCE_MODE`` and keeps the process-local schedule cache in
sync with every write.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .cache import schedule_cache
from .config import get_settings
from .db.session import session_scope
from .models import DateRange, ScheduledEvent

logger = logging.getLogger(__name__)

_Days = Dict[date, List[ScheduledEvent]]


def _repo():
    from .repositories.schedules import schedule_days

    return schedule_days


def _sorted_events(events: Iterable[ScheduledEvent]) -> List[ScheduledEvent]:
    return sorted(events, key=lambda item: (item.date, item.order))


def validate_layout(user_id: str, plan_id: str, date_range: DateRange, events: Iterable[ScheduledEvent]) -> None:
    """Reject writes that would break the per-day document invariants."""
    seen: Dict[date, set] = defaultdict(set)
    for event in events:
        if event.user_id != user_id or event.plan_id != plan_id:
            raise ValueError(f"Event {event.id} does not belong to user={user_id} plan={plan_id}.")
        if not date_range.contains(event.date):
            raise ValueError(
                f"Event {event.id} dated {event.date.isoformat()} falls outside "
                f"{date_range.start.isoformat()}..{date_range.end.isoformat()}."
            )
        if event.order in seen[event.date]:
            raise ValueError(f"Duplicate order {event.order} on {event.date.isoformat()}.")
        seen[event.date].add(event.order)


class _MemoryScheduleStore:
    """Process-local backend; a replace swaps in a fully built copy under a lock."""

    def __init__(self) -> None:
        self._plans: Dict[Tuple[str, str], _Days] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _clone(events: Iterable[ScheduledEvent]) -> List[ScheduledEvent]:
        return [event.model_copy(deep=True) for event in events]

    def list_events(self, user_id: str, plan_id: str, date_range: Optional[DateRange] = None) -> List[ScheduledEvent]:
        with self._lock:
            days = self._plans.get((user_id, plan_id), {})
            selected = [
                event
                for day, events in days.items()
                if date_range is None or date_range.contains(day)
                for event in events
            ]
            return self._clone(_sorted_events(selected))

    def replace_range(self, user_id: str, plan_id: str, date_range: DateRange, events: List[ScheduledEvent]) -> int:
        with self._lock:
            current = self._plans.get((user_id, plan_id), {})
            staged: _Days = {day: items for day, items in current.items() if not date_range.contains(day)}
            for event in self._clone(events):
                staged.setdefault(event.date, []).append(event)
            for items in staged.values():
                items.sort(key=lambda item: item.order)
            self._plans[(user_id, plan_id)] = staged
            return len({event.date for event in events})

    def find_event(self, user_id: str, plan_id: str, event_id: str) -> Optional[ScheduledEvent]:
        with self._lock:
            for events in self._plans.get((user_id, plan_id), {}).values():
                for event in events:
                    if event.id == event_id:
                        return event.model_copy(deep=True)
        return None

    def upsert_event(self, event: ScheduledEvent) -> ScheduledEvent:
        with self._lock:
            self._remove(event.user_id, event.plan_id, event.id)
            days = self._plans.setdefault((event.user_id, event.plan_id), {})
            items = days.setdefault(event.date, [])
            if any(item.order == event.order for item in items):
                event = event.model_copy(update={"order": max(item.order for item in items) + 1})
            stored = event.model_copy(deep=True)
            items.append(stored)
            items.sort(key=lambda item: item.order)
            return stored.model_copy(deep=True)

    def delete_event(self, user_id: str, plan_id: str, event_id: str) -> bool:
        with self._lock:
            return self._remove(user_id, plan_id, event_id)

    def delete_plan(self, user_id: str, plan_id: str) -> None:
        with self._lock:
            self._plans.pop((user_id, plan_id), None)

    def reset(self) -> None:
        with self._lock:
            self._plans.clear()

    def _remove(self, user_id: str, plan_id: str, event_id: str) -> bool:
        days = self._plans.get((user_id, plan_id), {})
        for day, events in list(days.items()):
            kept = [event for event in events if event.id != event_id]
            if len(kept) == len(events):
                continue
            if kept:
                days[day] = kept
            else:
                del days[day]
            return True
        return False


class _DatabaseScheduleStore:
    """SQLAlchemy backend; a replace runs inside one transaction."""

    def list_events(self, user_id: str, plan_id: str, date_range: Optional[DateRange] = None) -> List[ScheduledEvent]:
        with session_scope(commit=False) as session:
            return _sorted_events(_repo().list_events(session, user_id, plan_id, date_range))

    def replace_range(self, user_id: str, plan_id: str, date_range: DateRange, events: List[ScheduledEvent]) -> int:
        with session_scope() as session:
            return _repo().replace_range(session, user_id, plan_id, date_range, events)

    def find_event(self, user_id: str, plan_id: str, event_id: str) -> Optional[ScheduledEvent]:
        with session_scope(commit=False) as session:
            return _repo().find_event(session, user_id, plan_id, event_id)

    def upsert_event(self, event: ScheduledEvent) -> ScheduledEvent:
        with session_scope() as session:
            return _repo().upsert_event(session, event)

    def delete_event(self, user_id: str, plan_id: str, event_id: str) -> bool:
        with session_scope() as session:
            return _repo().delete_event(session, user_id, plan_id, event_id)

    def delete_plan(self, user_id: str, plan_id: str) -> None:
        with session_scope() as session:
            _repo().delete_plan(session, user_id, plan_id)


class ScheduleStore:
    """Facade that delegates to database or memory persistence based on configuration."""

    def __init__(self, mode: Optional[str] = None) -> None:
        self._mode = mode or get_settings().persistence_mode
        self._backend = _MemoryScheduleStore() if self._mode == "memory" else _DatabaseScheduleStore()

    @property
    def mode(self) -> str:
        return self._mode

    def get(self, user_id: str, plan_id: str, date_range: DateRange) -> List[ScheduledEvent]:
        cached = schedule_cache.get(user_id, plan_id)
        if cached is not None:
            return [event for event in cached if date_range.contains(event.date)]
        return self._backend.list_events(user_id, plan_id, date_range)

    def get_all(self, user_id: str, plan_id: str) -> List[ScheduledEvent]:
        cached = schedule_cache.get(user_id, plan_id)
        if cached is not None:
            return cached
        events = self._backend.list_events(user_id, plan_id)
        schedule_cache.set(user_id, plan_id, events)
        return events

    def find_event(self, user_id: str, plan_id: str, event_id: str) -> Optional[ScheduledEvent]:
        return self._backend.find_event(user_id, plan_id, event_id)

    def replace_range(
        self,
        user_id: str,
        plan_id: str,
        date_range: DateRange,
        events: Iterable[ScheduledEvent],
    ) -> int:
        """Clear every day in ``date_range`` and write ``events`` in one atomic unit."""
        staged = list(events)
        validate_layout(user_id, plan_id, date_range, staged)
        schedule_cache.invalidate(user_id, plan_id)
        try:
            written = self._backend.replace_range(user_id, plan_id, date_range, staged)
        finally:
            schedule_cache.invalidate(user_id, plan_id)
        logger.debug(
            "Replaced %s..%s for user=%s plan=%s (%d events on %d days)",
            date_range.start,
            date_range.end,
            user_id,
            plan_id,
            len(staged),
            written,
        )
        return written

    def upsert_single_event(self, event: ScheduledEvent) -> ScheduledEvent:
        try:
            return self._backend.upsert_event(event)
        finally:
            schedule_cache.invalidate(event.user_id, event.plan_id)

    def delete_event(self, user_id: str, plan_id: str, event_id: str) -> bool:
        try:
            return self._backend.delete_event(user_id, plan_id, event_id)
        finally:
            schedule_cache.invalidate(user_id, plan_id)

    def delete_plan(self, user_id: str, plan_id: str) -> None:
        try:
            self._backend.delete_plan(user_id, plan_id)
        finally:
            schedule_cache.invalidate(user_id, plan_id)

    def reset(self) -> None:
        """Drop all in-memory state. Mainly used to reset test state."""
        if isinstance(self._backend, _MemoryScheduleStore):
            self._backend.reset()
        schedule_cache.clear()


schedule_store = ScheduleStore()

__all__ = ["ScheduleStore", "schedule_store", "validate_layout"]
