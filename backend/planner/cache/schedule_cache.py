"""Process-local cache of student schedules keyed by (user_id, plan_id)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, List, Optional, Tuple

from ..models import ScheduledEvent

_Key = Tuple[str, str]


def _key(user_id: str, plan_id: str) -> _Key:
    user = user_id.strip()
    plan = plan_id.strip()
    if not user or not plan:
        raise ValueError("User id and plan id are required when caching schedules.")
    return user, plan


@dataclass
class _ScheduleEntry:
    events: List[ScheduledEvent]
    cached_at: datetime


class ScheduleCache:
    def __init__(self) -> None:
        self._entries: Dict[_Key, _ScheduleEntry] = {}
        self._lock = RLock()

    def get(self, user_id: str, plan_id: str) -> Optional[List[ScheduledEvent]]:
        with self._lock:
            entry = self._entries.get(_key(user_id, plan_id))
        if entry is None:
            return None
        return [event.model_copy(deep=True) for event in entry.events]

    def set(self, user_id: str, plan_id: str, events: List[ScheduledEvent]) -> None:
        payload = [event.model_copy(deep=True) for event in events]
        with self._lock:
            self._entries[_key(user_id, plan_id)] = _ScheduleEntry(
                events=payload,
                cached_at=datetime.now(timezone.utc),
            )

    def invalidate(self, user_id: str, plan_id: str) -> None:
        with self._lock:
            self._entries.pop(_key(user_id, plan_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


schedule_cache = ScheduleCache()

__all__ = ["ScheduleCache", "schedule_cache"]
