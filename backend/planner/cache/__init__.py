"""In-memory caches shared across backend services."""

from .schedule_cache import schedule_cache, ScheduleCache

__all__ = ["schedule_cache", "ScheduleCache"]
