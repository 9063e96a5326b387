"""Student-local calendar helpers."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import get_settings

logger = logging.getLogger(__name__)


def resolve_timezone(raw: Optional[str]) -> ZoneInfo:
    """Return the student's zone, falling back to the configured default."""
    candidate = (raw or "").strip()
    if candidate:
        try:
            return ZoneInfo(candidate)
        except ZoneInfoNotFoundError:
            logger.warning("Ignoring unsupported timezone value: %s", candidate)
    return ZoneInfo(get_settings().default_timezone)


def local_now(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(resolve_timezone(tz_name))


def minutes_until_end_of_day(now: datetime) -> int:
    """Whole minutes left before local midnight for ``now``."""
    midnight = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)
    remaining = (midnight - now).total_seconds() // 60
    return max(0, int(remaining))


__all__ = ["local_now", "minutes_until_end_of_day", "resolve_timezone"]
