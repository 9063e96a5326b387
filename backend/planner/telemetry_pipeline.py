"""Telemetry listener that persists scheduling events to the audit table."""

from __future__ import annotations

import logging
from typing import Set

from .config import get_settings
from .db.session import session_scope
from .repositories.schedules import schedule_days
from .telemetry import TelemetryEvent, register_listener

logger = logging.getLogger(__name__)

_MONITORED_EVENTS: Set[str] = {
    "schedule_generation",
    "schedule_reschedule",
    "anticipation_applied",
    "smart_extension_merged",
    "simulado_scheduled",
    "spaced_reviews_generated",
}


def _persist_event(event: TelemetryEvent) -> None:
    if event.name not in _MONITORED_EVENTS:
        return
    if get_settings().persistence_mode != "database":
        return
    user_id = event.payload.get("user_id")
    if not isinstance(user_id, str) or not user_id.strip():
        return
    try:
        with session_scope() as session:
            schedule_days.record_telemetry_event(session, user_id, event.name, event.payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to persist telemetry event %s for user_id=%s", event.name, user_id)


register_listener(_persist_event)

__all__ = ["_MONITORED_EVENTS"]
