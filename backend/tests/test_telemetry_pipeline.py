from __future__ import annotations

from planner import telemetry_pipeline
from planner.config import get_settings
from planner.db.session import init_schema, session_scope
from planner.repositories.schedules import schedule_days
from planner.telemetry import emit_event, register_listener


def test_scheduling_events_persist_in_database_mode(monkeypatch) -> None:
    init_schema()
    database_settings = get_settings().model_copy(update={"persistence_mode": "database"})
    monkeypatch.setattr(telemetry_pipeline, "get_settings", lambda: database_settings)
    register_listener(telemetry_pipeline._persist_event)

    emit_event("schedule_reschedule", user_id="telemetry-student", plan_id="plan-1", moved=3)
    emit_event("db_pool_status", user_id="telemetry-student", connects=1)

    with session_scope(commit=False) as session:
        events = schedule_days.recent_telemetry_events(session, "telemetry-student")
        assert [event.event_type for event in events] == ["schedule_reschedule"]
        assert events[0].payload["moved"] == 3


def test_memory_mode_skips_persistence() -> None:
    init_schema()
    register_listener(telemetry_pipeline._persist_event)

    emit_event("schedule_generation", user_id="memory-student", status="success")

    with session_scope(commit=False) as session:
        assert schedule_days.recent_telemetry_events(session, "memory-student") == []
