from __future__ import annotations

from datetime import date, timedelta

import pytest

from planner import schedule_service
from planner.errors import NoBudgetAvailableError
from planner.reschedule_engine import consolidate, melt_and_recast, reserved_load
from planner.schedule_store import schedule_store

from conftest import WEEKDAYS_ONLY, make_event, seed_student

SUNDAY = date(2024, 1, 7)
MONDAY = date(2024, 1, 8)


def test_overdue_work_skips_a_day_without_routine() -> None:
    events = [
        make_event(SUNDAY - timedelta(days=2), "m1", 30),
        make_event(SUNDAY - timedelta(days=1), "m2", 30),
    ]
    seed_student(events)

    moved = schedule_service.reschedule_overdue_tasks("student-1", today=SUNDAY)

    stored = schedule_store.get_all("student-1", "plan-1")
    assert moved == 2
    assert all(event.date == MONDAY for event in stored)
    assert [event.meta_id for event in stored] == ["m1", "m2"]
    assert {event.id for event in stored} == {event.id for event in events}


def test_reschedule_is_idempotent() -> None:
    events = [
        make_event(SUNDAY - timedelta(days=3), "m1", 45),
        make_event(SUNDAY - timedelta(days=2), "m2", 50),
        make_event(MONDAY, "m3", 30),
        make_event(SUNDAY - timedelta(days=1), "rev", 20, type="review", original_event_id="done-1", review_label="REV. 1/2"),
    ]
    seed_student(events)

    first = schedule_service.reschedule_overdue_tasks("student-1", today=SUNDAY)
    snapshot = [event.model_dump() for event in schedule_store.get_all("student-1", "plan-1")]
    second = schedule_service.reschedule_overdue_tasks("student-1", today=SUNDAY)

    assert first > 0
    assert second == 0
    assert [event.model_dump() for event in schedule_store.get_all("student-1", "plan-1")] == snapshot


def test_overdue_reviews_are_placed_before_general_work() -> None:
    events = [
        make_event(SUNDAY - timedelta(days=2), "general", 30, global_sequence=0),
        make_event(
            SUNDAY - timedelta(days=2),
            "goal-0",
            18,
            order=1,
            type="review",
            original_event_id="done-0",
            review_label="REV. 1/1",
        ),
    ]
    result = melt_and_recast(events, WEEKDAYS_ONLY, MONDAY, user_id="student-1", plan_id="plan-1")

    placed = sorted(result.events, key=lambda item: (item.date, item.order))
    assert [event.type for event in placed] == ["review", "lesson"]
    assert all(event.date == MONDAY for event in placed)


def test_preserve_today_leaves_todays_events_untouched() -> None:
    todays = make_event(MONDAY, "today", 60)
    later = make_event(MONDAY + timedelta(days=3), "later", 30)
    result = melt_and_recast(
        [todays, later],
        WEEKDAYS_ONLY,
        MONDAY,
        preserve_today=True,
        user_id="student-1",
        plan_id="plan-1",
    )

    by_id = {event.id: event for event in result.events}
    assert by_id[todays.id] == todays
    assert by_id[later.id].date == MONDAY + timedelta(days=1)
    assert result.anchor == MONDAY + timedelta(days=1)


def test_fragments_consolidate_and_continue_part_numbering() -> None:
    done = make_event(SUNDAY - timedelta(days=3), "split", 60, part=1, status="completed")
    pending = [
        make_event(SUNDAY - timedelta(days=2), "split", 30, part=2),
        make_event(SUNDAY - timedelta(days=1), "split", 20, part=3),
    ]
    units = consolidate(pending, [done])

    assert len(units) == 1
    assert units[0].duration_minutes == 50
    assert units[0].part_offset == 1
    assert units[0].event_ids == [event.id for event in pending]


def test_reserved_load_counts_recorded_minutes_today_and_blocks_mock_exams() -> None:
    completed_today = make_event(MONDAY, "done", 60, status="completed", recorded_minutes=25.5)
    exam = make_event(MONDAY + timedelta(days=1), "sim", 240, type="simulado")
    reserved, floors, blocked = reserved_load([completed_today, exam], MONDAY, MONDAY)

    assert reserved[MONDAY] == 26
    assert reserved[MONDAY + timedelta(days=1)] == 240
    assert blocked == {MONDAY + timedelta(days=1)}
    assert floors[MONDAY] == 0


def test_no_budget_aborts_without_touching_the_store() -> None:
    events = [make_event(SUNDAY - timedelta(days=1), "m1", 30)]
    seed_student(events)
    before = [event.model_dump() for event in schedule_store.get_all("student-1", "plan-1")]

    with pytest.raises(NoBudgetAvailableError):
        schedule_service.reschedule_overdue_tasks(
            "student-1",
            routine={day: 0 for day in range(7)},
            today=SUNDAY,
        )

    assert [event.model_dump() for event in schedule_store.get_all("student-1", "plan-1")] == before


def _recast_twice(events, today, **kwargs):
    first = melt_and_recast(events, WEEKDAYS_ONLY, today, user_id="student-1", plan_id="plan-1", **kwargs)
    second = melt_and_recast(first.events, WEEKDAYS_ONLY, today, user_id="student-1", plan_id="plan-1", **kwargs)
    return first, second


def _layout(events):
    return sorted((event.id, event.date, event.order, event.duration_minutes, event.part) for event in events)


def test_preserved_today_recast_keeps_summary_whole_across_passes() -> None:
    wednesday = MONDAY + timedelta(days=2)
    events = [
        make_event(MONDAY, "today", 60),
        make_event(SUNDAY - timedelta(days=2), "lesson", 40, global_sequence=0),
        make_event(SUNDAY - timedelta(days=2), "summary", 40, order=1, type="summary", global_sequence=1),
        make_event(wednesday, "rev", 50, type="review", original_event_id="done-1", review_label="REV. 1/1"),
    ]

    first, second = _recast_twice(events, MONDAY, preserve_today=True)

    summary = [event for event in first.events if event.meta_id == "summary"]
    assert [(event.date, event.duration_minutes, event.part) for event in summary] == [
        (MONDAY + timedelta(days=3), 40, None)
    ]
    assert second.moved_count == 0
    assert _layout(second.events) == _layout(first.events)


def test_zero_duration_goal_stays_put_behind_a_long_overdue_review() -> None:
    events = [
        make_event(
            SUNDAY - timedelta(days=1),
            "rev",
            130,
            type="review",
            original_event_id="done-1",
            review_label="REV. 1/1",
        ),
        make_event(SUNDAY - timedelta(days=1), "marker", 0, order=1, global_sequence=0),
    ]

    first, second = _recast_twice(events, MONDAY)

    (marker,) = [event for event in first.events if event.meta_id == "marker"]
    assert marker.date == MONDAY + timedelta(days=2)
    assert second.moved_count == 0
    assert _layout(second.events) == _layout(first.events)
