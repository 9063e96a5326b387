from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta

import pytest

from planner.allocator import TimeBudgetAllocator
from planner.errors import NoBudgetAvailableError
from planner.models import WorkUnit, routine_minutes

from conftest import WEEKDAYS_ONLY

MONDAY = date(2024, 1, 1)


def _unit(meta_id: str, minutes: int, kind: str = "lesson", order: int = 0) -> WorkUnit:
    return WorkUnit(meta_id=meta_id, title=meta_id, type=kind, duration_minutes=minutes, order=order)


def _allocate(units, routine=None, start=MONDAY, **kwargs):
    return TimeBudgetAllocator().allocate(
        units,
        routine if routine is not None else WEEKDAYS_ONLY,
        start,
        user_id="student-1",
        plan_id="plan-1",
        **kwargs,
    )


def test_three_lessons_fill_monday_and_tuesday() -> None:
    events = _allocate([_unit("l1", 40, order=0), _unit("l2", 40, order=1), _unit("l3", 40, order=2)])

    layout = [(event.date, event.meta_id, event.duration_minutes, event.part, event.order) for event in events]
    tuesday = MONDAY + timedelta(days=1)
    assert layout == [
        (MONDAY, "l1", 40, None, 0),
        (MONDAY, "l2", 20, 1, 1),
        (tuesday, "l2", 20, 2, 0),
        (tuesday, "l3", 40, None, 1),
    ]


def test_split_fragments_conserve_duration_and_respect_budget() -> None:
    units = [_unit("a", 100, order=0), _unit("b", 35, order=1), _unit("c", 200, order=2)]
    events = _allocate(units)

    per_meta = defaultdict(int)
    per_day = defaultdict(int)
    orders = defaultdict(list)
    for event in events:
        per_meta[event.meta_id] += event.duration_minutes
        per_day[event.date] += event.duration_minutes
        orders[event.date].append(event.order)

    assert dict(per_meta) == {"a": 100, "b": 35, "c": 200}
    for day, minutes in per_day.items():
        assert routine_minutes(WEEKDAYS_ONLY, day) > 0
        assert minutes <= routine_minutes(WEEKDAYS_ONLY, day)
    for day_orders in orders.values():
        assert len(day_orders) == len(set(day_orders))

    parts = [event.part for event in events if event.meta_id == "c"]
    assert parts == list(range(1, len(parts) + 1))


def test_summary_is_deferred_whole_when_the_day_is_partly_used() -> None:
    routine = {1: 50, 2: 50}
    events = _allocate([_unit("lesson", 30), _unit("summary", 30, kind="summary")], routine=routine)

    summary = [event for event in events if event.meta_id == "summary"]
    assert len(summary) == 1
    assert summary[0].date == MONDAY + timedelta(days=1)
    assert summary[0].part is None
    assert summary[0].duration_minutes == 30


def test_extendable_goal_carries_smart_extension_hint() -> None:
    events = _allocate([_unit("pdf", 70, kind="material")])

    first, second = events
    assert first.duration_minutes == 60
    assert first.smart_extension is not None
    assert first.smart_extension.minutes == 10
    assert second.duration_minutes == 10
    assert second.smart_extension is None


def test_reserved_minutes_and_blocked_dates_shrink_budget() -> None:
    tuesday = MONDAY + timedelta(days=1)
    events = _allocate(
        [_unit("a", 60)],
        reserved={MONDAY: 40},
        order_floor={MONDAY: 3},
        blocked_dates={tuesday},
    )

    assert [(event.date, event.duration_minutes, event.order) for event in events] == [
        (MONDAY, 20, 4),
        (MONDAY + timedelta(days=2), 40, 0),
    ]


def test_start_on_day_without_budget_moves_to_next_study_day() -> None:
    sunday = MONDAY - timedelta(days=1)
    events = _allocate([_unit("a", 30)], start=sunday)
    assert events[0].date == MONDAY


def test_zero_duration_goal_lands_on_an_open_day() -> None:
    saturday = MONDAY + timedelta(days=5)
    events = _allocate([_unit("empty", 0)], start=saturday)
    assert events[0].date == MONDAY + timedelta(days=7)
    assert events[0].duration_minutes == 0


def test_all_zero_routine_fails_fast() -> None:
    with pytest.raises(NoBudgetAvailableError):
        _allocate([_unit("a", 30)], routine={day: 0 for day in range(7)})


def test_allocation_beyond_horizon_raises() -> None:
    allocator = TimeBudgetAllocator(max_horizon_days=7)
    with pytest.raises(NoBudgetAvailableError):
        allocator.allocate(
            [_unit("huge", 1000)],
            WEEKDAYS_ONLY,
            MONDAY,
            user_id="student-1",
            plan_id="plan-1",
        )


def test_existing_event_ids_are_reused_for_fragments() -> None:
    unit = WorkUnit(meta_id="a", title="a", type="lesson", duration_minutes=90, event_ids=["first", "second"])
    events = _allocate([unit])
    assert [event.id for event in events] == ["first", "second"]


def test_summary_skips_every_partly_reserved_day_until_one_holds_it() -> None:
    routine = {1: 50, 2: 50, 3: 50}
    tuesday = MONDAY + timedelta(days=1)
    events = _allocate(
        [_unit("lesson", 30, order=0), _unit("summary", 30, kind="summary", order=1)],
        routine=routine,
        reserved={tuesday: 40},
    )

    layout = [(event.date, event.meta_id, event.duration_minutes, event.part) for event in events]
    assert layout == [
        (MONDAY, "lesson", 30, None),
        (MONDAY + timedelta(days=2), "summary", 30, None),
    ]


def test_review_longer_than_a_fresh_day_is_split() -> None:
    events = _allocate([_unit("lesson", 30), _unit("review", 90, kind="review")])

    review = [(event.date, event.duration_minutes, event.part) for event in events if event.meta_id == "review"]
    assert review == [
        (MONDAY, 30, 1),
        (MONDAY + timedelta(days=1), 60, 2),
    ]


def test_zero_duration_goal_skips_a_day_with_no_budget_left() -> None:
    events = _allocate([_unit("full", 60), _unit("marker", 0)])
    assert [(event.meta_id, event.date) for event in events] == [
        ("full", MONDAY),
        ("marker", MONDAY + timedelta(days=1)),
    ]

    reserved_events = _allocate([_unit("marker", 0)], reserved={MONDAY: 60})
    assert reserved_events[0].date == MONDAY + timedelta(days=1)
