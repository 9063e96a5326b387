from __future__ import annotations

from datetime import date, timedelta

from planner.anticipation import (
    anticipate_future_goals,
    anticipation_budget,
    next_pending_goals,
    try_anticipate,
)
from planner.clock import minutes_until_end_of_day
from planner.schedule_store import schedule_store

from conftest import local_dt, make_event, seed_student

TODAY = date(2024, 1, 3)
ROUTINE = {0: 0, 1: 180, 2: 180, 3: 180, 4: 180, 5: 180, 6: 0}


def _finished_day():
    return [
        make_event(TODAY, f"done-{index}", 60, order=index, status="completed", recorded_minutes=50)
        for index in range(3)
    ]


def test_budget_follows_literal_thresholds() -> None:
    morning = local_dt(TODAY, 10)
    assert minutes_until_end_of_day(morning) == 14 * 60
    assert anticipation_budget(180, 150, morning) == 30
    assert anticipation_budget(10, 0, morning) == 30
    assert anticipation_budget(180, 170, morning) == 0
    assert anticipation_budget(180, 0, local_dt(TODAY, 23, 50)) == 0


def test_next_pending_goals_skip_reviews_and_mock_exams() -> None:
    events = [
        make_event(TODAY + timedelta(days=1), "goal", 20, order=1),
        make_event(TODAY + timedelta(days=1), "rev", 15, order=0, type="review", original_event_id="x"),
        make_event(TODAY + timedelta(days=2), "sim", 240, type="simulado"),
        make_event(TODAY + timedelta(days=30), "far", 20),
    ]
    assert [event.meta_id for event in next_pending_goals(events, TODAY)] == ["goal"]


def test_finished_day_pulls_only_the_fitting_prefix() -> None:
    first = make_event(TODAY + timedelta(days=1), "next-1", 15, order=0)
    second = make_event(TODAY + timedelta(days=1), "next-2", 20, order=1)
    seed_student(_finished_day() + [first, second], routine=ROUTINE)
    now = local_dt(TODAY, 10)

    offer = try_anticipate("student-1", now=now)

    assert offer is not None
    assert offer.budget_minutes == 30
    assert [event.id for event in offer.candidate_events] == [first.id]

    moved = anticipate_future_goals("student-1", offer.budget_minutes, now=now)

    stored = {event.id: event for event in schedule_store.get_all("student-1", "plan-1")}
    assert moved == 1
    assert stored[first.id].date == TODAY
    assert stored[first.id].order == 3
    assert stored[second.id].date == TODAY + timedelta(days=1)


def test_no_offer_while_today_has_pending_work() -> None:
    events = _finished_day()
    events[0] = events[0].model_copy(update={"status": "pending"})
    seed_student(events + [make_event(TODAY + timedelta(days=1), "next", 15)], routine=ROUTINE)
    assert try_anticipate("student-1", now=local_dt(TODAY, 10)) is None


def test_no_offer_with_overdue_work_or_an_empty_day() -> None:
    seed_student(
        _finished_day()
        + [
            make_event(TODAY - timedelta(days=1), "late", 30),
            make_event(TODAY + timedelta(days=1), "next", 15),
        ],
        routine=ROUTINE,
    )
    assert try_anticipate("student-1", now=local_dt(TODAY, 10)) is None

    seed_student(
        [make_event(TODAY + timedelta(days=1), "next", 15, user_id="student-2")],
        user_id="student-2",
        routine=ROUTINE,
    )
    assert try_anticipate("student-2", now=local_dt(TODAY, 10)) is None


def test_accepting_pulls_work_forward_and_closes_the_gap_behind_it() -> None:
    tomorrow = TODAY + timedelta(days=1)
    pulled = make_event(tomorrow, "pull", 30, order=0)
    filler = make_event(tomorrow, "fill", 150, order=1)
    later = make_event(TODAY + timedelta(days=2), "later", 30, order=0)
    seed_student(_finished_day() + [pulled, filler, later], routine=ROUTINE)
    now = local_dt(TODAY, 10)

    moved = anticipate_future_goals("student-1", 30, now=now)

    stored = {event.id: event for event in schedule_store.get_all("student-1", "plan-1")}
    assert moved == 1
    assert stored[pulled.id].date == TODAY
    assert stored[filler.id].date == tomorrow
    assert stored[later.id].date == tomorrow
    assert sum(event.duration_minutes for event in stored.values() if event.date == tomorrow) == 180


def test_accepting_rechecks_that_the_day_is_still_eligible() -> None:
    events = _finished_day()
    events[0] = events[0].model_copy(update={"status": "pending"})
    upcoming = make_event(TODAY + timedelta(days=1), "next", 15)
    seed_student(events + [upcoming], routine=ROUTINE)

    assert anticipate_future_goals("student-1", 30, now=local_dt(TODAY, 10)) == 0

    stored = {event.id: event for event in schedule_store.get_all("student-1", "plan-1")}
    assert stored[upcoming.id].date == TODAY + timedelta(days=1)
