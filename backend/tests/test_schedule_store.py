from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from planner.cache import schedule_cache
from planner.context import changed_range, commit_layout
from planner.db.models import PersistenceAuditEventModel
from planner.db.session import init_schema, session_scope
from planner.models import DateRange
from planner.schedule_store import ScheduleStore

from conftest import make_event

MONDAY = date(2024, 1, 8)
WEEK = DateRange(start=MONDAY, end=MONDAY + timedelta(days=6))


@pytest.fixture(params=["memory", "database"])
def store(request) -> ScheduleStore:
    if request.param == "database":
        init_schema()
    return ScheduleStore(request.param)


def _user(store: ScheduleStore) -> str:
    return f"store-{store.mode}"


def test_replace_range_swaps_whole_days(store: ScheduleStore) -> None:
    user = _user(store)
    first = [
        make_event(MONDAY, "a", 30, user_id=user),
        make_event(MONDAY, "b", 30, order=1, user_id=user),
        make_event(MONDAY + timedelta(days=1), "c", 30, user_id=user),
    ]
    store.replace_range(user, "plan-1", WEEK, first)

    replacement = [make_event(MONDAY + timedelta(days=2), "d", 45, user_id=user)]
    store.replace_range(user, "plan-1", DateRange(start=MONDAY, end=MONDAY + timedelta(days=2)), replacement)

    events = store.get_all(user, "plan-1")
    assert [(event.meta_id, event.date) for event in events] == [("d", MONDAY + timedelta(days=2))]
    store.delete_plan(user, "plan-1")
    assert store.get_all(user, "plan-1") == []


def test_invalid_layout_leaves_existing_days_intact(store: ScheduleStore) -> None:
    user = _user(store)
    original = [make_event(MONDAY, "a", 30, user_id=user)]
    store.replace_range(user, "plan-1", WEEK, original)

    clashing = [
        make_event(MONDAY, "x", 10, user_id=user),
        make_event(MONDAY, "y", 10, user_id=user),
    ]
    with pytest.raises(ValueError):
        store.replace_range(user, "plan-1", WEEK, clashing)
    with pytest.raises(ValueError):
        store.replace_range(user, "plan-1", WEEK, [make_event(MONDAY + timedelta(days=9), "z", 10, user_id=user)])
    with pytest.raises(ValueError):
        store.replace_range(user, "plan-1", WEEK, [make_event(MONDAY, "w", 10, user_id="someone-else")])

    assert [event.id for event in store.get_all(user, "plan-1")] == [original[0].id]
    store.delete_plan(user, "plan-1")


def test_single_event_upsert_moves_and_deduplicates_order(store: ScheduleStore) -> None:
    user = _user(store)
    first = make_event(MONDAY, "a", 30, user_id=user)
    second = make_event(MONDAY + timedelta(days=1), "b", 30, user_id=user)
    store.replace_range(user, "plan-1", WEEK, [first, second])
    assert len(store.get_all(user, "plan-1")) == 2

    moved = store.upsert_single_event(second.model_copy(update={"date": MONDAY}))

    assert moved.order == 1
    day = store.get(user, "plan-1", DateRange(start=MONDAY, end=MONDAY))
    assert [event.id for event in day] == [first.id, second.id]
    assert store.find_event(user, "plan-1", second.id).date == MONDAY
    assert store.delete_event(user, "plan-1", first.id) is True
    assert store.delete_event(user, "plan-1", first.id) is False
    store.delete_plan(user, "plan-1")


def test_writes_invalidate_the_schedule_cache(store: ScheduleStore) -> None:
    user = _user(store)
    store.replace_range(user, "plan-1", WEEK, [make_event(MONDAY, "a", 30, user_id=user)])
    store.get_all(user, "plan-1")
    assert schedule_cache.get(user, "plan-1") is not None

    store.replace_range(user, "plan-1", WEEK, [])
    assert schedule_cache.get(user, "plan-1") is None
    assert store.get_all(user, "plan-1") == []


def test_database_replace_is_audited() -> None:
    init_schema()
    store = ScheduleStore("database")
    store.replace_range("audited", "plan-1", WEEK, [make_event(MONDAY, "a", 30, user_id="audited")])

    with session_scope(commit=False) as session:
        rows = session.execute(
            select(PersistenceAuditEventModel).where(PersistenceAuditEventModel.user_id == "audited")
        ).scalars().all()
        assert [row.event_type for row in rows] == ["schedule_replace_range"]
        assert rows[0].payload["day_count"] == 1
    store.delete_plan("audited", "plan-1")


def test_commit_layout_rewrites_only_the_changed_span() -> None:
    store = ScheduleStore("memory")
    before = [
        make_event(MONDAY, "a", 30),
        make_event(MONDAY + timedelta(days=3), "b", 30),
    ]
    store.replace_range("student-1", "plan-1", WEEK, before)
    after = [before[0], before[1].model_copy(update={"date": MONDAY + timedelta(days=4)})]

    span = commit_layout("student-1", "plan-1", before, after, store=store)

    assert span == DateRange(start=MONDAY + timedelta(days=3), end=MONDAY + timedelta(days=4))
    assert [event.date for event in store.get_all("student-1", "plan-1")] == [MONDAY, MONDAY + timedelta(days=4)]
    assert changed_range(after, after) is None
