"""Pull future work into today when the student finishes early."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from .clock import minutes_until_end_of_day
from .config import get_settings
from .context import StudentContext, commit_layout, load_context
from .models import AnticipationOffer, ScheduledEvent, is_simulado, is_spaced_review, routine_minutes
from .reschedule_engine import melt_and_recast
from .schedule_store import schedule_store
from .telemetry import emit_event

logger = logging.getLogger(__name__)


def next_pending_goals(
    events: Sequence[ScheduledEvent],
    today: date,
    *,
    lookahead_days: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[ScheduledEvent]:
    """Pending general work from tomorrow through the lookahead window, in schedule order."""
    settings = get_settings()
    horizon = today + timedelta(days=lookahead_days or settings.anticipation_lookahead_days)
    queue = [
        event
        for event in events
        if event.status == "pending"
        and today < event.date <= horizon
        and not is_spaced_review(event)
        and not is_simulado(event)
    ]
    queue.sort(key=lambda item: (item.date, item.order))
    if limit is not None:
        queue = queue[:limit]
    return queue


def anticipation_budget(routine_today: int, recorded_today: float, now: datetime) -> int:
    """Minutes that can still be offered today, or 0 when no offer should be made."""
    settings = get_settings()
    real_time_left = minutes_until_end_of_day(now)
    balance = max(0, routine_today - int(math.ceil(recorded_today)))
    budget = min(balance, real_time_left)
    if (
        budget < settings.anticipation_min_budget_minutes
        and real_time_left > settings.anticipation_early_day_minutes
        and recorded_today == 0
    ):
        budget = settings.anticipation_floor_minutes
    if budget < settings.anticipation_min_budget_minutes:
        return 0
    return budget


def select_prefix(candidates: Sequence[ScheduledEvent], budget: int) -> List[ScheduledEvent]:
    """Greedy ordered prefix whose cumulative duration stays within ``budget``."""
    selected: List[ScheduledEvent] = []
    used = 0
    for event in candidates:
        if used + event.duration_minutes > budget:
            break
        selected.append(event)
        used += event.duration_minutes
    return selected


def _available_budget(context: StudentContext, events: Sequence[ScheduledEvent]) -> int:
    """Offerable minutes for today, or 0 unless today is done and nothing is overdue."""
    if context.profile.is_plan_paused:
        return 0
    today = context.today
    todays = [event for event in events if event.date == today]
    if not todays or any(event.status != "completed" for event in todays):
        return 0
    if any(event.status == "pending" and event.date < today for event in events):
        return 0
    recorded = sum(event.recorded_minutes for event in todays)
    return anticipation_budget(routine_minutes(context.routine, today), recorded, context.now)


def try_anticipate(
    user_id: str,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Optional[AnticipationOffer]:
    context = load_context(user_id, plan_id, now=now)
    events = schedule_store.get_all(context.user_id, context.plan_id)
    budget = _available_budget(context, events)
    if budget <= 0:
        return None

    settings = get_settings()
    candidates = next_pending_goals(events, context.today, limit=settings.anticipation_candidate_limit)
    selected = select_prefix(candidates, budget)
    if not selected:
        return None
    return AnticipationOffer(candidate_events=selected, budget_minutes=budget)


def anticipate_future_goals(
    user_id: str,
    budget_minutes: int,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> int:
    """Move the fitting prefix of future work into today and heal the gap behind it.

    Returns the number of events pulled into today.
    """
    if budget_minutes <= 0:
        raise ValueError("Anticipation budget must be positive.")
    context = load_context(user_id, plan_id, now=now)
    today = context.today
    settings = get_settings()
    events = schedule_store.get_all(context.user_id, context.plan_id)

    budget = min(budget_minutes, _available_budget(context, events))
    if budget <= 0:
        logger.info("Anticipation no longer available for user=%s plan=%s", context.user_id, context.plan_id)
        return 0
    candidates = next_pending_goals(events, today, limit=settings.anticipation_candidate_limit)
    selected = select_prefix(candidates, budget)
    if not selected:
        return 0

    floor = max((event.order for event in events if event.date == today), default=-1)
    moved_ids = {event.id: index for index, event in enumerate(selected)}
    staged: List[ScheduledEvent] = []
    for event in events:
        position = moved_ids.get(event.id)
        if position is None:
            staged.append(event)
        else:
            staged.append(event.model_copy(update={"date": today, "order": floor + 1 + position}))

    result = melt_and_recast(
        staged,
        context.routine,
        today,
        preserve_today=True,
        user_id=context.user_id,
        plan_id=context.plan_id,
        tolerance=context.tolerance,
    )
    commit_layout(context.user_id, context.plan_id, events, result.events)
    emit_event(
        "anticipation_applied",
        user_id=context.user_id,
        plan_id=context.plan_id,
        budget_minutes=budget_minutes,
        moved=len(selected),
        minutes=sum(event.duration_minutes for event in selected),
        reflowed=result.moved_count,
    )
    logger.info(
        "Anticipated %d events into %s for user=%s plan=%s",
        len(selected),
        today,
        context.user_id,
        context.plan_id,
    )
    return len(selected)


__all__ = [
    "anticipate_future_goals",
    "anticipation_budget",
    "next_pending_goals",
    "select_prefix",
    "try_anticipate",
]
