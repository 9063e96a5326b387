"""Student-facing scheduling operations built on the engines and stores."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .allocator import TimeBudgetAllocator
from .anticipation import next_pending_goals
from .context import commit_layout, load_context
from .curriculum_reader import (
    calculate_meta_duration,
    compute_simulado_statuses,
    flatten,
    index_metas,
    simulado_duration,
    simulado_items,
)
from .errors import DuplicateAttemptError, SimuladoLockedError
from .models import (
    ComputedSimulado,
    Dashboard,
    DateRange,
    MergeOffer,
    Plan,
    PlanStats,
    ScheduledEvent,
    StudentProfile,
    StudyProfile,
    SyncStatus,
    WorkUnit,
    is_simulado,
    is_spaced_review,
)
from .reschedule_engine import consolidate, melt_and_recast, reflow_from, reserved_load
from .schedule_store import schedule_store
from .smart_merge import merge_offer
from .spaced_review import generate_spaced_reviews
from .student_store import student_store
from .telemetry import emit_event

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generation and rescheduling
# ---------------------------------------------------------------------------


def _is_kept_on_replan(event: ScheduledEvent, today: date) -> bool:
    return (
        event.date < today
        or event.status == "completed"
        or is_spaced_review(event)
        or is_simulado(event)
    )


def _refresh_from_plan(event: ScheduledEvent, metas: Dict[str, Any], profile: StudyProfile) -> ScheduledEvent:
    entry = metas.get(event.meta_id)
    if entry is None or is_simulado(event):
        return event
    update: Dict[str, object] = {
        "title": entry.meta.title,
        "discipline_name": entry.discipline.name,
        "topic_name": entry.topic.name,
    }
    if is_spaced_review(event):
        update["reference_color"] = entry.meta.color
    else:
        update["color"] = entry.meta.color
        if event.status == "pending" and event.part is None:
            duration = calculate_meta_duration(entry.meta, profile)
            update["duration_minutes"] = duration
            update["original_duration"] = duration
    return event.model_copy(update=update)


def _build_queue(
    plan: Plan,
    profile: StudyProfile,
    existing: List[ScheduledEvent],
    kept: List[ScheduledEvent],
    processed: Set[str],
    today: date,
) -> List[WorkUnit]:
    """Curriculum units still to place, with partly done goals reduced to their remainder."""
    leftovers = [
        event
        for event in existing
        if event.meta_id in processed
        and event.status == "pending"
        and not _is_kept_on_replan(event, today)
    ]
    remainders = {unit.meta_id: unit for unit in consolidate(leftovers, kept)}

    queue: List[WorkUnit] = []
    for unit in flatten(plan, profile):
        if unit.meta_id not in processed:
            queue.append(unit)
            continue
        remainder = remainders.pop(unit.meta_id, None)
        if remainder is not None:
            queue.append(
                remainder.model_copy(
                    update={
                        "title": unit.title,
                        "discipline_name": unit.discipline_name,
                        "topic_name": unit.topic_name,
                        "color": unit.color,
                        "order": unit.order,
                        "review_intervals": unit.review_intervals,
                    }
                )
            )
    # Goals no longer in the plan keep their remaining fragments at the end.
    queue.extend(remainders.values())
    return queue


def generate_schedule(
    user_id: str,
    plan_id: Optional[str] = None,
    study_profile: Optional[StudyProfile] = None,
    routine: Optional[Dict[int, int]] = None,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> List[ScheduledEvent]:
    """Regenerate a student's plan schedule, keeping history and spaced reviews."""
    context = load_context(user_id, plan_id, now=now, today=today)
    plan = student_store.require_plan(context.plan_id)
    profile = study_profile or context.profile.study_profile
    routine = routine if routine is not None else context.routine
    start = time.perf_counter()
    try:
        existing = schedule_store.get_all(context.user_id, context.plan_id)
        metas = index_metas(plan)
        kept = [
            _refresh_from_plan(event, metas, profile)
            for event in existing
            if _is_kept_on_replan(event, context.today)
        ]
        processed = {
            event.meta_id for event in kept if not is_spaced_review(event) and not is_simulado(event)
        }
        queue = _build_queue(plan, profile, existing, kept, processed, context.today)
        reserved, floors, blocked = reserved_load(kept, context.today, context.today)
        placed = TimeBudgetAllocator().allocate(
            queue,
            routine,
            context.today,
            user_id=context.user_id,
            plan_id=context.plan_id,
            reserved=reserved,
            order_floor=floors,
            blocked_dates=blocked,
            tolerance=profile.smart_merge_tolerance,
        )
        layout = kept + placed
        dates = [event.date for event in existing] + [event.date for event in layout]
        if dates:
            schedule_store.replace_range(
                context.user_id,
                context.plan_id,
                DateRange(start=min(dates), end=max(dates)),
                layout,
            )
    except Exception as exc:  # noqa: BLE001
        emit_event(
            "schedule_generation",
            user_id=context.user_id,
            plan_id=context.plan_id,
            status="error",
            duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
            error=str(exc),
            exception_type=exc.__class__.__name__,
        )
        logger.exception("Failed to generate schedule for user=%s plan=%s", context.user_id, context.plan_id)
        raise

    emit_event(
        "schedule_generation",
        user_id=context.user_id,
        plan_id=context.plan_id,
        status="success",
        duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
        kept_count=len(kept),
        placed_count=len(placed),
        total_minutes=sum(event.duration_minutes for event in placed),
        last_date=max((event.date for event in placed), default=None),
    )
    return sorted(layout, key=lambda item: (item.date, item.order))


def reschedule_overdue_tasks(
    user_id: str,
    plan_id: Optional[str] = None,
    routine: Optional[Dict[int, int]] = None,
    preserve_today: bool = False,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> int:
    """Melt overdue and future pending work and re-cast it; returns the moved count."""
    context = load_context(user_id, plan_id, now=now, today=today)
    routine = routine if routine is not None else context.routine
    start = time.perf_counter()
    try:
        events = schedule_store.get_all(context.user_id, context.plan_id)
        result = melt_and_recast(
            events,
            routine,
            context.today,
            preserve_today=preserve_today,
            user_id=context.user_id,
            plan_id=context.plan_id,
            tolerance=context.tolerance,
        )
        span = commit_layout(context.user_id, context.plan_id, events, result.events)
    except Exception as exc:  # noqa: BLE001
        emit_event(
            "schedule_reschedule",
            user_id=context.user_id,
            plan_id=context.plan_id,
            status="error",
            preserve_today=preserve_today,
            error=str(exc),
            exception_type=exc.__class__.__name__,
        )
        raise

    emit_event(
        "schedule_reschedule",
        user_id=context.user_id,
        plan_id=context.plan_id,
        status="success" if span is not None else "unchanged",
        preserve_today=preserve_today,
        duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
        melted=result.melted_count,
        moved=result.moved_count,
    )
    return result.moved_count


# ---------------------------------------------------------------------------
# Read paths
# ---------------------------------------------------------------------------


def get_range_schedule(user_id: str, plan_id: str, date_range: DateRange) -> List[ScheduledEvent]:
    return schedule_store.get(user_id, plan_id, date_range)


def get_dashboard(
    user_id: str,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> Dashboard:
    profile = student_store.require_profile(user_id)
    if profile.is_plan_paused or not profile.current_plan_id:
        return Dashboard(plan_id=profile.current_plan_id)
    context = load_context(user_id, now=now, today=today)
    events = schedule_store.get_all(context.user_id, context.plan_id)

    todays = [event for event in events if event.date == context.today]
    todays.sort(key=lambda item: (item.status == "completed", item.order))
    overdue = [event for event in events if event.status == "pending" and event.date < context.today]
    overdue.sort(key=lambda item: (item.date, item.order))
    return Dashboard(
        plan_id=context.plan_id,
        today=todays,
        overdue_reviews=[event for event in overdue if is_spaced_review(event)],
        overdue_general=[event for event in overdue if not is_spaced_review(event)],
    )


def get_next_pending_goals(
    user_id: str,
    plan_id: Optional[str] = None,
    limit: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> List[ScheduledEvent]:
    context = load_context(user_id, plan_id, now=now, today=today)
    events = schedule_store.get_all(context.user_id, context.plan_id)
    return next_pending_goals(events, context.today, limit=limit)


def _completed_meta_ids(events: List[ScheduledEvent]) -> Set[str]:
    completed: Set[str] = set()
    unfinished: Set[str] = set()
    for event in events:
        if is_spaced_review(event):
            continue
        if event.status == "completed":
            completed.add(event.meta_id)
        else:
            unfinished.add(event.meta_id)
    return completed - unfinished


def get_completed_meta_ids(user_id: str, plan_id: Optional[str] = None) -> Set[str]:
    """Goals (and mock exams) with every scheduled fragment completed."""
    profile = student_store.require_profile(user_id)
    resolved = plan_id or profile.current_plan_id
    if not resolved:
        raise LookupError(f"Student '{user_id}' has no active plan.")
    return _completed_meta_ids(schedule_store.get_all(profile.user_id, resolved))


# ---------------------------------------------------------------------------
# Student actions
# ---------------------------------------------------------------------------


def _find_event(events: List[ScheduledEvent], event_id: str) -> ScheduledEvent:
    for event in events:
        if event.id == event_id:
            return event
    raise LookupError(f"Scheduled event '{event_id}' was not found.")


def _is_final_fragment(event: ScheduledEvent, events: List[ScheduledEvent]) -> bool:
    return not any(
        other.meta_id == event.meta_id
        and other.id != event.id
        and other.status == "pending"
        and not is_spaced_review(other)
        for other in events
    )


def toggle_goal_status(
    user_id: str,
    event_id: str,
    target: Optional[str] = None,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> ScheduledEvent:
    """Complete or reopen an event; completing a goal's last fragment spawns its reviews."""
    context = load_context(user_id, plan_id, now=now)
    events = schedule_store.get_all(context.user_id, context.plan_id)
    event = _find_event(events, event_id)
    desired = target or ("pending" if event.status == "completed" else "completed")
    if desired not in ("pending", "completed"):
        raise ValueError(f"Unsupported event status '{desired}'.")

    if event.status == desired:
        if desired == "completed" and is_simulado(event):
            raise DuplicateAttemptError(f"Mock exam '{event.meta_id}' was already completed.")
        return event

    if desired == "completed":
        updated = event.model_copy(update={"status": "completed", "completed_at": context.now})
    else:
        updated = event.model_copy(update={"status": "pending", "completed_at": None})
    stored = schedule_store.upsert_single_event(updated)
    logger.info("Event %s for user=%s marked %s", event_id, context.user_id, desired)

    if (
        desired == "completed"
        and stored.review_intervals
        and not is_spaced_review(stored)
        and _is_final_fragment(stored, events)
        and not any(other.original_event_id == stored.id for other in events)
    ):
        generate_spaced_reviews(stored, context.today)
    return stored


def register_study_session(user_id: str, plan_id: Optional[str], minutes: float) -> StudentProfile:
    """Add studied minutes to the lifetime and per-plan totals."""
    profile = student_store.require_profile(user_id)
    if minutes <= 0:
        return profile
    resolved = plan_id or profile.current_plan_id
    profile.lifetime_minutes += minutes
    if resolved:
        stats = profile.plan_stats.get(resolved) or PlanStats()
        stats.minutes += minutes
        profile.plan_stats[resolved] = stats
    profile.last_updated = datetime.now(timezone.utc)
    return student_store.upsert_profile(profile)


def update_goal_recorded_time(
    user_id: str,
    event_id: str,
    minutes: float,
    plan_id: Optional[str] = None,
) -> Optional[MergeOffer]:
    """Record study time against an event and return a smart-merge offer when one applies."""
    if minutes < 0:
        raise ValueError("Recorded minutes must be non-negative.")
    context = load_context(user_id, plan_id)
    event = schedule_store.find_event(context.user_id, context.plan_id, event_id)
    if event is None:
        raise LookupError(f"Scheduled event '{event_id}' was not found.")
    if minutes:
        event = schedule_store.upsert_single_event(
            event.model_copy(update={"recorded_minutes": event.recorded_minutes + minutes})
        )
    return merge_offer(event, context.tolerance)


# ---------------------------------------------------------------------------
# Mock exams
# ---------------------------------------------------------------------------


def list_simulados(user_id: str, plan_id: Optional[str] = None) -> List[ComputedSimulado]:
    context = load_context(user_id, plan_id)
    plan = student_store.require_plan(context.plan_id)
    events = schedule_store.get_all(context.user_id, context.plan_id)
    return compute_simulado_statuses(plan, _completed_meta_ids(events), events)


def schedule_user_simulado(
    user_id: str,
    simulado_id: str,
    target_date: date,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> ScheduledEvent:
    """Book a released mock exam as a full-day block and re-flow the work it displaces."""
    context = load_context(user_id, plan_id, now=now)
    if target_date < context.today:
        raise ValueError("Mock exams cannot be scheduled in the past.")
    plan = student_store.require_plan(context.plan_id)
    entry = next((item for item in simulado_items(plan) if item.item.id == simulado_id), None)
    if entry is None:
        raise LookupError(f"Mock exam '{simulado_id}' was not found in plan '{context.plan_id}'.")

    events = schedule_store.get_all(context.user_id, context.plan_id)
    if any(is_simulado(event) and event.meta_id == simulado_id and event.status == "completed" for event in events):
        raise DuplicateAttemptError(f"Mock exam '{simulado_id}' was already completed.")
    statuses = {item.id: item for item in compute_simulado_statuses(plan, _completed_meta_ids(events), events)}
    computed = statuses.get(simulado_id)
    if computed is not None and computed.status == "blocked":
        raise SimuladoLockedError(f"Mock exam '{simulado_id}' is still locked.")

    staged = [
        event
        for event in events
        if not (is_simulado(event) and event.meta_id == simulado_id and event.status == "pending")
    ]
    if any(is_simulado(event) and event.status == "pending" and event.date == target_date for event in staged):
        raise ValueError(f"Another mock exam is already booked on {target_date.isoformat()}.")

    floor = max((event.order for event in staged if event.date == target_date), default=-1)
    booking = ScheduledEvent(
        user_id=context.user_id,
        plan_id=context.plan_id,
        date=target_date,
        meta_id=simulado_id,
        type="simulado",
        title=entry.item.simulado_title or "Simulado",
        duration_minutes=simulado_duration(entry.item),
        original_duration=simulado_duration(entry.item),
        order=floor + 1,
    )
    staged.append(booking)
    result = reflow_from(
        staged,
        context.routine,
        target_date,
        context.today,
        user_id=context.user_id,
        plan_id=context.plan_id,
        blocked_dates={target_date},
        tolerance=context.tolerance,
    )
    commit_layout(context.user_id, context.plan_id, events, result.events)
    emit_event(
        "simulado_scheduled",
        user_id=context.user_id,
        plan_id=context.plan_id,
        simulado_id=simulado_id,
        date=target_date,
        displaced=result.moved_count,
    )
    return booking


# ---------------------------------------------------------------------------
# Plan publishing and student sync
# ---------------------------------------------------------------------------


def save_plan(plan: Plan, *, now: Optional[datetime] = None) -> Plan:
    """Store an edited plan and stamp it as modified."""
    stamped = plan.model_copy(update={"last_modified_at": now or datetime.now(timezone.utc)})
    existing = student_store.get_plan(plan.id)
    if existing is not None and stamped.last_synced_at is None:
        stamped.last_synced_at = existing.last_synced_at
    return student_store.upsert_plan(stamped)


def check_sync_status(plan_id: str) -> SyncStatus:
    plan = student_store.require_plan(plan_id)
    pending = plan.last_modified_at is not None and (
        plan.last_synced_at is None or plan.last_modified_at > plan.last_synced_at
    )
    return SyncStatus(
        has_pending_changes=pending,
        last_modified_at=plan.last_modified_at,
        last_synced_at=plan.last_synced_at,
    )


def publish_plan(plan_id: str, *, now: Optional[datetime] = None) -> Plan:
    plan = student_store.require_plan(plan_id)
    plan.last_synced_at = now or datetime.now(timezone.utc)
    stored = student_store.upsert_plan(plan)
    logger.info("Published plan %s at %s", plan_id, stored.last_synced_at)
    return stored


def student_needs_resync(user_id: str, plan_id: Optional[str] = None) -> bool:
    profile = student_store.require_profile(user_id)
    resolved = plan_id or profile.current_plan_id
    if not resolved:
        return False
    plan = student_store.require_plan(resolved)
    if plan.last_synced_at is None:
        return False
    stats = profile.plan_stats.get(resolved)
    return stats is None or stats.last_synced_at is None or stats.last_synced_at < plan.last_synced_at


def sync_student_plan(
    user_id: str,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> List[ScheduledEvent]:
    """Regenerate against the latest published plan and record the sync stamp."""
    events = generate_schedule(user_id, plan_id, now=now, today=today)
    profile = student_store.require_profile(user_id)
    resolved = plan_id or profile.current_plan_id
    plan = student_store.require_plan(resolved)
    stats = profile.plan_stats.get(resolved) or PlanStats()
    stats.last_synced_at = plan.last_synced_at or datetime.now(timezone.utc)
    profile.plan_stats[resolved] = stats
    student_store.upsert_profile(profile)
    return events


__all__ = [
    "check_sync_status",
    "generate_schedule",
    "get_completed_meta_ids",
    "get_dashboard",
    "get_next_pending_goals",
    "get_range_schedule",
    "list_simulados",
    "publish_plan",
    "register_study_session",
    "reschedule_overdue_tasks",
    "save_plan",
    "schedule_user_simulado",
    "student_needs_resync",
    "sync_student_plan",
    "toggle_goal_status",
    "update_goal_recorded_time",
]
