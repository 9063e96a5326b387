"""Fold a small study overflow into the current event instead of a tiny continuation."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import List, Optional

from .context import commit_layout, load_context
from .models import MergeOffer, ScheduledEvent, is_spaced_review
from .reschedule_engine import melt_and_recast
from .schedule_store import schedule_store
from .telemetry import emit_event

logger = logging.getLogger(__name__)


def overflow_minutes(event: ScheduledEvent) -> int:
    return int(math.ceil(event.recorded_minutes - event.duration_minutes))


def try_merge(event: ScheduledEvent, actual_overflow_minutes: int, tolerance: int) -> Optional[ScheduledEvent]:
    """The event extended by the overflow, or None when the overflow is out of range."""
    if not 0 < actual_overflow_minutes <= tolerance:
        return None
    return event.model_copy(
        update={
            "duration_minutes": event.duration_minutes + actual_overflow_minutes,
            "smart_extension": None,
            "extension_merged": True,
        }
    )


def merge_offer(event: ScheduledEvent, tolerance: int) -> Optional[MergeOffer]:
    if event.extension_merged:
        return None
    overflow = overflow_minutes(event)
    if try_merge(event, overflow, tolerance) is None:
        return None
    return MergeOffer(event_id=event.id, overflow_minutes=overflow, tolerance_minutes=tolerance)


def _absorb_follow_on(
    events: List[ScheduledEvent],
    merged: ScheduledEvent,
    minutes: int,
) -> List[ScheduledEvent]:
    """Shrink later pending fragments of the same goal by ``minutes``, dropping emptied ones."""
    follow_on = sorted(
        (
            event
            for event in events
            if event.meta_id == merged.meta_id
            and event.id != merged.id
            and event.status == "pending"
            and not is_spaced_review(event)
            and (event.date, event.part or 0) > (merged.date, merged.part or 0)
        ),
        key=lambda item: (item.date, item.part or 0, item.order),
    )
    adjustments = {}
    left = minutes
    for fragment in follow_on:
        if left <= 0:
            break
        take = min(left, fragment.duration_minutes)
        adjustments[fragment.id] = fragment.duration_minutes - take
        left -= take

    staged: List[ScheduledEvent] = []
    for event in events:
        if event.id == merged.id:
            staged.append(merged)
        elif event.id in adjustments:
            remaining = adjustments[event.id]
            if remaining > 0:
                staged.append(event.model_copy(update={"duration_minutes": remaining}))
        else:
            staged.append(event)
    return staged


def merge_goal_extension(
    user_id: str,
    event_id: str,
    overflow: int,
    plan_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> ScheduledEvent:
    """Accept a merge offer: extend the event, absorb follow-on fragments, heal the gap."""
    context = load_context(user_id, plan_id, now=now)
    events = schedule_store.get_all(context.user_id, context.plan_id)
    target = next((event for event in events if event.id == event_id), None)
    if target is None:
        raise LookupError(f"Scheduled event '{event_id}' was not found.")

    merged = try_merge(target, overflow, context.tolerance)
    if merged is None:
        raise ValueError(
            f"Overflow of {overflow} minutes is outside the merge tolerance of {context.tolerance} minutes."
        )

    staged = _absorb_follow_on(events, merged, overflow)
    result = melt_and_recast(
        staged,
        context.routine,
        context.today,
        preserve_today=True,
        user_id=context.user_id,
        plan_id=context.plan_id,
        tolerance=context.tolerance,
    )
    commit_layout(context.user_id, context.plan_id, events, result.events)
    emit_event(
        "smart_extension_merged",
        user_id=context.user_id,
        plan_id=context.plan_id,
        event_id=event_id,
        overflow_minutes=overflow,
        duration_minutes=merged.duration_minutes,
        reflowed=result.moved_count,
    )
    return merged


__all__ = ["merge_goal_extension", "merge_offer", "overflow_minutes", "try_merge"]
