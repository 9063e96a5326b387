"""Flatten an admin-authored plan tree into an ordered queue of work units."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Union

from .config import get_settings
from .errors import StructuralReferenceError
from .models import (
    ComputedSimulado,
    CycleItem,
    Discipline,
    Meta,
    Plan,
    ScheduledEvent,
    StudyProfile,
    Topic,
    WorkUnit,
    is_simulado,
)

logger = logging.getLogger(__name__)

READING_PACE_MINUTES = {
    "beginner": 5,
    "intermediate": 3,
    "advanced": 1,
}
DEFAULT_QUESTIONS_MINUTES = 30
DEFAULT_SUMMARY_MINUTES = 30
DEFAULT_FLASHCARD_MINUTES = 15
DEFAULT_META_MINUTES = 30


@dataclass(frozen=True)
class _MetaEntry:
    meta: Meta
    discipline: Discipline
    topic: Topic


@dataclass(frozen=True)
class _SimuladoEntry:
    item: CycleItem
    cycle_index: int
    item_index: int


_Entry = Union[_MetaEntry, _SimuladoEntry]


def calculate_meta_duration(meta: Meta, profile: StudyProfile) -> int:
    """Estimated minutes for a goal given the student's level and study mode."""
    pace = READING_PACE_MINUTES.get(profile.level, READING_PACE_MINUTES["intermediate"])
    multiplier = 1
    if meta.type == "lesson":
        base = sum(video.duration for video in meta.videos)
        if profile.semi_active_class:
            multiplier = 2
    elif meta.type == "material":
        base = (meta.page_count or 0) * pace
        if profile.semi_active_material:
            multiplier = 2
    elif meta.type == "law":
        base = (meta.law_pages or 0) * pace
        if profile.semi_active_law:
            multiplier = 2
    elif meta.type == "questions":
        base = meta.questions_minutes or DEFAULT_QUESTIONS_MINUTES
    elif meta.type == "summary":
        base = meta.summary_minutes or DEFAULT_SUMMARY_MINUTES
    elif meta.type == "review":
        base = meta.flashcard_minutes or DEFAULT_FLASHCARD_MINUTES
    else:
        base = DEFAULT_META_MINUTES
    return int(math.ceil(base * multiplier))


def _sorted(items: Iterable, key: str = "order") -> list:
    return sorted(items, key=lambda item: getattr(item, key) or 0)


def _topic_entries(discipline: Discipline, topic: Topic) -> List[_MetaEntry]:
    return [_MetaEntry(meta=meta, discipline=discipline, topic=topic) for meta in _sorted(topic.metas)]


def _discipline_entries(discipline: Discipline) -> List[_MetaEntry]:
    entries: List[_MetaEntry] = []
    for topic in _sorted(discipline.topics):
        entries.extend(_topic_entries(discipline, topic))
    return entries


def _folder_entries(disciplines: Sequence[Discipline], topics_per_turn: int) -> List[_MetaEntry]:
    """Interleave the folder's disciplines, ``topics_per_turn`` topics each per turn."""
    queues = [_sorted(discipline.topics) for discipline in disciplines]
    pointers = [0] * len(disciplines)
    entries: List[_MetaEntry] = []
    progressed = True
    while progressed:
        progressed = False
        for index, discipline in enumerate(disciplines):
            topics = queues[index]
            start = pointers[index]
            if start >= len(topics):
                continue
            for topic in topics[start : start + topics_per_turn]:
                entries.extend(_topic_entries(discipline, topic))
            pointers[index] = start + topics_per_turn
            progressed = True
    return entries


def _report_dangling(plan: Plan, item: CycleItem, kind: str) -> None:
    error = StructuralReferenceError(item.id, item.reference_id, kind)
    logger.warning("Skipping dangling reference in plan %s: %s", plan.id, error)


def _walk(plan: Plan) -> Iterator[_Entry]:
    disciplines = {discipline.id: discipline for discipline in plan.disciplines}
    folder_ids = {folder.id for folder in plan.folders}

    if not plan.cycles:
        for discipline in _sorted(plan.disciplines):
            yield from _discipline_entries(discipline)
        return

    for cycle_index, cycle in enumerate(_sorted(plan.cycles)):
        for item_index, item in enumerate(_sorted(cycle.items)):
            if item.type == "simulado":
                yield _SimuladoEntry(item=item, cycle_index=cycle_index, item_index=item_index)
            elif item.type == "folder":
                members = _sorted(d for d in plan.disciplines if d.folder_id == item.reference_id)
                if not members:
                    if item.reference_id not in folder_ids:
                        _report_dangling(plan, item, "folder")
                    continue
                yield from _folder_entries(members, item.topics_per_turn)
            else:
                discipline = disciplines.get(item.reference_id)
                if discipline is None:
                    _report_dangling(plan, item, "discipline")
                    continue
                yield from _discipline_entries(discipline)


def _work_unit(entry: _MetaEntry, profile: StudyProfile, position: int) -> WorkUnit:
    meta = entry.meta
    intervals = None
    if meta.review_config is not None and meta.review_config.active and meta.review_config.offsets():
        intervals = meta.review_config.intervals
    return WorkUnit(
        meta_id=meta.id,
        title=meta.title,
        type=meta.type,
        discipline_name=entry.discipline.name,
        topic_name=entry.topic.name,
        duration_minutes=calculate_meta_duration(meta, profile),
        color=meta.color,
        order=position,
        review_intervals=intervals,
    )


def flatten(plan: Plan, profile: Optional[StudyProfile] = None) -> List[WorkUnit]:
    """Ordered work units for every goal in the plan; mock exams are excluded."""
    profile = profile or StudyProfile()
    units: List[WorkUnit] = []
    for entry in _walk(plan):
        if isinstance(entry, _MetaEntry):
            units.append(_work_unit(entry, profile, len(units)))
    return units


def index_metas(plan: Plan) -> Dict[str, _MetaEntry]:
    """Lookup of every goal reachable in the plan keyed by goal id."""
    lookup: Dict[str, _MetaEntry] = {}
    for discipline in plan.disciplines:
        for topic in discipline.topics:
            for meta in topic.metas:
                lookup[meta.id] = _MetaEntry(meta=meta, discipline=discipline, topic=topic)
    return lookup


def simulado_items(plan: Plan) -> List[_SimuladoEntry]:
    return [entry for entry in _walk(plan) if isinstance(entry, _SimuladoEntry)]


def simulado_duration(item: CycleItem) -> int:
    return item.duration or get_settings().simulado_default_minutes


def compute_simulado_statuses(
    plan: Plan,
    completed_ids: Set[str],
    events: Sequence[ScheduledEvent] = (),
) -> List[ComputedSimulado]:
    """Gate each mock exam on the completion of every goal flattened before it."""
    booked: Dict[str, ScheduledEvent] = {}
    for event in events:
        if is_simulado(event) and event.status == "pending":
            booked[event.meta_id] = event

    statuses: List[ComputedSimulado] = []
    prerequisites_met = True
    for entry in _walk(plan):
        if isinstance(entry, _MetaEntry):
            if entry.meta.id not in completed_ids:
                prerequisites_met = False
            continue
        item = entry.item
        if item.id in completed_ids:
            continue
        booking = booked.get(item.id)
        if booking is not None:
            status = "scheduled"
        elif prerequisites_met:
            status = "released"
        else:
            status = "blocked"
        statuses.append(
            ComputedSimulado(
                id=item.id,
                reference_id=item.reference_id,
                title=item.simulado_title or "Simulado",
                duration_minutes=simulado_duration(item),
                status=status,
                cycle_index=entry.cycle_index,
                item_index=entry.item_index,
                scheduled_date=booking.date if booking is not None else None,
            )
        )
    return statuses


__all__ = [
    "READING_PACE_MINUTES",
    "calculate_meta_duration",
    "compute_simulado_statuses",
    "flatten",
    "index_metas",
    "simulado_duration",
    "simulado_items",
]
