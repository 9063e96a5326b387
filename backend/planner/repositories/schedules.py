"""Database-backed schedule document repository."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.models import PersistenceAuditEventModel, ScheduleDayModel
from ..models import DateRange, ScheduledEvent


def _dump(events: Iterable[ScheduledEvent]) -> List[Dict[str, Any]]:
    ordered = sorted(events, key=lambda item: item.order)
    return [event.model_dump(mode="json") for event in ordered]


def _load(model: ScheduleDayModel) -> List[ScheduledEvent]:
    return [ScheduledEvent.model_validate(item) for item in model.items or []]


class ScheduleDayRepository:
    """Reads and writes per-date schedule documents inside a caller's session."""

    def list_events(
        self,
        session: Session,
        user_id: str,
        plan_id: str,
        date_range: Optional[DateRange] = None,
    ) -> List[ScheduledEvent]:
        stmt = select(ScheduleDayModel).where(
            ScheduleDayModel.user_id == user_id,
            ScheduleDayModel.plan_id == plan_id,
        )
        if date_range is not None:
            stmt = stmt.where(
                ScheduleDayModel.date >= date_range.start,
                ScheduleDayModel.date <= date_range.end,
            )
        stmt = stmt.order_by(ScheduleDayModel.date.asc())
        events: List[ScheduledEvent] = []
        for model in session.execute(stmt).scalars():
            events.extend(_load(model))
        return events

    def replace_range(
        self,
        session: Session,
        user_id: str,
        plan_id: str,
        date_range: DateRange,
        events: Iterable[ScheduledEvent],
    ) -> int:
        by_date: Dict[date, List[ScheduledEvent]] = defaultdict(list)
        for event in events:
            by_date[event.date].append(event)

        session.execute(
            delete(ScheduleDayModel).where(
                ScheduleDayModel.user_id == user_id,
                ScheduleDayModel.plan_id == plan_id,
                ScheduleDayModel.date >= date_range.start,
                ScheduleDayModel.date <= date_range.end,
            )
        )
        for day, items in sorted(by_date.items()):
            session.add(
                ScheduleDayModel(user_id=user_id, plan_id=plan_id, date=day, items=_dump(items))
            )
        session.flush()
        self._record_audit(
            session,
            user_id,
            "schedule_replace_range",
            {
                "plan_id": plan_id,
                "start": date_range.start.isoformat(),
                "end": date_range.end.isoformat(),
                "day_count": len(by_date),
            },
        )
        return len(by_date)

    def find_event(self, session: Session, user_id: str, plan_id: str, event_id: str) -> Optional[ScheduledEvent]:
        for event in self.list_events(session, user_id, plan_id):
            if event.id == event_id:
                return event
        return None

    def upsert_event(self, session: Session, event: ScheduledEvent) -> ScheduledEvent:
        self._remove_event(session, event.user_id, event.plan_id, event.id)
        model = self._get_day(session, event.user_id, event.plan_id, event.date)
        if model is None:
            model = ScheduleDayModel(user_id=event.user_id, plan_id=event.plan_id, date=event.date, items=[])
            session.add(model)
        items = _load(model)
        if any(item.order == event.order for item in items):
            event = event.model_copy(update={"order": max(item.order for item in items) + 1})
        items.append(event)
        model.items = _dump(items)
        session.flush()
        return event

    def delete_event(self, session: Session, user_id: str, plan_id: str, event_id: str) -> bool:
        removed = self._remove_event(session, user_id, plan_id, event_id)
        if removed:
            session.flush()
            self._record_audit(session, user_id, "schedule_event_delete", {"plan_id": plan_id, "event_id": event_id})
        return removed

    def delete_plan(self, session: Session, user_id: str, plan_id: str) -> None:
        session.execute(
            delete(ScheduleDayModel).where(
                ScheduleDayModel.user_id == user_id,
                ScheduleDayModel.plan_id == plan_id,
            )
        )

    def record_telemetry_event(
        self,
        session: Session,
        user_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
    ) -> None:
        self._record_audit(session, user_id, event_type, payload, actor="telemetry")

    def recent_telemetry_events(self, session: Session, user_id: str, limit: int = 20) -> List[PersistenceAuditEventModel]:
        stmt = (
            select(PersistenceAuditEventModel)
            .where(
                PersistenceAuditEventModel.user_id == user_id,
                PersistenceAuditEventModel.actor == "telemetry",
            )
            .order_by(PersistenceAuditEventModel.created_at.desc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars())

    def _get_day(self, session: Session, user_id: str, plan_id: str, day: date) -> Optional[ScheduleDayModel]:
        stmt = select(ScheduleDayModel).where(
            ScheduleDayModel.user_id == user_id,
            ScheduleDayModel.plan_id == plan_id,
            ScheduleDayModel.date == day,
        )
        return session.execute(stmt).scalar_one_or_none()

    def _remove_event(self, session: Session, user_id: str, plan_id: str, event_id: str) -> bool:
        stmt = select(ScheduleDayModel).where(
            ScheduleDayModel.user_id == user_id,
            ScheduleDayModel.plan_id == plan_id,
        )
        for model in session.execute(stmt).scalars():
            items = model.items or []
            kept = [item for item in items if item.get("id") != event_id]
            if len(kept) == len(items):
                continue
            if kept:
                model.items = kept
            else:
                session.delete(model)
            session.flush()
            return True
        return False

    def _record_audit(
        self,
        session: Session,
        user_id: Optional[str],
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "system",
    ) -> None:
        session.add(
            PersistenceAuditEventModel(
                user_id=user_id,
                event_type=event_type,
                payload=payload,
                actor=actor,
            )
        )


schedule_days = ScheduleDayRepository()

__all__ = ["ScheduleDayRepository", "schedule_days"]
