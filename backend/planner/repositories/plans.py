"""Database-backed study plan repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import StudyPlanModel
from ..models import Plan

_TREE_FIELDS = {"cycles", "disciplines", "folders"}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class StudyPlanRepository:
    def get(self, session: Session, plan_id: str) -> Optional[Plan]:
        model = session.execute(select(StudyPlanModel).where(StudyPlanModel.id == plan_id)).scalar_one_or_none()
        if model is None:
            return None
        return Plan.model_validate(
            {
                "id": model.id,
                "title": model.title,
                **(model.structure or {}),
                "last_modified_at": _aware(model.last_modified_at),
                "last_synced_at": _aware(model.last_synced_at),
            }
        )

    def upsert(self, session: Session, plan: Plan) -> Plan:
        model = session.get(StudyPlanModel, plan.id)
        if model is None:
            model = StudyPlanModel(id=plan.id)
            session.add(model)
        model.title = plan.title
        model.structure = plan.model_dump(mode="json", include=_TREE_FIELDS)
        model.last_modified_at = plan.last_modified_at
        model.last_synced_at = plan.last_synced_at
        session.flush()
        return plan.model_copy(deep=True)


study_plans = StudyPlanRepository()

__all__ = ["StudyPlanRepository", "study_plans"]
