"""Database-backed student profile repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import PersistenceAuditEventModel, StudentProfileModel
from ..models import PlanStats, StudentProfile, StudyProfile


def _normalize_user_id(user_id: str) -> str:
    normalized = user_id.strip()
    if not normalized:
        raise ValueError("User id cannot be empty.")
    return normalized


class StudentProfileRepository:
    def get(self, session: Session, user_id: str) -> Optional[StudentProfile]:
        model = self._get_model(session, user_id)
        if model is None:
            return None
        return self._to_domain(model)

    def upsert(self, session: Session, profile: StudentProfile) -> StudentProfile:
        normalized = _normalize_user_id(profile.user_id)
        model = self._get_model(session, normalized)
        if model is None:
            model = StudentProfileModel(user_id=normalized)
            session.add(model)

        model.timezone = profile.timezone
        model.current_plan_id = profile.current_plan_id
        model.routine = {str(day): minutes for day, minutes in profile.routine.items()}
        model.study_profile = profile.study_profile.model_dump(mode="json")
        model.is_plan_paused = profile.is_plan_paused
        model.lifetime_minutes = profile.lifetime_minutes
        model.plan_stats = {key: stats.model_dump(mode="json") for key, stats in profile.plan_stats.items()}
        model.last_updated = datetime.now(timezone.utc)
        session.flush()
        session.add(
            PersistenceAuditEventModel(
                user_id=normalized,
                event_type="student_profile_upsert",
                payload={"current_plan_id": profile.current_plan_id},
                actor="system",
            )
        )
        return self._to_domain(model)

    def _get_model(self, session: Session, user_id: str) -> Optional[StudentProfileModel]:
        stmt = select(StudentProfileModel).where(StudentProfileModel.user_id == _normalize_user_id(user_id))
        return session.execute(stmt).scalar_one_or_none()

    def _to_domain(self, model: StudentProfileModel) -> StudentProfile:
        return StudentProfile(
            user_id=model.user_id,
            timezone=model.timezone,
            current_plan_id=model.current_plan_id,
            routine={int(day): int(minutes) for day, minutes in (model.routine or {}).items()},
            study_profile=StudyProfile.model_validate(model.study_profile or {}),
            is_plan_paused=model.is_plan_paused,
            lifetime_minutes=model.lifetime_minutes,
            plan_stats={
                key: PlanStats.model_validate(value) for key, value in (model.plan_stats or {}).items()
            },
            last_updated=model.last_updated,
        )


student_profiles = StudentProfileRepository()

__all__ = ["StudentProfileRepository", "student_profiles"]
