"""Student profiles and study plans, persisted in the database or in memory."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .config import get_settings
from .db.session import session_scope
from .models import Plan, StudentProfile

logger = logging.getLogger(__name__)


class _MemoryStudentStore:
    def __init__(self) -> None:
        self._profiles: Dict[str, StudentProfile] = {}
        self._plans: Dict[str, Plan] = {}
        self._lock = threading.RLock()

    def get_profile(self, user_id: str) -> Optional[StudentProfile]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return profile.model_copy(deep=True) if profile else None

    def upsert_profile(self, profile: StudentProfile) -> StudentProfile:
        with self._lock:
            self._profiles[profile.user_id] = profile.model_copy(deep=True)
            return profile.model_copy(deep=True)

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        with self._lock:
            plan = self._plans.get(plan_id)
            return plan.model_copy(deep=True) if plan else None

    def upsert_plan(self, plan: Plan) -> Plan:
        with self._lock:
            self._plans[plan.id] = plan.model_copy(deep=True)
            return plan.model_copy(deep=True)

    def reset(self) -> None:
        with self._lock:
            self._profiles.clear()
            self._plans.clear()


class _DatabaseStudentStore:
    def get_profile(self, user_id: str) -> Optional[StudentProfile]:
        from .repositories.students import student_profiles

        with session_scope(commit=False) as session:
            return student_profiles.get(session, user_id)

    def upsert_profile(self, profile: StudentProfile) -> StudentProfile:
        from .repositories.students import student_profiles

        with session_scope() as session:
            return student_profiles.upsert(session, profile)

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        from .repositories.plans import study_plans

        with session_scope(commit=False) as session:
            return study_plans.get(session, plan_id)

    def upsert_plan(self, plan: Plan) -> Plan:
        from .repositories.plans import study_plans

        with session_scope() as session:
            return study_plans.upsert(session, plan)


class StudentStore:
    """Facade that delegates to database or memory persistence based on configuration."""

    def __init__(self, mode: Optional[str] = None) -> None:
        self._mode = mode or get_settings().persistence_mode
        self._backend = _MemoryStudentStore() if self._mode == "memory" else _DatabaseStudentStore()

    def get_profile(self, user_id: str) -> Optional[StudentProfile]:
        return self._backend.get_profile(user_id)

    def require_profile(self, user_id: str) -> StudentProfile:
        profile = self.get_profile(user_id)
        if profile is None:
            raise LookupError(f"Student profile for '{user_id}' was not found.")
        return profile

    def upsert_profile(self, profile: StudentProfile) -> StudentProfile:
        stored = self._backend.upsert_profile(profile)
        logger.debug("Stored profile for %s (plan=%s)", stored.user_id, stored.current_plan_id)
        return stored

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        return self._backend.get_plan(plan_id)

    def require_plan(self, plan_id: str) -> Plan:
        plan = self.get_plan(plan_id)
        if plan is None:
            raise LookupError(f"Study plan '{plan_id}' was not found.")
        return plan

    def upsert_plan(self, plan: Plan) -> Plan:
        return self._backend.upsert_plan(plan)

    def reset(self) -> None:
        if isinstance(self._backend, _MemoryStudentStore):
            self._backend.reset()


student_store = StudentStore()

__all__ = ["StudentStore", "student_store"]
