"""SQLAlchemy repositories translating ORM rows into domain models."""

from .plans import StudyPlanRepository, study_plans
from .schedules import ScheduleDayRepository, schedule_days
from .students import StudentProfileRepository, student_profiles

__all__ = [
    "ScheduleDayRepository",
    "StudentProfileRepository",
    "StudyPlanRepository",
    "schedule_days",
    "student_profiles",
    "study_plans",
]
