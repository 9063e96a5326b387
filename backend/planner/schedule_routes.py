"""Student scheduling REST endpoints."""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from . import anticipation, schedule_service, smart_merge
from .errors import DuplicateAttemptError, NoBudgetAvailableError, SimuladoLockedError
from .models import (
    AnticipationOffer,
    ComputedSimulado,
    Dashboard,
    DateRange,
    EventStatus,
    MergeOffer,
    ScheduledEvent,
    StudentProfile,
    StudyProfile,
)
from .student_store import student_store

router = APIRouter(prefix="/api/students", tags=["students"])
logger = logging.getLogger(__name__)


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except NoBudgetAvailableError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except (DuplicateAttemptError, SimuladoLockedError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


class ProfileUpdateRequest(BaseModel):
    timezone: Optional[str] = None
    current_plan_id: Optional[str] = None
    routine: Optional[Dict[int, int]] = None
    study_profile: Optional[StudyProfile] = None
    is_plan_paused: Optional[bool] = None


class GenerateRequest(BaseModel):
    plan_id: Optional[str] = None
    routine: Optional[Dict[int, int]] = None
    study_profile: Optional[StudyProfile] = None


class RescheduleRequest(BaseModel):
    plan_id: Optional[str] = None
    routine: Optional[Dict[int, int]] = None
    preserve_today: bool = False


class StatusRequest(BaseModel):
    status: Optional[EventStatus] = None
    plan_id: Optional[str] = None


class RecordedTimeRequest(BaseModel):
    minutes: float = Field(..., ge=0)
    plan_id: Optional[str] = None


class MergeRequest(BaseModel):
    overflow_minutes: int = Field(..., ge=1)
    plan_id: Optional[str] = None


class AnticipationRequest(BaseModel):
    budget_minutes: int = Field(..., ge=1)
    plan_id: Optional[str] = None


class StudySessionRequest(BaseModel):
    minutes: float
    plan_id: Optional[str] = None


class SimuladoBookingRequest(BaseModel):
    date: dt.date
    plan_id: Optional[str] = None


class MovedResponse(BaseModel):
    moved: int


class RecordedTimeResponse(BaseModel):
    merge_offer: Optional[MergeOffer] = None


class AnticipationResponse(BaseModel):
    offer: Optional[AnticipationOffer] = None


class SyncCheckResponse(BaseModel):
    needs_resync: bool


@router.get("/{user_id}/profile", response_model=StudentProfile)
def get_profile(user_id: str) -> StudentProfile:
    with _service_errors():
        return student_store.require_profile(user_id)


@router.put("/{user_id}/profile", response_model=StudentProfile)
def update_profile(user_id: str, request: ProfileUpdateRequest) -> StudentProfile:
    profile = student_store.get_profile(user_id) or StudentProfile(user_id=user_id)
    updates = request.model_dump(exclude_unset=True)
    with _service_errors():
        merged = StudentProfile.model_validate({**profile.model_dump(), **updates})
        return student_store.upsert_profile(merged)


@router.post("/{user_id}/schedule/generate", response_model=List[ScheduledEvent])
def generate_schedule(user_id: str, request: GenerateRequest) -> List[ScheduledEvent]:
    with _service_errors():
        return schedule_service.generate_schedule(
            user_id,
            request.plan_id,
            request.study_profile,
            request.routine,
        )


@router.post("/{user_id}/schedule/reschedule", response_model=MovedResponse)
def reschedule(user_id: str, request: RescheduleRequest) -> MovedResponse:
    with _service_errors():
        moved = schedule_service.reschedule_overdue_tasks(
            user_id,
            request.plan_id,
            request.routine,
            request.preserve_today,
        )
    return MovedResponse(moved=moved)


@router.get("/{user_id}/schedule", response_model=List[ScheduledEvent])
def get_schedule(
    user_id: str,
    start: date = Query(..., description="First calendar day to include."),
    end: date = Query(..., description="Last calendar day to include."),
    plan_id: Optional[str] = Query(default=None),
) -> List[ScheduledEvent]:
    with _service_errors():
        date_range = DateRange(start=start, end=end)
        resolved = plan_id or student_store.require_profile(user_id).current_plan_id
        if not resolved:
            raise LookupError(f"Student '{user_id}' has no active plan.")
        return schedule_service.get_range_schedule(user_id, resolved, date_range)


@router.get("/{user_id}/dashboard", response_model=Dashboard)
def get_dashboard(user_id: str) -> Dashboard:
    with _service_errors():
        return schedule_service.get_dashboard(user_id)


@router.get("/{user_id}/goals/next", response_model=List[ScheduledEvent])
def get_next_goals(
    user_id: str,
    limit: int = Query(default=5, ge=1, le=50),
    plan_id: Optional[str] = Query(default=None),
) -> List[ScheduledEvent]:
    with _service_errors():
        return schedule_service.get_next_pending_goals(user_id, plan_id, limit)


@router.post("/{user_id}/events/{event_id}/status", response_model=ScheduledEvent)
def toggle_status(user_id: str, event_id: str, request: StatusRequest) -> ScheduledEvent:
    with _service_errors():
        return schedule_service.toggle_goal_status(user_id, event_id, request.status, request.plan_id)


@router.post("/{user_id}/events/{event_id}/recorded-time", response_model=RecordedTimeResponse)
def record_time(user_id: str, event_id: str, request: RecordedTimeRequest) -> RecordedTimeResponse:
    with _service_errors():
        offer = schedule_service.update_goal_recorded_time(user_id, event_id, request.minutes, request.plan_id)
    return RecordedTimeResponse(merge_offer=offer)


@router.post("/{user_id}/events/{event_id}/merge", response_model=ScheduledEvent)
def merge_extension(user_id: str, event_id: str, request: MergeRequest) -> ScheduledEvent:
    with _service_errors():
        return smart_merge.merge_goal_extension(user_id, event_id, request.overflow_minutes, request.plan_id)


@router.get("/{user_id}/anticipation", response_model=AnticipationResponse)
def get_anticipation(user_id: str, plan_id: Optional[str] = Query(default=None)) -> AnticipationResponse:
    with _service_errors():
        return AnticipationResponse(offer=anticipation.try_anticipate(user_id, plan_id))


@router.post("/{user_id}/anticipation", response_model=MovedResponse)
def accept_anticipation(user_id: str, request: AnticipationRequest) -> MovedResponse:
    with _service_errors():
        moved = anticipation.anticipate_future_goals(user_id, request.budget_minutes, request.plan_id)
    return MovedResponse(moved=moved)


@router.post("/{user_id}/study-sessions", response_model=StudentProfile)
def register_session(user_id: str, request: StudySessionRequest) -> StudentProfile:
    with _service_errors():
        return schedule_service.register_study_session(user_id, request.plan_id, request.minutes)


@router.get("/{user_id}/simulados", response_model=List[ComputedSimulado])
def list_simulados(user_id: str, plan_id: Optional[str] = Query(default=None)) -> List[ComputedSimulado]:
    with _service_errors():
        return schedule_service.list_simulados(user_id, plan_id)


@router.post("/{user_id}/simulados/{simulado_id}/schedule", response_model=ScheduledEvent)
def book_simulado(user_id: str, simulado_id: str, request: SimuladoBookingRequest) -> ScheduledEvent:
    with _service_errors():
        return schedule_service.schedule_user_simulado(user_id, simulado_id, request.date, request.plan_id)


@router.get("/{user_id}/sync", response_model=SyncCheckResponse)
def check_student_sync(user_id: str, plan_id: Optional[str] = Query(default=None)) -> SyncCheckResponse:
    with _service_errors():
        return SyncCheckResponse(needs_resync=schedule_service.student_needs_resync(user_id, plan_id))


@router.post("/{user_id}/sync", response_model=List[ScheduledEvent])
def sync_student(user_id: str, plan_id: Optional[str] = Query(default=None)) -> List[ScheduledEvent]:
    with _service_errors():
        events = schedule_service.sync_student_plan(user_id, plan_id)
    logger.info("Synced %d events for user=%s", len(events), user_id)
    return events


__all__ = ["router"]
