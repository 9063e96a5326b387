"""Admin plan storage and publishing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from . import schedule_service
from .models import Plan, SyncStatus
from .student_store import student_store

router = APIRouter(prefix="/api/plans", tags=["plans"])
logger = logging.getLogger(__name__)


@router.get("/{plan_id}", response_model=Plan)
def get_plan(plan_id: str) -> Plan:
    plan = student_store.get_plan(plan_id)
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Study plan '{plan_id}' was not found.",
        )
    return plan


@router.put("/{plan_id}", response_model=Plan)
def save_plan(plan_id: str, plan: Plan) -> Plan:
    if plan.id != plan_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Plan id in the body does not match the path.",
        )
    stored = schedule_service.save_plan(plan)
    logger.info("Saved plan %s (%d cycles, %d disciplines)", plan_id, len(plan.cycles), len(plan.disciplines))
    return stored


@router.get("/{plan_id}/sync-status", response_model=SyncStatus)
def get_sync_status(plan_id: str) -> SyncStatus:
    try:
        return schedule_service.check_sync_status(plan_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{plan_id}/publish", response_model=Plan)
def publish_plan(plan_id: str) -> Plan:
    try:
        return schedule_service.publish_plan(plan_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


__all__ = ["router"]
