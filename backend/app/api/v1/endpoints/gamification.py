"""Gamification API: task progress and reward claims."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_notifier
from app.core.database import get_db
from app.schemas.gamification import (
    GamificationSummaryResponse,
    TaskAccountRequest,
    TaskClaimResponse,
    TaskCompleteRequest,
    TaskProgressResponse,
    TaskProgressUpdateResponse,
)
from app.services.credits import (
    InvalidReferenceError,
    RealtimeNotifier,
    claim_task,
    get_gamification_summary,
    list_task_progress,
    record_task_completion,
)

router = APIRouter()


@router.get("/tasks", response_model=list[TaskProgressResponse])
def list_tasks(
    account_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
):
    """List active tasks with the account's progress on each."""
    return list_task_progress(db, account_id)


@router.get("/summary", response_model=GamificationSummaryResponse)
def gamification_summary(
    account_id: uuid.UUID = Query(...),
    db: Session = Depends(get_db),
):
    """Tasks with progress, completion stats, earned badges, and the account's level."""
    try:
        return get_gamification_summary(db, account_id)
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/tasks/{task_key}/complete", response_model=TaskProgressUpdateResponse)
def complete_task(
    task_key: str,
    payload: TaskCompleteRequest,
    db: Session = Depends(get_db),
):
    """Mark a task completed once its criteria have been verified."""
    try:
        return record_task_completion(db, payload.account_id, task_key, payload.progress_data)
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/tasks/{task_key}/claim", response_model=TaskClaimResponse)
def claim_task_reward(
    task_key: str,
    payload: TaskAccountRequest,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Pay a task's credit reward. Extra claims return ``already_processed``."""
    try:
        result = claim_task(db, payload.account_id, task_key, notifier=notifier)
    except InvalidReferenceError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TaskClaimResponse.model_validate(result)
