"""Task state history API endpoints (read only)."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import schemas
from ...database import get_db
from ...history_service import TaskStateHistoryService
from ...models import TaskState
from ...permissions import Actor
from ..dependencies import get_current_actor

logger = logging.getLogger("taskmanager-core.api.task_state_histories")

router = APIRouter(tags=["task-state-histories"])


def get_history_service(db: Session = Depends(get_db)) -> TaskStateHistoryService:
    return TaskStateHistoryService(db)


@router.get("/task/{task_id}", response_model=list[schemas.TaskStateHistoryResponse])
def get_task_history(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: TaskStateHistoryService = Depends(get_history_service),
):
    """All state changes of one task, newest first."""
    return service.get_task_history(actor, task_id)


@router.get("/changed-by/{user_id}", response_model=list[schemas.TaskStateHistoryResponse])
def get_history_by_changed_by(
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: TaskStateHistoryService = Depends(get_history_service),
):
    return service.get_history_by_changed_by(actor, user_id)


@router.get("/old-state", response_model=list[schemas.TaskStateHistoryResponse])
def get_history_by_old_state(
    state: Optional[TaskState] = Query(None, description="Omit to get creation entries"),
    actor: Actor = Depends(get_current_actor),
    service: TaskStateHistoryService = Depends(get_history_service),
):
    return service.get_history_by_old_state(actor, state)


@router.get("/new-state/{state}", response_model=list[schemas.TaskStateHistoryResponse])
def get_history_by_new_state(
    state: TaskState,
    actor: Actor = Depends(get_current_actor),
    service: TaskStateHistoryService = Depends(get_history_service),
):
    return service.get_history_by_new_state(actor, state)


@router.get("/date-range", response_model=list[schemas.TaskStateHistoryResponse])
def get_history_by_date_range(
    start: datetime = Query(..., description="Inclusive lower bound (ISO 8601)"),
    end: datetime = Query(..., description="Inclusive upper bound (ISO 8601)"),
    actor: Actor = Depends(get_current_actor),
    service: TaskStateHistoryService = Depends(get_history_service),
):
    return service.get_history_by_date_range(actor, start, end)


@router.get("/{entry_id}", response_model=schemas.TaskStateHistoryResponse)
def get_history_entry(
    entry_id: int,
    actor: Actor = Depends(get_current_actor),
    service: TaskStateHistoryService = Depends(get_history_service),
):
    return service.get_history_entry(actor, entry_id)
