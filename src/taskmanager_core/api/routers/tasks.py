"""Tasks API endpoints, including the state transition endpoint."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ... import models, schemas
from ...database import get_db
from ...models import TaskPriority, TaskState
from ...permissions import Actor
from ...task_service import AuthorizedTaskService
from ..dependencies import get_current_actor

logger = logging.getLogger("taskmanager-core.api.tasks")

router = APIRouter(tags=["tasks"])


def get_task_service(db: Session = Depends(get_db)) -> AuthorizedTaskService:
    return AuthorizedTaskService(db)


def _task_to_response(task: models.Task) -> schemas.TaskResponse:
    """Convert Task model to TaskResponse schema."""
    return schemas.TaskResponse.model_validate(task)


@router.post("/", response_model=schemas.TaskResponse, status_code=201)
def create_task(
    data: schemas.TaskCreate,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    """
    Create a new task. Tasks always start in BACKLOG.

    - **project_id**: Owning project (its department scopes all permissions)
    - **title**: 2-100 characters
    - **user_story** / **acceptance_criteria**: Required text
    - **priority**: CRITICAL, HIGH, MEDIUM (default) or LOW
    - **assigned_user_id**: Optional assignee
    """
    return _task_to_response(service.create_task(actor, data))


@router.get("/", response_model=list[schemas.TaskResponse])
def list_tasks(
    project_id: Optional[UUID] = Query(None, description="Filter by project"),
    assigned_user_id: Optional[UUID] = Query(None, description="Filter by assignee"),
    state: Optional[TaskState] = Query(None, description="Filter by state"),
    priority: Optional[TaskPriority] = Query(None, description="Filter by priority"),
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    """
    List tasks visible to the caller.

    Ordered by workflow state (IN_PROGRESS first, CANCELLED last), then newest
    first. At most one filter applies: project, assignee, state, priority.
    """
    if project_id is not None:
        tasks = service.list_tasks_by_project(actor, project_id)
    elif assigned_user_id is not None:
        tasks = service.list_tasks_by_assignee(actor, assigned_user_id)
    elif state is not None:
        tasks = service.list_tasks_by_state(actor, state)
    elif priority is not None:
        tasks = service.list_tasks_by_priority(actor, priority)
    else:
        tasks = service.list_tasks(actor)
    return [_task_to_response(t) for t in tasks]


@router.get("/{task_id}", response_model=schemas.TaskResponse)
def get_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    return _task_to_response(service.get_task(actor, task_id))


@router.put("/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: UUID,
    data: schemas.TaskUpdate,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    return _task_to_response(service.update_task(actor, task_id, data))


@router.patch("/{task_id}/state", response_model=schemas.TaskResponse)
def update_task_state(
    task_id: UUID,
    data: schemas.TaskStateUpdate,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    """
    Move a task to a new state.

    Allowed transitions:
    - BACKLOG → IN_ANALYSIS, CANCELLED
    - IN_ANALYSIS → BACKLOG, IN_PROGRESS, BLOCKED, CANCELLED
    - IN_PROGRESS → IN_ANALYSIS, COMPLETED, BLOCKED, CANCELLED
    - BLOCKED → IN_ANALYSIS, IN_PROGRESS, CANCELLED
    - COMPLETED, CANCELLED → (none, terminal)

    **reason** is required for BLOCKED and CANCELLED. Pass
    **expected_version** to get 409 instead of overwriting a concurrent change.
    """
    task = service.update_task_state(
        actor,
        task_id,
        data.state,
        reason=data.reason,
        expected_version=data.expected_version,
    )
    return _task_to_response(task)


@router.get("/{task_id}/allowed-transitions", response_model=schemas.AllowedTransitionsResponse)
def get_allowed_transitions(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    task = service.get_task(actor, task_id)
    return schemas.AllowedTransitionsResponse(
        task_id=task.id,
        current_state=task.state,
        allowed_transitions=service.get_allowed_transitions(actor, task_id),
    )


@router.post("/{task_id}/assign", response_model=schemas.TaskResponse)
def assign_task(
    task_id: UUID,
    data: schemas.TaskAssign,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    return _task_to_response(service.assign_task(actor, task_id, data.user_id))


@router.post("/{task_id}/unassign", response_model=schemas.TaskResponse)
def unassign_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    return _task_to_response(service.unassign_task(actor, task_id))


@router.delete("/{task_id}", status_code=204)
def delete_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedTaskService = Depends(get_task_service),
):
    service.delete_task(actor, task_id)
    return Response(status_code=204)
