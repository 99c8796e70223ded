"""Projects API endpoints."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ... import models, schemas
from ...database import get_db
from ...models import ProjectStatus
from ...permissions import Actor
from ...project_service import AuthorizedProjectService
from ...task_service import AuthorizedTaskService
from ..dependencies import get_current_actor
from .tasks import _task_to_response

logger = logging.getLogger("taskmanager-core.api.projects")

router = APIRouter(tags=["projects"])


def get_project_service(db: Session = Depends(get_db)) -> AuthorizedProjectService:
    return AuthorizedProjectService(db)


def _project_to_response(project: models.Project) -> schemas.ProjectResponse:
    """Convert Project model to ProjectResponse schema."""
    return schemas.ProjectResponse(
        id=project.id,
        title=project.title,
        description=project.description,
        status=project.status,
        department_id=project.department_id,
        team_member_ids=[member.id for member in project.team_members],
        created_at=project.created_at,
        updated_at=project.updated_at,
        created_by_user_id=project.created_by_user_id,
        updated_by_user_id=project.updated_by_user_id,
    )


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    data: schemas.ProjectCreate,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    """
    Create a project.

    - **title**: 2-100 characters
    - **department_id**: Owning department (PROJECT_MANAGER: must be their own)
    - **status**: Initial status (default: PENDING)
    - **team_member_ids**: Optional initial team
    """
    return _project_to_response(service.create_project(actor, data))


@router.get("/", response_model=list[schemas.ProjectResponse])
def list_projects(
    department_id: Optional[int] = Query(None, description="Filter by department"),
    status: Optional[ProjectStatus] = Query(None, description="Filter by status"),
    team_member_id: Optional[UUID] = Query(None, description="Only projects this user belongs to"),
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    """List active projects. At most one filter applies; department wins, then status, then member."""
    if department_id is not None:
        projects = service.list_projects_by_department(actor, department_id)
    elif status is not None:
        projects = service.list_projects_by_status(actor, status)
    elif team_member_id is not None:
        projects = service.list_projects_by_team_member(actor, team_member_id)
    else:
        projects = service.list_projects(actor)
    return [_project_to_response(p) for p in projects]


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(
    project_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    return _project_to_response(service.get_project(actor, project_id))


@router.get("/{project_id}/tasks", response_model=list[schemas.TaskResponse])
def list_project_tasks(
    project_id: UUID,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    tasks = AuthorizedTaskService(db).list_tasks_by_project(actor, project_id)
    return [_task_to_response(t) for t in tasks]


@router.put("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    data: schemas.ProjectUpdate,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    return _project_to_response(service.update_project(actor, project_id, data))


@router.patch("/{project_id}/status", response_model=schemas.ProjectResponse)
def update_project_status(
    project_id: UUID,
    data: schemas.ProjectStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    return _project_to_response(service.update_project_status(actor, project_id, data.status))


@router.post("/{project_id}/members/{user_id}", response_model=schemas.ProjectResponse)
def add_team_member(
    project_id: UUID,
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    """Add a user to the team. 409 if they are already a member."""
    return _project_to_response(service.add_team_member(actor, project_id, user_id))


@router.delete("/{project_id}/members/{user_id}", response_model=schemas.ProjectResponse)
def remove_team_member(
    project_id: UUID,
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    """Remove a user from the team. 409 if they are not a member."""
    return _project_to_response(service.remove_team_member(actor, project_id, user_id))


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: AuthorizedProjectService = Depends(get_project_service),
):
    """Soft-delete a project. 409 while it still has active tasks."""
    service.delete_project(actor, project_id)
    return Response(status_code=204)
