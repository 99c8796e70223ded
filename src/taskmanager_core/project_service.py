"""Project use cases with department-scoped authorization."""
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .exceptions import ConflictError, NotFoundError
from .models import ProjectStatus
from .permissions import (
    Action,
    Actor,
    Resource,
    ResourceType,
    project_resource,
    require,
    visible,
)

logger = logging.getLogger("taskmanager-core.project_service")


class AuthorizedProjectService:
    """Project operations, each taking the acting principal explicitly.

    Managing a project needs ADMIN, PROJECT_GROUP_MANAGER, or a
    PROJECT_MANAGER of the project's department. Viewing is open to those
    three roles in any department.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_project_or_404(self, project_id: UUID) -> models.Project:
        project = crud.get_project(self.db, project_id)
        if not project:
            raise NotFoundError("Project", project_id)
        return project

    def _get_department_or_404(self, department_id: int) -> models.Department:
        department = crud.get_department(self.db, department_id)
        if not department:
            raise NotFoundError("Department", department_id)
        return department

    def _get_user_or_404(self, user_id: UUID) -> models.User:
        user = crud.get_user(self.db, user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def create_project(self, actor: Actor, data: schemas.ProjectCreate) -> models.Project:
        """
        Create a project in a department.

        Raises:
            NotFoundError: Department or a listed team member does not exist
            PermissionDeniedError: Actor may not manage projects in that department
        """
        self._get_department_or_404(data.department_id)
        require(
            actor,
            Action.MANAGE_PROJECT,
            Resource(ResourceType.PROJECT, department_id=data.department_id),
        )

        members = [self._get_user_or_404(user_id) for user_id in sorted(data.team_member_ids, key=str)]
        project = crud.create_project(self.db, data, members, user_id=actor.id)
        self.db.commit()
        self.db.refresh(project)

        logger.info(f"Created project {project.id} '{project.title}' in department {project.department_id}")
        return project

    def update_project(self, actor: Actor, project_id: UUID, data: schemas.ProjectUpdate) -> models.Project:
        """
        Update project fields.

        Moving a project to another department needs MANAGE_PROJECT in both
        the current and the target department.
        """
        project = self._get_project_or_404(project_id)
        require(actor, Action.MANAGE_PROJECT, project_resource(project))

        if data.department_id is not None and data.department_id != project.department_id:
            self._get_department_or_404(data.department_id)
            require(
                actor,
                Action.MANAGE_PROJECT,
                Resource(ResourceType.PROJECT, id=project.id, department_id=data.department_id),
            )

        changed = crud.apply_update(project, data, fields={"title", "description", "department_id"})
        if changed:
            project.updated_by_user_id = actor.id
            self.db.commit()
            self.db.refresh(project)
            logger.info(f"Updated project {project.id} fields {changed} by {actor.id}")
        return project

    def get_project(self, actor: Actor, project_id: UUID) -> models.Project:
        project = self._get_project_or_404(project_id)
        require(actor, Action.VIEW_PROJECT, project_resource(project))
        return project

    def _list(self, actor: Actor, **filters) -> list[models.Project]:
        require(actor, Action.VIEW_PROJECT, Resource(ResourceType.PROJECT))
        projects = crud.get_projects(self.db, **filters)
        return visible(actor, Action.VIEW_PROJECT, projects, project_resource)

    def list_projects(self, actor: Actor) -> list[models.Project]:
        return self._list(actor)

    def list_projects_by_department(self, actor: Actor, department_id: int) -> list[models.Project]:
        self._get_department_or_404(department_id)
        return self._list(actor, department_id=department_id)

    def list_projects_by_status(self, actor: Actor, status: ProjectStatus) -> list[models.Project]:
        return self._list(actor, status=status)

    def list_projects_by_team_member(self, actor: Actor, user_id: UUID) -> list[models.Project]:
        self._get_user_or_404(user_id)
        return self._list(actor, member_id=user_id)

    def add_team_member(self, actor: Actor, project_id: UUID, user_id: UUID) -> models.Project:
        """
        Add a user to the project's team.

        Raises:
            ConflictError: The user is already a member
        """
        project = self._get_project_or_404(project_id)
        require(actor, Action.MANAGE_PROJECT, project_resource(project))
        user = self._get_user_or_404(user_id)

        if any(member.id == user.id for member in project.team_members):
            raise ConflictError(
                f"User with ID {user.id} is already a member of the project",
                details={"project_id": str(project.id), "user_id": str(user.id)},
            )

        project.team_members.append(user)
        project.updated_by_user_id = actor.id
        self.db.commit()
        self.db.refresh(project)
        logger.info(f"Added user {user.id} to project {project.id}")
        return project

    def remove_team_member(self, actor: Actor, project_id: UUID, user_id: UUID) -> models.Project:
        """
        Remove a user from the project's team.

        Raises:
            NotFoundError: The user does not exist
            ConflictError: The user is not a member
        """
        project = self._get_project_or_404(project_id)
        require(actor, Action.MANAGE_PROJECT, project_resource(project))
        user = self._get_user_or_404(user_id)

        if not any(member.id == user.id for member in project.team_members):
            raise ConflictError(
                f"User with ID {user.id} is not a member of the project",
                details={"project_id": str(project.id), "user_id": str(user.id)},
            )

        project.team_members.remove(user)
        project.updated_by_user_id = actor.id
        self.db.commit()
        self.db.refresh(project)
        logger.info(f"Removed user {user_id} from project {project.id}")
        return project

    def update_project_status(self, actor: Actor, project_id: UUID, status: ProjectStatus) -> models.Project:
        project = self._get_project_or_404(project_id)
        require(actor, Action.MANAGE_PROJECT, project_resource(project))

        if project.status != status:
            old_status = project.status
            project.status = status
            project.updated_by_user_id = actor.id
            self.db.commit()
            self.db.refresh(project)
            logger.info(f"Project {project.id} status {old_status.value} → {status.value}")
        return project

    def delete_project(self, actor: Actor, project_id: UUID) -> None:
        """
        Soft-delete a project.

        Raises:
            ConflictError: The project still has active tasks
        """
        project = self._get_project_or_404(project_id)
        require(actor, Action.MANAGE_PROJECT, project_resource(project))

        if crud.project_has_active_tasks(self.db, project.id):
            raise ConflictError(
                "Cannot delete project with existing tasks",
                details={"project_id": str(project.id)},
            )

        project.is_active = False
        project.updated_by_user_id = actor.id
        self.db.commit()
        logger.info(f"Deleted project {project_id} by {actor.id}")
