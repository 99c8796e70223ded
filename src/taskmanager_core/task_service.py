"""Task use cases with authorization, state validation and history recording.

Every operation follows the same sequence: resolve the target (NotFoundError),
check the policy (PermissionDeniedError), validate the state change where one
is requested (StateTransitionError), mutate, record history, commit. Nothing
is written when any step before the mutation fails.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import crud, models, schemas
from .exceptions import ConflictError, NotFoundError
from .history import StateHistoryRecorder
from .models import TaskPriority, TaskState
from .permissions import (
    Action,
    Actor,
    PermissionDeniedError,
    Resource,
    ResourceType,
    require,
    task_resource,
    visible,
)
from .state_machine import (
    INITIAL_STATE,
    StateTransitionError,
    get_allowed_transitions,
    validate_transition,
)

logger = logging.getLogger("taskmanager-core.task_service")


class AuthorizedTaskService:
    """Task operations, each taking the acting principal explicitly."""

    def __init__(self, db: Session):
        self.db = db
        self.history = StateHistoryRecorder(db)

    def _get_task_or_404(self, task_id: UUID, for_update: bool = False) -> models.Task:
        task = crud.get_task(self.db, task_id, for_update=for_update)
        if not task:
            raise NotFoundError("Task", task_id)
        return task

    def _get_user_or_404(self, user_id: UUID) -> models.User:
        user = crud.get_user(self.db, user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def _conflict(self, task_id: UUID):
        self.db.rollback()
        logger.warning(f"Concurrent modification of task {task_id}; change rolled back")
        raise ConflictError(
            f"Task {task_id} was modified concurrently. Reload it and try again.",
            details={"task_id": str(task_id)},
        )

    def _commit(self, task_id: UUID) -> None:
        try:
            self.db.commit()
        except StaleDataError:
            self._conflict(task_id)

    def create_task(self, actor: Actor, data: schemas.TaskCreate) -> models.Task:
        """
        Create a task in BACKLOG and record the creation entry.

        Args:
            actor: Acting principal (needs MANAGE_TASK in the project's department)
            data: Task fields

        Returns:
            The created task

        Raises:
            NotFoundError: Project or assigned user does not exist
            PermissionDeniedError: Actor may not manage tasks in that department
        """
        project = crud.get_project(self.db, data.project_id)
        if not project:
            raise NotFoundError("Project", data.project_id)

        require(actor, Action.MANAGE_TASK, Resource(ResourceType.TASK, department_id=project.department_id))

        if data.assigned_user_id is not None:
            self._get_user_or_404(data.assigned_user_id)

        task = crud.create_task(self.db, data, user_id=actor.id)
        self.history.record(
            task_id=task.id,
            old_state=None,
            new_state=INITIAL_STATE,
            reason=None,
            changed_by=actor.id,
        )
        self.db.commit()
        self.db.refresh(task)

        logger.info(f"Created task {task.id} '{task.title}' in project {project.id} by {actor.id}")
        return task

    def update_task(self, actor: Actor, task_id: UUID, data: schemas.TaskUpdate) -> models.Task:
        """Update task content fields. State is never changed here."""
        task = self._get_task_or_404(task_id)
        require(actor, Action.MANAGE_TASK, task_resource(task))

        changed = crud.apply_update(task, data, fields={"title", "user_story", "acceptance_criteria", "priority"})
        if changed:
            self._commit(task.id)
            self.db.refresh(task)
            logger.info(f"Updated task {task.id} fields {changed} by {actor.id}")
        return task

    def get_task(self, actor: Actor, task_id: UUID) -> models.Task:
        task = self._get_task_or_404(task_id)
        require(actor, Action.VIEW_TASK, task_resource(task))
        return task

    def _list(self, actor: Actor, **filters) -> list[models.Task]:
        # Non-bypass actors only ever see their own department
        if not actor.is_bypass:
            if actor.department_id is None:
                return []
            filters["department_id"] = actor.department_id
        tasks = crud.get_tasks(self.db, **filters)
        return visible(actor, Action.VIEW_TASK, tasks, task_resource)

    def list_tasks(self, actor: Actor) -> list[models.Task]:
        return self._list(actor)

    def list_tasks_by_project(self, actor: Actor, project_id: UUID) -> list[models.Task]:
        """Tasks of one project; the project itself must be visible to the actor."""
        project = crud.get_project(self.db, project_id)
        if not project:
            raise NotFoundError("Project", project_id)
        require(actor, Action.VIEW_TASK, Resource(ResourceType.TASK, department_id=project.department_id))
        return self._list(actor, project_id=project_id)

    def list_tasks_by_assignee(self, actor: Actor, user_id: UUID) -> list[models.Task]:
        self._get_user_or_404(user_id)
        return self._list(actor, assigned_user_id=user_id)

    def list_tasks_by_state(self, actor: Actor, state: TaskState) -> list[models.Task]:
        return self._list(actor, state=state)

    def list_tasks_by_priority(self, actor: Actor, priority: TaskPriority) -> list[models.Task]:
        return self._list(actor, priority=priority)

    def update_task_state(
        self,
        actor: Actor,
        task_id: UUID,
        new_state: TaskState,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> models.Task:
        """
        Move a task to a new state.

        The task row is locked for the whole read-validate-write-record
        sequence, and the mapper's version column turns a lost race into a
        ConflictError. A request for the current state changes nothing and
        records nothing.

        Args:
            actor: Acting principal (needs UPDATE_TASK_STATE)
            task_id: Task UUID
            new_state: Requested state
            reason: Justification, mandatory for BLOCKED and CANCELLED
            expected_version: Optional version the client last saw

        Returns:
            The task after the change

        Raises:
            NotFoundError: Task does not exist or was deleted
            PermissionDeniedError: Actor may not change this task's state
            ConflictError: expected_version is stale or a concurrent write won
            MissingRequiredReasonError: No reason for BLOCKED/CANCELLED
            ImmutableStateError: Task is COMPLETED or CANCELLED
            InvalidStateTransitionError: Not an allowed edge
        """
        task = self._get_task_or_404(task_id, for_update=True)
        try:
            require(actor, Action.UPDATE_TASK_STATE, task_resource(task))
        except PermissionDeniedError:
            # Releases the row lock
            self.db.rollback()
            raise

        current_version = task.version
        if expected_version is not None and expected_version != current_version:
            self.db.rollback()
            raise ConflictError(
                f"Task {task_id} is at version {current_version}, expected {expected_version}. "
                f"Reload it and try again.",
                details={
                    "task_id": str(task_id),
                    "current_version": current_version,
                    "expected_version": expected_version,
                },
            )

        old_state = task.state
        try:
            validate_transition(old_state, new_state, reason, task_id=task.id)
        except StateTransitionError:
            self.db.rollback()
            raise

        if old_state == new_state:
            # Releases the row lock
            self.db.rollback()
            logger.debug(f"Task {task_id} already in {new_state.value}; nothing recorded")
            return self._get_task_or_404(task_id)

        # The history flush also flushes the versioned task UPDATE
        try:
            task.state = new_state
            task.state_change_reason = reason
            self.history.record(
                task_id=task.id,
                old_state=old_state,
                new_state=new_state,
                reason=reason,
                changed_by=actor.id,
            )
            self.db.commit()
        except StaleDataError:
            self._conflict(task_id)
        self.db.refresh(task)

        logger.info(
            f"Task {task.id} moved {old_state.value} → {new_state.value} by {actor.id} "
            f"(version {task.version})"
        )
        return task

    def get_allowed_transitions(self, actor: Actor, task_id: UUID) -> list[TaskState]:
        """States the task can move to next, for an actor allowed to see it."""
        task = self._get_task_or_404(task_id)
        require(actor, Action.VIEW_TASK, task_resource(task))
        return get_allowed_transitions(task.state)

    def assign_task(self, actor: Actor, task_id: UUID, user_id: UUID) -> models.Task:
        task = self._get_task_or_404(task_id)
        require(actor, Action.MANAGE_TASK, task_resource(task))
        user = self._get_user_or_404(user_id)

        task.assigned_user_id = user.id
        self._commit(task.id)
        self.db.refresh(task)
        logger.info(f"Assigned task {task.id} to user {user.id} by {actor.id}")
        return task

    def unassign_task(self, actor: Actor, task_id: UUID) -> models.Task:
        task = self._get_task_or_404(task_id)
        require(actor, Action.MANAGE_TASK, task_resource(task))

        if task.assigned_user_id is not None:
            task.assigned_user_id = None
            self._commit(task.id)
            self.db.refresh(task)
            logger.info(f"Unassigned task {task.id} by {actor.id}")
        return task

    def delete_task(self, actor: Actor, task_id: UUID) -> None:
        """Soft-delete a task. Its history stays in place."""
        task = self._get_task_or_404(task_id)
        require(actor, Action.MANAGE_TASK, task_resource(task))

        task.is_active = False
        self._commit(task.id)
        logger.info(f"Deleted task {task.id} by {actor.id}")
