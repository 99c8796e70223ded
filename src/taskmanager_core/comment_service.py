"""Task comments with task-scoped authorization.

Reading or writing a comment needs VIEW_TASK on its task. Editing and deleting
additionally need MANAGE_COMMENT: the author, a PM or TL of the task's
department, or a bypass role.
"""
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .exceptions import NotFoundError
from .permissions import (
    Action,
    Actor,
    Resource,
    ResourceType,
    comment_resource,
    require,
    task_resource,
    visible,
)

logger = logging.getLogger("taskmanager-core.comment_service")


def _task_of(comment: models.Comment) -> Resource:
    return task_resource(comment.task)


class CommentService:
    """Comment operations, each taking the acting principal explicitly."""

    def __init__(self, db: Session):
        self.db = db

    def _get_task_or_404(self, task_id: UUID) -> models.Task:
        task = crud.get_task(self.db, task_id)
        if not task:
            raise NotFoundError("Task", task_id)
        return task

    def _get_comment_or_404(self, comment_id: int) -> models.Comment:
        comment = crud.get_comment(self.db, comment_id)
        if not comment:
            raise NotFoundError("Comment", comment_id)
        return comment

    def _get_manageable_comment(self, actor: Actor, comment_id: int) -> models.Comment:
        comment = self._get_comment_or_404(comment_id)
        require(actor, Action.VIEW_TASK, _task_of(comment))
        require(actor, Action.MANAGE_COMMENT, comment_resource(comment))
        return comment

    def create_comment(self, actor: Actor, data: schemas.CommentCreate) -> models.Comment:
        """
        Comment on a task as the acting user.

        Raises:
            NotFoundError: Task does not exist or was deleted
            PermissionDeniedError: Actor may not see the task
        """
        task = self._get_task_or_404(data.task_id)
        require(actor, Action.VIEW_TASK, task_resource(task))

        comment = crud.create_comment(self.db, data, user_id=actor.id)
        self.db.commit()
        self.db.refresh(comment)
        logger.info(f"Created comment {comment.id} on task {task.id} by {actor.id}")
        return comment

    def update_comment(self, actor: Actor, comment_id: int, data: schemas.CommentUpdate) -> models.Comment:
        comment = self._get_manageable_comment(actor, comment_id)
        if comment.content != data.content:
            comment.content = data.content
            self.db.commit()
            self.db.refresh(comment)
            logger.info(f"Updated comment {comment.id} by {actor.id}")
        return comment

    def get_comment(self, actor: Actor, comment_id: int) -> models.Comment:
        comment = self._get_comment_or_404(comment_id)
        require(actor, Action.VIEW_TASK, _task_of(comment))
        return comment

    def list_comments_by_task(self, actor: Actor, task_id: UUID) -> list[models.Comment]:
        """Comments of one active task, newest first."""
        task = self._get_task_or_404(task_id)
        require(actor, Action.VIEW_TASK, task_resource(task))
        return crud.get_comments(self.db, task_id=task.id)

    def list_comments_by_user(self, actor: Actor, user_id: UUID) -> list[models.Comment]:
        """
        Comments written by one user, limited to tasks the actor can see.

        Raises:
            PermissionDeniedError: Actor is not ADMIN, PGM, PM or TL
            NotFoundError: User does not exist
        """
        require(actor, Action.VIEW_USER_COMMENTS, Resource(ResourceType.COMMENT))
        if not crud.get_user(self.db, user_id):
            raise NotFoundError("User", user_id)
        comments = crud.get_comments(self.db, user_id=user_id)
        return visible(actor, Action.VIEW_TASK, comments, _task_of)

    def delete_comment(self, actor: Actor, comment_id: int) -> None:
        """Soft-delete a comment."""
        comment = self._get_manageable_comment(actor, comment_id)
        comment.is_active = False
        self.db.commit()
        logger.info(f"Deleted comment {comment.id} by {actor.id}")
