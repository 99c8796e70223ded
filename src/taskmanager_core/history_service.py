"""Read access to the task state audit trail."""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models
from .exceptions import NotFoundError, ValidationError
from .history import StateHistoryRecorder
from .models import TaskState
from .permissions import (
    Action,
    Actor,
    history_resource,
    require,
    task_resource,
    visible,
)

logger = logging.getLogger("taskmanager-core.history_service")


def _as_naive_utc(value: datetime) -> datetime:
    """Stored timestamps are naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class TaskStateHistoryService:
    """
    Authorized history queries.

    Single-task queries check VIEW_TASK_HISTORY against the task; queries
    spanning many tasks drop the entries the actor may not see.
    """

    def __init__(self, db: Session):
        self.db = db
        self.recorder = StateHistoryRecorder(db)

    def _visible(self, actor: Actor, entries: list[models.TaskStateHistory]) -> list[models.TaskStateHistory]:
        return visible(actor, Action.VIEW_TASK_HISTORY, entries, history_resource)

    def get_history_entry(self, actor: Actor, entry_id: int) -> models.TaskStateHistory:
        entry = self.recorder.get(entry_id)
        if not entry:
            raise NotFoundError("Task state history", entry_id)
        require(actor, Action.VIEW_TASK_HISTORY, history_resource(entry))
        return entry

    def get_task_history(self, actor: Actor, task_id: UUID) -> list[models.TaskStateHistory]:
        """All transitions of one task, newest first (creation entry last).

        Soft-deleted tasks keep their history, so it stays readable here.
        """
        task = crud.get_task(self.db, task_id, include_inactive=True)
        if not task:
            raise NotFoundError("Task", task_id)
        require(actor, Action.VIEW_TASK_HISTORY, task_resource(task))
        return self.recorder.by_task(task.id)

    def get_history_by_changed_by(self, actor: Actor, user_id: UUID) -> list[models.TaskStateHistory]:
        return self._visible(actor, self.recorder.by_changed_by(user_id))

    def get_history_by_old_state(
        self,
        actor: Actor,
        state: Optional[TaskState],
    ) -> list[models.TaskStateHistory]:
        return self._visible(actor, self.recorder.by_old_state(state))

    def get_history_by_new_state(self, actor: Actor, state: TaskState) -> list[models.TaskStateHistory]:
        return self._visible(actor, self.recorder.by_new_state(state))

    def get_history_by_date_range(
        self,
        actor: Actor,
        start: datetime,
        end: datetime,
    ) -> list[models.TaskStateHistory]:
        """
        Entries changed between start and end, inclusive.

        Raises:
            ValidationError: start is after end
        """
        start, end = _as_naive_utc(start), _as_naive_utc(end)
        if start > end:
            raise ValidationError(
                "Start date must be before end date",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        return self._visible(actor, self.recorder.by_changed_at_between(start, end))
