"""Append-only recording and querying of task state changes."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session, joinedload

from . import models
from .models import TaskState

logger = logging.getLogger("taskmanager-core.history")


class StateHistoryRecorder:
    """
    Writes and reads TaskStateHistory rows.

    record() only adds and flushes; the caller commits it together with the
    task mutation so both land in one transaction. No authorization happens
    here.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        task_id: UUID,
        old_state: Optional[TaskState],
        new_state: TaskState,
        reason: Optional[str] = None,
        changed_by: Optional[UUID] = None,
        changed_at: Optional[datetime] = None,
    ) -> models.TaskStateHistory:
        """
        Append a history entry.

        Args:
            task_id: Task the change belongs to
            old_state: Previous state (None for the creation entry)
            new_state: State entered
            reason: Justification, stored as given
            changed_by: Acting user id
            changed_at: Timestamp (defaults to now, UTC)

        Returns:
            The flushed history row (id assigned)
        """
        entry = models.TaskStateHistory(
            task_id=task_id,
            old_state=old_state,
            new_state=new_state,
            reason=reason,
            changed_by=changed_by,
            changed_at=changed_at or models.utcnow(),
        )
        self.db.add(entry)
        self.db.flush()

        old = old_state.value if old_state else None
        logger.debug(f"Recorded history {entry.id} for task {task_id}: {old} → {new_state.value}")
        return entry

    def _query(self):
        return (
            self.db.query(models.TaskStateHistory)
            .options(joinedload(models.TaskStateHistory.task).joinedload(models.Task.project))
            .order_by(models.TaskStateHistory.changed_at.desc(), models.TaskStateHistory.id.desc())
        )

    def get(self, entry_id: int) -> Optional[models.TaskStateHistory]:
        return (
            self.db.query(models.TaskStateHistory)
            .options(joinedload(models.TaskStateHistory.task).joinedload(models.Task.project))
            .filter(models.TaskStateHistory.id == entry_id)
            .first()
        )

    def by_task(self, task_id: UUID) -> list[models.TaskStateHistory]:
        """All entries of one task, newest first."""
        return self._query().filter(models.TaskStateHistory.task_id == task_id).all()

    def by_changed_by(self, user_id: UUID) -> list[models.TaskStateHistory]:
        return self._query().filter(models.TaskStateHistory.changed_by == user_id).all()

    def by_old_state(self, state: Optional[TaskState]) -> list[models.TaskStateHistory]:
        """Entries leaving a state; None selects creation entries."""
        if state is None:
            return self._query().filter(models.TaskStateHistory.old_state.is_(None)).all()
        return self._query().filter(models.TaskStateHistory.old_state == state).all()

    def by_new_state(self, state: TaskState) -> list[models.TaskStateHistory]:
        return self._query().filter(models.TaskStateHistory.new_state == state).all()

    def by_changed_at_between(self, start: datetime, end: datetime) -> list[models.TaskStateHistory]:
        """Entries with start <= changed_at <= end."""
        return (
            self._query()
            .filter(
                models.TaskStateHistory.changed_at >= start,
                models.TaskStateHistory.changed_at <= end,
            )
            .all()
        )
