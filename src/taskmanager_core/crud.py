"""Lookups and write helpers for departments, users, projects, tasks and comments.

Lookups return None for rows that are missing or soft-deleted (is_active is
False). Write helpers add and flush but never commit; the calling service
commits once per use case.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import case, inspect
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .models import ProjectStatus, TaskPriority, TaskState, UserRole
from .state_machine import INITIAL_STATE, STATE_SORT_ORDER

logger = logging.getLogger("taskmanager-core.crud")


def _state_sort_expression():
    """Build SQLAlchemy CASE expression for state-based sorting.

    Active work first, finished work last.
    """
    return case(
        *[(models.Task.state == state, order)
          for state, order in STATE_SORT_ORDER.items()],
        else_=99
    )


# Departments

def get_department(db: Session, department_id: int) -> Optional[models.Department]:
    return (
        db.query(models.Department)
        .filter(models.Department.id == department_id, models.Department.is_active.is_(True))
        .first()
    )


def get_department_by_name(db: Session, name: str) -> Optional[models.Department]:
    return (
        db.query(models.Department)
        .filter(models.Department.name == name, models.Department.is_active.is_(True))
        .first()
    )


def department_name_taken(db: Session, name: str, exclude_id: Optional[int] = None) -> bool:
    """Names stay reserved by soft-deleted departments (the column is unique)."""
    query = db.query(models.Department.id).filter(models.Department.name == name)
    if exclude_id is not None:
        query = query.filter(models.Department.id != exclude_id)
    return query.first() is not None


def get_departments(db: Session) -> list[models.Department]:
    return (
        db.query(models.Department)
        .filter(models.Department.is_active.is_(True))
        .order_by(models.Department.name)
        .all()
    )


def create_department(db: Session, data: schemas.DepartmentCreate) -> models.Department:
    department = models.Department(name=data.name, description=data.description)
    db.add(department)
    db.flush()
    return department


def department_in_use(db: Session, department_id: int) -> bool:
    """True while active users or active projects still reference the department."""
    has_users = db.query(models.User.id).filter(
        models.User.department_id == department_id,
        models.User.is_active.is_(True),
    ).first() is not None
    if has_users:
        return True
    return db.query(models.Project.id).filter(
        models.Project.department_id == department_id,
        models.Project.is_active.is_(True),
    ).first() is not None


# Users

def get_user(db: Session, user_id: UUID) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.id == user_id, models.User.is_active.is_(True))
        .first()
    )


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.email == email, models.User.is_active.is_(True))
        .first()
    )


def email_taken(db: Session, email: str, exclude_id: Optional[UUID] = None) -> bool:
    query = db.query(models.User.id).filter(models.User.email == email)
    if exclude_id is not None:
        query = query.filter(models.User.id != exclude_id)
    return query.first() is not None


def get_users(
    db: Session,
    department_id: Optional[int] = None,
    role: Optional[UserRole] = None,
) -> list[models.User]:
    """List active users, optionally filtered by department and/or role."""
    query = db.query(models.User).filter(models.User.is_active.is_(True))
    if department_id is not None:
        query = query.filter(models.User.department_id == department_id)
    if role is not None:
        query = query.join(models.UserRoleGrant).filter(models.UserRoleGrant.role == role)
    return query.order_by(models.User.last_name, models.User.first_name).all()


def create_user(db: Session, data: schemas.UserCreate) -> models.User:
    user = models.User(
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        department_id=data.department_id,
    )
    user.role_grants = [models.UserRoleGrant(role=role) for role in data.roles]
    db.add(user)
    db.flush()
    return user


def set_user_roles(db: Session, user: models.User, roles: set[UserRole]) -> models.User:
    """Replace the user's role grants, keeping grants that survive."""
    user.role_grants = [grant for grant in user.role_grants if grant.role in roles]
    existing = {grant.role for grant in user.role_grants}
    for role in roles - existing:
        user.role_grants.append(models.UserRoleGrant(role=role))
    db.flush()
    return user


# Projects

def get_project(db: Session, project_id: UUID) -> Optional[models.Project]:
    return (
        db.query(models.Project)
        .filter(models.Project.id == project_id, models.Project.is_active.is_(True))
        .first()
    )


def get_projects(
    db: Session,
    department_id: Optional[int] = None,
    status: Optional[ProjectStatus] = None,
    member_id: Optional[UUID] = None,
) -> list[models.Project]:
    """List active projects, newest first."""
    query = db.query(models.Project).filter(models.Project.is_active.is_(True))
    if department_id is not None:
        query = query.filter(models.Project.department_id == department_id)
    if status is not None:
        query = query.filter(models.Project.status == status)
    if member_id is not None:
        query = query.filter(models.Project.team_members.any(models.User.id == member_id))
    return query.order_by(models.Project.created_at.desc()).all()


def create_project(
    db: Session,
    data: schemas.ProjectCreate,
    team_members: list[models.User],
    user_id: Optional[UUID] = None,
) -> models.Project:
    project = models.Project(
        title=data.title,
        description=data.description,
        status=data.status,
        department_id=data.department_id,
        created_by_user_id=user_id,
        updated_by_user_id=user_id,
    )
    project.team_members = list(team_members)
    db.add(project)
    db.flush()
    return project


def project_has_active_tasks(db: Session, project_id: UUID) -> bool:
    return db.query(models.Task.id).filter(
        models.Task.project_id == project_id,
        models.Task.is_active.is_(True),
    ).first() is not None


# Tasks

def get_task(
    db: Session,
    task_id: UUID,
    for_update: bool = False,
    include_inactive: bool = False,
) -> Optional[models.Task]:
    """
    Load an active task with its project.

    Args:
        db: Database session
        task_id: Task UUID
        for_update: Lock the task row (SELECT ... FOR UPDATE) and refresh it
            from the database, bypassing any stale copy in the identity map
        include_inactive: Also return soft-deleted tasks (history reads)

    Returns:
        Task, or None if absent (or soft-deleted, unless include_inactive)
    """
    query = db.query(models.Task).filter(models.Task.id == task_id)
    if not include_inactive:
        query = query.filter(models.Task.is_active.is_(True))
    if for_update:
        query = query.with_for_update(of=models.Task).populate_existing()
    else:
        query = query.options(joinedload(models.Task.project))
    return query.first()


def get_tasks(
    db: Session,
    project_id: Optional[UUID] = None,
    assigned_user_id: Optional[UUID] = None,
    state: Optional[TaskState] = None,
    priority: Optional[TaskPriority] = None,
    department_id: Optional[int] = None,
) -> list[models.Task]:
    """
    List active tasks matching every given filter.

    Ordered by workflow state (active work first), then newest first.
    """
    query = (
        db.query(models.Task)
        .options(joinedload(models.Task.project))
        .filter(models.Task.is_active.is_(True))
    )
    if project_id is not None:
        query = query.filter(models.Task.project_id == project_id)
    if assigned_user_id is not None:
        query = query.filter(models.Task.assigned_user_id == assigned_user_id)
    if state is not None:
        query = query.filter(models.Task.state == state)
    if priority is not None:
        query = query.filter(models.Task.priority == priority)
    if department_id is not None:
        query = query.join(models.Project, models.Task.project_id == models.Project.id).filter(
            models.Project.department_id == department_id
        )
    return query.order_by(_state_sort_expression(), models.Task.created_at.desc()).all()


def create_task(
    db: Session,
    data: schemas.TaskCreate,
    user_id: Optional[UUID] = None,
) -> models.Task:
    """Insert a task in the initial state. The creation history entry is the caller's job."""
    task = models.Task(
        project_id=data.project_id,
        title=data.title,
        user_story=data.user_story,
        acceptance_criteria=data.acceptance_criteria,
        priority=data.priority,
        state=INITIAL_STATE,
        assigned_user_id=data.assigned_user_id,
        created_by=user_id,
    )
    db.add(task)
    db.flush()
    logger.debug(f"Inserted task {task.id} in project {data.project_id}")
    return task


# Comments

def get_comment(db: Session, comment_id: int) -> Optional[models.Comment]:
    return (
        db.query(models.Comment)
        .options(joinedload(models.Comment.task).joinedload(models.Task.project))
        .filter(models.Comment.id == comment_id, models.Comment.is_active.is_(True))
        .first()
    )


def get_comments(
    db: Session,
    task_id: Optional[UUID] = None,
    user_id: Optional[UUID] = None,
) -> list[models.Comment]:
    """List active comments, newest first (ties broken by insertion order)."""
    query = (
        db.query(models.Comment)
        .options(
            joinedload(models.Comment.task).joinedload(models.Task.project),
            joinedload(models.Comment.author),
        )
        .filter(models.Comment.is_active.is_(True))
    )
    if task_id is not None:
        query = query.filter(models.Comment.task_id == task_id)
    if user_id is not None:
        query = query.filter(models.Comment.user_id == user_id)
    return query.order_by(models.Comment.created_at.desc(), models.Comment.id.desc()).all()


def create_comment(db: Session, data: schemas.CommentCreate, user_id: UUID) -> models.Comment:
    comment = models.Comment(task_id=data.task_id, user_id=user_id, content=data.content)
    db.add(comment)
    db.flush()
    return comment


def apply_update(instance, data, fields=None):
    """
    Copy the explicitly set fields of a pydantic update schema onto a model.

    An explicit None clears a nullable column (a project description, a
    user's department) and is ignored for NOT NULL columns.
    """
    columns = inspect(type(instance)).columns
    changed = []
    for name, value in data.model_dump(exclude_unset=True).items():
        if fields is not None and name not in fields:
            continue
        if value is None and not columns[name].nullable:
            continue
        if getattr(instance, name) == value:
            continue
        setattr(instance, name, value)
        changed.append(name)
    return changed
