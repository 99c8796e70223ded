"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    Boolean,
    CheckConstraint,
    Table,
    Uuid,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp used for every audit column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserRole(str, enum.Enum):
    """Role enum. ADMIN and PROJECT_GROUP_MANAGER bypass department scoping."""

    ADMIN = "ADMIN"
    PROJECT_GROUP_MANAGER = "PROJECT_GROUP_MANAGER"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    TEAM_LEADER = "TEAM_LEADER"
    TEAM_MEMBER = "TEAM_MEMBER"


class TaskState(str, enum.Enum):
    """Task lifecycle state enum.

    COMPLETED and CANCELLED are terminal. Legal moves between states live in
    state_machine.TRANSITION_MATRIX.
    """

    BACKLOG = "BACKLOG"
    IN_ANALYSIS = "IN_ANALYSIS"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, enum.Enum):
    """Task priority enum."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ProjectStatus(str, enum.Enum):
    """Project status enum."""

    IN_PROGRESS = "IN_PROGRESS"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    ON_HOLD = "ON_HOLD"
    PLANNING = "PLANNING"
    REVIEW = "REVIEW"
    TESTING = "TESTING"
    ARCHIVED = "ARCHIVED"
    FAILED = "FAILED"


# Association table for project team members (many-to-many)
project_members = Table(
    'project_members',
    Base.metadata,
    Column('project_id', Uuid, ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
    Column('user_id', Uuid, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    Column('joined_at', DateTime, nullable=False, default=utcnow),
)


class Department(Base):
    """
    Department model.

    Departments are the tenancy boundary: projects belong to exactly one
    department and non-bypass users only reach resources of their own.
    """

    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(String(500))
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    users = relationship("User", back_populates="department")
    projects = relationship("Project", back_populates="department")

    def __repr__(self) -> str:
        return f"<Department {self.id}: {self.name}>"


class User(Base):
    """
    User model.

    Credentials are not stored here; the identity provider owns them.
    A user holds one or more roles through UserRoleGrant rows.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    department = relationship("Department", back_populates="users")
    role_grants = relationship(
        "UserRoleGrant",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    projects = relationship("Project", secondary=project_members, back_populates="team_members")

    @property
    def roles(self) -> frozenset[UserRole]:
        return frozenset(grant.role for grant in self.role_grants)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class UserRoleGrant(Base):
    """Junction row granting a role to a user."""

    __tablename__ = "user_roles"

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    # Use values_callable to serialize enum values instead of names
    role = Column(
        Enum(UserRole, values_callable=lambda obj: [e.value for e in obj]),
        primary_key=True,
    )
    granted_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="role_grants")

    def __repr__(self) -> str:
        return f"<UserRoleGrant {self.user_id}: {self.role.value}>"


class Project(Base):
    """
    Project model.

    A project belongs to one department; its tasks inherit that department
    for permission checks.
    """

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    title = Column(String(100), nullable=False)
    description = Column(String(1000))
    status = Column(
        Enum(ProjectStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=ProjectStatus.PENDING,
        index=True
    )
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    created_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    updated_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True)

    # Relationships
    department = relationship("Department", back_populates="projects")
    team_members = relationship("User", secondary=project_members, back_populates="projects")
    tasks = relationship("Task", back_populates="project")

    @property
    def active_tasks(self) -> list["Task"]:
        return [task for task in self.tasks if task.is_active]

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"


class Task(Base):
    """Task entity.

    `state` is only changed through the task state machine. `version` is the
    optimistic-concurrency counter: SQLAlchemy adds it to the WHERE clause of
    every UPDATE and raises StaleDataError when another writer got there first.
    """

    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)

    # Core task fields
    title = Column(String(100), nullable=False)
    user_story = Column(Text, nullable=False)
    acceptance_criteria = Column(Text, nullable=False)
    state = Column(
        Enum(TaskState, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=TaskState.BACKLOG,
        index=True
    )
    priority = Column(
        Enum(TaskPriority, values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=TaskPriority.MEDIUM,
        index=True
    )
    state_change_reason = Column(String(500), nullable=True)
    assigned_user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    version = Column(Integer, nullable=False)

    # Audit fields
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    assigned_user = relationship("User", foreign_keys=[assigned_user_id])
    creator = relationship("User", foreign_keys=[created_by])
    state_history = relationship(
        "TaskStateHistory",
        back_populates="task",
        order_by="TaskStateHistory.id",
    )
    comments = relationship("Comment", back_populates="task", order_by="Comment.id")

    __mapper_args__ = {"version_id_col": version}

    @property
    def department_id(self) -> int:
        return self.project.department_id

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title[:30]} [{self.state.value}]>"


class TaskStateHistory(Base):
    """Task state change audit trail.

    Append-only: one row per accepted transition, including the creation
    entry (old_state is NULL). Rows are never updated or deleted.
    """

    __tablename__ = "task_state_histories"
    __table_args__ = (
        CheckConstraint(
            "new_state NOT IN ('BLOCKED', 'CANCELLED') OR (reason IS NOT NULL AND length(trim(reason)) > 0)",
            name="reason_required_for_blocked_cancelled",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Change details
    old_state = Column(Enum(TaskState, values_callable=lambda obj: [e.value for e in obj]), nullable=True, index=True)
    new_state = Column(Enum(TaskState, values_callable=lambda obj: [e.value for e in obj]), nullable=False, index=True)
    reason = Column(String(500), nullable=True)

    # Audit fields
    changed_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    changed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Relationships
    task = relationship("Task", back_populates="state_history")
    user = relationship("User")

    def __repr__(self) -> str:
        old = self.old_state.value if self.old_state else None
        return f"<TaskStateHistory {self.task_id}: {old} -> {self.new_state.value}>"


class ImmutableHistoryError(RuntimeError):
    """Raised when something tries to rewrite a task state history row."""


@event.listens_for(TaskStateHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise ImmutableHistoryError(f"Task state history entry {target.id} is immutable")


@event.listens_for(TaskStateHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise ImmutableHistoryError(f"Task state history entry {target.id} cannot be deleted")


class Comment(Base):
    """
    Comment model.

    Discussion attached to a task. Comments are soft-deleted through
    is_active, like the other entities; only their content is editable.
    """

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Uuid, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    task = relationship("Task", back_populates="comments")
    author = relationship("User")

    def __repr__(self) -> str:
        return f"<Comment {self.id} on task {self.task_id}>"
