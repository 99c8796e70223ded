"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .models import (
    UserRole,
    TaskState,
    TaskPriority,
    ProjectStatus,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# Department Schemas

class DepartmentCreate(BaseModel):
    """Schema for creating a department."""

    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class DepartmentUpdate(BaseModel):
    """Schema for updating a department. Omitted fields are kept; null clears the description."""

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class DepartmentResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# User Schemas

class UserCreate(BaseModel):
    """Schema for registering a user.

    Credentials are handled by the identity provider; only profile data and
    role grants live here.
    """

    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    department_id: Optional[int] = None
    roles: set[UserRole] = Field(default_factory=lambda: {UserRole.TEAM_MEMBER}, min_length=1)


class UserUpdate(BaseModel):
    """Self-service profile update.

    Changing department_id, or clearing it with null, needs ADMIN. Null is
    ignored for the name and email fields.
    """

    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    department_id: Optional[int] = None


class UserRolesUpdate(BaseModel):
    roles: set[UserRole] = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: str
    department_id: Optional[int] = None
    roles: list[UserRole]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("roles", mode="before")
    @classmethod
    def _sorted_roles(cls, value):
        return sorted(value, key=lambda role: list(UserRole).index(UserRole(role)))


# Project Schemas

class ProjectCreate(BaseModel):
    """Schema for creating a project."""

    title: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    status: ProjectStatus = ProjectStatus.PENDING
    department_id: int
    team_member_ids: set[UUID] = Field(default_factory=set)


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Omitted fields are kept; null clears the description."""

    title: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    department_id: Optional[int] = None


class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus


class ProjectResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    status: ProjectStatus
    department_id: int
    team_member_ids: list[UUID] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    created_by_user_id: Optional[UUID] = None
    updated_by_user_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


# Task Schemas

class TaskCreate(BaseModel):
    """Schema for creating a task.

    The initial state is always BACKLOG; it cannot be chosen by the caller.
    """

    title: str = Field(..., min_length=2, max_length=100)
    user_story: str = Field(..., min_length=1)
    acceptance_criteria: str = Field(..., min_length=1)
    priority: TaskPriority = TaskPriority.MEDIUM
    project_id: UUID
    assigned_user_id: Optional[UUID] = None


class TaskUpdate(BaseModel):
    """Schema for updating task content. State changes go through TaskStateUpdate."""

    title: Optional[str] = Field(None, min_length=2, max_length=100)
    user_story: Optional[str] = Field(None, min_length=1)
    acceptance_criteria: Optional[str] = Field(None, min_length=1)
    priority: Optional[TaskPriority] = None


class TaskStateUpdate(BaseModel):
    """Schema for a task state change request."""

    state: TaskState
    reason: Optional[str] = Field(None, max_length=500, description="Required for BLOCKED and CANCELLED")
    expected_version: Optional[int] = Field(
        None,
        ge=1,
        description="Reject the change with 409 if the task's version differs",
    )


class TaskAssign(BaseModel):
    user_id: UUID


class TaskResponse(BaseModel):
    id: UUID
    title: str
    user_story: str
    acceptance_criteria: str
    state: TaskState
    priority: TaskPriority
    state_change_reason: Optional[str] = None
    project_id: UUID
    assigned_user_id: Optional[UUID] = None
    created_by: Optional[UUID] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AllowedTransitionsResponse(BaseModel):
    task_id: UUID
    current_state: TaskState
    allowed_transitions: list[TaskState]


# Task State History Schemas

class TaskStateHistoryResponse(BaseModel):
    id: int
    task_id: UUID
    old_state: Optional[TaskState] = None
    new_state: TaskState
    reason: Optional[str] = None
    changed_at: datetime
    changed_by: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True)


# Comment Schemas

def _require_content(value: str) -> str:
    """Comments must say something; whitespace alone is rejected."""
    if not value.strip():
        raise ValueError("Comment content cannot be empty")
    return value


class CommentCreate(BaseModel):
    """Schema for commenting on a task. The author is the acting user."""

    task_id: UUID
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        return _require_content(value)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        return _require_content(value)


class CommentResponse(BaseModel):
    id: int
    content: str
    task_id: UUID
    task_title: str
    user_id: UUID
    user_name: str
    created_at: datetime
    updated_at: datetime
