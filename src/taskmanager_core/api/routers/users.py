"""Users API endpoints."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ... import schemas
from ...database import get_db
from ...models import UserRole
from ...permissions import Actor
from ...user_service import UserService
from ..dependencies import get_current_actor

logger = logging.getLogger("taskmanager-core.api.users")

router = APIRouter(tags=["users"])


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


@router.post("/", response_model=schemas.UserResponse, status_code=201)
def create_user(
    data: schemas.UserCreate,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    """
    Register a user (ADMIN only).

    - **email**: Unique email address
    - **department_id**: Optional department
    - **roles**: At least one role (default: TEAM_MEMBER)
    """
    return service.create_user(actor, data)


@router.get("/", response_model=list[schemas.UserResponse])
def list_users(
    department_id: Optional[int] = Query(None, description="Only users of this department"),
    role: Optional[UserRole] = Query(None, description="Only users holding this role"),
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    """List active users (ADMIN only), optionally filtered by department or role."""
    if department_id is not None:
        users = service.list_users_by_department(actor, department_id)
        if role is not None:
            users = [user for user in users if role in user.roles]
        return users
    if role is not None:
        return service.list_users_by_role(actor, role)
    return service.list_users(actor)


@router.get("/me", response_model=schemas.UserResponse)
def get_me(
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.get_user(actor, actor.id)


@router.get("/by-email/{email}", response_model=schemas.UserResponse)
def get_user_by_email(
    email: str,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.get_user_by_email(actor, email)


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.get_user(actor, user_id)


@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: UUID,
    data: schemas.UserUpdate,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    """Update a profile. Users may edit their own; only ADMIN may move departments."""
    return service.update_user(actor, user_id, data)


@router.put("/{user_id}/roles", response_model=schemas.UserResponse)
def update_user_roles(
    user_id: UUID,
    data: schemas.UserRolesUpdate,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.update_user_roles(actor, user_id, data.roles)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    service.delete_user(actor, user_id)
    return Response(status_code=204)
