"""User use cases.

Users may read and edit their own profile; everything else (registration,
role changes, department moves, listings, deletion) is ADMIN only.
"""
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import UserRole
from .permissions import (
    Action,
    Actor,
    Resource,
    ResourceType,
    require,
    user_resource,
)

logger = logging.getLogger("taskmanager-core.user_service")


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def _get_user_or_404(self, user_id: UUID) -> models.User:
        user = crud.get_user(self.db, user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def _ensure_department(self, department_id) -> None:
        if department_id is not None and not crud.get_department(self.db, department_id):
            raise NotFoundError("Department", department_id)

    def _ensure_email_free(self, email: str, exclude_id=None) -> None:
        if crud.email_taken(self.db, email, exclude_id=exclude_id):
            raise ConflictError("Email already exists", details={"email": email})

    def create_user(self, actor: Actor, data: schemas.UserCreate) -> models.User:
        """
        Register a user with at least one role.

        Raises:
            PermissionDeniedError: Actor is not ADMIN
            ConflictError: Email already in use
            NotFoundError: Department does not exist
        """
        require(actor, Action.ADMINISTER_USER, Resource(ResourceType.USER))
        if not data.roles:
            raise ValidationError("A user must hold at least one role")
        self._ensure_email_free(data.email)
        self._ensure_department(data.department_id)

        user = crud.create_user(self.db, data)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Created user {user.id} ({user.email}) with roles {sorted(r.value for r in user.roles)}")
        return user

    def update_user(self, actor: Actor, user_id: UUID, data: schemas.UserUpdate) -> models.User:
        """
        Update a profile. The owner may edit their own record; moving a user
        to another department, or clearing it with an explicit null,
        additionally needs ADMINISTER_USER.
        """
        user = self._get_user_or_404(user_id)
        require(actor, Action.MANAGE_USER, user_resource(user))

        if "department_id" in data.model_fields_set and data.department_id != user.department_id:
            require(actor, Action.ADMINISTER_USER, user_resource(user))
            self._ensure_department(data.department_id)

        if data.email is not None and data.email != user.email:
            self._ensure_email_free(data.email, exclude_id=user.id)

        changed = crud.apply_update(user, data, fields={"first_name", "last_name", "email", "department_id"})
        if changed:
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"Updated user {user.id} fields {changed} by {actor.id}")
        return user

    def update_user_roles(self, actor: Actor, user_id: UUID, roles: set[UserRole]) -> models.User:
        user = self._get_user_or_404(user_id)
        require(actor, Action.ADMINISTER_USER, user_resource(user))
        if not roles:
            raise ValidationError(
                "A user must hold at least one role",
                details={"user_id": str(user_id)},
            )

        crud.set_user_roles(self.db, user, set(roles))
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user.id} roles set to {sorted(r.value for r in user.roles)} by {actor.id}")
        return user

    def get_user(self, actor: Actor, user_id: UUID) -> models.User:
        user = self._get_user_or_404(user_id)
        require(actor, Action.VIEW_USER, user_resource(user))
        return user

    def get_user_by_email(self, actor: Actor, email: str) -> models.User:
        user = crud.get_user_by_email(self.db, email)
        if not user:
            raise NotFoundError("User", email)
        require(actor, Action.VIEW_USER, user_resource(user))
        return user

    def list_users(self, actor: Actor) -> list[models.User]:
        require(actor, Action.ADMINISTER_USER, Resource(ResourceType.USER))
        return crud.get_users(self.db)

    def list_users_by_department(self, actor: Actor, department_id: int) -> list[models.User]:
        require(actor, Action.ADMINISTER_USER, Resource(ResourceType.USER, department_id=department_id))
        self._ensure_department(department_id)
        return crud.get_users(self.db, department_id=department_id)

    def list_users_by_role(self, actor: Actor, role: UserRole) -> list[models.User]:
        require(actor, Action.ADMINISTER_USER, Resource(ResourceType.USER))
        return crud.get_users(self.db, role=role)

    def delete_user(self, actor: Actor, user_id: UUID) -> None:
        """Soft-delete a user. Their history entries keep pointing at them."""
        user = self._get_user_or_404(user_id)
        require(actor, Action.ADMINISTER_USER, user_resource(user))

        user.is_active = False
        self.db.commit()
        logger.info(f"Deleted user {user_id} by {actor.id}")
