"""Request-scoped dependencies: the acting principal."""
import logging
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .. import crud
from ..config import get_settings
from ..database import get_db
from ..exceptions import UnauthenticatedError
from ..permissions import Actor

logger = logging.getLogger("taskmanager-core.api.dependencies")


def actor_from_user(user) -> Actor:
    """Snapshot a persisted user as an Actor."""
    return Actor(id=user.id, roles=user.roles, department_id=user.department_id)


def get_current_actor(request: Request, db: Session = Depends(get_db)) -> Actor:
    """
    Resolve the acting principal from the identity header.

    The upstream gateway authenticates the caller and forwards the user id in
    the configured header (X-User-Id by default).

    Raises:
        UnauthenticatedError: Header missing, malformed, or naming no active user
    """
    header = get_settings().actor_header
    raw_id = request.headers.get(header)
    if not raw_id:
        raise UnauthenticatedError(f"Missing {header} header")

    try:
        user_id = UUID(raw_id)
    except ValueError:
        raise UnauthenticatedError(f"Invalid {header} header: {raw_id!r} is not a UUID")

    user = crud.get_user(db, user_id)
    if not user:
        logger.warning(f"Rejected request for unknown or inactive user {user_id}")
        raise UnauthenticatedError(f"User with ID {user_id} is not an active user")
    if not user.roles:
        raise UnauthenticatedError(f"User with ID {user_id} holds no roles")

    return actor_from_user(user)
