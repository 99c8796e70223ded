"""Role- and department-scoped authorization.

Every service operation builds a Resource for its target and asks
evaluate(actor, action, resource) before touching it. The rules are a fixed
table (POLICY) keyed by Action; evaluation is a pure function of its inputs.

Rule evaluation order for one action:
1. Any bypass role held by the actor → allow.
2. Owner rule: where the rule allows it, the owner of the record (the user
   themselves, a comment's author) is allowed.
3. The actor must hold one of the department roles (None means any role).
4. Department-scoped actions require actor.department_id to equal the
   resource's department_id.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, TypeVar
from uuid import UUID

from .exceptions import TaskManagerError
from .models import UserRole

logger = logging.getLogger("taskmanager-core.permissions")

T = TypeVar("T")

BYPASS_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.PROJECT_GROUP_MANAGER})


@dataclass(frozen=True)
class Actor:
    """Immutable snapshot of the principal performing an action."""

    id: UUID
    roles: frozenset[UserRole]
    department_id: Optional[int] = None

    def __post_init__(self):
        if not self.roles:
            raise ValueError(f"Actor {self.id} must hold at least one role")
        object.__setattr__(self, "roles", frozenset(self.roles))

    @property
    def is_bypass(self) -> bool:
        """ADMIN and PROJECT_GROUP_MANAGER skip every department check."""
        return bool(self.roles & BYPASS_ROLES)


class Action(str, enum.Enum):
    """Kinds of action the policy distinguishes."""

    MANAGE_DEPARTMENT = "manage_department"
    VIEW_DEPARTMENT = "view_department"
    MANAGE_PROJECT = "manage_project"
    VIEW_PROJECT = "view_project"
    MANAGE_TASK = "manage_task"
    VIEW_TASK = "view_task"
    VIEW_TASK_HISTORY = "view_task_history"
    UPDATE_TASK_STATE = "update_task_state"
    MANAGE_USER = "manage_user"
    VIEW_USER = "view_user"
    ADMINISTER_USER = "administer_user"
    MANAGE_COMMENT = "manage_comment"
    VIEW_USER_COMMENTS = "view_user_comments"


class ResourceType(str, enum.Enum):
    DEPARTMENT = "department"
    PROJECT = "project"
    TASK = "task"
    TASK_STATE_HISTORY = "task state history"
    USER = "user"
    COMMENT = "comment"


@dataclass(frozen=True)
class Resource:
    """What an action targets, reduced to the facts the policy needs."""

    type: ResourceType
    id: Any = None
    department_id: Optional[int] = None
    owner_id: Optional[UUID] = None

    def describe(self) -> str:
        if self.id is None:
            return f"{self.type.value}s"
        return f"{self.type.value} {self.id}"


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation."""

    allowed: bool
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, message: str) -> "Decision":
        return cls(False, message)


@dataclass(frozen=True)
class PolicyRule:
    """How one action is authorized.

    department_roles=None lets any role through the role check; an empty set
    lets nobody but the bypass roles (and the owner, if allowed) through.
    """

    verb: str
    bypass_roles: frozenset[UserRole]
    department_roles: Optional[frozenset[UserRole]] = field(default_factory=frozenset)
    department_scoped: bool = True
    allow_owner: bool = False
    scope_message: str = "you can only act on resources in your own department"


_MANAGEMENT = BYPASS_ROLES

POLICY: dict[Action, PolicyRule] = {
    # ADMIN only; PROJECT_GROUP_MANAGER is not enough
    Action.MANAGE_DEPARTMENT: PolicyRule(
        verb="manage",
        bypass_roles=frozenset({UserRole.ADMIN}),
        department_scoped=False,
    ),
    Action.VIEW_DEPARTMENT: PolicyRule(
        verb="view",
        bypass_roles=_MANAGEMENT | {UserRole.PROJECT_MANAGER},
        department_scoped=False,
    ),
    Action.MANAGE_PROJECT: PolicyRule(
        verb="manage",
        bypass_roles=_MANAGEMENT,
        department_roles=frozenset({UserRole.PROJECT_MANAGER}),
        scope_message="Project Manager can only manage projects in their own department",
    ),
    Action.VIEW_PROJECT: PolicyRule(
        verb="view",
        bypass_roles=_MANAGEMENT | {UserRole.PROJECT_MANAGER},
        department_scoped=False,
    ),
    Action.MANAGE_TASK: PolicyRule(
        verb="manage",
        bypass_roles=_MANAGEMENT,
        department_roles=frozenset({UserRole.PROJECT_MANAGER, UserRole.TEAM_LEADER}),
        scope_message="you can only manage tasks from projects in your department",
    ),
    Action.VIEW_TASK: PolicyRule(
        verb="view",
        bypass_roles=_MANAGEMENT,
        department_roles=None,
        scope_message="you can only access tasks from projects in your department",
    ),
    Action.VIEW_TASK_HISTORY: PolicyRule(
        verb="view",
        bypass_roles=_MANAGEMENT,
        department_roles=None,
        scope_message="you can only access task history from projects in your department",
    ),
    # Looser than MANAGE_TASK: team members may move their department's tasks
    Action.UPDATE_TASK_STATE: PolicyRule(
        verb="change the state of",
        bypass_roles=_MANAGEMENT,
        department_roles=None,
        scope_message="you can only view and update task states within your department",
    ),
    Action.MANAGE_USER: PolicyRule(
        verb="manage",
        bypass_roles=frozenset({UserRole.ADMIN}),
        department_scoped=False,
        allow_owner=True,
    ),
    Action.VIEW_USER: PolicyRule(
        verb="view",
        bypass_roles=frozenset({UserRole.ADMIN}),
        department_scoped=False,
        allow_owner=True,
    ),
    Action.ADMINISTER_USER: PolicyRule(
        verb="administer",
        bypass_roles=frozenset({UserRole.ADMIN}),
        department_scoped=False,
    ),
    # Authors edit their own comments; PM and TL moderate their department's
    Action.MANAGE_COMMENT: PolicyRule(
        verb="manage",
        bypass_roles=_MANAGEMENT,
        department_roles=frozenset({UserRole.PROJECT_MANAGER, UserRole.TEAM_LEADER}),
        allow_owner=True,
        scope_message="you can only manage comments on tasks in your department",
    ),
    Action.VIEW_USER_COMMENTS: PolicyRule(
        verb="list",
        bypass_roles=_MANAGEMENT,
        department_roles=frozenset({UserRole.PROJECT_MANAGER, UserRole.TEAM_LEADER}),
        department_scoped=False,
    ),
}


class PermissionDeniedError(TaskManagerError):
    """Raised when the policy denies an action."""

    status_code = 403
    error = "permission_denied"

    def __init__(self, message: str, action: Action, resource: Resource):
        details = {"action": action.value, "resource_type": resource.type.value}
        if resource.id is not None:
            details["resource_id"] = str(resource.id)
        super().__init__(message, details=details)
        self.action = action
        self.resource = resource


def _roles_label(roles: Iterable[UserRole]) -> str:
    return ", ".join(sorted(role.value for role in roles))


def evaluate(actor: Actor, action: Action, resource: Resource) -> Decision:
    """
    Decide whether an actor may perform an action on a resource.

    Args:
        actor: The acting principal
        action: Kind of action requested
        resource: Target resource (department and owner facts only)

    Returns:
        Decision.allow() or Decision.deny(message); the message names the
        action and the resource
    """
    rule = POLICY[action]
    target = resource.describe()

    if actor.roles & rule.bypass_roles:
        return Decision.allow()

    if rule.allow_owner and resource.owner_id is not None and resource.owner_id == actor.id:
        return Decision.allow()

    if rule.department_roles is not None and not (actor.roles & rule.department_roles):
        permitted = set(rule.bypass_roles) | set(rule.department_roles)
        if rule.allow_owner:
            return Decision.deny(
                f"Permission denied: cannot {rule.verb} {target}; "
                f"requires one of [{_roles_label(permitted)}] or ownership of the record"
            )
        return Decision.deny(
            f"Permission denied: cannot {rule.verb} {target}; "
            f"requires one of [{_roles_label(permitted)}]"
        )

    if rule.department_scoped:
        if actor.department_id is None:
            return Decision.deny(
                f"Permission denied: cannot {rule.verb} {target}; "
                f"{rule.scope_message} and you are not assigned to a department"
            )
        if actor.department_id != resource.department_id:
            return Decision.deny(
                f"Permission denied: cannot {rule.verb} {target}; {rule.scope_message}"
            )

    return Decision.allow()


def require(actor: Actor, action: Action, resource: Resource) -> None:
    """
    Evaluate and raise on denial.

    Raises:
        PermissionDeniedError: If the policy denies the action
    """
    decision = evaluate(actor, action, resource)
    if not decision:
        logger.warning(f"Denied {action.value} for actor {actor.id}: {decision.message}")
        raise PermissionDeniedError(decision.message, action, resource)


def visible(
    actor: Actor,
    action: Action,
    items: Iterable[T],
    to_resource: Callable[[T], Resource],
) -> list[T]:
    """Keep only the items the actor may act on (post-query filtering)."""
    if actor.roles & POLICY[action].bypass_roles:
        return list(items)
    return [item for item in items if evaluate(actor, action, to_resource(item))]


# Resource builders for the persisted entities

def department_resource(department) -> Resource:
    return Resource(ResourceType.DEPARTMENT, id=department.id, department_id=department.id)


def project_resource(project) -> Resource:
    return Resource(ResourceType.PROJECT, id=project.id, department_id=project.department_id)


def task_resource(task) -> Resource:
    return Resource(ResourceType.TASK, id=task.id, department_id=task.project.department_id)


def history_resource(entry) -> Resource:
    return Resource(
        ResourceType.TASK_STATE_HISTORY,
        id=entry.id,
        department_id=entry.task.project.department_id,
    )


def user_resource(user) -> Resource:
    return Resource(
        ResourceType.USER,
        id=user.id,
        department_id=user.department_id,
        owner_id=user.id,
    )


def comment_resource(comment) -> Resource:
    return Resource(
        ResourceType.COMMENT,
        id=comment.id,
        department_id=comment.task.project.department_id,
        owner_id=comment.user_id,
    )
