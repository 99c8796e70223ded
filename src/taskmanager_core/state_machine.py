"""State machine validation for task lifecycle state transitions.

Enforces valid state transitions to maintain workflow integrity:
- Tasks move along a fixed set of edges (no implicit reverse moves)
- BLOCKED and CANCELLED require a non-blank justification
- COMPLETED and CANCELLED are terminal; the task is frozen afterwards
- Provides clear error messages for blocked transitions
"""
import enum
import logging
from typing import Optional

from .exceptions import TaskManagerError
from .models import TaskState

logger = logging.getLogger("taskmanager-core.state_machine")


class TransitionRejection(str, enum.Enum):
    """Why a requested transition was refused."""

    INVALID_TRANSITION = "invalid_state_transition"
    IMMUTABLE_STATE = "immutable_state"
    MISSING_REQUIRED_REASON = "missing_required_reason"


class StateTransitionError(TaskManagerError):
    """Raised when an invalid state transition is attempted."""

    status_code = 400
    kind: TransitionRejection

    def __init__(
        self,
        message: str,
        current_state: Optional[TaskState],
        requested_state: TaskState,
        allowed_transitions: list[TaskState],
        task_id=None,
    ):
        details = {
            "from": current_state.value if current_state else None,
            "to": requested_state.value,
            "allowed_transitions": [s.value for s in allowed_transitions],
        }
        if task_id is not None:
            details["task_id"] = str(task_id)
        super().__init__(message, details=details)
        self.current_state = current_state
        self.requested_state = requested_state
        self.allowed_transitions = allowed_transitions
        self.task_id = task_id


class InvalidStateTransitionError(StateTransitionError):
    """The (from, to) pair is not an edge of the transition matrix."""

    kind = TransitionRejection.INVALID_TRANSITION
    error = TransitionRejection.INVALID_TRANSITION.value


class ImmutableStateError(StateTransitionError):
    """The task sits in a terminal state and cannot move any more."""

    kind = TransitionRejection.IMMUTABLE_STATE
    error = TransitionRejection.IMMUTABLE_STATE.value


class MissingRequiredReasonError(StateTransitionError):
    """The target state demands a justification and none was given."""

    kind = TransitionRejection.MISSING_REQUIRED_REASON
    error = TransitionRejection.MISSING_REQUIRED_REASON.value


# State machine transition matrix
# Maps current state → allowed next states (same-state requests are handled
# separately and never appear here)
TRANSITION_MATRIX: dict[TaskState, frozenset[TaskState]] = {
    TaskState.BACKLOG: frozenset({
        TaskState.IN_ANALYSIS,    # Forward: start analysis
        TaskState.CANCELLED,      # Terminal: dropped before analysis
    }),
    TaskState.IN_ANALYSIS: frozenset({
        TaskState.BACKLOG,        # Back: not ready yet
        TaskState.IN_PROGRESS,    # Forward: start development
        TaskState.BLOCKED,        # Side: waiting on something (reason required)
        TaskState.CANCELLED,      # Terminal: abandoned (reason required)
    }),
    TaskState.IN_PROGRESS: frozenset({
        TaskState.IN_ANALYSIS,    # Back: needs more analysis
        TaskState.COMPLETED,      # Terminal: done
        TaskState.BLOCKED,        # Side: waiting on something (reason required)
        TaskState.CANCELLED,      # Terminal: abandoned (reason required)
    }),
    TaskState.BLOCKED: frozenset({
        TaskState.IN_ANALYSIS,    # Unblocked, back to analysis
        TaskState.IN_PROGRESS,    # Unblocked, resume development
        TaskState.CANCELLED,      # Terminal: abandoned (reason required)
    }),
    # Terminal states - no transitions out
    TaskState.COMPLETED: frozenset(),
    TaskState.CANCELLED: frozenset(),
}

TERMINAL_STATES: frozenset[TaskState] = frozenset({TaskState.COMPLETED, TaskState.CANCELLED})

REASON_REQUIRED_STATES: frozenset[TaskState] = frozenset({TaskState.BLOCKED, TaskState.CANCELLED})

# Creation is modelled as a transition out of "no state" into this one
INITIAL_STATE = TaskState.BACKLOG


def is_terminal_state(state: TaskState) -> bool:
    """Check if a task state is terminal (no further transitions)."""
    return state in TERMINAL_STATES


def requires_reason(state: TaskState) -> bool:
    """Check if entering this state needs a justification."""
    return state in REASON_REQUIRED_STATES


def _is_blank(reason: Optional[str]) -> bool:
    return reason is None or not reason.strip()


def is_transition_valid(
    current_state: TaskState,
    new_state: TaskState
) -> bool:
    """
    Check if a state transition is an edge of the matrix (or a same-state no-op).

    Reason requirements are not considered here; see validate_transition.

    Args:
        current_state: Current task state
        new_state: Requested new task state

    Returns:
        True if transition is allowed, False otherwise
    """
    if current_state == new_state:
        return True
    return new_state in TRANSITION_MATRIX.get(current_state, frozenset())


def get_allowed_transitions(current_state: TaskState) -> list[TaskState]:
    """
    Get list of allowed transitions from current state.

    Args:
        current_state: Current task state

    Returns:
        Allowed next states in declaration order (excluding the same state)
    """
    allowed = TRANSITION_MATRIX.get(current_state, frozenset())
    return [state for state in TaskState if state in allowed]


def validate_transition(
    current_state: TaskState,
    new_state: TaskState,
    reason: Optional[str] = None,
    task_id=None,
) -> None:
    """
    Validate a state transition and raise exception if invalid.

    Checks run in a fixed order: same-state requests pass unconditionally,
    then the reason requirement, then terminal-state immutability, then the
    edge lookup.

    Args:
        current_state: Current task state
        new_state: Requested new task state
        reason: Justification supplied with the request
        task_id: Optional task id, echoed in error messages

    Raises:
        MissingRequiredReasonError: BLOCKED/CANCELLED requested without a reason
        ImmutableStateError: Task is COMPLETED or CANCELLED
        InvalidStateTransitionError: The pair is not an edge
    """
    # No-op transitions are always allowed (setting same state)
    if current_state == new_state:
        logger.debug(f"No-op transition: {current_state.value} → {new_state.value}")
        return

    allowed_transitions = get_allowed_transitions(current_state)
    subject = f"task {task_id}" if task_id is not None else "task"

    if requires_reason(new_state) and _is_blank(reason):
        error_msg = (
            f"Reason is required for {new_state.value} state "
            f"(attempted {current_state.value} → {new_state.value} on {subject})."
        )
        logger.warning(f"Blocked transition: {error_msg}")
        raise MissingRequiredReasonError(
            message=error_msg,
            current_state=current_state,
            requested_state=new_state,
            allowed_transitions=allowed_transitions,
            task_id=task_id,
        )

    if is_terminal_state(current_state):
        error_msg = (
            f"Task in {current_state.value} state cannot be changed "
            f"(attempted {current_state.value} → {new_state.value} on {subject}). "
            f"{current_state.value.capitalize()} tasks are immutable. Create a new task instead."
        )
        logger.warning(f"Blocked transition: {error_msg}")
        raise ImmutableStateError(
            message=error_msg,
            current_state=current_state,
            requested_state=new_state,
            allowed_transitions=allowed_transitions,
            task_id=task_id,
        )

    if new_state not in TRANSITION_MATRIX.get(current_state, frozenset()):
        allowed_names = [s.value for s in allowed_transitions]
        error_msg = (
            f"Invalid state transition from {current_state.value} to {new_state.value} on {subject}. "
            f"From {current_state.value}, you can only transition to: {', '.join(allowed_names)}."
        )

        # Add helpful guidance based on the attempted transition
        if current_state == TaskState.BACKLOG and new_state in (TaskState.IN_PROGRESS, TaskState.COMPLETED):
            error_msg += " Tasks must be analysed first. Transition to IN_ANALYSIS."
        elif current_state == TaskState.BLOCKED and new_state == TaskState.COMPLETED:
            error_msg += " Blocked tasks must be resumed before they can be completed."

        logger.warning(f"Blocked transition: {error_msg}")
        raise InvalidStateTransitionError(
            message=error_msg,
            current_state=current_state,
            requested_state=new_state,
            allowed_transitions=allowed_transitions,
            task_id=task_id,
        )

    logger.debug(f"Valid transition: {current_state.value} → {new_state.value}")


# State sort order for list queries
# Lower number = higher priority (shown first)
# Reflects workflow priority: active work first, finished work last
STATE_SORT_ORDER: dict[TaskState, int] = {
    TaskState.IN_PROGRESS: 1,   # Actively working - highest priority
    TaskState.BLOCKED: 2,       # Needs attention to unblock
    TaskState.IN_ANALYSIS: 3,   # Being scoped
    TaskState.BACKLOG: 4,       # Not started
    TaskState.COMPLETED: 5,     # Done
    TaskState.CANCELLED: 6,     # Abandoned
}
