"""Tests for task state machine validation."""
import pytest
from taskmanager_core.models import TaskState
from taskmanager_core.state_machine import (
    TERMINAL_STATES,
    TRANSITION_MATRIX,
    ImmutableStateError,
    InvalidStateTransitionError,
    MissingRequiredReasonError,
    StateTransitionError,
    TransitionRejection,
    get_allowed_transitions,
    is_terminal_state,
    is_transition_valid,
    requires_reason,
    validate_transition,
)

EDGES = {
    (TaskState.BACKLOG, TaskState.IN_ANALYSIS),
    (TaskState.BACKLOG, TaskState.CANCELLED),
    (TaskState.IN_ANALYSIS, TaskState.BACKLOG),
    (TaskState.IN_ANALYSIS, TaskState.IN_PROGRESS),
    (TaskState.IN_ANALYSIS, TaskState.BLOCKED),
    (TaskState.IN_ANALYSIS, TaskState.CANCELLED),
    (TaskState.IN_PROGRESS, TaskState.IN_ANALYSIS),
    (TaskState.IN_PROGRESS, TaskState.COMPLETED),
    (TaskState.IN_PROGRESS, TaskState.BLOCKED),
    (TaskState.IN_PROGRESS, TaskState.CANCELLED),
    (TaskState.BLOCKED, TaskState.IN_ANALYSIS),
    (TaskState.BLOCKED, TaskState.IN_PROGRESS),
    (TaskState.BLOCKED, TaskState.CANCELLED),
}


class TestTransitionMatrix:
    """Test the static transition table."""

    def test_matrix_matches_documented_edges(self):
        """Every documented edge is present and nothing else."""
        actual = {(src, dst) for src, targets in TRANSITION_MATRIX.items() for dst in targets}
        assert actual == EDGES

    def test_every_state_has_an_entry(self):
        assert set(TRANSITION_MATRIX) == set(TaskState)

    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert TRANSITION_MATRIX[state] == frozenset()
            assert is_terminal_state(state)
            assert get_allowed_transitions(state) == []

    def test_reason_required_states(self):
        assert requires_reason(TaskState.BLOCKED)
        assert requires_reason(TaskState.CANCELLED)
        assert not requires_reason(TaskState.IN_PROGRESS)
        assert not requires_reason(TaskState.COMPLETED)

    def test_allowed_transitions_in_declaration_order(self):
        assert get_allowed_transitions(TaskState.IN_ANALYSIS) == [
            TaskState.BACKLOG,
            TaskState.IN_PROGRESS,
            TaskState.BLOCKED,
            TaskState.CANCELLED,
        ]
        assert get_allowed_transitions(TaskState.BACKLOG) == [
            TaskState.IN_ANALYSIS,
            TaskState.CANCELLED,
        ]


class TestValidTransitions:
    """Test transitions that must be accepted."""

    @pytest.mark.parametrize("current,new", sorted(EDGES))
    def test_every_edge_accepted_with_reason(self, current, new):
        assert is_transition_valid(current, new)
        validate_transition(current, new, reason="because")  # Should not raise

    def test_edges_without_reason_gate_accept_none(self):
        """Edges into states that need no reason pass with reason=None."""
        for current, new in EDGES:
            if not requires_reason(new):
                validate_transition(current, new, reason=None)

    def test_noop_transitions_allowed(self):
        """Same-state requests pass, even for terminal states and without a reason."""
        for state in TaskState:
            assert is_transition_valid(state, state)
            validate_transition(state, state)  # Should not raise
            validate_transition(state, state, reason="")

    def test_backlog_to_analysis_without_reason(self):
        validate_transition(TaskState.BACKLOG, TaskState.IN_ANALYSIS, reason=None)


class TestRejectedTransitions:
    """Test each rejection kind and its ordering."""

    def test_backlog_to_completed_is_invalid(self):
        """Skipping analysis and development is blocked."""
        assert not is_transition_valid(TaskState.BACKLOG, TaskState.COMPLETED)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(TaskState.BACKLOG, TaskState.COMPLETED, reason="done already")

        error = exc_info.value
        assert error.kind == TransitionRejection.INVALID_TRANSITION
        assert error.current_state == TaskState.BACKLOG
        assert error.requested_state == TaskState.COMPLETED
        assert "BACKLOG" in str(error) and "COMPLETED" in str(error)
        assert "must be analysed first" in str(error).lower()

    def test_blocked_requires_reason(self):
        for reason in (None, "", "   "):
            with pytest.raises(MissingRequiredReasonError) as exc_info:
                validate_transition(TaskState.IN_PROGRESS, TaskState.BLOCKED, reason=reason)
            assert exc_info.value.kind == TransitionRejection.MISSING_REQUIRED_REASON

    def test_completed_is_immutable(self):
        with pytest.raises(ImmutableStateError) as exc_info:
            validate_transition(TaskState.COMPLETED, TaskState.IN_PROGRESS, reason="reopen")

        error = exc_info.value
        assert error.kind == TransitionRejection.IMMUTABLE_STATE
        assert error.allowed_transitions == []
        assert "immutable" in str(error).lower()

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES))
    def test_terminal_states_reject_every_move(self, terminal):
        for new in TaskState:
            if new == terminal:
                continue
            with pytest.raises(ImmutableStateError):
                validate_transition(terminal, new, reason="try anyway")

    def test_non_edges_from_live_states_are_invalid(self):
        for current in TaskState:
            if current in TERMINAL_STATES:
                continue
            for new in TaskState:
                if new == current or (current, new) in EDGES:
                    continue
                with pytest.raises(InvalidStateTransitionError):
                    validate_transition(current, new, reason="any reason")

    def test_missing_reason_checked_for_every_source(self):
        """Blank reason into BLOCKED/CANCELLED is rejected from any other state."""
        for target in (TaskState.BLOCKED, TaskState.CANCELLED):
            for current in TaskState:
                if current == target:
                    continue
                for reason in (None, ""):
                    with pytest.raises(MissingRequiredReasonError):
                        validate_transition(current, target, reason=reason)

    def test_reason_check_precedes_immutability(self):
        """COMPLETED → CANCELLED without reason reports the missing reason."""
        with pytest.raises(MissingRequiredReasonError):
            validate_transition(TaskState.COMPLETED, TaskState.CANCELLED, reason=None)

    def test_backlog_to_blocked_without_reason_reports_reason(self):
        with pytest.raises(MissingRequiredReasonError):
            validate_transition(TaskState.BACKLOG, TaskState.BLOCKED)

    def test_backlog_to_blocked_with_reason_is_invalid(self):
        with pytest.raises(InvalidStateTransitionError):
            validate_transition(TaskState.BACKLOG, TaskState.BLOCKED, reason="waiting")

    def test_error_details_and_task_id(self):
        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(TaskState.BLOCKED, TaskState.COMPLETED, reason="x", task_id="T-1")

        error = exc_info.value
        assert error.status_code == 400
        assert error.error == "invalid_state_transition"
        assert error.details["from"] == "BLOCKED"
        assert error.details["to"] == "COMPLETED"
        assert error.details["task_id"] == "T-1"
        assert error.details["allowed_transitions"] == ["IN_ANALYSIS", "IN_PROGRESS", "CANCELLED"]
        assert "T-1" in error.message
