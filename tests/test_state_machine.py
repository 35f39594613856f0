"""Tests for step status transition validation."""
import pytest
from pdl_core.errors import ErrorKind, ValidationError
from pdl_core.models import StepStatus
from pdl_core.state_machine import (
    TRANSITION_MATRIX,
    is_transition_valid,
    validate_transition,
    StateTransitionError,
    get_allowed_transitions
)


class TestStateTransitions:
    """Test state machine transition validation."""

    def test_valid_forward_transitions(self):
        """Test that valid forward transitions are allowed."""
        # Not started → In progress
        assert is_transition_valid(StepStatus.NOT_STARTED, StepStatus.IN_PROGRESS)
        validate_transition(StepStatus.NOT_STARTED, StepStatus.IN_PROGRESS)  # Should not raise

        # In progress → Completed
        assert is_transition_valid(StepStatus.IN_PROGRESS, StepStatus.COMPLETED)
        validate_transition(StepStatus.IN_PROGRESS, StepStatus.COMPLETED)

    def test_blocked_side_transitions(self):
        """Test that work can be blocked before or during a step and resumed."""
        assert is_transition_valid(StepStatus.NOT_STARTED, StepStatus.BLOCKED)
        assert is_transition_valid(StepStatus.IN_PROGRESS, StepStatus.BLOCKED)
        assert is_transition_valid(StepStatus.BLOCKED, StepStatus.IN_PROGRESS)
        validate_transition(StepStatus.BLOCKED, StepStatus.IN_PROGRESS)

    def test_noop_transitions_allowed(self):
        """Test that no-op transitions (same status) are always allowed."""
        for status in StepStatus:
            assert is_transition_valid(status, status)
            validate_transition(status, status)  # Should not raise

    def test_invalid_skip_start_transition(self):
        """Test that completing a step that never started is blocked."""
        assert not is_transition_valid(StepStatus.NOT_STARTED, StepStatus.COMPLETED)

        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(StepStatus.NOT_STARTED, StepStatus.COMPLETED)

        error = exc_info.value
        assert error.current_status == StepStatus.NOT_STARTED
        assert error.requested_status == StepStatus.COMPLETED
        assert "start the step before completing it" in str(error).lower()

    def test_invalid_complete_while_blocked(self):
        """Test that a blocked step must be unblocked before completion."""
        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(StepStatus.BLOCKED, StepStatus.COMPLETED)

        assert "unblock the step" in str(exc_info.value).lower()

    def test_completed_is_terminal(self):
        """Test that nothing leaves completed within a cycle."""
        for status in StepStatus:
            if status == StepStatus.COMPLETED:
                continue
            assert not is_transition_valid(StepStatus.COMPLETED, status)

        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(StepStatus.COMPLETED, StepStatus.IN_PROGRESS)

        message = str(exc_info.value).lower()
        assert "completed is terminal" in message
        assert "cycle advances" in message

    def test_backward_transitions_blocked(self):
        """Test that moving a started step back to not_started is blocked."""
        assert not is_transition_valid(StepStatus.IN_PROGRESS, StepStatus.NOT_STARTED)
        assert not is_transition_valid(StepStatus.BLOCKED, StepStatus.NOT_STARTED)

    def test_error_is_validation_kind(self):
        """Test that transition errors surface as validation failures."""
        with pytest.raises(ValidationError) as exc_info:
            validate_transition(StepStatus.NOT_STARTED, StepStatus.COMPLETED)

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert exc_info.value.allowed_transitions == TRANSITION_MATRIX[StepStatus.NOT_STARTED]


class TestAllowedTransitions:
    """Test get_allowed_transitions helper."""

    def test_not_started_allowed_transitions(self):
        allowed = get_allowed_transitions(StepStatus.NOT_STARTED)
        assert set(allowed) == {StepStatus.IN_PROGRESS, StepStatus.BLOCKED}

    def test_in_progress_allowed_transitions(self):
        allowed = get_allowed_transitions(StepStatus.IN_PROGRESS)
        assert set(allowed) == {StepStatus.COMPLETED, StepStatus.BLOCKED}

    def test_blocked_allowed_transitions(self):
        assert get_allowed_transitions(StepStatus.BLOCKED) == [StepStatus.IN_PROGRESS]

    def test_completed_allowed_transitions(self):
        assert get_allowed_transitions(StepStatus.COMPLETED) == []

    def test_matrix_covers_every_status(self):
        """Test that every status has an entry and allows itself."""
        for status in StepStatus:
            assert status in TRANSITION_MATRIX
            assert status in TRANSITION_MATRIX[status]
