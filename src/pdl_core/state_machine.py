"""State machine validation for delivery step status transitions.

Enforces valid status transitions for the 7-step delivery cycle:
- Steps move forward only (not_started → in_progress → completed)
- Work can be blocked before or during a step and resumed afterwards
- Completed steps are terminal until the next cycle resets them
- Provides clear error messages for blocked transitions
"""
import logging

from .errors import ValidationError
from .models import StepStatus

logger = logging.getLogger("pdl-core.state_machine")


class StateTransitionError(ValidationError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: StepStatus,
        requested_status: StepStatus,
        allowed_transitions: list[StepStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# State machine transition matrix
# Maps current status → list of allowed next statuses
TRANSITION_MATRIX: dict[StepStatus, list[StepStatus]] = {
    StepStatus.NOT_STARTED: [
        StepStatus.NOT_STARTED,   # No-op (allowed)
        StepStatus.IN_PROGRESS,   # Forward: step started
        StepStatus.BLOCKED,       # Side: blocked before starting
    ],
    StepStatus.IN_PROGRESS: [
        StepStatus.IN_PROGRESS,   # No-op (allowed)
        StepStatus.COMPLETED,     # Forward: step done
        StepStatus.BLOCKED,       # Side: work stopped
    ],
    StepStatus.BLOCKED: [
        StepStatus.BLOCKED,       # No-op (allowed)
        StepStatus.IN_PROGRESS,   # Back: unblocked, resumes with its percentage
    ],
    StepStatus.COMPLETED: [
        StepStatus.COMPLETED,     # No-op (allowed)
        # Note: completed is terminal within a cycle
        # Steps only return to not_started when a new cycle resets them
    ],
}


def is_transition_valid(
    current_status: StepStatus,
    new_status: StepStatus
) -> bool:
    """
    Check if a status transition is valid.

    Args:
        current_status: Current step status
        new_status: Requested new step status

    Returns:
        True if transition is allowed, False otherwise
    """
    allowed_transitions = TRANSITION_MATRIX.get(current_status, [])
    return new_status in allowed_transitions


def validate_transition(
    current_status: StepStatus,
    new_status: StepStatus
) -> None:
    """
    Validate a status transition and raise exception if invalid.

    Args:
        current_status: Current step status
        new_status: Requested new step status

    Raises:
        StateTransitionError: If the transition is not allowed
    """
    # No-op transitions are always allowed (setting same status)
    if current_status == new_status:
        logger.debug(f"No-op transition: {current_status.value} → {new_status.value}")
        return

    if not is_transition_valid(current_status, new_status):
        allowed_transitions = TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_status]

        error_msg = (
            f"Invalid status transition: {current_status.value} → {new_status.value}. "
        )
        if allowed_names:
            error_msg += f"From {current_status.value}, you can only transition to: {', '.join(allowed_names)}."
        else:
            error_msg += f"{current_status.value} is terminal."

        # Add helpful guidance based on the attempted transition
        if current_status == StepStatus.NOT_STARTED and new_status == StepStatus.COMPLETED:
            error_msg += " Start the step before completing it."
        elif current_status == StepStatus.BLOCKED and new_status == StepStatus.COMPLETED:
            error_msg += " Unblock the step (in_progress) before completing it."
        elif current_status == StepStatus.COMPLETED:
            error_msg += " Completed steps are only reset when the cycle advances past step 7."

        logger.warning(f"Blocked transition: {error_msg}")
        raise StateTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions
        )

    logger.debug(f"Valid transition: {current_status.value} → {new_status.value}")


def get_allowed_transitions(current_status: StepStatus) -> list[StepStatus]:
    """
    Get list of allowed transitions from current status.

    Args:
        current_status: Current step status

    Returns:
        List of allowed next statuses (excluding no-op same status)
    """
    all_transitions = TRANSITION_MATRIX.get(current_status, [])
    # Filter out the no-op transition (same status)
    return [s for s in all_transitions if s != current_status]
