"""Step and cycle advancement for phases, and project progress roll-up.

All functions mutate inside the caller's transaction; a failure anywhere
leaves no partial change once the transaction rolls back.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .errors import InvalidStateError, ValidationError
from .state_machine import validate_transition

logger = logging.getLogger("pdl-core.lifecycle")


def _append_notes(existing: str, notes: Optional[str]) -> str:
    if not notes:
        return existing
    return f"{existing}\n{notes}" if existing else notes


def _start_step(step: models.Step, now) -> None:
    step.status = models.StepStatus.IN_PROGRESS
    if step.started_at is None:
        step.started_at = now


def _start_next_step(step: models.Step, now) -> None:
    """Start the step the pointer just moved to. A blocked step stays blocked until unblocked."""
    if step.status == models.StepStatus.BLOCKED:
        logger.warning(f"Phase {step.phase_id}: step {step.step_number} is current but blocked")
        return
    _start_step(step, now)


def _complete_step(step: models.Step, now) -> None:
    step.status = models.StepStatus.COMPLETED
    step.completion_percentage = 100
    step.ended_at = now


def _steps_by_number(db: Session, phase: models.Phase) -> dict[int, models.Step]:
    steps = {step.step_number: step for step in crud.get_steps(db, phase.id)}
    if sorted(steps) != list(range(1, models.STEP_COUNT + 1)):
        raise InvalidStateError(
            f"Phase {phase.id} has steps {sorted(steps)}; expected 1..{models.STEP_COUNT}",
            phase_id=phase.id,
        )
    return steps


def _open_next_cycle(db: Session, phase: models.Phase, previous: Optional[models.Cycle], now) -> models.Cycle:
    """Open cycle N+1 and reset all steps with step 1 in progress."""
    cycle_number = previous.cycle_number + 1 if previous else 1
    cycle = models.Cycle(phase_id=phase.id, cycle_number=cycle_number, started_at=now)
    db.add(cycle)

    for step in _steps_by_number(db, phase).values():
        step.status = models.StepStatus.NOT_STARTED
        step.completion_percentage = 0
        step.deliverables = []
        step.blockers = []
        step.notes = ""
        step.started_at = None
        step.ended_at = None
        if step.step_number == 1:
            _start_step(step, now)
    phase.current_step = 1
    db.flush()

    logger.info(f"Phase {phase.id}: opened cycle {cycle_number}")
    return cycle


def update_step(db: Session, phase_id: str, step_number: int, patch: schemas.StepUpdate) -> models.Step:
    """
    Apply a partial update to one step.

    Completing a step below 7 also moves the phase's current-step pointer and,
    while the phase is active, starts the next step.

    Raises:
        ValidationError: For step numbers outside 1..7, or starting a step
            that is not current or belongs to an inactive phase
        StateTransitionError: If the status change is not allowed
        NotFoundError: If the phase does not exist
    """
    step = crud.get_step(db, phase_id, step_number)
    phase = crud.get_phase(db, phase_id)
    fields = patch.model_dump(exclude_unset=True)
    new_status = fields.pop("status", None)

    for field, value in fields.items():
        if value is not None:
            setattr(step, field, value)

    if new_status is not None and new_status != step.status:
        validate_transition(step.status, new_status)
        now = models.utcnow()

        if new_status == models.StepStatus.IN_PROGRESS:
            if phase.status != models.PhaseStatus.ACTIVE:
                raise ValidationError(f"Phase {phase_id} is {phase.status.value}; activate it before starting steps")
            if step_number != phase.current_step:
                raise ValidationError(
                    f"Only the current step ({phase.current_step}) of phase {phase_id} can be in progress"
                )
            _start_step(step, now)
        elif new_status == models.StepStatus.BLOCKED:
            step.status = models.StepStatus.BLOCKED
            logger.warning(f"Phase {phase_id}: step {step_number} blocked")
        elif new_status == models.StepStatus.COMPLETED:
            _complete_step(step, now)
            if step_number < models.STEP_COUNT:
                if phase.status == models.PhaseStatus.ACTIVE:
                    _start_next_step(crud.get_step(db, phase_id, step_number + 1), now)
                phase.current_step = step_number + 1
                logger.info(f"Phase {phase_id}: step {step_number} completed, pointer moved to {step_number + 1}")

    db.flush()
    return step


def advance_cycle(db: Session, phase_id: str, notes: Optional[str] = None) -> models.Cycle:
    """
    Complete the current step and move the phase forward.

    Below step 7 the pointer moves on and, for an active phase, the next step
    starts. At step 7 the cycle closes and, when the phase is still active, a
    new cycle opens with all steps reset.

    Returns:
        The open cycle, the newly opened cycle, or the closed cycle when the
        phase is not active

    Raises:
        InvalidStateError: If the current-step pointer or the open cycle is corrupted
        ValidationError: If the phase's last cycle is already closed
    """
    phase = crud.get_phase(db, phase_id)
    current = phase.current_step
    if current is None or not 1 <= current <= models.STEP_COUNT:
        raise InvalidStateError(
            f"Phase {phase_id} has current step {current}; expected 1..{models.STEP_COUNT}",
            phase_id=phase_id,
        )

    cycle = crud.get_open_cycle(db, phase_id)
    if cycle is None:
        if current == models.STEP_COUNT and phase.status != models.PhaseStatus.ACTIVE:
            raise ValidationError(f"Phase {phase_id} is {phase.status.value} and its last cycle is closed")
        raise InvalidStateError(f"Phase {phase_id} has no open cycle", phase_id=phase_id)

    steps = _steps_by_number(db, phase)
    now = models.utcnow()
    _complete_step(steps[current], now)
    cycle.notes = _append_notes(cycle.notes, notes)

    if current < models.STEP_COUNT:
        if phase.status == models.PhaseStatus.ACTIVE:
            _start_next_step(steps[current + 1], now)
        phase.current_step = current + 1
        db.flush()
        logger.debug(f"Phase {phase_id}: advanced to step {current + 1} in cycle {cycle.cycle_number}")
        return cycle

    cycle.ended_at = now
    db.flush()
    logger.info(f"Phase {phase_id}: cycle {cycle.cycle_number} closed")

    if phase.status == models.PhaseStatus.ACTIVE:
        return _open_next_cycle(db, phase, cycle, now)
    return cycle


def update_phase(db: Session, phase_id: str, patch: schemas.PhaseUpdate) -> models.Phase:
    """
    Apply a partial update to a phase.

    Leaving ``active`` pauses the running step (back to not_started, progress
    kept); completing or cancelling also stamps ``ended_at`` unless one is
    given. Returning to ``active`` clears it and resumes the current step, or
    opens a new cycle when the last one is closed.
    """
    phase = crud.get_phase(db, phase_id)
    fields = patch.model_dump(exclude_unset=True)
    new_status = fields.pop("status", None)

    for field, value in fields.items():
        if value is not None:
            setattr(phase, field, value)

    if new_status is not None and new_status != phase.status:
        now = models.utcnow()
        was_active = phase.status == models.PhaseStatus.ACTIVE
        phase.status = new_status
        if was_active:
            for step in crud.get_steps(db, phase_id):
                if step.status == models.StepStatus.IN_PROGRESS:
                    step.status = models.StepStatus.NOT_STARTED
        if new_status in (models.PhaseStatus.COMPLETED, models.PhaseStatus.CANCELLED):
            if phase.ended_at is None:
                phase.ended_at = now
        elif new_status == models.PhaseStatus.ACTIVE:
            phase.ended_at = fields.get("ended_at")
            if crud.get_open_cycle(db, phase_id) is None:
                _open_next_cycle(db, phase, crud.get_latest_cycle(db, phase_id), now)
            else:
                current = crud.get_step(db, phase_id, phase.current_step)
                if current.status == models.StepStatus.NOT_STARTED:
                    _start_step(current, now)
        logger.info(f"Phase {phase_id}: status set to {new_status.value}")

    db.flush()
    return phase


def update_project_phase(db: Session, project_id: str, patch: schemas.ProjectUpdate) -> models.Project:
    """
    Apply a partial update to a roadmap project and recompute repository progress.

    Status changes follow the step transition matrix; completing sets 100%.

    Raises:
        StateTransitionError: If the status change is not allowed
        NotFoundError: If the project does not exist
    """
    project = crud.get_project(db, project_id)
    completing = False
    if patch.status is not None and patch.status != project.status:
        validate_transition(project.status, patch.status)
        completing = patch.status == models.StepStatus.COMPLETED and patch.completion_percentage is None

    project = crud.update_project(db, project_id, patch)
    if completing:
        project.completion_percentage = 100
        db.flush()
    progress = crud.recompute_overall_progress(db, project.repository_id)
    logger.debug(f"Project {project_id} updated; repository {project.repository_id} progress {progress}%")
    return project
