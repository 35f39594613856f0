"""CRUD operations for database models.

Functions take an open Session and never commit; the caller's
``Store.transaction()`` decides the unit of work.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas
from .errors import DependentChildrenError, NotFoundError, ValidationError
from .ordering import (
    PHASE_SCOPE,
    PROJECT_SCOPE,
    TASK_SCOPE,
    apply_permutation,
    close_gap,
    insert_at,
    move,
)

logger = logging.getLogger("pdl-core.crud")


def rounded_mean(values: list[int]) -> int:
    """Mean rounded half-up; 0 for an empty list."""
    if not values:
        return 0
    return (2 * sum(values) + len(values)) // (2 * len(values))


# Repository CRUD

def get_repository(db: Session, repository_id: str) -> models.Repository:
    """
    Get a repository by ID.

    Raises:
        NotFoundError: If the repository does not exist
    """
    repository = db.get(models.Repository, repository_id)
    if repository is None:
        raise NotFoundError("Repository", repository_id)
    return repository


def get_or_create_repository(
    db: Session,
    repository_id: str,
    data: schemas.RepositoryInit,
) -> tuple[models.Repository, bool]:
    """
    Return the repository, creating it on first call.

    Returns:
        (repository, already_existed)
    """
    repository = db.get(models.Repository, repository_id)
    if repository is not None:
        return repository, True

    repository = models.Repository(
        id=repository_id,
        description=data.description,
        team_composition=data.team_composition or {},
        repo_metadata=data.metadata,
    )
    db.add(repository)
    db.flush()
    logger.debug(f"Created repository {repository_id}")
    return repository, False


def get_repositories(db: Session) -> list[models.Repository]:
    return db.query(models.Repository).order_by(models.Repository.created_at, models.Repository.id).all()


def recompute_overall_progress(db: Session, repository_id: str) -> int:
    """Set Repository.overall_progress to the rounded mean of its projects' completion."""
    repository = get_repository(db, repository_id)
    values = [
        value for (value,) in db.query(models.Project.completion_percentage)
        .filter(models.Project.repository_id == repository_id)
        .all()
    ]
    progress = rounded_mean(values)
    if repository.overall_progress != progress:
        repository.overall_progress = progress
        db.flush()
    return progress


def log_activity(
    db: Session,
    repository_id: str,
    action: str,
    details: str = "",
    actor: str = "system",
    project_id: Optional[str] = None,
    phase_id: Optional[str] = None,
) -> models.ActivityLog:
    """Append an activity log entry in the caller's transaction."""
    entry = models.ActivityLog(
        repository_id=repository_id,
        action=action,
        details=details,
        actor=actor,
        project_id=project_id,
        phase_id=phase_id,
    )
    db.add(entry)
    db.flush()
    return entry


# Project CRUD

def get_project(db: Session, project_id: str) -> models.Project:
    """
    Get a project by ID.

    Raises:
        NotFoundError: If the project does not exist
    """
    project = db.get(models.Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def create_project(
    db: Session,
    repository_id: str,
    data: schemas.ProjectCreate,
    position: Optional[int] = None,
) -> models.Project:
    """
    Create a project at ``position`` in the repository's roadmap (None appends).

    Raises:
        NotFoundError: If the repository does not exist
        OutOfRangeError: If position is outside 1..count+1
    """
    get_repository(db, repository_id)
    project = models.Project(
        name=data.name,
        description=data.description,
        objective=data.objective,
        deliverables=data.deliverables,
        success_metrics=data.success_metrics,
        status=data.status,
        completion_percentage=data.completion_percentage,
    )
    insert_at(db, PROJECT_SCOPE, project, (repository_id,), position)
    recompute_overall_progress(db, repository_id)
    logger.debug(f"Created project {project.id} ({project.name}) at order {project.order}")
    return project


def update_project(db: Session, project_id: str, patch: schemas.ProjectUpdate) -> models.Project:
    project = get_project(db, project_id)
    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(project, field, value)
    db.flush()
    return project


def delete_project(db: Session, project_id: str, reassign_to: Optional[str] = None) -> int:
    """
    Delete a project and close the gap in the roadmap order.

    Phases are appended to ``reassign_to`` when given.

    Raises:
        DependentChildrenError: If the project has phases and no target was given
        ValidationError: If the target is the project itself or in another repository
    """
    project = get_project(db, project_id)
    repository_id = project.repository_id
    phases = db.query(models.Phase).filter(models.Phase.project_id == project_id).order_by(models.Phase.number).all()

    if phases:
        if reassign_to is None:
            raise DependentChildrenError("Project", project_id, len(phases), "phase")
        if reassign_to == project_id:
            raise ValidationError("Cannot reassign phases to the project being deleted")
        target = get_project(db, reassign_to)
        if target.repository_id != project.repository_id:
            raise ValidationError(
                f"Target project '{reassign_to}' belongs to repository '{target.repository_id}', "
                f"not '{project.repository_id}'"
            )
        for phase in phases:
            move(db, PHASE_SCOPE, phase, (target.id,))
        logger.info(f"Reassigned {len(phases)} phase(s) from project {project_id} to {reassign_to}")

    close_gap(db, PROJECT_SCOPE, project)
    # Reload collections so the delete cascade does not see reassigned children
    db.flush()
    db.expire(project)
    db.delete(project)
    db.flush()

    recompute_overall_progress(db, repository_id)
    logger.debug(f"Deleted project {project_id}")
    return len(phases)


def reorder_projects(db: Session, repository_id: str, project_ids: list[str]) -> list[models.Project]:
    get_repository(db, repository_id)
    return apply_permutation(db, PROJECT_SCOPE, (repository_id,), project_ids)


def move_project(
    db: Session,
    project_id: str,
    new_repository_id: Optional[str] = None,
    position: Optional[int] = None,
) -> models.Project:
    """Move a project to another position, optionally in another repository."""
    project = get_project(db, project_id)
    old_repository_id = project.repository_id
    if new_repository_id is None:
        new_repository_id = old_repository_id
    get_repository(db, new_repository_id)

    move(db, PROJECT_SCOPE, project, (new_repository_id,), position)
    if new_repository_id != old_repository_id:
        recompute_overall_progress(db, old_repository_id)
        recompute_overall_progress(db, new_repository_id)
    return project


def get_projects(db: Session, repository_id: str) -> list[models.Project]:
    return (
        db.query(models.Project)
        .filter(models.Project.repository_id == repository_id)
        .order_by(models.Project.order)
        .all()
    )


# Phase CRUD

def get_phase(db: Session, phase_id: str) -> models.Phase:
    """
    Get a phase by ID.

    Raises:
        NotFoundError: If the phase does not exist
    """
    phase = db.get(models.Phase, phase_id)
    if phase is None:
        raise NotFoundError("Phase", phase_id)
    return phase


def create_phase(
    db: Session,
    project_id: str,
    data: schemas.PhaseCreate,
    position: Optional[int] = None,
) -> models.Phase:
    """
    Create a phase with its 7 steps and first cycle.

    Step 1 starts in_progress when the phase is active; all other steps start
    not_started.

    Raises:
        NotFoundError: If the project does not exist
        OutOfRangeError: If position is outside 1..count+1
    """
    get_project(db, project_id)
    now = models.utcnow()
    phase = models.Phase(name=data.name, status=data.status, current_step=1, started_at=now)
    insert_at(db, PHASE_SCOPE, phase, (project_id,), position)

    active = data.status == models.PhaseStatus.ACTIVE
    for step_number in range(1, models.STEP_COUNT + 1):
        first = step_number == 1 and active
        db.add(models.Step(
            phase_id=phase.id,
            step_number=step_number,
            status=models.StepStatus.IN_PROGRESS if first else models.StepStatus.NOT_STARTED,
            started_at=now if first else None,
        ))
    db.add(models.Cycle(phase_id=phase.id, cycle_number=1, started_at=now))
    db.flush()

    logger.debug(f"Created phase {phase.id} ({phase.name}) #{phase.number} in project {project_id}")
    return phase


def delete_phase(db: Session, phase_id: str, reassign_to: Optional[str] = None) -> int:
    """
    Delete a phase (with its steps and cycles) and renumber the remaining phases.

    Tasks are appended to the same step of ``reassign_to`` when given.

    Raises:
        DependentChildrenError: If the phase has tasks and no target was given
        ValidationError: If the target is the phase itself or in another project
    """
    phase = get_phase(db, phase_id)
    tasks = (
        db.query(models.Task)
        .filter(models.Task.phase_id == phase_id)
        .order_by(models.Task.step_number, models.Task.position)
        .all()
    )

    if tasks:
        if reassign_to is None:
            raise DependentChildrenError("Phase", phase_id, len(tasks), "task")
        if reassign_to == phase_id:
            raise ValidationError("Cannot reassign tasks to the phase being deleted")
        target = get_phase(db, reassign_to)
        if target.project_id != phase.project_id:
            raise ValidationError(
                f"Target phase '{reassign_to}' belongs to project '{target.project_id}', "
                f"not '{phase.project_id}'"
            )
        target_cycle = get_open_cycle(db, target.id)
        for task in tasks:
            move(db, TASK_SCOPE, task, (target.id, task.step_number))
            task.cycle_id = target_cycle.id if target_cycle else None
        logger.info(f"Reassigned {len(tasks)} task(s) from phase {phase_id} to {reassign_to}")

    close_gap(db, PHASE_SCOPE, phase)
    db.flush()
    db.expire(phase)
    db.delete(phase)
    db.flush()
    logger.debug(f"Deleted phase {phase_id}")
    return len(tasks)


def reorder_phases(db: Session, project_id: str, phase_ids: list[str]) -> list[models.Phase]:
    get_project(db, project_id)
    return apply_permutation(db, PHASE_SCOPE, (project_id,), phase_ids)


def move_phase(
    db: Session,
    phase_id: str,
    new_project_id: Optional[str] = None,
    position: Optional[int] = None,
) -> models.Phase:
    """Move a phase to another position, optionally under another project."""
    phase = get_phase(db, phase_id)
    if new_project_id is None:
        new_project_id = phase.project_id
    get_project(db, new_project_id)
    return move(db, PHASE_SCOPE, phase, (new_project_id,), position)


def get_phases(db: Session, project_id: str) -> list[models.Phase]:
    return (
        db.query(models.Phase)
        .filter(models.Phase.project_id == project_id)
        .order_by(models.Phase.number)
        .all()
    )


# Step / Cycle reads

def get_steps(db: Session, phase_id: str) -> list[models.Step]:
    return (
        db.query(models.Step)
        .filter(models.Step.phase_id == phase_id)
        .order_by(models.Step.step_number)
        .all()
    )


def get_step(db: Session, phase_id: str, step_number: int) -> models.Step:
    """
    Get one step of a phase.

    Raises:
        ValidationError: If step_number is outside 1..7
        NotFoundError: If the phase or step does not exist
    """
    if not 1 <= step_number <= models.STEP_COUNT:
        raise ValidationError(f"Step number must be between 1 and {models.STEP_COUNT}, got {step_number}")
    get_phase(db, phase_id)
    step = (
        db.query(models.Step)
        .filter(models.Step.phase_id == phase_id, models.Step.step_number == step_number)
        .first()
    )
    if step is None:
        raise NotFoundError("Step", f"{phase_id}/{step_number}")
    return step


def get_open_cycle(db: Session, phase_id: str) -> Optional[models.Cycle]:
    return (
        db.query(models.Cycle)
        .filter(models.Cycle.phase_id == phase_id, models.Cycle.ended_at.is_(None))
        .order_by(models.Cycle.cycle_number.desc())
        .first()
    )


def get_latest_cycle(db: Session, phase_id: str) -> Optional[models.Cycle]:
    return (
        db.query(models.Cycle)
        .filter(models.Cycle.phase_id == phase_id)
        .order_by(models.Cycle.cycle_number.desc())
        .first()
    )


# Task CRUD

def get_task(db: Session, task_id: str) -> models.Task:
    """
    Get a task by ID.

    Raises:
        NotFoundError: If the task does not exist
    """
    task = db.get(models.Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def create_task(
    db: Session,
    phase_id: str,
    data: schemas.TaskCreate,
    position: Optional[int] = None,
) -> models.Task:
    """Create a task under (phase, step), linked to the phase's open cycle."""
    get_phase(db, phase_id)
    cycle = get_open_cycle(db, phase_id)
    task = models.Task(
        cycle_id=cycle.id if cycle else None,
        description=data.description,
        assignee=data.assignee,
        status=data.status,
        story_points=data.story_points,
    )
    insert_at(db, TASK_SCOPE, task, (phase_id, data.step_number), position)
    logger.debug(f"Created task {task.id} in phase {phase_id} step {data.step_number}")
    return task


def update_task(db: Session, task_id: str, patch: schemas.TaskUpdate) -> models.Task:
    task = get_task(db, task_id)
    for field, value in patch.model_dump(exclude_unset=True, exclude={"task_id"}).items():
        if value is None and field in ("description", "status"):
            continue
        setattr(task, field, value)
    db.flush()
    return task


def delete_task(db: Session, task_id: str) -> None:
    task = get_task(db, task_id)
    close_gap(db, TASK_SCOPE, task)
    db.delete(task)
    db.flush()
    logger.debug(f"Deleted task {task_id}")


def reorder_tasks(db: Session, phase_id: str, step_number: int, task_ids: list[str]) -> list[models.Task]:
    get_step(db, phase_id, step_number)
    return apply_permutation(db, TASK_SCOPE, (phase_id, step_number), task_ids)


def move_task(
    db: Session,
    task_id: str,
    new_phase_id: Optional[str] = None,
    new_step_number: Optional[int] = None,
    position: Optional[int] = None,
) -> models.Task:
    """Move a task to another position, step or phase. Changing phase relinks it to that phase's open cycle."""
    task = get_task(db, task_id)
    if new_phase_id is None:
        new_phase_id = task.phase_id
    if new_step_number is None:
        new_step_number = task.step_number
    get_step(db, new_phase_id, new_step_number)

    changed_phase = new_phase_id != task.phase_id
    move(db, TASK_SCOPE, task, (new_phase_id, new_step_number), position)
    if changed_phase:
        cycle = get_open_cycle(db, new_phase_id)
        task.cycle_id = cycle.id if cycle else None
        db.flush()
    return task


def get_tasks(db: Session, phase_id: str, step_number: Optional[int] = None) -> list[models.Task]:
    query = db.query(models.Task).filter(models.Task.phase_id == phase_id)
    if step_number is not None:
        query = query.filter(models.Task.step_number == step_number)
    return query.order_by(models.Task.step_number, models.Task.position).all()


# Documentation CRUD

def create_documentation(
    db: Session,
    repository_id: str,
    data: schemas.DocumentationCreate,
) -> models.Documentation:
    """Register a documentation file, checking any linked entities exist."""
    get_repository(db, repository_id)
    if data.project_id:
        get_project(db, data.project_id)
    if data.phase_id:
        get_phase(db, data.phase_id)
    if data.task_id:
        get_task(db, data.task_id)

    documentation = models.Documentation(repository_id=repository_id, **data.model_dump())
    db.add(documentation)
    db.flush()
    logger.debug(f"Registered documentation {documentation.name} at {documentation.path}")
    return documentation
