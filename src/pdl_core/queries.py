"""Read-side aggregation: current status, roadmap view and filtered listings.

Nothing here writes; every function builds pydantic results from one session.
"""
import logging
from typing import Any, Optional

from sqlalchemy import String, func, or_
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .errors import ValidationError

logger = logging.getLogger("pdl-core.queries")


def _contains(column, search: str):
    """Case-insensitive substring match."""
    return func.lower(column, type_=String).contains(search.lower(), autoescape=True)


def phase_progress(db: Session, phase_id: str) -> int:
    """Rounded mean of the phase's step percentages."""
    values = [
        value for (value,) in db.query(models.Step.completion_percentage)
        .filter(models.Step.phase_id == phase_id)
        .all()
    ]
    return crud.rounded_mean(values)


def phase_summary(db: Session, phase: models.Phase) -> schemas.PhaseResponse:
    summary = schemas.PhaseResponse.model_validate(phase)
    summary.progress = phase_progress(db, phase.id)
    return summary


def phase_detail(db: Session, phase: models.Phase) -> schemas.PhaseDetail:
    """Phase with steps and its open (or else most recent) cycle."""
    cycle = crud.get_open_cycle(db, phase.id) or crud.get_latest_cycle(db, phase.id)
    return schemas.PhaseDetail(
        **phase_summary(db, phase).model_dump(),
        steps=[schemas.StepResponse.model_validate(step) for step in crud.get_steps(db, phase.id)],
        current_cycle=schemas.CycleResponse.model_validate(cycle) if cycle else None,
    )


def find_active_project(projects: list[models.Project]) -> Optional[models.Project]:
    """First in-progress project by order, else the first one not completed."""
    for project in projects:
        if project.status == models.StepStatus.IN_PROGRESS:
            return project
    for project in projects:
        if project.status != models.StepStatus.COMPLETED:
            return project
    return None


def find_active_phase(db: Session, project_id: str) -> Optional[models.Phase]:
    """Highest-numbered active phase of the project."""
    return (
        db.query(models.Phase)
        .filter(models.Phase.project_id == project_id, models.Phase.status == models.PhaseStatus.ACTIVE)
        .order_by(models.Phase.number.desc())
        .first()
    )


def get_current_status(db: Session, repository_id: str) -> schemas.CurrentStatus:
    """
    Repository, its projects and where work currently stands.

    Raises:
        NotFoundError: If the repository does not exist
    """
    repository = crud.get_repository(db, repository_id)
    projects = crud.get_projects(db, repository_id)
    status = schemas.CurrentStatus(
        repository=schemas.RepositoryResponse.model_validate(repository),
        projects=[schemas.ProjectResponse.model_validate(p) for p in projects],
    )

    active_project = find_active_project(projects)
    if active_project is None:
        return status
    status.active_project = schemas.ProjectResponse.model_validate(active_project)

    active_phase = find_active_phase(db, active_project.id)
    if active_phase is None:
        return status
    detail = phase_detail(db, active_phase)
    status.active_phase = detail
    status.current_step = next(
        (step for step in detail.steps if step.step_number == active_phase.current_step), None
    )
    status.current_cycle = detail.current_cycle
    return status


def get_roadmap(db: Session, repository_id: str, include_details: bool = False) -> schemas.RoadmapResponse:
    """
    Vision, overall progress and every project with its phases.

    With ``include_details`` the active phase's steps and cycle are added.
    """
    repository = crud.get_repository(db, repository_id)
    projects = crud.get_projects(db, repository_id)

    roadmap = schemas.RoadmapResponse(
        repository_id=repository.id,
        vision=repository.vision,
        overall_progress=repository.overall_progress,
        projects=[
            schemas.RoadmapProject(
                **schemas.ProjectResponse.model_validate(project).model_dump(),
                phases=[phase_summary(db, phase) for phase in crud.get_phases(db, project.id)],
            )
            for project in projects
        ],
    )

    if include_details:
        active_project = find_active_project(projects)
        active_phase = find_active_phase(db, active_project.id) if active_project else None
        if active_phase is not None:
            roadmap.active_phase = phase_detail(db, active_phase)
    return roadmap


def list_repositories(db: Session) -> list[schemas.RepositoryResponse]:
    return [schemas.RepositoryResponse.model_validate(r) for r in crud.get_repositories(db)]


def list_projects(db: Session, repository_id: str, search: Optional[str] = None) -> list[schemas.ProjectResponse]:
    """Projects in roadmap order, optionally filtered on name, description or objective."""
    query = db.query(models.Project).filter(models.Project.repository_id == repository_id)
    if search:
        query = query.filter(or_(
            _contains(models.Project.name, search),
            _contains(models.Project.description, search),
            _contains(models.Project.objective, search),
        ))
    return [schemas.ProjectResponse.model_validate(p) for p in query.order_by(models.Project.order).all()]


def list_phases(db: Session, project_id: str, search: Optional[str] = None) -> list[schemas.PhaseResponse]:
    crud.get_project(db, project_id)
    query = db.query(models.Phase).filter(models.Phase.project_id == project_id)
    if search:
        query = query.filter(or_(
            _contains(models.Phase.name, search),
            _contains(models.Phase.retrospective, search),
        ))
    return [phase_summary(db, phase) for phase in query.order_by(models.Phase.number).all()]


def list_steps(db: Session, phase_id: str, search: Optional[str] = None) -> list[schemas.StepResponse]:
    """Steps of a phase; ``search`` matches notes or the fixed step name."""
    crud.get_phase(db, phase_id)
    steps = [schemas.StepResponse.model_validate(step) for step in crud.get_steps(db, phase_id)]
    if search:
        needle = search.lower()
        steps = [s for s in steps if needle in s.name.lower() or needle in s.notes.lower()]
    return steps


def list_tasks(
    db: Session,
    phase_id: str,
    step_number: Optional[int] = None,
    search: Optional[str] = None,
) -> list[schemas.TaskResponse]:
    crud.get_phase(db, phase_id)
    query = db.query(models.Task).filter(models.Task.phase_id == phase_id)
    if step_number is not None:
        query = query.filter(models.Task.step_number == step_number)
    if search:
        query = query.filter(or_(
            _contains(models.Task.description, search),
            _contains(models.Task.assignee, search),
        ))
    tasks = query.order_by(models.Task.step_number, models.Task.position).all()
    return [schemas.TaskResponse.model_validate(t) for t in tasks]


def list_documentation(
    db: Session,
    repository_id: str,
    search: Optional[str] = None,
    project_id: Optional[str] = None,
    phase_id: Optional[str] = None,
) -> list[schemas.DocumentationResponse]:
    query = db.query(models.Documentation).filter(models.Documentation.repository_id == repository_id)
    if project_id:
        query = query.filter(models.Documentation.project_id == project_id)
    if phase_id:
        query = query.filter(models.Documentation.phase_id == phase_id)
    if search:
        query = query.filter(or_(
            _contains(models.Documentation.name, search),
            _contains(models.Documentation.summary_brief, search),
            _contains(models.Documentation.path, search),
        ))
    docs = query.order_by(models.Documentation.created_at, models.Documentation.name).all()
    return [schemas.DocumentationResponse.model_validate(d) for d in docs]


def get_metadata(db: Session, repository_id: str, params: Optional[list[str]] = None) -> dict[str, Any]:
    """Repository metadata, restricted to ``params`` keys when given."""
    metadata = dict(crud.get_repository(db, repository_id).repo_metadata or {})
    if params:
        return {key: metadata[key] for key in params if key in metadata}
    return metadata


def get_activity(db: Session, repository_id: str, limit: int = 50) -> list[schemas.ActivityResponse]:
    """Most recent activity first."""
    if limit < 1:
        raise ValidationError(f"limit must be at least 1, got {limit}")
    entries = (
        db.query(models.ActivityLog)
        .filter(models.ActivityLog.repository_id == repository_id)
        .order_by(models.ActivityLog.timestamp.desc(), models.ActivityLog.id)
        .limit(limit)
        .all()
    )
    return [schemas.ActivityResponse.model_validate(e) for e in entries]


def get_migration_records(db: Session) -> list[schemas.MigrationRecordResponse]:
    records = db.query(models.MigrationRecord).order_by(models.MigrationRecord.id).all()
    return [schemas.MigrationRecordResponse.model_validate(r) for r in records]
