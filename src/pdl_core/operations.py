"""Named operations exposed to the tool-call layer.

Each operation takes plain structured data, runs in one store transaction
(mutations append an activity log row in that same transaction) and returns
an ``Ok`` with a pydantic result or an ``Err`` with a kind and message.
"""
import functools
import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from . import crud, lifecycle, queries, schemas
from .config import Settings
from .consolidation import ConsolidationService
from .errors import ErrorKind, PDLError
from .results import Err, Ok, Result
from .store import Store

logger = logging.getLogger("pdl-core.operations")


def _format_validation_error(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        parts.append(f"{location}: {item['msg']}")
    return "Invalid input: " + "; ".join(parts)


def operation(func):
    """Wrap an Operations method so typed failures become ``Err`` results."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs) -> Result:
        try:
            return Ok(value=func(self, *args, **kwargs))
        except PDLError as e:
            logger.warning(f"{func.__name__} failed ({e.kind.value}): {e.message}")
            return Err(kind=e.kind, message=e.message)
        except PydanticValidationError as e:
            message = _format_validation_error(e)
            logger.warning(f"{func.__name__} rejected: {message}")
            return Err(kind=ErrorKind.VALIDATION, message=message)
        except Exception:
            logger.error(f"Unexpected error in {func.__name__}", exc_info=True)
            raise

    return wrapper


class Operations:
    """
    Operation facade over one store, scoped to the configured repository.

    Args:
        store: The canonical store
        settings: Supplies the repository id and the activity actor
    """

    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    @property
    def repository_id(self) -> str:
        return self.settings.current_repository_id

    def _log(self, db, action: str, details: str, repository_id: Optional[str] = None, **links) -> None:
        crud.log_activity(
            db,
            repository_id=repository_id or self.repository_id,
            action=action,
            details=details,
            actor=self.settings.default_actor,
            **links,
        )

    def _repository_of_phase(self, db, phase) -> str:
        return crud.get_project(db, phase.project_id).repository_id

    # Repository

    @operation
    def initialize_repository(
        self,
        description: str = "",
        team_composition: Optional[dict] = None,
        metadata: Optional[dict] = None,
    ) -> schemas.InitializeResult:
        data = schemas.RepositoryInit(
            description=description,
            team_composition=team_composition,
            metadata=metadata or {},
        )
        with self.store.transaction() as db:
            repository, existed = crud.get_or_create_repository(db, self.repository_id, data)
            if not existed:
                self._log(db, "repository_initialized", f"Initialized repository {repository.id}")
            return schemas.InitializeResult(repository_id=repository.id, already_existed=existed)

    @operation
    def list_repositories(self) -> list[schemas.RepositoryResponse]:
        with self.store.read() as db:
            return queries.list_repositories(db)

    @operation
    def get_metadata(self, params: Optional[list[str]] = None) -> dict[str, Any]:
        with self.store.read() as db:
            return queries.get_metadata(db, self.repository_id, params)

    # Roadmap / projects

    @operation
    def create_roadmap(self, vision: str, projects: list[dict]) -> schemas.RoadmapResponse:
        """Set the roadmap vision and append the given projects in order."""
        items = [schemas.ProjectCreate.model_validate(project) for project in projects]
        with self.store.transaction() as db:
            repository = crud.get_repository(db, self.repository_id)
            repository.vision = vision
            for item in items:
                crud.create_project(db, self.repository_id, item)
            self._log(db, "roadmap_created", f"Roadmap created with {len(items)} project(s)")
            return queries.get_roadmap(db, self.repository_id)

    @operation
    def create_project(self, project: dict, position: Optional[int] = None) -> schemas.ProjectResponse:
        data = schemas.ProjectCreate.model_validate(project)
        with self.store.transaction() as db:
            created = crud.create_project(db, self.repository_id, data, position)
            self._log(db, "project_created", f"Created project '{created.name}' at order {created.order}",
                      project_id=created.id)
            return schemas.ProjectResponse.model_validate(created)

    def insert_project_at(self, project: dict, position: int) -> Result:
        return self.create_project(project, position=position)

    @operation
    def delete_project(self, project_id: str, reassign_to: Optional[str] = None) -> schemas.DeleteResult:
        with self.store.transaction() as db:
            project = crud.get_project(db, project_id)
            name, repository_id = project.name, project.repository_id
            moved = crud.delete_project(db, project_id, reassign_to)
            self._log(db, "project_deleted", f"Deleted project '{name}'", repository_id, project_id=project_id)
            return schemas.DeleteResult(id=project_id, reassigned_to=reassign_to if moved else None,
                                        reassigned_count=moved)

    @operation
    def reorder_projects(self, project_ids: list[str]) -> list[schemas.ProjectResponse]:
        with self.store.transaction() as db:
            projects = crud.reorder_projects(db, self.repository_id, project_ids)
            self._log(db, "projects_reordered", f"Reordered {len(projects)} projects")
            return [schemas.ProjectResponse.model_validate(p) for p in projects]

    @operation
    def move_project(
        self,
        project_id: str,
        position: Optional[int] = None,
        repository_id: Optional[str] = None,
    ) -> schemas.ProjectResponse:
        with self.store.transaction() as db:
            project = crud.move_project(db, project_id, repository_id, position)
            self._log(db, "project_moved", f"Moved project '{project.name}' to order {project.order}",
                      project.repository_id, project_id=project.id)
            return schemas.ProjectResponse.model_validate(project)

    @operation
    def update_project_phase(self, project_id: str, patch: dict) -> schemas.ProjectResponse:
        data = schemas.ProjectUpdate.model_validate(patch)
        with self.store.transaction() as db:
            project = lifecycle.update_project_phase(db, project_id, data)
            changed = ", ".join(sorted(data.model_dump(exclude_unset=True)))
            self._log(db, "project_updated", f"Updated project '{project.name}': {changed}",
                      project.repository_id, project_id=project.id)
            return schemas.ProjectResponse.model_validate(project)

    @operation
    def list_projects(self, search: Optional[str] = None) -> list[schemas.ProjectResponse]:
        with self.store.read() as db:
            return queries.list_projects(db, self.repository_id, search)

    # Phases

    @operation
    def create_phase(self, project_id: str, phase: dict, position: Optional[int] = None) -> schemas.PhaseDetail:
        data = schemas.PhaseCreate.model_validate(phase)
        with self.store.transaction() as db:
            created = crud.create_phase(db, project_id, data, position)
            self._log(db, "phase_created", f"Created phase '{created.name}' #{created.number}",
                      self._repository_of_phase(db, created), project_id=project_id, phase_id=created.id)
            return queries.phase_detail(db, created)

    def insert_phase_at(self, project_id: str, phase: dict, position: int) -> Result:
        return self.create_phase(project_id, phase, position=position)

    @operation
    def delete_phase(self, phase_id: str, reassign_to: Optional[str] = None) -> schemas.DeleteResult:
        with self.store.transaction() as db:
            phase = crud.get_phase(db, phase_id)
            name, project_id = phase.name, phase.project_id
            repository_id = self._repository_of_phase(db, phase)
            moved = crud.delete_phase(db, phase_id, reassign_to)
            self._log(db, "phase_deleted", f"Deleted phase '{name}'", repository_id,
                      project_id=project_id, phase_id=phase_id)
            return schemas.DeleteResult(id=phase_id, reassigned_to=reassign_to if moved else None,
                                        reassigned_count=moved)

    @operation
    def reorder_phases(self, project_id: str, phase_ids: list[str]) -> list[schemas.PhaseResponse]:
        with self.store.transaction() as db:
            phases = crud.reorder_phases(db, project_id, phase_ids)
            repository_id = crud.get_project(db, project_id).repository_id
            self._log(db, "phases_reordered", f"Reordered {len(phases)} phases", repository_id,
                      project_id=project_id)
            return [queries.phase_summary(db, phase) for phase in phases]

    @operation
    def move_phase(
        self,
        phase_id: str,
        project_id: Optional[str] = None,
        position: Optional[int] = None,
    ) -> schemas.PhaseResponse:
        with self.store.transaction() as db:
            phase = crud.move_phase(db, phase_id, project_id, position)
            self._log(db, "phase_moved", f"Moved phase '{phase.name}' to #{phase.number}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase.id)
            return queries.phase_summary(db, phase)

    @operation
    def update_phase(self, phase_id: str, patch: dict) -> schemas.PhaseResponse:
        data = schemas.PhaseUpdate.model_validate(patch)
        with self.store.transaction() as db:
            phase = lifecycle.update_phase(db, phase_id, data)
            changed = ", ".join(sorted(data.model_dump(exclude_unset=True)))
            self._log(db, "phase_updated", f"Updated phase '{phase.name}': {changed}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase.id)
            return queries.phase_summary(db, phase)

    @operation
    def list_phases(self, project_id: str, search: Optional[str] = None) -> list[schemas.PhaseResponse]:
        with self.store.read() as db:
            return queries.list_phases(db, project_id, search)

    # Steps / cycles

    @operation
    def list_steps(self, phase_id: str, search: Optional[str] = None) -> list[schemas.StepResponse]:
        with self.store.read() as db:
            return queries.list_steps(db, phase_id, search)

    @operation
    def update_step(self, phase_id: str, step_number: int, patch: dict) -> schemas.StepResponse:
        data = schemas.StepUpdate.model_validate(patch)
        with self.store.transaction() as db:
            step = lifecycle.update_step(db, phase_id, step_number, data)
            phase = crud.get_phase(db, phase_id)
            changed = ", ".join(sorted(data.model_dump(exclude_unset=True)))
            self._log(db, "step_updated", f"Updated step {step_number} ({step.name}): {changed}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase_id)
            return schemas.StepResponse.model_validate(step)

    @operation
    def advance_cycle(self, phase_id: str, notes: Optional[str] = None) -> schemas.CycleResponse:
        with self.store.transaction() as db:
            cycle = lifecycle.advance_cycle(db, phase_id, notes)
            phase = crud.get_phase(db, phase_id)
            self._log(db, "cycle_advanced",
                      f"Cycle {cycle.cycle_number} now at step {phase.current_step}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase_id)
            return schemas.CycleResponse.model_validate(cycle)

    # Tasks

    @operation
    def create_task(self, phase_id: str, task: dict, position: Optional[int] = None) -> schemas.TaskResponse:
        data = schemas.TaskCreate.model_validate(task)
        with self.store.transaction() as db:
            created = crud.create_task(db, phase_id, data, position)
            phase = crud.get_phase(db, phase_id)
            self._log(db, "task_created", f"Created task in step {created.step_number}: {created.description}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase_id)
            return schemas.TaskResponse.model_validate(created)

    def insert_task_at(self, phase_id: str, task: dict, position: int) -> Result:
        return self.create_task(phase_id, task, position=position)

    @operation
    def delete_task(self, task_id: str) -> schemas.DeleteResult:
        with self.store.transaction() as db:
            task = crud.get_task(db, task_id)
            phase = crud.get_phase(db, task.phase_id)
            crud.delete_task(db, task_id)
            self._log(db, "task_deleted", f"Deleted task {task_id}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase.id)
            return schemas.DeleteResult(id=task_id)

    @operation
    def reorder_tasks(self, phase_id: str, step_number: int, task_ids: list[str]) -> list[schemas.TaskResponse]:
        with self.store.transaction() as db:
            tasks = crud.reorder_tasks(db, phase_id, step_number, task_ids)
            phase = crud.get_phase(db, phase_id)
            self._log(db, "tasks_reordered", f"Reordered {len(tasks)} tasks in step {step_number}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase_id)
            return [schemas.TaskResponse.model_validate(t) for t in tasks]

    @operation
    def move_task(
        self,
        task_id: str,
        phase_id: Optional[str] = None,
        step_number: Optional[int] = None,
        position: Optional[int] = None,
    ) -> schemas.TaskResponse:
        with self.store.transaction() as db:
            task = crud.move_task(db, task_id, phase_id, step_number, position)
            phase = crud.get_phase(db, task.phase_id)
            self._log(db, "task_moved", f"Moved task {task_id} to step {task.step_number} position {task.position}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase.id)
            return schemas.TaskResponse.model_validate(task)

    @operation
    def update_task(self, task_id: str, patch: dict) -> schemas.TaskResponse:
        data = schemas.TaskUpdate.model_validate(patch)
        with self.store.transaction() as db:
            task = crud.update_task(db, task_id, data)
            phase = crud.get_phase(db, task.phase_id)
            changed = ", ".join(sorted(data.model_dump(exclude_unset=True)))
            self._log(db, "task_updated", f"Updated task {task_id}: {changed}",
                      self._repository_of_phase(db, phase), project_id=phase.project_id, phase_id=phase.id)
            return schemas.TaskResponse.model_validate(task)

    @operation
    def bulk_update_tasks(self, updates: list[dict]) -> list[schemas.TaskResponse]:
        """Apply several task updates in one transaction; any failure applies none."""
        items = [schemas.BulkTaskUpdate.model_validate(update) for update in updates]
        with self.store.transaction() as db:
            tasks = [crud.update_task(db, item.task_id, item) for item in items]
            self._log(db, "tasks_bulk_updated", f"Updated {len(tasks)} tasks")
            return [schemas.TaskResponse.model_validate(t) for t in tasks]

    @operation
    def list_tasks(
        self,
        phase_id: str,
        step_number: Optional[int] = None,
        search: Optional[str] = None,
    ) -> list[schemas.TaskResponse]:
        with self.store.read() as db:
            return queries.list_tasks(db, phase_id, step_number, search)

    # Documentation

    @operation
    def create_documentation(self, documentation: dict) -> schemas.DocumentationResponse:
        data = schemas.DocumentationCreate.model_validate(documentation)
        with self.store.transaction() as db:
            created = crud.create_documentation(db, self.repository_id, data)
            self._log(db, "documentation_created", f"Registered documentation '{created.name}' at {created.path}",
                      project_id=created.project_id, phase_id=created.phase_id)
            return schemas.DocumentationResponse.model_validate(created)

    @operation
    def list_documentation(
        self,
        search: Optional[str] = None,
        project_id: Optional[str] = None,
        phase_id: Optional[str] = None,
    ) -> list[schemas.DocumentationResponse]:
        with self.store.read() as db:
            return queries.list_documentation(db, self.repository_id, search, project_id, phase_id)

    # Status / roadmap

    @operation
    def get_current_status(self) -> schemas.CurrentStatus:
        with self.store.read() as db:
            return queries.get_current_status(db, self.repository_id)

    @operation
    def get_roadmap(self, repository_id: Optional[str] = None, include_details: bool = False) -> schemas.RoadmapResponse:
        with self.store.read() as db:
            return queries.get_roadmap(db, repository_id or self.repository_id, include_details)

    @operation
    def get_activity(self, limit: int = 50) -> list[schemas.ActivityResponse]:
        with self.store.read() as db:
            return queries.get_activity(db, self.repository_id, limit)

    # Consolidation

    @operation
    def run_consolidation(self) -> schemas.ConsolidationReport:
        return ConsolidationService(self.store, self.settings).run()
