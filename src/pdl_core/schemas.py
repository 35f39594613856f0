"""Pydantic schemas for operation inputs and results."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict

from .columns import TeamComposition
from .models import StepStatus, PhaseStatus, TaskStatus, MigrationStatus


# Repository Schemas

class RepositoryInit(BaseModel):
    """Schema for initializing the repository of the current codebase."""

    description: str = ""
    team_composition: Optional[TeamComposition] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RepositoryResponse(BaseModel):
    """Schema for repository responses."""

    id: str
    description: str
    team_composition: TeamComposition
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="repo_metadata")
    vision: Optional[str] = None
    overall_progress: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InitializeResult(BaseModel):
    repository_id: str
    already_existed: bool


class DeleteResult(BaseModel):
    """Outcome of a delete, with any children moved to another parent."""

    id: str
    reassigned_to: Optional[str] = None
    reassigned_count: int = 0


# Project Schemas

class ProjectCreate(BaseModel):
    """Schema for creating a roadmap-level project."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    objective: str = ""
    deliverables: list[str] = Field(default_factory=list)
    success_metrics: list[str] = Field(default_factory=list)
    status: StepStatus = StepStatus.NOT_STARTED
    completion_percentage: int = Field(0, ge=0, le=100)


class ProjectUpdate(BaseModel):
    """Schema for partial project updates. Omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    objective: Optional[str] = None
    deliverables: Optional[list[str]] = None
    success_metrics: Optional[list[str]] = None
    status: Optional[StepStatus] = None
    completion_percentage: Optional[int] = Field(None, ge=0, le=100)


class ProjectResponse(BaseModel):
    """Schema for project responses."""

    id: str
    repository_id: str
    name: str
    description: str
    objective: str
    deliverables: list[str]
    success_metrics: list[str]
    status: StepStatus
    completion_percentage: int
    order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Phase Schemas

class PhaseCreate(BaseModel):
    """Schema for creating a sprint/iteration phase."""

    name: str = Field(..., min_length=1, max_length=255)
    status: PhaseStatus = PhaseStatus.ACTIVE


class PhaseUpdate(BaseModel):
    """Schema for partial phase updates."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[PhaseStatus] = None
    ended_at: Optional[datetime] = None
    velocity: Optional[int] = Field(None, ge=0)
    retrospective: Optional[str] = None


class PhaseResponse(BaseModel):
    """Schema for phase responses. ``progress`` is the rounded mean of step percentages."""

    id: str
    project_id: str
    name: str
    status: PhaseStatus
    number: int
    current_step: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    velocity: int
    retrospective: str
    progress: Optional[int] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Step / Cycle Schemas

class StepUpdate(BaseModel):
    """Schema for partial step updates."""

    status: Optional[StepStatus] = None
    completion_percentage: Optional[int] = Field(None, ge=0, le=100)
    deliverables: Optional[list[str]] = None
    blockers: Optional[list[str]] = None
    notes: Optional[str] = None


class StepResponse(BaseModel):
    """Schema for step responses, including the fixed name and driver for its number."""

    id: str
    phase_id: str
    step_number: int
    name: str
    primary_driver: str
    key_activities: list[str]
    status: StepStatus
    completion_percentage: int
    deliverables: list[str]
    blockers: list[str]
    notes: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class CycleResponse(BaseModel):
    """Schema for cycle responses."""

    id: str
    phase_id: str
    cycle_number: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    notes: str

    model_config = ConfigDict(from_attributes=True)


class PhaseDetail(PhaseResponse):
    """Phase with its steps and the cycle currently (or most recently) running."""

    steps: list[StepResponse] = Field(default_factory=list)
    current_cycle: Optional[CycleResponse] = None


# Task Schemas

class TaskCreate(BaseModel):
    """Schema for creating a task under a phase step."""

    description: str = Field(..., min_length=1)
    step_number: int = Field(..., ge=1, le=7)
    assignee: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    story_points: Optional[int] = Field(None, ge=0)


class TaskUpdate(BaseModel):
    """Schema for partial task updates."""

    description: Optional[str] = Field(None, min_length=1)
    assignee: Optional[str] = None
    status: Optional[TaskStatus] = None
    story_points: Optional[int] = Field(None, ge=0)


class BulkTaskUpdate(TaskUpdate):
    """One entry of a bulk task update."""

    task_id: str


class TaskResponse(BaseModel):
    """Schema for task responses."""

    id: str
    phase_id: str
    step_number: int
    cycle_id: Optional[str] = None
    description: str
    assignee: Optional[str] = None
    status: TaskStatus
    story_points: Optional[int] = None
    position: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Documentation Schemas

class DocumentationCreate(BaseModel):
    """Schema for registering a documentation file."""

    name: str = Field(..., min_length=1, max_length=255)
    path: str = Field(..., min_length=1)
    summary_brief: str = ""
    creating_agent: Optional[str] = None
    project_id: Optional[str] = None
    phase_id: Optional[str] = None
    task_id: Optional[str] = None


class DocumentationResponse(DocumentationCreate):
    """Schema for documentation responses."""

    id: str
    repository_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Activity / Ledger Schemas

class ActivityResponse(BaseModel):
    """Schema for activity log entries."""

    id: str
    repository_id: str
    timestamp: datetime
    actor: str
    action: str
    details: str
    project_id: Optional[str] = None
    phase_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MigrationRecordResponse(BaseModel):
    """Schema for consolidation ledger rows."""

    id: int
    source_path: str
    content_hash: str
    status: MigrationStatus
    validation_result: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ConsolidationReport(BaseModel):
    """Outcome of one consolidation run."""

    lock_acquired: bool = False
    sources_found: list[str] = Field(default_factory=list)
    migrated: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


# Query Schemas

class RoadmapProject(ProjectResponse):
    """Project entry of the roadmap view."""

    phases: list[PhaseResponse] = Field(default_factory=list)


class RoadmapResponse(BaseModel):
    """Full roadmap of a repository."""

    repository_id: str
    vision: Optional[str] = None
    overall_progress: int
    projects: list[RoadmapProject] = Field(default_factory=list)
    active_phase: Optional[PhaseDetail] = None


class CurrentStatus(BaseModel):
    """Where the repository stands right now."""

    repository: RepositoryResponse
    projects: list[ProjectResponse] = Field(default_factory=list)
    active_project: Optional[ProjectResponse] = None
    active_phase: Optional[PhaseDetail] = None
    current_step: Optional[StepResponse] = None
    current_cycle: Optional[CycleResponse] = None
