"""SQLAlchemy database models."""
from datetime import datetime, timezone
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    UniqueConstraint,
    Index,
    JSON,
)
from sqlalchemy.orm import relationship

from .columns import StringList, TeamCompositionType
from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores no timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


STEP_COUNT = 7


class StepStatus(str, enum.Enum):
    """Status of a delivery step (also used for roadmap-level projects).

    Lifecycle: not_started -> in_progress -> completed
    Side state: blocked (from not_started or in_progress, back to in_progress)
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class PhaseStatus(str, enum.Enum):
    """Sprint/iteration status enum."""

    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStatus(str, enum.Enum):
    """Task status enum."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    BLOCKED = "blocked"


class MigrationStatus(str, enum.Enum):
    """Outcome of one consolidation attempt."""

    COMPLETED = "completed"
    FAILED = "failed"


# Fixed 7-step delivery cycle: name, primary driver and key activities per step number
STEP_NAMES: dict[int, str] = {
    1: "Discovery & Ideation",
    2: "Definition & Scoping",
    3: "Design & Prototyping",
    4: "Development & Implementation",
    5: "Testing & Quality Assurance",
    6: "Launch & Deployment",
    7: "Post-Launch: Growth & Iteration",
}

STEP_PRIMARY_DRIVERS: dict[int, str] = {
    1: "Product Manager",
    2: "Product Manager",
    3: "Product Designer",
    4: "Engineering Manager",
    5: "QA Engineers",
    6: "Engineering Manager",
    7: "Product Manager",
}

STEP_KEY_ACTIVITIES: dict[int, list[str]] = {
    1: ["Research", "User interviews", "Market analysis", "Ideation workshops"],
    2: ["Requirements gathering", "Scoping", "Technical feasibility", "Resource planning"],
    3: ["Wireframing", "Prototyping", "User testing", "Design iterations"],
    4: ["Coding", "Code reviews", "Integration", "Documentation"],
    5: ["Test planning", "Test execution", "Bug tracking", "Performance testing"],
    6: ["Deployment prep", "Release notes", "Go-live", "Monitoring setup"],
    7: ["Metrics analysis", "User feedback", "Optimization", "Feature planning"],
}


class MigratedRowMixin:
    """Where a row came from when consolidation merged it in; null for rows created here."""

    migrated_from = Column(Text)
    migrated_at = Column(DateTime)
    migrated_hash = Column(String(64))


class Repository(MigratedRowMixin, Base):
    """
    Repository model: one per tracked codebase.

    The id is the stable project identifier supplied by the caller's context
    (not generated), so re-initialising the same codebase finds the same row.
    """

    __tablename__ = "repositories"

    id = Column(String(255), primary_key=True)
    description = Column(Text, nullable=False, default="")
    team_composition = Column(TeamCompositionType, nullable=False, default=dict)
    repo_metadata = Column("metadata", JSON, nullable=False, default=dict)
    vision = Column(Text)
    overall_progress = Column(Integer, nullable=False, default=0)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    projects = relationship(
        "Project",
        back_populates="repository",
        cascade="all, delete-orphan",
        order_by="Project.order",
    )

    __table_args__ = (
        CheckConstraint("overall_progress BETWEEN 0 AND 100", name="valid_overall_progress"),
    )

    def __repr__(self) -> str:
        return f"<Repository {self.id}>"


class Project(MigratedRowMixin, Base):
    """
    Project model: a roadmap-level phase of work within a repository.

    ``order`` is a gapless 1..N sequence within the repository.
    """

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=new_id)
    repository_id = Column(String(255), ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    objective = Column(Text, nullable=False, default="")
    deliverables = Column(StringList, nullable=False, default=list)
    success_metrics = Column(StringList, nullable=False, default=list)
    status = Column(
        Enum(StepStatus, name="project_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=StepStatus.NOT_STARTED,
        index=True,
    )
    completion_percentage = Column(Integer, nullable=False, default=0)
    order = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    repository = relationship("Repository", back_populates="projects")
    phases = relationship(
        "Phase",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Phase.number",
    )

    __table_args__ = (
        CheckConstraint("completion_percentage BETWEEN 0 AND 100", name="valid_project_completion"),
        CheckConstraint('"order" >= 1', name="valid_project_order"),
    )

    def __repr__(self) -> str:
        return f"<Project {self.order}: {self.name}>"


class Phase(MigratedRowMixin, Base):
    """
    Phase model: a sprint/iteration within a project.

    Owns exactly 7 steps and a sequence of cycles. ``current_step`` points at
    the step the team is working on in the open cycle.
    """

    __tablename__ = "phases"

    id = Column(String(36), primary_key=True, default=new_id)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    status = Column(
        Enum(PhaseStatus, name="phase_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PhaseStatus.ACTIVE,
        index=True,
    )
    number = Column(Integer, nullable=False)
    current_step = Column(Integer, nullable=False, default=1)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    ended_at = Column(DateTime)
    velocity = Column(Integer, nullable=False, default=0)
    retrospective = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="phases")
    steps = relationship(
        "Step",
        back_populates="phase",
        cascade="all, delete-orphan",
        order_by="Step.step_number",
    )
    cycles = relationship(
        "Cycle",
        back_populates="phase",
        cascade="all, delete-orphan",
        order_by="Cycle.cycle_number",
    )
    tasks = relationship(
        "Task",
        back_populates="phase",
        cascade="all, delete-orphan",
        order_by="(Task.step_number, Task.position)",
    )

    __table_args__ = (
        CheckConstraint("number >= 1", name="valid_phase_number"),
    )

    def __repr__(self) -> str:
        return f"<Phase {self.number}: {self.name} (step {self.current_step})>"


class Cycle(MigratedRowMixin, Base):
    """One pass through steps 1-7 of a phase. ``ended_at`` is NULL while open."""

    __tablename__ = "cycles"

    id = Column(String(36), primary_key=True, default=new_id)
    phase_id = Column(String(36), ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    cycle_number = Column(Integer, nullable=False)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    ended_at = Column(DateTime)
    notes = Column(Text, nullable=False, default="")

    phase = relationship("Phase", back_populates="cycles")

    __table_args__ = (
        UniqueConstraint("phase_id", "cycle_number", name="unique_phase_cycle_number"),
    )

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def __repr__(self) -> str:
        return f"<Cycle {self.cycle_number} of phase {self.phase_id}>"


class Step(MigratedRowMixin, Base):
    """
    One of the 7 fixed delivery steps of a phase.

    Name, primary driver and key activities are derived from ``step_number``.
    """

    __tablename__ = "steps"

    id = Column(String(36), primary_key=True, default=new_id)
    phase_id = Column(String(36), ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    status = Column(
        Enum(StepStatus, name="step_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=StepStatus.NOT_STARTED,
    )
    completion_percentage = Column(Integer, nullable=False, default=0)
    deliverables = Column(StringList, nullable=False, default=list)
    blockers = Column(StringList, nullable=False, default=list)
    notes = Column(Text, nullable=False, default="")
    started_at = Column(DateTime)
    ended_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    phase = relationship("Phase", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("phase_id", "step_number", name="unique_phase_step"),
        CheckConstraint("step_number BETWEEN 1 AND 7", name="valid_step_number"),
        CheckConstraint("completion_percentage BETWEEN 0 AND 100", name="valid_step_completion"),
    )

    @property
    def name(self) -> str:
        return STEP_NAMES[self.step_number]

    @property
    def primary_driver(self) -> str:
        return STEP_PRIMARY_DRIVERS[self.step_number]

    @property
    def key_activities(self) -> list[str]:
        return list(STEP_KEY_ACTIVITIES[self.step_number])

    def __repr__(self) -> str:
        return f"<Step {self.step_number} ({self.status.value})>"


class Task(MigratedRowMixin, Base):
    """Task model: work item under a phase+step, positioned 1..N within that pair."""

    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    phase_id = Column(String(36), ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    cycle_id = Column(String(36), ForeignKey("cycles.id", ondelete="SET NULL"), index=True)

    description = Column(Text, nullable=False)
    assignee = Column(String(255))
    status = Column(
        Enum(TaskStatus, name="task_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=TaskStatus.TODO,
        index=True,
    )
    story_points = Column(Integer)
    position = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    phase = relationship("Phase", back_populates="tasks")

    __table_args__ = (
        CheckConstraint("step_number BETWEEN 1 AND 7", name="valid_task_step_number"),
        CheckConstraint("story_points IS NULL OR story_points >= 0", name="valid_story_points"),
    )

    def __repr__(self) -> str:
        return f"<Task {self.id} ({self.status.value})>"


class Documentation(MigratedRowMixin, Base):
    """Documentation entry linked to a project, phase or task."""

    __tablename__ = "documentation"

    id = Column(String(36), primary_key=True, default=new_id)
    repository_id = Column(String(255), ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=False)
    summary_brief = Column(Text, nullable=False, default="")
    creating_agent = Column(String(255))
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="SET NULL"))
    phase_id = Column(String(36), ForeignKey("phases.id", ondelete="SET NULL"))
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="SET NULL"))
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Documentation {self.name}: {self.path}>"


class ActivityLog(MigratedRowMixin, Base):
    """
    Append-only record of every state-changing operation.

    Project/phase ids are plain columns (no foreign keys) so deleting an entity
    never rewrites its history.
    """

    __tablename__ = "activity_log"

    id = Column(String(36), primary_key=True, default=new_id)
    repository_id = Column(String(255), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    actor = Column(String(255), nullable=False, default="system")
    action = Column(String(100), nullable=False)
    details = Column(Text, nullable=False, default="")
    project_id = Column(String(36))
    phase_id = Column(String(36))

    def __repr__(self) -> str:
        return f"<ActivityLog {self.action} @ {self.timestamp}>"


class MigrationRecord(Base):
    """
    Consolidation ledger: one row per attempt to merge a (source_path, content_hash).

    A ``completed`` row guarantees the same content is never applied again.
    """

    __tablename__ = "migration_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_path = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False, default="")
    status = Column(
        Enum(MigrationStatus, name="migration_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    validation_result = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_migration_records_source_hash", "source_path", "content_hash"),
    )

    def __repr__(self) -> str:
        return f"<MigrationRecord {self.source_path} {self.status.value}>"


# Tables copied by consolidation, parents before children
CONSOLIDATED_MODELS = (
    Repository,
    Project,
    Phase,
    Cycle,
    Step,
    Task,
    Documentation,
    ActivityLog,
)
