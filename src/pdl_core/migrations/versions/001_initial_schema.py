"""Initial schema: repositories, projects, phases, cycles, steps, tasks and activity log.

Revision ID: 001
Revises:
Create Date: 2025-06-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STEP_STATUS_VALUES = ('not_started', 'in_progress', 'completed', 'blocked')


def upgrade() -> None:
    op.create_table(
        'repositories',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('team_composition', sa.JSON, nullable=False),
        sa.Column('metadata', sa.JSON, nullable=False),
        sa.Column('vision', sa.Text),
        sa.Column('overall_progress', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.CheckConstraint('overall_progress BETWEEN 0 AND 100', name='valid_overall_progress'),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('repository_id', sa.String(255), sa.ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('objective', sa.Text, nullable=False, server_default=''),
        sa.Column('deliverables', sa.JSON, nullable=False),
        sa.Column('success_metrics', sa.JSON, nullable=False),
        sa.Column('status', sa.Enum(*STEP_STATUS_VALUES, name='project_status'), nullable=False, server_default='not_started'),
        sa.Column('completion_percentage', sa.Integer, nullable=False, server_default='0'),
        sa.Column('order', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.CheckConstraint('completion_percentage BETWEEN 0 AND 100', name='valid_project_completion'),
        sa.CheckConstraint('"order" >= 1', name='valid_project_order'),
    )
    op.create_index('ix_projects_repository_id', 'projects', ['repository_id'])
    op.create_index('ix_projects_status', 'projects', ['status'])

    op.create_table(
        'phases',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.Enum('planning', 'active', 'completed', 'cancelled', name='phase_status'), nullable=False, server_default='active'),
        sa.Column('number', sa.Integer, nullable=False),
        sa.Column('current_step', sa.Integer, nullable=False, server_default='1'),
        sa.Column('started_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('ended_at', sa.DateTime),
        sa.Column('velocity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('retrospective', sa.Text, nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.CheckConstraint('number >= 1', name='valid_phase_number'),
    )
    op.create_index('ix_phases_project_id', 'phases', ['project_id'])
    op.create_index('ix_phases_status', 'phases', ['status'])

    op.create_table(
        'cycles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('phase_id', sa.String(36), sa.ForeignKey('phases.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cycle_number', sa.Integer, nullable=False),
        sa.Column('started_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('ended_at', sa.DateTime),
        sa.Column('notes', sa.Text, nullable=False, server_default=''),
        sa.UniqueConstraint('phase_id', 'cycle_number', name='unique_phase_cycle_number'),
    )
    op.create_index('ix_cycles_phase_id', 'cycles', ['phase_id'])

    op.create_table(
        'steps',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('phase_id', sa.String(36), sa.ForeignKey('phases.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_number', sa.Integer, nullable=False),
        sa.Column('status', sa.Enum(*STEP_STATUS_VALUES, name='step_status'), nullable=False, server_default='not_started'),
        sa.Column('completion_percentage', sa.Integer, nullable=False, server_default='0'),
        sa.Column('deliverables', sa.JSON, nullable=False),
        sa.Column('blockers', sa.JSON, nullable=False),
        sa.Column('notes', sa.Text, nullable=False, server_default=''),
        sa.Column('started_at', sa.DateTime),
        sa.Column('ended_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.UniqueConstraint('phase_id', 'step_number', name='unique_phase_step'),
        sa.CheckConstraint('step_number BETWEEN 1 AND 7', name='valid_step_number'),
        sa.CheckConstraint('completion_percentage BETWEEN 0 AND 100', name='valid_step_completion'),
    )
    op.create_index('ix_steps_phase_id', 'steps', ['phase_id'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('phase_id', sa.String(36), sa.ForeignKey('phases.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_number', sa.Integer, nullable=False),
        sa.Column('cycle_id', sa.String(36), sa.ForeignKey('cycles.id', ondelete='SET NULL')),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('assignee', sa.String(255)),
        sa.Column('status', sa.Enum('todo', 'in_progress', 'done', 'blocked', name='task_status'), nullable=False, server_default='todo'),
        sa.Column('story_points', sa.Integer),
        sa.Column('position', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.CheckConstraint('step_number BETWEEN 1 AND 7', name='valid_task_step_number'),
        sa.CheckConstraint('story_points IS NULL OR story_points >= 0', name='valid_story_points'),
    )
    op.create_index('ix_tasks_phase_id', 'tasks', ['phase_id'])
    op.create_index('ix_tasks_cycle_id', 'tasks', ['cycle_id'])
    op.create_index('ix_tasks_status', 'tasks', ['status'])

    # Activity log keeps plain ids so history survives entity deletion
    op.create_table(
        'activity_log',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('repository_id', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column('actor', sa.String(255), nullable=False, server_default='system'),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('details', sa.Text, nullable=False, server_default=''),
        sa.Column('project_id', sa.String(36)),
        sa.Column('phase_id', sa.String(36)),
    )
    op.create_index('ix_activity_log_repository_id', 'activity_log', ['repository_id'])
    op.create_index('ix_activity_log_timestamp', 'activity_log', ['timestamp'])


def downgrade() -> None:
    op.drop_table('activity_log')
    op.drop_table('tasks')
    op.drop_table('steps')
    op.drop_table('cycles')
    op.drop_table('phases')
    op.drop_table('projects')
    op.drop_table('repositories')
