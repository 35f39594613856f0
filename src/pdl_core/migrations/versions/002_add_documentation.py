"""Add documentation table.

Revision ID: 002
Revises: 001
Create Date: 2025-06-19

Documentation entries point at files produced during a phase (specs, reports,
design notes) and may be linked to a project, phase or task.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'documentation',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('repository_id', sa.String(255), sa.ForeignKey('repositories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('path', sa.Text, nullable=False),
        sa.Column('summary_brief', sa.Text, nullable=False, server_default=''),
        sa.Column('creating_agent', sa.String(255)),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id', ondelete='SET NULL')),
        sa.Column('phase_id', sa.String(36), sa.ForeignKey('phases.id', ondelete='SET NULL')),
        sa.Column('task_id', sa.String(36), sa.ForeignKey('tasks.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index('ix_documentation_repository_id', 'documentation', ['repository_id'])


def downgrade() -> None:
    op.drop_index('ix_documentation_repository_id', table_name='documentation')
    op.drop_table('documentation')
