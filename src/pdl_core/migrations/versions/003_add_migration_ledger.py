"""Add consolidation ledger.

Revision ID: 003
Revises: 002
Create Date: 2025-07-08

One row per attempt to merge a scattered store into the canonical one. A
completed row for (source_path, content_hash) prevents the same content from
being applied twice.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'migration_records',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('source_path', sa.Text, nullable=False),
        sa.Column('content_hash', sa.String(64), nullable=False, server_default=''),
        sa.Column('status', sa.Enum('completed', 'failed', name='migration_status'), nullable=False),
        sa.Column('validation_result', sa.Text, nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.current_timestamp()),
    )
    op.create_index('idx_migration_records_source_hash', 'migration_records', ['source_path', 'content_hash'])


def downgrade() -> None:
    op.drop_index('idx_migration_records_source_hash', table_name='migration_records')
    op.drop_table('migration_records')
