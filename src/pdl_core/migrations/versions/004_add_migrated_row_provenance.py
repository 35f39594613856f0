"""Add provenance columns to consolidated tables.

Revision ID: 004
Revises: 003
Create Date: 2025-07-21

Rows merged in from a legacy store record the store's path, the merge time and
the content hash of the snapshot they came from. Rows created here leave them
null.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '004'
down_revision: Union[str, None] = '003'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CONSOLIDATED_TABLES = (
    'repositories',
    'projects',
    'phases',
    'cycles',
    'steps',
    'tasks',
    'documentation',
    'activity_log',
)


def upgrade() -> None:
    for table in CONSOLIDATED_TABLES:
        with op.batch_alter_table(table) as batch_op:
            batch_op.add_column(sa.Column('migrated_from', sa.Text))
            batch_op.add_column(sa.Column('migrated_at', sa.DateTime))
            batch_op.add_column(sa.Column('migrated_hash', sa.String(64)))


def downgrade() -> None:
    for table in reversed(CONSOLIDATED_TABLES):
        with op.batch_alter_table(table) as batch_op:
            batch_op.drop_column('migrated_hash')
            batch_op.drop_column('migrated_at')
            batch_op.drop_column('migrated_from')
