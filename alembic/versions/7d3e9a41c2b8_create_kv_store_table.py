"""create kv_store table

Revision ID: 7d3e9a41c2b8
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '7d3e9a41c2b8'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # One row per storage key: files:{CODE}, rooms:{CODE}:messages, rooms:{CODE}:devices
    op.create_table(
        'kv_store',
        sa.Column('key', sa.Text(), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('key'),
        schema='public'
    )
    op.create_index(
        'ix_kv_store_updated_at',
        'kv_store',
        ['updated_at'],
        schema='public'
    )


def downgrade() -> None:
    op.drop_index('ix_kv_store_updated_at', table_name='kv_store', schema='public')
    op.drop_table('kv_store', schema='public')
