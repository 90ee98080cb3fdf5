"""add_account_lockout_columns

Revision ID: 002_add_account_lockout
Revises: 001_initial_schema
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_add_account_lockout'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Failed sign-in counter and lockout expiry
    op.add_column('users', sa.Column('access_failed_count', sa.Integer(), nullable=False, server_default='0'))
    op.add_column('users', sa.Column('lockout_end', sa.DateTime(), nullable=True))


def downgrade() -> None:
    op.drop_column('users', 'lockout_end')
    op.drop_column('users', 'access_failed_count')
