"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create policies table (one row per policy version)
    op.create_table(
        'policies',
        sa.Column('id', sa.String(length=36), primary_key=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('policy_code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('loan_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('previous_version_id', sa.String(length=36), nullable=True),
        sa.Column('rules', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('effective_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('effective_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tags', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('modified_by', sa.String(length=255), nullable=True),
        sa.Column('lock_version', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('policy_code', 'version_number', name='uq_policies_code_version'),
    )
    op.create_index('ix_policies_policy_code', 'policies', ['policy_code'])
    op.create_index('ix_policies_name', 'policies', ['name'])
    op.create_index('ix_policies_status', 'policies', ['status'])
    op.create_index('ix_policies_category_status', 'policies', ['category', 'status'])
    op.create_index('ix_policies_loan_type_status', 'policies', ['loan_type', 'status'])

    # Create policy_code_sequences table (per-year code counter)
    op.create_table(
        'policy_code_sequences',
        sa.Column('year', sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_table('policy_code_sequences')

    op.drop_index('ix_policies_loan_type_status', table_name='policies')
    op.drop_index('ix_policies_category_status', table_name='policies')
    op.drop_index('ix_policies_status', table_name='policies')
    op.drop_index('ix_policies_name', table_name='policies')
    op.drop_index('ix_policies_policy_code', table_name='policies')
    op.drop_table('policies')
