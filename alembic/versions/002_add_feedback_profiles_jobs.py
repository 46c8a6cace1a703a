"""Add criteria profiles, sync jobs and usage tracking

Revision ID: 002_add_feedback_profiles_jobs
Revises: 001_initial
Create Date: 2026-09-28 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_add_feedback_profiles_jobs'
down_revision = '001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Per-owner matching criteria
    op.create_table(
        'feedback_criteria_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('criteria_text', sa.Text(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('based_on_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('generated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id')
    )

    # Background sync jobs
    op.create_table(
        'correlation_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('search_asin', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approved_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rejected_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_correlation_jobs_owner_id', 'correlation_jobs', ['owner_id'])

    # Provider usage
    op.create_table(
        'api_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('service', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('units', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_api_usage_owner_id', 'api_usage', ['owner_id'])


def downgrade() -> None:
    op.drop_index('ix_api_usage_owner_id', table_name='api_usage')
    op.drop_table('api_usage')
    op.drop_index('ix_correlation_jobs_owner_id', table_name='correlation_jobs')
    op.drop_table('correlation_jobs')
    op.drop_table('feedback_criteria_profiles')
