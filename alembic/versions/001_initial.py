"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-09-14 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Correlations table
    op.create_table(
        'asin_correlations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('search_asin', sa.String(length=10), nullable=False),
        sa.Column('similar_asin', sa.String(length=10), nullable=False),
        sa.Column('correlated_title', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('search_image_url', sa.Text(), nullable=True),
        sa.Column('suggested_type', sa.String(length=16), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=True),
        sa.Column('correlated_amazon_url', sa.Text(), nullable=True),
        sa.Column('correlation_score', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('decision', sa.String(length=20), nullable=True),
        sa.Column('decline_reason', sa.String(length=255), nullable=True),
        sa.Column('decision_at', sa.DateTime(), nullable=True),
        sa.Column('available_us', sa.Boolean(), nullable=True),
        sa.Column('available_uk', sa.Boolean(), nullable=True),
        sa.Column('available_de', sa.Boolean(), nullable=True),
        sa.Column('available_ca', sa.Boolean(), nullable=True),
        sa.Column('availability_checked_at', sa.DateTime(), nullable=True),
        sa.Column('uploaded_us', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('uploaded_us_at', sa.DateTime(), nullable=True),
        sa.Column('uploaded_uk', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('uploaded_uk_at', sa.DateTime(), nullable=True),
        sa.Column('uploaded_de', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('uploaded_de_at', sa.DateTime(), nullable=True),
        sa.Column('uploaded_ca', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('uploaded_ca_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'owner_id', 'search_asin', 'similar_asin', name='uq_correlation_owner_search_similar'
        ),
        sa.CheckConstraint(
            "decision IS NULL OR decision IN ('accepted', 'declined')", name='ck_correlation_decision'
        ),
        sa.CheckConstraint(
            "suggested_type IN ('variant', 'similar')", name='ck_correlation_suggested_type'
        ),
        sa.CheckConstraint('search_asin <> similar_asin', name='ck_correlation_not_self'),
    )

    # Stored provider keys (Fernet ciphertext)
    op.create_table(
        'user_api_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=False),
        sa.Column('service', sa.String(length=32), nullable=False),
        sa.Column('api_key', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'service', name='uq_api_key_owner_service')
    )

    # Create indexes
    op.create_index('idx_correlations_owner_search', 'asin_correlations', ['owner_id', 'search_asin'])
    op.create_index('idx_correlations_decision', 'asin_correlations', ['owner_id', 'decision'])


def downgrade() -> None:
    # Drop indexes
    op.drop_index('idx_correlations_decision', table_name='asin_correlations')
    op.drop_index('idx_correlations_owner_search', table_name='asin_correlations')

    # Drop tables
    op.drop_table('user_api_keys')
    op.drop_table('asin_correlations')
