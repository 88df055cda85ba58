"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create initial database schema:
    - users: Owners keyed by identity provider id, with the active URL counter
    - short_urls: Short code to destination mappings (soft-deleted, never reused)
    - url_metadata: One row of preview metadata per short URL
    """
    bind = op.get_bind()
    inspector = inspect(bind)
    existing_tables = inspector.get_table_names()

    if 'users' not in existing_tables:
        op.create_table(
            'users',
            sa.Column('id', sa.String(length=255), nullable=False),
            sa.Column('active_url_count', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.CheckConstraint('active_url_count >= 0', name='ck_users_active_url_count')
        )

    if 'short_urls' not in existing_tables:
        op.create_table(
            'short_urls',
            sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
            sa.Column('short_code', sa.String(length=16), nullable=False),
            sa.Column('original_url', sa.Text(), nullable=False),
            sa.Column('owner_id', sa.String(length=255), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('has_custom_metadata', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('metadata_status', sa.String(length=16), nullable=False, server_default='skipped'),
            sa.PrimaryKeyConstraint('id'),
            sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE'),
            sa.CheckConstraint(
                'expires_at IS NULL OR expires_at > created_at',
                name='ck_short_urls_expiry_after_creation'
            )
        )

        # Unique over active and inactive rows: codes are never recycled
        op.create_index('ix_short_urls_short_code', 'short_urls', ['short_code'], unique=True)
        op.create_index('ix_short_urls_owner_id_is_active', 'short_urls', ['owner_id', 'is_active'])
        op.create_index('ix_short_urls_created_at', 'short_urls', ['created_at'])
        op.create_index('ix_short_urls_is_active', 'short_urls', ['is_active'])

    if 'url_metadata' not in existing_tables:
        op.create_table(
            'url_metadata',
            sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
            sa.Column('url_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(length=300), nullable=True),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('image_url', sa.Text(), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.ForeignKeyConstraint(['url_id'], ['short_urls.id'], ondelete='CASCADE'),
            sa.UniqueConstraint('url_id', name='uq_url_metadata_url_id')
        )


def downgrade() -> None:
    """
    Drop all tables and indexes.
    """
    op.drop_table('url_metadata')
    op.drop_index('ix_short_urls_is_active', table_name='short_urls')
    op.drop_index('ix_short_urls_created_at', table_name='short_urls')
    op.drop_index('ix_short_urls_owner_id_is_active', table_name='short_urls')
    op.drop_index('ix_short_urls_short_code', table_name='short_urls')
    op.drop_table('short_urls')
    op.drop_table('users')
