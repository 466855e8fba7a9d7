"""Initial schema: asset store, request ledger, job queue, bot state

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    """
    Create all tables.

    Creates:
    1. bot_users and conversation_sessions (dialog state)
    2. video_assets with the unique name index and the handle/status check
    3. user_requests (request ledger)
    4. generation_jobs with the one-live-job-per-asset partial unique index
    5. system_assets (cached coupon file ids)
    """
    op.create_table(
        'bot_users',
        sa.Column('id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('is_bot', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('first_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=255), nullable=True),
        sa.Column('username', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'conversation_sessions',
        sa.Column('user_id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('step', sa.String(length=32), nullable=False, server_default='idle'),
        sa.Column('child_name', sa.String(length=64), nullable=True),
        sa.Column('child_age', sa.Integer(), nullable=True),
        sa.Column('is_reordering', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('user_id'),
    )

    op.create_table(
        'video_assets',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('telegram_file_id', sa.String(length=255), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "(status = 'available') = (telegram_file_id IS NOT NULL)",
            name='ck_video_assets_handle_iff_available',
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'generating', 'available', 'failed')",
            name='ck_video_assets_status',
        ),
    )
    op.create_index('uq_video_assets_name', 'video_assets', ['name'], unique=True)
    op.create_index('ix_video_assets_status_updated', 'video_assets', ['status', 'updated_at'])

    op.create_table(
        'user_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('asset_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('child_age', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['bot_users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['asset_id'], ['video_assets.id'], ondelete='RESTRICT'),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name='ck_user_requests_status',
        ),
    )
    op.create_index('ix_user_requests_user_id', 'user_requests', ['user_id'])
    op.create_index(
        'ix_user_requests_asset_status_created',
        'user_requests',
        ['asset_id', 'status', 'created_at'],
    )

    op.create_table(
        'generation_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('asset_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('job_type', sa.String(length=50), nullable=False, server_default='generate_video'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='queued'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('retry_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('locked_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('locked_by', sa.String(length=200), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['asset_id'], ['video_assets.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_generation_jobs_asset_id', 'generation_jobs', ['asset_id'])
    op.create_index('ix_generation_jobs_status', 'generation_jobs', ['status'])
    op.create_index('ix_generation_jobs_retry_at', 'generation_jobs', ['retry_at'])
    op.create_index('ix_generation_jobs_status_retry', 'generation_jobs', ['status', 'retry_at'])
    op.create_index('ix_generation_jobs_locked', 'generation_jobs', ['locked_at', 'locked_by'])
    op.create_index(
        'uq_generation_jobs_active',
        'generation_jobs',
        ['asset_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('queued', 'running')"),
    )

    op.create_table(
        'system_assets',
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('telegram_file_id', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('system_assets')
    op.drop_index('uq_generation_jobs_active', table_name='generation_jobs')
    op.drop_index('ix_generation_jobs_locked', table_name='generation_jobs')
    op.drop_index('ix_generation_jobs_status_retry', table_name='generation_jobs')
    op.drop_index('ix_generation_jobs_retry_at', table_name='generation_jobs')
    op.drop_index('ix_generation_jobs_status', table_name='generation_jobs')
    op.drop_index('ix_generation_jobs_asset_id', table_name='generation_jobs')
    op.drop_table('generation_jobs')
    op.drop_index('ix_user_requests_asset_status_created', table_name='user_requests')
    op.drop_index('ix_user_requests_user_id', table_name='user_requests')
    op.drop_table('user_requests')
    op.drop_index('ix_video_assets_status_updated', table_name='video_assets')
    op.drop_index('uq_video_assets_name', table_name='video_assets')
    op.drop_table('video_assets')
    op.drop_table('conversation_sessions')
    op.drop_table('bot_users')
