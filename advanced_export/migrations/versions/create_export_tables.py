"""create export_jobs and export_notifications tables

Revision ID: create_export_tables
Revises:
Create Date: 2025-01-07 16:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'create_export_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create export_jobs and export_notifications tables"""

    op.create_table(
        'export_jobs',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('entity_type', sa.String(length=100), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'failed', name='exportstatus'), nullable=False),
        sa.Column('total_records', sa.Integer(), nullable=True),
        sa.Column('processed_records', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('disk', sa.String(length=50), nullable=False, server_default='local'),
        sa.Column('path', sa.String(length=500), nullable=True),
        sa.Column('filters', sa.JSON(), nullable=True),
        sa.Column('celery_task_id', sa.String(length=255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('owner_user_id', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),

        # Primary key
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid', name='uq_export_jobs_uuid'),
    )

    # Indexes for performance
    op.create_index('ix_export_jobs_entity_type', 'export_jobs', ['entity_type'])
    op.create_index('ix_export_jobs_created_at', 'export_jobs', ['created_at'])
    op.create_index('ix_export_jobs_owner_status', 'export_jobs', ['owner_user_id', 'status'])

    op.create_table(
        'export_notifications',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(length=50), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('action_url', sa.String(length=1000), nullable=True),
        sa.Column('action_label', sa.String(length=100), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_export_notifications_user_read', 'export_notifications', ['user_id', 'read_at'])


def downgrade() -> None:
    """Drop export tables"""
    op.drop_index('ix_export_notifications_user_read', table_name='export_notifications')
    op.drop_table('export_notifications')

    op.drop_index('ix_export_jobs_owner_status', table_name='export_jobs')
    op.drop_index('ix_export_jobs_created_at', table_name='export_jobs')
    op.drop_index('ix_export_jobs_entity_type', table_name='export_jobs')
    op.drop_table('export_jobs')

    # Drop custom enum
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TYPE IF EXISTS exportstatus")
