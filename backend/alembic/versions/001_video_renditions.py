"""Video rendition columns.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'videos',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('video_url', sa.String(512), nullable=True),
        sa.Column('thumbnail_url', sa.String(512), nullable=True),
        sa.Column('video_url_high', sa.String(512), nullable=True),
        sa.Column('video_url_medium', sa.String(512), nullable=True),
        sa.Column('video_url_low', sa.String(512), nullable=True),
        sa.Column('transcode_status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('transcode_error', sa.Text(), nullable=True),
        sa.Column('transcode_task_id', sa.String(255), nullable=True),
        sa.Column('original_size', sa.BigInteger(), nullable=True),
        sa.Column('compressed_size', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Migration batch selects sources without a high rendition
    op.create_index(
        'ix_videos_pending_transcode',
        'videos',
        ['video_url_high'],
        postgresql_where=sa.text('video_url IS NOT NULL AND video_url_high IS NULL'),
    )


def downgrade() -> None:
    op.drop_index('ix_videos_pending_transcode', table_name='videos')
    op.drop_table('videos')
