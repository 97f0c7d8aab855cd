"""create chunk upload tables

Revision ID: 001_create_chunk_upload_tables
Revises: 
Create Date: 18-10-2026 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_create_chunk_upload_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'chunk_sessions',
        sa.Column('session_id', sa.String(), primary_key=True),
        sa.Column('original_file_name', sa.String(), nullable=False),
        sa.Column('file_type', sa.String(), nullable=True),
        sa.Column('total_chunks', sa.Integer(), nullable=False),
        sa.Column('received_chunks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('target_folder_id', sa.String(), nullable=False),
        sa.Column('gym_slug', sa.String(), nullable=True),
        sa.Column('gym_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('last_activity', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_chunk_sessions_gym_slug', 'chunk_sessions', ['gym_slug'])
    op.create_index('ix_chunk_sessions_last_activity', 'chunk_sessions', ['last_activity'])

    # (session_id, chunk_index) is the upsert target for re-sent chunks
    op.create_table(
        'file_chunks',
        sa.Column('session_id', sa.String(), primary_key=True),
        sa.Column('chunk_index', sa.Integer(), primary_key=True),
        sa.Column('total_chunks', sa.Integer(), nullable=False),
        sa.Column('original_file_name', sa.String(), nullable=False),
        sa.Column('file_type', sa.String(), nullable=True),
        sa.Column('chunk_storage_path', sa.String(), nullable=False),
        sa.Column('chunk_size', sa.BigInteger(), nullable=False),
        sa.Column('checksum', sa.String(length=64), nullable=True),
        sa.Column('gym_slug', sa.String(), nullable=True),
        sa.Column('gym_name', sa.String(), nullable=True),
        sa.Column('target_folder_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('last_activity', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_file_chunks_last_activity', 'file_chunks', ['last_activity'])


def downgrade() -> None:
    op.drop_index('ix_file_chunks_last_activity', table_name='file_chunks')
    op.drop_table('file_chunks')
    op.drop_index('ix_chunk_sessions_last_activity', table_name='chunk_sessions')
    op.drop_index('ix_chunk_sessions_gym_slug', table_name='chunk_sessions')
    op.drop_table('chunk_sessions')
