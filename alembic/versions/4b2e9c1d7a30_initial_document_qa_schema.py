"""initial document qa schema

Revision ID: 4b2e9c1d7a30
Revises:
Create Date: 2026-10-16 09:12:41.208115

"""
from typing import Sequence, Union

from alembic import op
from pgvector.sqlalchemy import Vector
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4b2e9c1d7a30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _json_column(name: str = 'metadata') -> sa.Column:
    return sa.Column(name, postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='{}')


def _chunk_table(table_name: str, dimensions: int) -> None:
    op.create_table(
        table_name,
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('document_slug', sa.String(120), sa.ForeignKey('documents.slug'), nullable=False),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('documents.id'), nullable=True),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('embedding', Vector(dimensions), nullable=False),
        _json_column(),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('document_slug', 'chunk_index', name=f'uq_{table_name}_slug_index'),
    )
    op.create_index(op.f(f'ix_{table_name}_document_slug'), table_name, ['document_slug'], unique=False)
    op.create_index(op.f(f'ix_{table_name}_document_id'), table_name, ['document_id'], unique=False)
    op.execute(
        f"CREATE INDEX ix_{table_name}_content_fts ON {table_name} "
        f"USING gin (to_tsvector('english', content))"
    )
    op.execute(
        f"CREATE INDEX ix_{table_name}_embedding_hnsw ON {table_name} "
        f"USING hnsw (embedding vector_cosine_ops)"
    )


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    op.create_table(
        'owners',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('default_chunk_limit', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('forced_model', sa.String(50), nullable=True),
        _json_column(),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint(
            'default_chunk_limit > 0 AND default_chunk_limit <= 200',
            name='ck_owners_default_chunk_limit',
        ),
    )
    op.create_index(op.f('ix_owners_slug'), 'owners', ['slug'], unique=True)

    op.create_table(
        'user_owner_access',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('owner_id', sa.String(36), sa.ForeignKey('owners.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(30), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'owner_id', name='uq_user_owner_access'),
    )
    op.create_index(op.f('ix_user_owner_access_user_id'), 'user_owner_access', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_owner_access_owner_id'), 'user_owner_access', ['owner_id'], unique=False)

    op.create_table(
        'documents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('subtitle', sa.String(500), nullable=True),
        sa.Column('intro_message', sa.Text(), nullable=True),
        sa.Column('owner_id', sa.String(36), sa.ForeignKey('owners.id', ondelete='SET NULL'), nullable=True),
        sa.Column('access_level', sa.String(30), nullable=False, server_default='owner_restricted'),
        sa.Column('passcode', sa.String(100), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('embedding_type', sa.String(20), nullable=False, server_default='openai'),
        sa.Column('forced_model', sa.String(50), nullable=True),
        _json_column(),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index(op.f('ix_documents_slug'), 'documents', ['slug'], unique=True)
    op.create_index(op.f('ix_documents_owner_id'), 'documents', ['owner_id'], unique=False)

    _chunk_table('document_chunks', 1536)
    _chunk_table('document_chunks_local', 384)

    op.create_table(
        'user_documents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('owner_id', sa.String(36), sa.ForeignKey('owners.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('file_path', sa.String(1000), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processing_method', sa.String(30), nullable=True),
        sa.Column('document_slug', sa.String(120), nullable=True),
        _json_column(),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'ready', 'error')",
            name='ck_user_documents_status',
        ),
    )
    op.create_index(op.f('ix_user_documents_user_id'), 'user_documents', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_documents_status'), 'user_documents', ['status'], unique=False)

    op.create_table(
        'document_processing_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'user_document_id',
            sa.String(36),
            sa.ForeignKey('user_documents.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('document_slug', sa.String(120), nullable=True),
        sa.Column('stage', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('processing_method', sa.String(30), nullable=True),
        _json_column(),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index(
        op.f('ix_document_processing_logs_user_document_id'),
        'document_processing_logs',
        ['user_document_id'],
        unique=False,
    )

    op.create_table(
        'chat_conversations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('session_id', sa.String(36), nullable=False),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('response', sa.Text(), nullable=False),
        sa.Column('model', sa.String(50), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=False),
        sa.Column('chunks_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('retrieval_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('document_ids', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('document_slugs', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('share_token', sa.String(64), nullable=True),
        sa.Column('banned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ban_reason', sa.String(50), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        _json_column(),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('share_token', name='uq_chat_conversations_share_token'),
        sa.CheckConstraint('NOT banned OR share_token IS NULL', name='ck_chat_conversations_banned_share'),
    )
    op.create_index(op.f('ix_chat_conversations_session_id'), 'chat_conversations', ['session_id'], unique=False)
    op.create_index(op.f('ix_chat_conversations_user_id'), 'chat_conversations', ['user_id'], unique=False)


def downgrade() -> None:
    op.drop_table('chat_conversations')
    op.drop_table('document_processing_logs')
    op.drop_table('user_documents')
    op.drop_table('document_chunks_local')
    op.drop_table('document_chunks')
    op.drop_table('documents')
    op.drop_table('user_owner_access')
    op.drop_table('owners')
