"""initial_schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

Workspaces, WhatsApp instances, contacts, conversations and messages, personas,
departments, vendor integrations and the knowledge base.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.DateTime(), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(), nullable=False))
    return columns


def _workspace_fk():
    return sa.Column('workspace_id', sa.String(36), sa.ForeignKey('workspaces.id', ondelete='CASCADE'), nullable=False)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'instances',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('provider_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('phone_number', sa.String(30), nullable=True),
        sa.Column('qr_code', sa.Text(), nullable=True),
        sa.Column('profile_picture_url', sa.Text(), nullable=True),
        sa.Column('provider_config', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_instances_workspace_id', 'instances', ['workspace_id'])

    op.create_table(
        'departments',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(20), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_departments_workspace_id', 'departments', ['workspace_id'])

    op.create_table(
        'contacts',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('instance_id', sa.String(36), sa.ForeignKey('instances.id', ondelete='CASCADE'), nullable=False),
        sa.Column('phone_number', sa.String(30), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('push_name', sa.String(255), nullable=True),
        sa.Column('profile_picture_url', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('instance_id', 'phone_number', name='uq_contacts_instance_phone'),
    )
    op.create_index('ix_contacts_workspace_id', 'contacts', ['workspace_id'])

    op.create_table(
        'conversations',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('instance_id', sa.String(36), sa.ForeignKey('instances.id', ondelete='CASCADE'), nullable=False),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attendance_mode', sa.String(20), nullable=False),
        sa.Column('unread_count', sa.Integer(), nullable=False),
        sa.Column('last_message_at', sa.DateTime(), nullable=True),
        sa.Column('assigned_to', sa.String(36), nullable=True),
        sa.Column('department_id', sa.String(36), sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_conversations_workspace_id', 'conversations', ['workspace_id'])
    # At most one open conversation per (instance, contact)
    op.create_index(
        'uq_conversations_open_thread',
        'conversations',
        ['instance_id', 'contact_id'],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('conversation_id', sa.String(36), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('instance_id', sa.String(36), sa.ForeignKey('instances.id', ondelete='CASCADE'), nullable=False),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('message_type', sa.String(20), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('media_mime_type', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('whatsapp_message_id', sa.String(255), nullable=True),
        sa.Column('is_from_bot', sa.Boolean(), nullable=False),
        sa.Column('audio_transcription', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_messages_instance_wa_id', 'messages', ['instance_id', 'whatsapp_message_id'])
    op.create_index('ix_messages_conversation_created', 'messages', ['conversation_id', 'created_at'])

    op.create_table(
        'personas',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('system_prompt', sa.Text(), nullable=False),
        sa.Column('temperature', sa.Float(), nullable=False),
        sa.Column('voice_enabled', sa.Boolean(), nullable=False),
        sa.Column('voice_id', sa.String(100), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('bitrix24_bot_enabled', sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_personas_workspace_id', 'personas', ['workspace_id'])

    op.create_table(
        'integrations',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('workspace_id', 'type', name='uq_integrations_workspace_type'),
    )

    op.create_table(
        'knowledge_documents',
        sa.Column('id', sa.String(36), primary_key=True),
        _workspace_fk(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('source_type', sa.String(20), nullable=False),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('chunks_count', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_knowledge_documents_workspace_id', 'knowledge_documents', ['workspace_id'])

    op.create_table(
        'knowledge_chunks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('knowledge_documents.id', ondelete='CASCADE'), nullable=False),
        _workspace_fk(),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('tokens_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_knowledge_chunks_document_id', 'knowledge_chunks', ['document_id'])
    op.create_index('ix_knowledge_chunks_workspace_id', 'knowledge_chunks', ['workspace_id'])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'knowledge_chunks',
        'knowledge_documents',
        'integrations',
        'personas',
        'messages',
        'conversations',
        'contacts',
        'departments',
        'instances',
        'workspaces',
    ):
        op.drop_table(table)
