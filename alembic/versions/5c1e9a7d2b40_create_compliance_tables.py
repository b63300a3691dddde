"""Create document compliance tables

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5c1e9a7d2b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # Read-only catalogs
    op.create_table('schemes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('document_types',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table('checklist_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('item_text', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('uploaded_documents',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('original_filename', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False),
        sa.Column('content_hash', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('index_status', sa.String(), nullable=False),
        sa.Column('progress_stage', sa.String(), nullable=True),
        sa.Column('remote_file_id', sa.String(), nullable=True),
        sa.Column('remote_index_id', sa.String(), nullable=True),
        sa.Column('uploaded_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_analyzed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deletion_source', sa.String(), nullable=True, comment='user | system'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('remote_file_id'),
        sa.UniqueConstraint('remote_index_id')
    )
    op.create_index('ix_uploaded_documents_user_id', 'uploaded_documents', ['user_id'])
    op.create_index('ix_uploaded_documents_content_hash', 'uploaded_documents', ['content_hash'])
    op.create_index('ix_uploaded_documents_status', 'uploaded_documents', ['status'])
    op.create_index('ix_uploaded_documents_progress_stage', 'uploaded_documents', ['progress_stage'])
    op.create_index('ix_uploaded_documents_expires_at', 'uploaded_documents', ['expires_at'])

    op.create_table('evaluations',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('uploaded_document_id', sa.UUID(), nullable=False),
        sa.Column('scheme_id', sa.UUID(), nullable=False),
        sa.Column('document_type_id', sa.UUID(), nullable=False),
        sa.Column('evaluation_date', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('conversation_id', sa.String(), nullable=True),
        sa.Column('summary_stats', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('processing_time', sa.Integer(), nullable=True, comment='Seconds'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('deleted_by_id', sa.UUID(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['uploaded_document_id'], ['uploaded_documents.id']),
        sa.ForeignKeyConstraint(['scheme_id'], ['schemes.id']),
        sa.ForeignKeyConstraint(['document_type_id'], ['document_types.id']),
        sa.ForeignKeyConstraint(['deleted_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_evaluations_user_id', 'evaluations', ['user_id'])
    op.create_index('ix_evaluations_evaluation_date', 'evaluations', ['evaluation_date'])
    op.create_index('ix_evaluations_status', 'evaluations', ['status'])
    op.create_index('ix_evaluations_deleted_at', 'evaluations', ['deleted_at'])

    op.create_table('evaluation_item_results',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('evaluation_id', sa.UUID(), nullable=False),
        sa.Column('checklist_item_id', sa.UUID(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, comment='Yes | No | Partial'),
        sa.Column('remarks', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=True),
        sa.ForeignKeyConstraint(['evaluation_id'], ['evaluations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['checklist_item_id'], ['checklist_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('evaluation_id', 'checklist_item_id', name='uq_evaluation_item_results_item')
    )
    op.create_index('ix_evaluation_item_results_status', 'evaluation_item_results', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_evaluation_item_results_status', table_name='evaluation_item_results')
    op.drop_table('evaluation_item_results')
    op.drop_index('ix_evaluations_deleted_at', table_name='evaluations')
    op.drop_index('ix_evaluations_status', table_name='evaluations')
    op.drop_index('ix_evaluations_evaluation_date', table_name='evaluations')
    op.drop_index('ix_evaluations_user_id', table_name='evaluations')
    op.drop_table('evaluations')
    op.drop_index('ix_uploaded_documents_expires_at', table_name='uploaded_documents')
    op.drop_index('ix_uploaded_documents_progress_stage', table_name='uploaded_documents')
    op.drop_index('ix_uploaded_documents_status', table_name='uploaded_documents')
    op.drop_index('ix_uploaded_documents_content_hash', table_name='uploaded_documents')
    op.drop_index('ix_uploaded_documents_user_id', table_name='uploaded_documents')
    op.drop_table('uploaded_documents')
    op.drop_table('checklist_items')
    op.drop_table('document_types')
    op.drop_table('schemes')
    op.drop_table('users')
