"""create_documents_table

Revision ID: 3f2b9c1d7e4a
Revises:
Create Date: 2026-10-12 09:41:17.204518

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f2b9c1d7e4a'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the document store table.

    Creates:
    - documents table holding every collection's JSON bodies
    - (collection, tenant_id) index used by every query
    - version column checked by every document write
    """
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('collection', sa.String(length=100), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('body', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'ix_documents_collection_tenant', 'documents', ['collection', 'tenant_id']
    )


def downgrade() -> None:
    """Drop the document store table."""
    op.drop_index('ix_documents_collection_tenant', table_name='documents')
    op.drop_table('documents')
