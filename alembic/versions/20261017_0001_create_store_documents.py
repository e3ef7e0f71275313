"""create store_documents table

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "store_documents",
        sa.Column(
            "path",
            sa.String(length=512),
            nullable=False,
            comment="Slash-separated document path, e.g. players/EU5__42/scans/1700000000",
        ),
        sa.Column(
            "collection",
            sa.String(length=255),
            nullable=False,
            comment="Parent collection path (path without the last segment)",
        ),
        sa.Column(
            "data",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Document payload",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("path"),
    )
    op.create_index("ix_store_documents_collection", "store_documents", ["collection"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_store_documents_collection", table_name="store_documents")
    op.drop_table("store_documents")
