"""Initial document lifecycle schema.

Revision ID: a0c1d2e3f4a5
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0c1d2e3f4a5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )

    op.create_table(
        "standards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )

    op.create_table(
        "sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("ref_code", sa.String(32), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("standard_id", sa.Integer(), nullable=True),
        sa.Column("parent_section_id", sa.Integer(), sa.ForeignKey("sections.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index("idx_sections_standard", "sections", ["standard_id"])
    op.create_index("idx_sections_parent", "sections", ["parent_section_id"])

    op.create_table(
        "document_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("ref_code", sa.String(32), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("reference_code", sa.String(128), nullable=False),
        sa.Column("document_type_id", sa.Integer(), nullable=False),
        sa.Column("section_id", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(32), nullable=True),
        sa.Column("file_url", sa.String(1024), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("current_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("review_period_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
        sa.CheckConstraint("current_version >= 1", name="ck_documents_current_version_positive"),
    )
    op.create_index(
        "uq_documents_active_reference_code",
        "documents",
        ["reference_code"],
        unique=True,
        sqlite_where=sa.text("archived = 0"),
        postgresql_where=sa.text("archived = false"),
    )
    op.create_index("idx_documents_section", "documents", ["section_id"])
    op.create_index("idx_documents_type", "documents", ["document_type_id"])
    op.create_index("idx_documents_archived", "documents", ["archived"])

    op.create_table(
        "document_archive",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("archived_version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("reference_code", sa.String(128), nullable=False),
        sa.Column("file_url", sa.String(1024), nullable=True),
        sa.Column("document_type_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("section_id", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("change_summary", sa.String(1024), nullable=False),
        sa.Column("change_date", sa.DateTime(timezone=False), nullable=False),
        sa.Column("archived_by", sa.String(320), nullable=True),
        sa.UniqueConstraint("document_id", "archived_version", "change_date", name="uq_document_archive_version_date"),
    )
    op.create_index("idx_document_archive_document", "document_archive", ["document_id"])
    op.create_index("idx_document_archive_change_date", "document_archive", ["change_date"])


def downgrade() -> None:
    op.drop_index("idx_document_archive_change_date", table_name="document_archive")
    op.drop_index("idx_document_archive_document", table_name="document_archive")
    op.drop_table("document_archive")
    op.drop_index("idx_documents_archived", table_name="documents")
    op.drop_index("idx_documents_type", table_name="documents")
    op.drop_index("idx_documents_section", table_name="documents")
    op.drop_index("uq_documents_active_reference_code", table_name="documents")
    op.drop_table("documents")
    op.drop_table("document_types")
    op.drop_index("idx_sections_parent", table_name="sections")
    op.drop_index("idx_sections_standard", table_name="sections")
    op.drop_table("sections")
    op.drop_table("standards")
    op.drop_table("audit_events")
