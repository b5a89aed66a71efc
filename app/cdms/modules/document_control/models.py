from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.cdms.models import Base


class Document(Base):
    """
    The live ("current truth") row of a controlled document.

    Archived rows keep their reference_code for history; only non-archived rows
    take part in the uniqueness index.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index(
            "uq_documents_active_reference_code",
            "reference_code",
            unique=True,
            sqlite_where=text("archived = 0"),
            postgresql_where=text("archived = false"),
        ),
        Index("idx_documents_section", "section_id"),
        Index("idx_documents_type", "document_type_id"),
        Index("idx_documents_archived", "archived"),
        CheckConstraint("current_version >= 1", name="ck_documents_current_version_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_code: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "EN-POL-4.1-001"

    # Classification facets. No FKs: orphaned references are tolerated.
    document_type_id: Mapped[int] = mapped_column(Integer, nullable=False)
    section_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str | None] = mapped_column(String(32), nullable=True)  # England, Wales, Poland, Group

    file_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    review_period_months: Mapped[int] = mapped_column(Integer, nullable=False, default=12)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    archive_entries: Mapped[list["DocumentArchiveEntry"]] = relationship(
        "DocumentArchiveEntry",
        back_populates="document",
        lazy="selectin",
        order_by="DocumentArchiveEntry.change_date",
        passive_deletes="all",
    )


class DocumentArchiveEntry(Base):
    """
    Immutable snapshot of a Document taken at archive or supersession time.
    Rows are append-only: the ORM refuses updates and deletes.
    """

    __tablename__ = "document_archive"
    __table_args__ = (
        UniqueConstraint("document_id", "archived_version", "change_date", name="uq_document_archive_version_date"),
        Index("idx_document_archive_document", "document_id"),
        Index("idx_document_archive_change_date", "change_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False)
    archived_version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Snapshot of the document row
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    reference_code: Mapped[str] = mapped_column(String(128), nullable=False)
    file_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    document_type_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    section_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    change_summary: Mapped[str] = mapped_column(String(1024), nullable=False)
    change_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    archived_by: Mapped[str | None] = mapped_column(String(320), nullable=True)

    document: Mapped[Document] = relationship(
        "Document",
        back_populates="archive_entries",
        lazy="selectin",
    )


class ImmutableArchiveEntryError(RuntimeError):
    pass


@event.listens_for(DocumentArchiveEntry, "before_update")
def _refuse_archive_update(mapper, connection, target):  # type: ignore[no-redef]
    raise ImmutableArchiveEntryError(f"Archive entry {target.id} is append-only and cannot be modified.")


@event.listens_for(DocumentArchiveEntry, "before_delete")
def _refuse_archive_delete(mapper, connection, target):  # type: ignore[no-redef]
    raise ImmutableArchiveEntryError(f"Archive entry {target.id} is append-only and cannot be deleted.")
