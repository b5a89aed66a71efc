from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module-specific tables can refer to it by id if needed.
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Opaque caller identity; not resolved against any user table.
    actor: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "document.archive"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Document"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)  # reason-for-change, e.g. an archive summary
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.cdms.modules.classification.models import DocumentType, Section, Standard  # noqa: E402,F401
from app.cdms.modules.document_control.models import Document, DocumentArchiveEntry  # noqa: E402,F401
