from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.cdms.models import Base


class Standard(Base):
    __tablename__ = "standards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)  # e.g. "ISO 9001"

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Section(Base):
    """
    A clause or sub-clause of a Standard.

    The hierarchy is a two-level forest: parent_section_id may only point at a
    section that itself has no parent.
    """

    __tablename__ = "sections"
    __table_args__ = (
        Index("idx_sections_standard", "standard_id"),
        Index("idx_sections_parent", "parent_section_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    code: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "4.1"
    ref_code: Mapped[str | None] = mapped_column(String(32), nullable=True)  # short code for reference codes
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # No FK: deleting a Standard leaves sections pointing at it.
    standard_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parent_section_id: Mapped[int | None] = mapped_column(
        ForeignKey("sections.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def facet_code(self) -> str:
        return (self.ref_code or "").strip() or (self.code or "").strip()


class DocumentType(Base):
    __tablename__ = "document_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "Policy"
    ref_code: Mapped[str | None] = mapped_column(String(32), nullable=True)  # e.g. "POL"
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
