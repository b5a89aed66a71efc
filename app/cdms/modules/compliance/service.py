"""
Compliance projection: one denormalized, read-only summary row per document.

Review-due dates are derived here and never stored.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cdms.errors import ValidationError
from app.cdms.modules.classification.models import DocumentType, Section, Standard
from app.cdms.modules.document_control.models import Document
from app.cdms.utils import add_months, natural_key

SORTABLE_COLUMNS = (
    "title",
    "reference_code",
    "standard_name",
    "section_code",
    "section_title",
    "document_type_name",
    "location",
    "current_version",
    "last_reviewed_at",
    "review_due",
    "complete",
)


def review_due(last_reviewed_at: datetime | None, created_at: datetime | None, review_period_months: int | None):
    """(last_reviewed_at or created_at) + review_period_months; None if undefined."""
    base = last_reviewed_at or created_at
    if base is None or not review_period_months:
        return None
    return add_months(base, review_period_months)


@dataclass(frozen=True)
class ComplianceRow:
    document_id: int
    title: str
    reference_code: str
    location: str | None
    current_version: int
    standard_id: int | None
    standard_name: str | None
    section_id: int | None
    section_code: str | None
    section_title: str | None
    document_type_id: int
    document_type_name: str | None
    last_reviewed_at: datetime | None
    review_due: datetime | None
    overdue: bool
    complete: bool

    def to_dict(self) -> dict:
        out = asdict(self)
        for key in ("last_reviewed_at", "review_due"):
            if out[key] is not None:
                out[key] = out[key].isoformat()
        return out


def _sort_value(row: ComplianceRow, column: str):
    value = getattr(row, column)
    if isinstance(value, str):
        return natural_key(value)
    return value


@dataclass
class ComplianceProjection:
    s: Session

    def rows(self, *, now: datetime | None = None) -> list[ComplianceRow]:
        now = now or datetime.utcnow()
        q = (
            select(Document, Section, Standard, DocumentType)
            .outerjoin(Section, Section.id == Document.section_id)
            .outerjoin(Standard, Standard.id == Section.standard_id)
            .outerjoin(DocumentType, DocumentType.id == Document.document_type_id)
            .where(Document.archived.is_(False))
        )
        out: list[ComplianceRow] = []
        for doc, sec, std, dt in self.s.execute(q).all():
            due = review_due(doc.last_reviewed_at, doc.created_at, doc.review_period_months)
            out.append(
                ComplianceRow(
                    document_id=doc.id,
                    title=doc.title,
                    reference_code=doc.reference_code,
                    location=doc.location,
                    current_version=doc.current_version,
                    standard_id=sec.standard_id if sec else None,
                    standard_name=std.name if std else None,
                    section_id=doc.section_id,
                    section_code=sec.code if sec else None,
                    section_title=sec.title if sec else None,
                    document_type_id=doc.document_type_id,
                    document_type_name=dt.name if dt else None,
                    last_reviewed_at=doc.last_reviewed_at,
                    review_due=due,
                    overdue=bool(due and due < now),
                    complete=bool(sec and std and dt),
                )
            )
        return out

    def summary(
        self,
        *,
        search: str | None = None,
        standard_id: int | None = None,
        document_type_id: int | None = None,
        section_id: int | None = None,
        overdue_only: bool = False,
        sort: str = "reference_code",
        descending: bool = False,
        now: datetime | None = None,
    ) -> list[ComplianceRow]:
        if sort not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort by {sort!r}.", field="sort", allowed=list(SORTABLE_COLUMNS))

        rows = self.rows(now=now)
        needle = (search or "").strip().casefold()
        if needle:
            rows = [
                r
                for r in rows
                if needle in r.title.casefold()
                or needle in r.reference_code.casefold()
                or needle in (r.section_title or "").casefold()
            ]
        if standard_id is not None:
            rows = [r for r in rows if r.standard_id == standard_id]
        if document_type_id is not None:
            rows = [r for r in rows if r.document_type_id == document_type_id]
        if section_id is not None:
            rows = [r for r in rows if r.section_id == section_id]
        if overdue_only:
            rows = [r for r in rows if r.overdue]

        # Ties keep document id order; rows without a value go last.
        rows.sort(key=lambda r: r.document_id)
        present = [r for r in rows if getattr(r, sort) is not None]
        missing = [r for r in rows if getattr(r, sort) is None]
        present.sort(key=lambda r: _sort_value(r, sort), reverse=descending)
        return present + missing
