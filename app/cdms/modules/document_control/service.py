"""
Document version manager.

The documents table holds the current truth; document_archive holds
immutable snapshots. Every write path keeps two ordering rules:

- a snapshot is written (and flushed) before its document is flagged
  archived, so a failure in between never loses history;
- reference-code uniqueness is checked before the write for a friendly
  message, and enforced at write time by the partial unique index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.cdms.audit import record_event
from app.cdms.constants import AUTO_ARCHIVE_SUMMARY, DEFAULT_REVIEW_PERIOD_MONTHS
from app.cdms.errors import (
    DocumentArchivedError,
    DuplicateReferenceCodeError,
    MissingActorError,
    MissingFieldError,
    MissingSummaryError,
    NotFoundError,
)
from app.cdms.modules.classification.service import ClassificationStore
from app.cdms.modules.document_control.models import Document, DocumentArchiveEntry
from app.cdms.modules.document_control.payloads import AmendFields, DocumentMeta
from app.cdms.modules.reference_codes.service import ReferenceCodeAllocator
from app.cdms.utils import check_length, clean_str, column_length, natural_key

logger = logging.getLogger(__name__)

UNIQUE_INDEX_NAME = "uq_documents_active_reference_code"


def is_reference_code_violation(exc: IntegrityError) -> bool:
    msg = str(getattr(exc, "orig", exc))
    return UNIQUE_INDEX_NAME in msg or "documents.reference_code" in msg


def snapshot(doc: Document, *, change_summary: str, archived_by: str | None, when: datetime) -> DocumentArchiveEntry:
    return DocumentArchiveEntry(
        document_id=doc.id,
        archived_version=doc.current_version,
        title=doc.title,
        reference_code=doc.reference_code,
        file_url=doc.file_url,
        document_type_id=doc.document_type_id,
        notes=doc.notes,
        section_id=doc.section_id,
        location=doc.location,
        created_at=doc.created_at,
        change_summary=change_summary,
        change_date=when,
        archived_by=archived_by,
    )


def _doc_meta(doc: Document) -> dict:
    return {
        "title": doc.title,
        "reference_code": doc.reference_code,
        "document_type_id": doc.document_type_id,
        "section_id": doc.section_id,
        "location": doc.location,
        "current_version": doc.current_version,
    }


@dataclass
class DocumentVersionManager:
    s: Session
    allocator: ReferenceCodeAllocator
    classification: ClassificationStore
    default_review_period_months: int = DEFAULT_REVIEW_PERIOD_MONTHS

    @classmethod
    def for_session(
        cls,
        s: Session,
        *,
        suggestion_limit: int | None = None,
        default_review_period_months: int = DEFAULT_REVIEW_PERIOD_MONTHS,
    ) -> "DocumentVersionManager":
        allocator = ReferenceCodeAllocator(s) if suggestion_limit is None else ReferenceCodeAllocator(s, suggestion_limit)
        return cls(
            s=s,
            allocator=allocator,
            classification=ClassificationStore(s),
            default_review_period_months=default_review_period_months,
        )

    # -- reads ---------------------------------------------------------------

    def get(self, document_id: int) -> Document:
        doc = self.s.get(Document, document_id)
        if not doc:
            raise NotFoundError("Document", document_id)
        return doc

    def list_documents(self, *, include_archived: bool = False, archived_only: bool = False) -> list[Document]:
        q = select(Document)
        if archived_only:
            q = q.where(Document.archived.is_(True))
        elif not include_archived:
            q = q.where(Document.archived.is_(False))
        rows = self.s.scalars(q).all()
        return sorted(rows, key=lambda d: (natural_key(d.reference_code), d.id))

    def get_archive_entry(self, entry_id: int) -> DocumentArchiveEntry:
        entry = self.s.get(DocumentArchiveEntry, entry_id)
        if not entry:
            raise NotFoundError("DocumentArchiveEntry", entry_id)
        return entry

    def list_archive_entries(self, document_id: int | None = None) -> list[DocumentArchiveEntry]:
        """Newest first; optionally restricted to one document's history."""
        q = select(DocumentArchiveEntry)
        if document_id is not None:
            q = q.where(DocumentArchiveEntry.document_id == document_id)
        q = q.order_by(DocumentArchiveEntry.change_date.desc(), DocumentArchiveEntry.id.desc())
        return list(self.s.scalars(q).all())

    # -- helpers -------------------------------------------------------------

    def _require_active(self, doc: Document) -> None:
        if doc.archived:
            raise DocumentArchivedError(doc.id)

    def _check_facets(self, document_type_id: int | None, section_id: int | None) -> None:
        if document_type_id is not None:
            self.classification.get_document_type(document_type_id)
        if section_id is not None:
            self.classification.get_section(section_id)

    def _resolve_code(self, meta: DocumentMeta) -> str:
        code = clean_str(meta.reference_code)
        if not code and meta.reference_suffix:
            code = self.allocator.build_code(meta.location, meta.document_type_id, meta.section_id, meta.reference_suffix)
        if not code:
            raise MissingFieldError("reference_code", "Reference code is required.")
        return check_length(code, field="reference_code", limit=column_length(Document, "reference_code"))

    def _duplicate(self, code: str, exc: IntegrityError) -> DuplicateReferenceCodeError:
        logger.warning("Reference code %s lost a write race: %s", code, exc.orig)
        return DuplicateReferenceCodeError(code, self.allocator.suggest(code))

    def _find_predecessor(self, code: str, section_id: int | None) -> Document | None:
        if section_id is None:
            return None
        q = (
            select(Document)
            .where(
                Document.reference_code == code,
                Document.section_id == section_id,
                Document.archived.is_(False),
            )
            .order_by(Document.current_version.desc(), Document.id.desc())
            .limit(1)
        )
        return self.s.scalars(q).first()

    # -- writes --------------------------------------------------------------

    def create(self, meta: DocumentMeta, *, actor: str | None = None) -> Document:
        """
        Create a document. If an active document already has the same reference
        code in the same section, it is superseded: snapshotted with the
        auto-archive summary, flagged archived, and the new row continues its
        version number.
        """
        if not meta.title:
            raise MissingFieldError("title", "Title is required.")
        self._check_facets(meta.document_type_id, meta.section_id)
        code = self._resolve_code(meta)
        predecessor = self._find_predecessor(code, meta.section_id)
        self.allocator.ensure_available(code, predecessor.id if predecessor else None)

        now = datetime.utcnow()
        try:
            with self.s.begin_nested():
                version = 1
                if predecessor is not None:
                    version = predecessor.current_version + 1
                    self.s.add(snapshot(predecessor, change_summary=AUTO_ARCHIVE_SUMMARY, archived_by=None, when=now))
                    self.s.flush()
                    predecessor.archived = True
                    predecessor.updated_at = now
                    self.s.flush()

                # Re-check right before the insert; the index is the final word.
                self.allocator.ensure_available(code, None)

                doc = Document(
                    title=meta.title,
                    reference_code=code,
                    document_type_id=meta.document_type_id,
                    section_id=meta.section_id,
                    location=meta.location,
                    file_url=meta.file_url,
                    notes=meta.notes,
                    archived=False,
                    current_version=version,
                    review_period_months=meta.review_period_months or self.default_review_period_months,
                    last_reviewed_at=meta.last_reviewed_at,
                    created_at=now,
                    updated_at=now,
                )
                self.s.add(doc)
                self.s.flush()
        except IntegrityError as e:
            if not is_reference_code_violation(e):
                raise
            raise self._duplicate(code, e) from e

        if predecessor is not None:
            logger.info(
                "Superseded document id=%s by id=%s code=%s version=%s",
                predecessor.id,
                doc.id,
                code,
                version,
            )
            record_event(
                self.s,
                actor=actor,
                action="document.supersede",
                entity_type="Document",
                entity_id=str(predecessor.id),
                reason=AUTO_ARCHIVE_SUMMARY,
                metadata={"superseded_by": doc.id, "archived_version": predecessor.current_version},
            )
        else:
            logger.info("Created document id=%s code=%s", doc.id, code)
        record_event(
            self.s,
            actor=actor,
            action="document.create",
            entity_type="Document",
            entity_id=str(doc.id),
            metadata=_doc_meta(doc),
        )
        return doc

    def edit(self, document_id: int, meta: DocumentMeta, *, actor: str | None = None) -> Document:
        """
        Replace the metadata of an active document as a new version
        (current_version + 1). No archive entry is written.
        """
        doc = self.get(document_id)
        self._require_active(doc)
        self._check_facets(meta.document_type_id, meta.section_id)
        code = self._resolve_code(meta)
        self.allocator.ensure_available(code, doc.id)

        before = _doc_meta(doc)
        try:
            with self.s.begin_nested():
                doc.title = meta.title
                doc.reference_code = code
                doc.document_type_id = meta.document_type_id
                doc.section_id = meta.section_id
                doc.location = meta.location
                doc.file_url = meta.file_url
                doc.notes = meta.notes
                if meta.review_period_months is not None:
                    doc.review_period_months = meta.review_period_months
                if meta.last_reviewed_at is not None:
                    doc.last_reviewed_at = meta.last_reviewed_at
                doc.current_version = doc.current_version + 1
                doc.updated_at = datetime.utcnow()
                self.s.flush()
        except IntegrityError as e:
            if not is_reference_code_violation(e):
                raise
            raise self._duplicate(code, e) from e

        logger.info("New version of document id=%s version=%s", doc.id, doc.current_version)
        record_event(
            self.s,
            actor=actor,
            action="document.new_version",
            entity_type="Document",
            entity_id=str(doc.id),
            metadata={"before": before, "after": _doc_meta(doc)},
        )
        return doc

    def amend(self, document_id: int, fields: AmendFields, *, actor: str | None = None) -> Document:
        """
        Correct metadata in place. current_version, created_at, last_reviewed_at
        and review_period_months are left alone.
        """
        doc = self.get(document_id)
        self._require_active(doc)
        values = fields.values
        self._check_facets(values.get("document_type_id"), values.get("section_id"))

        code = values.get("reference_code")
        if code is not None and code != doc.reference_code:
            self.allocator.ensure_available(code, doc.id)

        changes = {}
        try:
            with self.s.begin_nested():
                for key, new in values.items():
                    old = getattr(doc, key)
                    if old != new:
                        changes[key] = {"old": old, "new": new}
                        setattr(doc, key, new)
                if changes:
                    doc.updated_at = datetime.utcnow()
                self.s.flush()
        except IntegrityError as e:
            if not is_reference_code_violation(e):
                raise
            raise self._duplicate(values.get("reference_code") or doc.reference_code, e) from e

        if changes:
            logger.info("Amended document id=%s fields=%s", doc.id, ",".join(sorted(changes)))
            record_event(
                self.s,
                actor=actor,
                action="document.amend",
                entity_type="Document",
                entity_id=str(doc.id),
                metadata={"changes": changes},
            )
        return doc

    def review(self, document_id: int, *, actor: str | None = None, now: datetime | None = None) -> Document:
        doc = self.get(document_id)
        self._require_active(doc)
        doc.last_reviewed_at = now or datetime.utcnow()
        self.s.flush()
        record_event(
            self.s,
            actor=actor,
            action="document.review",
            entity_type="Document",
            entity_id=str(doc.id),
            metadata={"last_reviewed_at": doc.last_reviewed_at.isoformat()},
        )
        return doc

    def archive(self, document_id: int, change_summary: str | None, actor: str | None) -> DocumentArchiveEntry:
        """
        Snapshot the document, then flag it archived.

        Summary and actor are validated before anything is read or written.
        """
        summary = clean_str(change_summary)
        if not summary:
            raise MissingSummaryError()
        actor = clean_str(actor)
        if not actor:
            raise MissingActorError()
        check_length(summary, field="change_summary", limit=column_length(DocumentArchiveEntry, "change_summary"))
        check_length(actor, field="actor", limit=column_length(DocumentArchiveEntry, "archived_by"))

        doc = self.get(document_id)
        self._require_active(doc)

        now = datetime.utcnow()
        with self.s.begin_nested():
            entry = snapshot(doc, change_summary=summary, archived_by=actor, when=now)
            self.s.add(entry)
            self.s.flush()
            doc.archived = True
            doc.updated_at = now
            self.s.flush()

        logger.info("Archived document id=%s entry=%s by=%s", doc.id, entry.id, actor)
        record_event(
            self.s,
            actor=actor,
            action="document.archive",
            entity_type="Document",
            entity_id=str(doc.id),
            reason=summary,
            metadata={"archive_entry_id": entry.id, "archived_version": entry.archived_version},
        )
        return entry

    def restore(self, archive_entry_id: int, *, actor: str | None = None) -> Document:
        """
        Reactivate the document an archive entry belongs to. Only the archived
        flag changes; the entry's snapshot is not copied back. Fails with
        DuplicateReferenceCodeError if another active document now holds the code.
        """
        entry = self.get_archive_entry(archive_entry_id)
        doc = self.get(entry.document_id)
        if not doc.archived:
            return doc

        self.allocator.ensure_available(doc.reference_code, doc.id)
        try:
            with self.s.begin_nested():
                doc.archived = False
                doc.updated_at = datetime.utcnow()
                self.s.flush()
        except IntegrityError as e:
            if not is_reference_code_violation(e):
                raise
            raise self._duplicate(doc.reference_code, e) from e

        logger.info("Restored document id=%s from entry=%s", doc.id, entry.id)
        record_event(
            self.s,
            actor=actor,
            action="document.restore",
            entity_type="Document",
            entity_id=str(doc.id),
            metadata={"archive_entry_id": entry.id},
        )
        return doc
