"""
Classification store: Standards, Sections (two-level forest) and Document Types.

Sections are validated on every write so the hierarchy never gains a cycle
or a third level. The parent-chain walk is best-effort under concurrent
edits (no row locks); hierarchy edits are rare administrative actions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cdms.audit import record_event
from app.cdms.errors import (
    CycleError,
    DepthExceededError,
    MissingFieldError,
    NotFoundError,
    SelfParentError,
)
from app.cdms.modules.classification.models import DocumentType, Section, Standard
from app.cdms.utils import check_length, clean_optional, clean_str, column_length, natural_key

logger = logging.getLogger(__name__)


@dataclass
class ClassificationStore:
    s: Session

    # -- standards -----------------------------------------------------------

    def get_standard(self, standard_id: int) -> Standard:
        std = self.s.get(Standard, standard_id)
        if not std:
            raise NotFoundError("Standard", standard_id)
        return std

    def list_standards(self) -> list[Standard]:
        rows = self.s.scalars(select(Standard)).all()
        return sorted(rows, key=lambda r: (natural_key(r.name), r.id))

    def create_standard(self, name: str, *, actor: str | None = None) -> Standard:
        name = clean_str(name)
        if not name:
            raise MissingFieldError("name", "Standard name is required.")
        check_length(name, field="name", limit=column_length(Standard, "name"))
        std = Standard(name=name)
        self.s.add(std)
        self.s.flush()
        record_event(
            self.s,
            actor=actor,
            action="standard.create",
            entity_type="Standard",
            entity_id=str(std.id),
            metadata={"name": std.name},
        )
        return std

    def rename_standard(self, standard_id: int, name: str, *, actor: str | None = None) -> Standard:
        name = clean_str(name)
        if not name:
            raise MissingFieldError("name", "Standard name is required.")
        check_length(name, field="name", limit=column_length(Standard, "name"))
        std = self.get_standard(standard_id)
        old = std.name
        std.name = name
        record_event(
            self.s,
            actor=actor,
            action="standard.rename",
            entity_type="Standard",
            entity_id=str(std.id),
            metadata={"old": old, "new": name},
        )
        self.s.flush()
        return std

    def delete_standard(self, standard_id: int, *, actor: str | None = None) -> None:
        """
        Unconditional delete. Sections and documents that reference the standard
        keep their dangling standard_id; nothing cascades.
        """
        std = self.get_standard(standard_id)
        orphaned = self.s.scalars(select(Section.id).where(Section.standard_id == std.id)).all()
        if orphaned:
            logger.warning("Deleting standard id=%s leaves %d section(s) orphaned", std.id, len(orphaned))
        record_event(
            self.s,
            actor=actor,
            action="standard.delete",
            entity_type="Standard",
            entity_id=str(std.id),
            metadata={"name": std.name, "orphaned_section_ids": list(orphaned)},
        )
        self.s.delete(std)
        self.s.flush()

    # -- sections ------------------------------------------------------------

    def get_section(self, section_id: int) -> Section:
        sec = self.s.get(Section, section_id)
        if not sec:
            raise NotFoundError("Section", section_id)
        return sec

    def list_sections(self, standard_id: int | None = None) -> list[Section]:
        q = select(Section)
        if standard_id is not None:
            q = q.where(Section.standard_id == standard_id)
        rows = self.s.scalars(q).all()
        return sorted(rows, key=lambda r: (natural_key(r.code), r.id))

    def children_of(self, section_id: int) -> list[Section]:
        rows = self.s.scalars(select(Section).where(Section.parent_section_id == section_id)).all()
        return sorted(rows, key=lambda r: (natural_key(r.code), r.id))

    def section_tree(self, standard_id: int | None = None) -> list[tuple[Section, list[Section]]]:
        sections = self.list_sections(standard_id)
        by_parent: dict[int, list[Section]] = {}
        for sec in sections:
            if sec.parent_section_id is not None:
                by_parent.setdefault(sec.parent_section_id, []).append(sec)
        return [(sec, by_parent.get(sec.id, [])) for sec in sections if sec.parent_section_id is None]

    def list_parent_options(self, section_id: int | None = None, standard_id: int | None = None) -> list[Section]:
        """Top-level sections the given section may be attached to."""
        if section_id is not None and self.children_of(section_id):
            # A section that already has children must stay top-level.
            return []
        return [
            sec
            for sec in self.list_sections(standard_id)
            if sec.parent_section_id is None and sec.id != section_id
        ]

    def _validate_parent(self, section_id: int | None, parent_id: int) -> Section:
        if section_id is not None and parent_id == section_id:
            raise SelfParentError(section_id)

        parent = self.get_section(parent_id)

        seen: set[int] = {parent.id}
        cursor = parent
        while cursor.parent_section_id is not None:
            ancestor_id = cursor.parent_section_id
            if ancestor_id == section_id or ancestor_id in seen:
                raise CycleError(section_id if section_id is not None else parent_id, parent_id)
            seen.add(ancestor_id)
            ancestor = self.s.get(Section, ancestor_id)
            if ancestor is None:
                break
            cursor = ancestor

        if parent.parent_section_id is not None:
            raise DepthExceededError(parent_id)
        if section_id is not None and self.children_of(section_id):
            raise DepthExceededError(parent_id)
        return parent

    def upsert_section(
        self,
        code: str,
        title: str,
        description: str | None = None,
        standard_id: int | None = None,
        parent_id: int | None = None,
        *,
        section_id: int | None = None,
        ref_code: str | None = None,
        actor: str | None = None,
    ) -> Section:
        """
        Create (section_id=None) or update a section.

        Raises MissingFieldError, NotFoundError (standard/parent/section),
        SelfParentError, CycleError or DepthExceededError before anything is written.
        """
        code = clean_str(code)
        title = clean_str(title)
        if not code:
            raise MissingFieldError("code", "Code and Title are required.")
        if not title:
            raise MissingFieldError("title", "Code and Title are required.")
        check_length(code, field="code", limit=column_length(Section, "code"))
        check_length(title, field="title", limit=column_length(Section, "title"))
        check_length(clean_optional(ref_code), field="ref_code", limit=column_length(Section, "ref_code"))
        if standard_id is not None:
            self.get_standard(standard_id)

        sec = self.get_section(section_id) if section_id is not None else None
        if parent_id is not None:
            try:
                self._validate_parent(section_id, parent_id)
            except (SelfParentError, CycleError, DepthExceededError) as e:
                logger.warning("Rejected section hierarchy edit section=%s parent=%s: %s", section_id, parent_id, e)
                raise

        now = datetime.utcnow()
        created = sec is None
        if sec is None:
            sec = Section(created_at=now)
            self.s.add(sec)
        sec.code = code
        sec.title = title
        sec.description = clean_optional(description)
        sec.ref_code = clean_optional(ref_code)
        sec.standard_id = standard_id
        sec.parent_section_id = parent_id
        sec.updated_at = now
        self.s.flush()

        record_event(
            self.s,
            actor=actor,
            action="section.create" if created else "section.update",
            entity_type="Section",
            entity_id=str(sec.id),
            metadata={
                "code": sec.code,
                "title": sec.title,
                "standard_id": sec.standard_id,
                "parent_section_id": sec.parent_section_id,
            },
        )
        return sec

    # -- document types ------------------------------------------------------

    def get_document_type(self, document_type_id: int) -> DocumentType:
        dt = self.s.get(DocumentType, document_type_id)
        if not dt:
            raise NotFoundError("DocumentType", document_type_id)
        return dt

    def list_document_types(self, include_archived: bool = False) -> list[DocumentType]:
        q = select(DocumentType)
        if not include_archived:
            q = q.where(DocumentType.archived.is_(False))
        rows = self.s.scalars(q).all()
        return sorted(rows, key=lambda r: (natural_key(r.name), r.id))

    def create_document_type(
        self,
        name: str,
        ref_code: str | None = None,
        summary: str | None = None,
        *,
        actor: str | None = None,
    ) -> DocumentType:
        name = clean_str(name)
        if not name:
            raise MissingFieldError("name", "Document type name is required.")
        check_length(name, field="name", limit=column_length(DocumentType, "name"))
        ref_code = (clean_optional(ref_code) or "").upper() or None
        check_length(ref_code, field="ref_code", limit=column_length(DocumentType, "ref_code"))
        dt = DocumentType(
            name=name,
            ref_code=ref_code,
            summary=clean_optional(summary),
            archived=False,
        )
        self.s.add(dt)
        self.s.flush()
        record_event(
            self.s,
            actor=actor,
            action="document_type.create",
            entity_type="DocumentType",
            entity_id=str(dt.id),
            metadata={"name": dt.name, "ref_code": dt.ref_code},
        )
        return dt

    def update_document_type(
        self,
        document_type_id: int,
        *,
        name: str | None = None,
        ref_code: str | None = None,
        summary: str | None = None,
        actor: str | None = None,
    ) -> DocumentType:
        dt = self.get_document_type(document_type_id)
        changes = {}
        if name is not None:
            new_name = clean_str(name)
            if not new_name:
                raise MissingFieldError("name", "Document type name is required.")
            check_length(new_name, field="name", limit=column_length(DocumentType, "name"))
            if new_name != dt.name:
                changes["name"] = {"old": dt.name, "new": new_name}
                dt.name = new_name
        if ref_code is not None:
            new_ref = (clean_optional(ref_code) or "").upper() or None
            check_length(new_ref, field="ref_code", limit=column_length(DocumentType, "ref_code"))
            if new_ref != dt.ref_code:
                changes["ref_code"] = {"old": dt.ref_code, "new": new_ref}
                dt.ref_code = new_ref
        if summary is not None:
            new_summary = clean_optional(summary)
            if new_summary != dt.summary:
                changes["summary"] = {"old": "...", "new": "..."}  # Don't log full text
                dt.summary = new_summary
        if changes:
            record_event(
                self.s,
                actor=actor,
                action="document_type.edit",
                entity_type="DocumentType",
                entity_id=str(dt.id),
                metadata={"changes": changes},
            )
            self.s.flush()
        return dt

    def archive_document_type(self, document_type_id: int, *, actor: str | None = None) -> DocumentType:
        dt = self.get_document_type(document_type_id)
        if not dt.archived:
            dt.archived = True
            self.s.flush()
            record_event(
                self.s,
                actor=actor,
                action="document_type.archive",
                entity_type="DocumentType",
                entity_id=str(dt.id),
                metadata={"name": dt.name},
            )
        return dt
