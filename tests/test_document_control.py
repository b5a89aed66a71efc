from datetime import datetime

import pytest
from sqlalchemy import select

from app.cdms.constants import AUTO_ARCHIVE_SUMMARY
from app.cdms.errors import (
    DocumentArchivedError,
    DuplicateReferenceCodeError,
    FieldTooLongError,
    MissingActorError,
    MissingFieldError,
    MissingSummaryError,
    NotFoundError,
    UnknownFieldError,
    UnknownLocationError,
    ValidationError,
)
from app.cdms.models import AuditEvent
from app.cdms.modules.document_control.models import Document, DocumentArchiveEntry, ImmutableArchiveEntryError
from app.cdms.modules.document_control.payloads import AmendFields, DocumentMeta
from app.cdms.modules.document_control.service import DocumentVersionManager


def _meta(taxonomy, **overrides) -> DocumentMeta:
    payload = {
        "title": "Quality Policy",
        "document_type_id": taxonomy.policy.id,
        "location": "England",
        "section_id": taxonomy.section.id,
        "reference_code": "EN-POL-1-001",
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return DocumentMeta.from_payload(payload)


def _archive_entries(s, document_id):
    return s.scalars(select(DocumentArchiveEntry).where(DocumentArchiveEntry.document_id == document_id)).all()


def test_create_starts_at_version_one(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy), actor="alice")
    s.commit()

    assert doc.current_version == 1
    assert doc.archived is False
    assert doc.location == "England"
    assert doc.review_period_months == 12
    assert doc.last_reviewed_at is None

    ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "document.create")).one()
    assert ev.entity_id == str(doc.id)
    assert ev.actor == "alice"


def test_create_builds_code_from_facets_and_suffix(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy, reference_code=None, reference_suffix="a7"))
    assert doc.reference_code == "EN-POL-1-A7"


def test_create_uses_configured_review_period(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s, default_review_period_months=6)
    assert mgr.create(_meta(taxonomy)).review_period_months == 6
    assert mgr.create(_meta(taxonomy, reference_code="EN-POL-1-002", review_period_months=24)).review_period_months == 24


def test_create_rejects_missing_required_fields(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    with pytest.raises(MissingFieldError):
        mgr.create(_meta(taxonomy, reference_code=None))
    with pytest.raises(MissingFieldError):
        DocumentMeta.from_payload({"title": "x"})
    with pytest.raises(MissingFieldError):
        DocumentMeta.from_payload({"title": " ", "document_type_id": 1, "reference_code": "X"})
    assert s.scalars(select(Document)).all() == []


def test_meta_rejects_unknown_fields_and_locations():
    with pytest.raises(UnknownFieldError):
        DocumentMeta.from_payload({"title": "x", "document_type_id": 1, "current_version": 9})
    with pytest.raises(UnknownLocationError):
        DocumentMeta.from_payload({"title": "x", "document_type_id": 1, "location": "Atlantis"})
    with pytest.raises(ValidationError):
        DocumentMeta.from_payload({"title": "x", "document_type_id": "abc"})


def test_create_rejects_unknown_classification(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    with pytest.raises(NotFoundError):
        mgr.create(_meta(taxonomy, document_type_id=999))
    with pytest.raises(NotFoundError):
        mgr.create(_meta(taxonomy, section_id=999))


def test_duplicate_code_in_another_section_is_rejected(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    mgr.create(_meta(taxonomy))
    s.commit()

    with pytest.raises(DuplicateReferenceCodeError) as ei:
        mgr.create(_meta(taxonomy, section_id=taxonomy.subsection.id))
    assert ei.value.suggestions[0] == "ENPOL1-002"
    s.rollback()

    active = s.scalars(select(Document).where(Document.archived.is_(False))).all()
    assert len(active) == 1


def test_create_supersedes_same_code_in_same_section(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    first = mgr.create(_meta(taxonomy, title="v1"))
    first = mgr.edit(first.id, _meta(taxonomy, title="v2"))
    s.commit()
    assert first.current_version == 2

    second = mgr.create(_meta(taxonomy, title="v3"), actor="alice")
    s.commit()

    s.refresh(first)
    assert first.archived is True
    assert second.archived is False
    assert second.current_version == 3

    (entry,) = _archive_entries(s, first.id)
    assert entry.archived_version == 2
    assert entry.title == "v2"
    assert entry.change_summary == AUTO_ARCHIVE_SUMMARY
    assert entry.archived_by is None

    actions = [e.action for e in s.scalars(select(AuditEvent).order_by(AuditEvent.id)).all()]
    assert "document.supersede" in actions


def test_concurrent_create_loses_at_precheck(app, taxonomy):
    sm = app.extensions["sqlalchemy_sessionmaker"]
    sa, sb = sm(), sm()
    try:
        mgr_a = DocumentVersionManager.for_session(sa)
        mgr_b = DocumentVersionManager.for_session(sb)
        meta = _meta(taxonomy, section_id=None)

        assert mgr_b.allocator.check_availability(meta.reference_code) is True
        mgr_a.create(meta)
        sa.commit()

        with pytest.raises(DuplicateReferenceCodeError):
            mgr_b.create(meta)
        sb.rollback()
    finally:
        sa.close()
        sb.close()


def test_concurrent_create_loses_at_write_time(app, taxonomy):
    sm = app.extensions["sqlalchemy_sessionmaker"]
    sa, sb = sm(), sm()
    try:
        mgr_a = DocumentVersionManager.for_session(sa)
        mgr_b = DocumentVersionManager.for_session(sb)
        # B's reads raced ahead of A's commit: both checks report the code free.
        mgr_b.allocator.check_availability = lambda *a, **k: True
        meta = _meta(taxonomy, section_id=None)

        mgr_a.create(meta)
        sa.commit()

        with pytest.raises(DuplicateReferenceCodeError) as ei:
            mgr_b.create(meta)
        assert ei.value.reference_code == "EN-POL-1-001"
        assert ei.value.suggestions == ["ENPOL1-002", "ENPOL1-003", "ENPOL1-004", "ENPOL1-005", "ENPOL1-006"]
        sb.rollback()

        active = sa.scalars(select(Document).where(Document.archived.is_(False))).all()
        assert [d.reference_code for d in active] == ["EN-POL-1-001"]
    finally:
        sa.close()
        sb.close()


def test_edit_increments_version_without_archive_entry(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    for n in range(2, 5):
        doc = mgr.edit(doc.id, _meta(taxonomy, title=f"Quality Policy r{n}"))
        assert doc.current_version == n
    s.commit()

    assert doc.title == "Quality Policy r4"
    assert _archive_entries(s, doc.id) == []


def test_edit_rejects_code_held_by_another_document(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    mgr.create(_meta(taxonomy))
    other = mgr.create(_meta(taxonomy, reference_code="EN-POL-1-002"))
    s.commit()

    with pytest.raises(DuplicateReferenceCodeError):
        mgr.edit(other.id, _meta(taxonomy))
    s.rollback()
    assert s.get(Document, other.id).current_version == 1


def test_amend_leaves_version_and_dates_alone(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    doc = mgr.edit(doc.id, _meta(taxonomy))
    doc = mgr.edit(doc.id, _meta(taxonomy))
    reviewed = datetime(2026, 3, 1, 9, 30)
    mgr.review(doc.id, now=reviewed)
    created = doc.created_at
    s.commit()
    assert doc.current_version == 3

    doc = mgr.amend(doc.id, AmendFields.from_payload({"title": "Corrected title", "notes": "typo"}), actor="bob")
    s.commit()

    assert doc.title == "Corrected title"
    assert doc.notes == "typo"
    assert doc.current_version == 3
    assert doc.last_reviewed_at == reviewed
    assert doc.created_at == created
    assert doc.review_period_months == 12
    assert _archive_entries(s, doc.id) == []


def test_amend_refuses_protected_fields():
    with pytest.raises(ValidationError):
        AmendFields.from_payload({"current_version": 7})
    with pytest.raises(ValidationError):
        AmendFields.from_payload({"review_period_months": 6, "title": "x"})
    with pytest.raises(UnknownFieldError):
        AmendFields.from_payload({"colour": "red"})


def test_amend_reference_code_checks_availability(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    mgr.create(_meta(taxonomy))
    other = mgr.create(_meta(taxonomy, reference_code="EN-POL-1-002"))

    with pytest.raises(DuplicateReferenceCodeError):
        mgr.amend(other.id, AmendFields.from_payload({"reference_code": "EN-POL-1-001"}))

    doc = mgr.amend(other.id, AmendFields.from_payload({"reference_code": "EN-POL-1-003"}))
    assert doc.reference_code == "EN-POL-1-003"
    assert doc.current_version == 1


def test_review_only_touches_last_reviewed_at(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    before = (doc.title, doc.current_version, doc.reference_code)

    doc = mgr.review(doc.id)
    assert doc.last_reviewed_at is not None
    assert (doc.title, doc.current_version, doc.reference_code) == before


def test_archive_requires_summary_and_actor(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    s.commit()

    with pytest.raises(MissingSummaryError):
        mgr.archive(doc.id, "   ", "alice")
    with pytest.raises(MissingSummaryError):
        mgr.archive(doc.id, None, None)
    with pytest.raises(MissingActorError):
        mgr.archive(doc.id, "Withdrawn", "")
    s.rollback()

    assert s.get(Document, doc.id).archived is False
    assert _archive_entries(s, doc.id) == []


def test_archive_snapshots_then_flags(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    doc = mgr.edit(doc.id, _meta(taxonomy, title="Quality Policy r2"))

    entry = mgr.archive(doc.id, "Withdrawn after audit", "alice")
    s.commit()

    assert doc.archived is True
    assert entry.document_id == doc.id
    assert entry.archived_version == 2
    assert entry.title == "Quality Policy r2"
    assert entry.reference_code == "EN-POL-1-001"
    assert entry.change_summary == "Withdrawn after audit"
    assert entry.archived_by == "alice"

    ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "document.archive")).one()
    assert ev.reason == "Withdrawn after audit"


def test_archive_rejects_oversized_summary_and_actor(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    s.commit()

    with pytest.raises(FieldTooLongError) as ei:
        mgr.archive(doc.id, "x" * 1025, "alice")
    assert ei.value.field == "change_summary"
    with pytest.raises(FieldTooLongError):
        mgr.archive(doc.id, "Withdrawn", "a" * 321)
    s.rollback()

    assert s.get(Document, doc.id).archived is False
    assert _archive_entries(s, doc.id) == []


def test_long_summary_is_kept_whole_in_the_audit_trail(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    summary = "Superseded by the 2026 group policy. " * 20

    mgr.archive(doc.id, summary, "alice")
    s.commit()

    ev = s.scalars(select(AuditEvent).where(AuditEvent.action == "document.archive")).one()
    assert ev.reason == summary.strip()


def test_archive_missing_document(s, taxonomy):
    with pytest.raises(NotFoundError):
        DocumentVersionManager.for_session(s).archive(404, "gone", "alice")


def test_archived_document_accepts_only_restore(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    mgr.archive(doc.id, "Withdrawn", "alice")

    with pytest.raises(DocumentArchivedError):
        mgr.edit(doc.id, _meta(taxonomy))
    with pytest.raises(DocumentArchivedError):
        mgr.amend(doc.id, AmendFields.from_payload({"title": "x"}))
    with pytest.raises(DocumentArchivedError):
        mgr.review(doc.id)
    with pytest.raises(DocumentArchivedError):
        mgr.archive(doc.id, "again", "alice")


def test_restore_clears_flag_at_same_version(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    doc = mgr.edit(doc.id, _meta(taxonomy, title="r2"))
    entry = mgr.archive(doc.id, "Withdrawn", "alice")
    s.commit()

    restored = mgr.restore(entry.id, actor="bob")
    s.commit()

    assert restored.id == doc.id
    assert restored.archived is False
    assert restored.current_version == 2
    assert len(_archive_entries(s, doc.id)) == 1

    # Restoring an active document is a no-op
    assert mgr.restore(entry.id).archived is False


def test_restore_refuses_when_code_is_taken(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    old = mgr.create(_meta(taxonomy, section_id=None))
    entry = mgr.archive(old.id, "Replaced", "alice")
    mgr.create(_meta(taxonomy, section_id=None, title="Replacement"))
    s.commit()

    with pytest.raises(DuplicateReferenceCodeError):
        mgr.restore(entry.id)
    s.rollback()
    assert s.get(Document, old.id).archived is True


def test_restore_unknown_entry(s, taxonomy):
    with pytest.raises(NotFoundError):
        DocumentVersionManager.for_session(s).restore(12345)


def test_archive_entries_are_append_only(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    doc = mgr.create(_meta(taxonomy))
    entry = mgr.archive(doc.id, "Withdrawn", "alice")
    s.commit()

    entry.change_summary = "rewritten"
    with pytest.raises(ImmutableArchiveEntryError):
        s.flush()
    s.rollback()

    s.delete(s.get(DocumentArchiveEntry, entry.id))
    with pytest.raises(ImmutableArchiveEntryError):
        s.flush()
    s.rollback()


def test_every_archive_transition_has_history(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    a = mgr.create(_meta(taxonomy))
    b = mgr.create(_meta(taxonomy, title="superseding"))
    mgr.archive(b.id, "Retired", "carol")
    s.commit()

    for doc in s.scalars(select(Document).where(Document.archived.is_(True))).all():
        versions = [e.archived_version for e in _archive_entries(s, doc.id)]
        assert doc.current_version in versions
    assert {a.id, b.id} == {d.id for d in mgr.list_documents(archived_only=True)}


def test_list_documents_natural_order(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    for suffix in ("010", "2", "001"):
        mgr.create(_meta(taxonomy, reference_code=f"EN-POL-1-{suffix}", section_id=None))
    assert [d.reference_code for d in mgr.list_documents()] == ["EN-POL-1-001", "EN-POL-1-2", "EN-POL-1-010"]


def test_list_archive_entries_newest_first(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    first = mgr.create(_meta(taxonomy, reference_code="A-1", section_id=None))
    second = mgr.create(_meta(taxonomy, reference_code="A-2", section_id=None))
    e1 = mgr.archive(first.id, "one", "alice")
    e2 = mgr.archive(second.id, "two", "alice")

    assert [e.id for e in mgr.list_archive_entries()] == [e2.id, e1.id]
    assert [e.id for e in mgr.list_archive_entries(first.id)] == [e1.id]
    assert mgr.get_archive_entry(e1.id).change_summary == "one"


def test_oversized_metadata_is_rejected_before_any_write(s, taxonomy):
    with pytest.raises(FieldTooLongError) as ei:
        _meta(taxonomy, title="T" * 256)
    assert ei.value.field == "title"
    with pytest.raises(FieldTooLongError):
        _meta(taxonomy, reference_code="EN-" + "9" * 200)
    with pytest.raises(FieldTooLongError):
        AmendFields.from_payload({"title": "T" * 256})
    with pytest.raises(FieldTooLongError):
        AmendFields.from_payload({"file_url": "https://files.example.com/" + "a" * 1024})

    # Suffix fits on its own but the composed code does not
    mgr = DocumentVersionManager.for_session(s)
    with pytest.raises(FieldTooLongError):
        mgr.create(_meta(taxonomy, reference_code=None, reference_suffix="9" * 125))
    assert s.scalars(select(Document)).all() == []


def test_failed_write_rolls_back_only_its_own_savepoint(s, taxonomy):
    mgr = DocumentVersionManager.for_session(s)
    first = mgr.create(_meta(taxonomy, section_id=None, reference_code="GR-POL-001"))
    mgr.allocator.check_availability = lambda *a, **k: True

    with pytest.raises(DuplicateReferenceCodeError):
        mgr.create(_meta(taxonomy, section_id=None, reference_code="GR-POL-001", title="Clash"))
    s.commit()

    docs = s.scalars(select(Document)).all()
    assert [(d.id, d.title) for d in docs] == [(first.id, "Quality Policy")]
