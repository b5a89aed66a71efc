from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.cdms.db import db_session
from app.cdms.modules.compliance.service import ComplianceProjection
from app.cdms.modules.document_control.models import Document, DocumentArchiveEntry
from app.cdms.modules.document_control.payloads import AmendFields, DocumentMeta
from app.cdms.modules.document_control.service import DocumentVersionManager
from app.cdms.notifications import notify_safely
from app.cdms.request_context import current_actor, json_body
from app.cdms.utils import clean_str, parse_optional_int

bp = Blueprint("document_control", __name__)


def _manager() -> DocumentVersionManager:
    return DocumentVersionManager.for_session(
        db_session(),
        suggestion_limit=current_app.config["REFERENCE_SUGGESTION_LIMIT"],
        default_review_period_months=current_app.config["DEFAULT_REVIEW_PERIOD_MONTHS"],
    )


def _notify(event: str, payload: dict) -> None:
    notify_safely(current_app.extensions.get("cdms_notifier"), event, payload)


def _iso(value):
    return value.isoformat() if value is not None else None


def document_json(doc: Document) -> dict:
    return {
        "id": doc.id,
        "title": doc.title,
        "reference_code": doc.reference_code,
        "document_type_id": doc.document_type_id,
        "section_id": doc.section_id,
        "location": doc.location,
        "file_url": doc.file_url,
        "notes": doc.notes,
        "archived": doc.archived,
        "current_version": doc.current_version,
        "review_period_months": doc.review_period_months,
        "last_reviewed_at": _iso(doc.last_reviewed_at),
        "created_at": _iso(doc.created_at),
        "updated_at": _iso(doc.updated_at),
    }


def archive_entry_json(entry: DocumentArchiveEntry) -> dict:
    return {
        "id": entry.id,
        "document_id": entry.document_id,
        "archived_version": entry.archived_version,
        "title": entry.title,
        "reference_code": entry.reference_code,
        "file_url": entry.file_url,
        "document_type_id": entry.document_type_id,
        "notes": entry.notes,
        "section_id": entry.section_id,
        "location": entry.location,
        "created_at": _iso(entry.created_at),
        "change_summary": entry.change_summary,
        "change_date": _iso(entry.change_date),
        "archived_by": entry.archived_by,
    }


# ---------- Documents ----------
@bp.get("")
def documents_list():
    docs = _manager().list_documents(
        include_archived=request.args.get("include_archived") == "1",
        archived_only=request.args.get("archived_only") == "1",
    )
    return jsonify({"documents": [document_json(d) for d in docs]})


@bp.post("")
def documents_create():
    s = db_session()
    meta = DocumentMeta.from_payload(json_body())
    doc = _manager().create(meta, actor=current_actor())
    s.commit()
    _notify("document.created", {"document_id": doc.id, "reference_code": doc.reference_code, "version": doc.current_version})
    return jsonify(document_json(doc)), 201


@bp.get("/<int:document_id>")
def documents_detail(document_id: int):
    return jsonify(document_json(_manager().get(document_id)))


@bp.put("/<int:document_id>")
def documents_new_version(document_id: int):
    s = db_session()
    meta = DocumentMeta.from_payload(json_body())
    doc = _manager().edit(document_id, meta, actor=current_actor())
    s.commit()
    _notify("document.new_version", {"document_id": doc.id, "version": doc.current_version})
    return jsonify(document_json(doc))


@bp.patch("/<int:document_id>")
def documents_amend(document_id: int):
    s = db_session()
    fields = AmendFields.from_payload(json_body())
    doc = _manager().amend(document_id, fields, actor=current_actor())
    s.commit()
    return jsonify(document_json(doc))


@bp.post("/<int:document_id>/review")
def documents_review(document_id: int):
    s = db_session()
    doc = _manager().review(document_id, actor=current_actor())
    s.commit()
    return jsonify(document_json(doc))


@bp.post("/<int:document_id>/archive")
def documents_archive(document_id: int):
    s = db_session()
    payload = json_body()
    entry = _manager().archive(document_id, payload.get("change_summary"), current_actor())
    s.commit()
    _notify(
        "document.archived",
        {"document_id": entry.document_id, "archive_entry_id": entry.id, "archived_by": entry.archived_by},
    )
    return jsonify(archive_entry_json(entry)), 201


@bp.get("/<int:document_id>/history")
def documents_history(document_id: int):
    manager = _manager()
    manager.get(document_id)
    entries = manager.list_archive_entries(document_id)
    return jsonify({"entries": [archive_entry_json(e) for e in entries]})


# ---------- Archive ledger ----------
@bp.get("/archive")
def archive_list():
    document_id = parse_optional_int(request.args.get("document_id"), field="document_id")
    entries = _manager().list_archive_entries(document_id)
    return jsonify({"entries": [archive_entry_json(e) for e in entries]})


@bp.get("/archive/<int:entry_id>")
def archive_detail(entry_id: int):
    return jsonify(archive_entry_json(_manager().get_archive_entry(entry_id)))


@bp.post("/archive/<int:entry_id>/restore")
def archive_restore(entry_id: int):
    s = db_session()
    doc = _manager().restore(entry_id, actor=current_actor())
    s.commit()
    _notify("document.restored", {"document_id": doc.id, "archive_entry_id": entry_id})
    return jsonify(document_json(doc))


# ---------- Compliance ----------
@bp.get("/compliance")
def compliance_summary():
    rows = ComplianceProjection(db_session()).summary(
        search=clean_str(request.args.get("q")) or None,
        standard_id=parse_optional_int(request.args.get("standard_id"), field="standard_id"),
        document_type_id=parse_optional_int(request.args.get("document_type_id"), field="document_type_id"),
        section_id=parse_optional_int(request.args.get("section_id"), field="section_id"),
        overdue_only=request.args.get("overdue") == "1",
        sort=clean_str(request.args.get("sort")) or "reference_code",
        descending=request.args.get("desc") == "1",
    )
    return jsonify({"rows": [r.to_dict() for r in rows], "total": len(rows)})
