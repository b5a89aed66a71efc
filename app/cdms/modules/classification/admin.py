from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.cdms.db import db_session
from app.cdms.modules.classification.models import DocumentType, Section, Standard
from app.cdms.modules.classification.service import ClassificationStore
from app.cdms.request_context import current_actor, json_body
from app.cdms.utils import parse_optional_int

bp = Blueprint("classification", __name__)


def _store() -> ClassificationStore:
    return ClassificationStore(db_session())


def standard_json(std: Standard) -> dict:
    return {"id": std.id, "name": std.name}


def section_json(sec: Section) -> dict:
    return {
        "id": sec.id,
        "code": sec.code,
        "ref_code": sec.ref_code,
        "title": sec.title,
        "description": sec.description,
        "standard_id": sec.standard_id,
        "parent_section_id": sec.parent_section_id,
    }


def document_type_json(dt: DocumentType) -> dict:
    return {
        "id": dt.id,
        "name": dt.name,
        "ref_code": dt.ref_code,
        "summary": dt.summary,
        "archived": dt.archived,
    }


# ---------- Standards ----------
@bp.get("/standards")
def standards_list():
    return jsonify({"standards": [standard_json(x) for x in _store().list_standards()]})


@bp.post("/standards")
def standards_create():
    s = db_session()
    std = ClassificationStore(s).create_standard(json_body().get("name"), actor=current_actor())
    s.commit()
    return jsonify(standard_json(std)), 201


@bp.patch("/standards/<int:standard_id>")
def standards_rename(standard_id: int):
    s = db_session()
    std = ClassificationStore(s).rename_standard(standard_id, json_body().get("name"), actor=current_actor())
    s.commit()
    return jsonify(standard_json(std))


@bp.delete("/standards/<int:standard_id>")
def standards_delete(standard_id: int):
    s = db_session()
    ClassificationStore(s).delete_standard(standard_id, actor=current_actor())
    s.commit()
    return "", 204


# ---------- Sections ----------
@bp.get("/sections")
def sections_list():
    standard_id = parse_optional_int(request.args.get("standard_id"), field="standard_id")
    return jsonify({"sections": [section_json(x) for x in _store().list_sections(standard_id)]})


@bp.get("/sections/tree")
def sections_tree():
    standard_id = parse_optional_int(request.args.get("standard_id"), field="standard_id")
    tree = [
        {**section_json(parent), "children": [section_json(c) for c in children]}
        for parent, children in _store().section_tree(standard_id)
    ]
    return jsonify({"sections": tree})


@bp.get("/sections/parent-options")
def sections_parent_options():
    section_id = parse_optional_int(request.args.get("section_id"), field="section_id")
    standard_id = parse_optional_int(request.args.get("standard_id"), field="standard_id")
    options = _store().list_parent_options(section_id, standard_id)
    return jsonify({"sections": [section_json(x) for x in options]})


@bp.get("/sections/<int:section_id>")
def sections_detail(section_id: int):
    return jsonify(section_json(_store().get_section(section_id)))


def _upsert_section(section_id: int | None):
    s = db_session()
    payload = json_body()
    sec = ClassificationStore(s).upsert_section(
        payload.get("code"),
        payload.get("title"),
        payload.get("description"),
        parse_optional_int(payload.get("standard_id"), field="standard_id"),
        parse_optional_int(payload.get("parent_section_id"), field="parent_section_id"),
        section_id=section_id,
        ref_code=payload.get("ref_code"),
        actor=current_actor(),
    )
    s.commit()
    return sec


@bp.post("/sections")
def sections_create():
    return jsonify(section_json(_upsert_section(None))), 201


@bp.put("/sections/<int:section_id>")
def sections_update(section_id: int):
    return jsonify(section_json(_upsert_section(section_id)))


# ---------- Document types ----------
@bp.get("/document-types")
def document_types_list():
    include_archived = request.args.get("include_archived") == "1"
    rows = _store().list_document_types(include_archived=include_archived)
    return jsonify({"document_types": [document_type_json(x) for x in rows]})


@bp.post("/document-types")
def document_types_create():
    s = db_session()
    payload = json_body()
    dt = ClassificationStore(s).create_document_type(
        payload.get("name"),
        payload.get("ref_code"),
        payload.get("summary"),
        actor=current_actor(),
    )
    s.commit()
    return jsonify(document_type_json(dt)), 201


@bp.patch("/document-types/<int:document_type_id>")
def document_types_update(document_type_id: int):
    s = db_session()
    payload = json_body()
    dt = ClassificationStore(s).update_document_type(
        document_type_id,
        name=payload.get("name"),
        ref_code=payload.get("ref_code"),
        summary=payload.get("summary"),
        actor=current_actor(),
    )
    s.commit()
    return jsonify(document_type_json(dt))


@bp.post("/document-types/<int:document_type_id>/archive")
def document_types_archive(document_type_id: int):
    s = db_session()
    dt = ClassificationStore(s).archive_document_type(document_type_id, actor=current_actor())
    s.commit()
    return jsonify(document_type_json(dt))
