from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.cdms.db import db_session
from app.cdms.errors import MissingFieldError
from app.cdms.modules.reference_codes.service import ReferenceCodeAllocator
from app.cdms.utils import clean_str, parse_optional_int

bp = Blueprint("reference_codes", __name__)


def _allocator() -> ReferenceCodeAllocator:
    return ReferenceCodeAllocator(db_session(), current_app.config["REFERENCE_SUGGESTION_LIMIT"])


def _facets() -> dict:
    return {
        "location": request.args.get("location"),
        "document_type_id": parse_optional_int(request.args.get("document_type_id"), field="document_type_id"),
        "section_id": parse_optional_int(request.args.get("section_id"), field="section_id"),
    }


def _code_arg() -> str:
    code = clean_str(request.args.get("code"))
    if not code:
        raise MissingFieldError("code", "Query parameter 'code' is required.")
    return code


@bp.get("/prefix")
def prefix():
    facets = _facets()
    allocator = _allocator()
    return jsonify(
        {
            "prefix": allocator.build_prefix(**facets),
            "composite_prefix": allocator.composite_prefix(**facets),
        }
    )


@bp.get("/availability")
def availability():
    code = _code_arg()
    exclude = parse_optional_int(request.args.get("exclude_document_id"), field="exclude_document_id")
    allocator = _allocator()
    available = allocator.check_availability(code, exclude)
    out: dict = {"code": code, "available": available}
    if not available:
        out["suggestions"] = allocator.suggest(code)
    return jsonify(out)


@bp.get("/suggestions")
def suggestions():
    code = _code_arg()
    facets = {k: v for k, v in _facets().items() if v is not None}
    return jsonify({"code": code, "suggestions": _allocator().suggest(code, **facets)})
