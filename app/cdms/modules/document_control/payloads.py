"""
Boundary parsing for document payloads (JSON bodies, form posts, script rows).

Unknown keys are rejected instead of ignored, and required fields must be
present, so nothing half-formed reaches the version manager.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from app.cdms.errors import MissingFieldError, UnknownFieldError, ValidationError
from app.cdms.modules.document_control.models import Document
from app.cdms.modules.reference_codes.service import resolve_location_name
from app.cdms.utils import check_length, clean_optional, clean_str, column_length, parse_optional_int

# Never writable through amend.
AMEND_EXCLUDED = frozenset({"current_version", "created_at", "last_reviewed_at", "review_period_months"})


def parse_timestamp(value: Any, *, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(clean_str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"{field} must be an ISO date or datetime.", field=field) from e
    # Stored naive (UTC), matching the rest of the schema.
    return parsed.replace(tzinfo=None)


def _check_keys(payload: dict, allowed: set[str]) -> None:
    unknown = [k for k in payload if k not in allowed]
    if unknown:
        raise UnknownFieldError(unknown)


def _bounded(value: str | None, field: str, column: str | None = None) -> str | None:
    return check_length(value, field=field, limit=column_length(Document, column or field))


def _required_int(payload: dict, key: str) -> int:
    value = parse_optional_int(payload.get(key), field=key)
    if value is None:
        raise MissingFieldError(key)
    return value


@dataclass(frozen=True)
class DocumentMeta:
    """Full metadata for Create and Edit (new version)."""

    title: str
    document_type_id: int
    reference_code: str | None = None
    reference_suffix: str | None = None
    location: str | None = None
    section_id: int | None = None
    file_url: str | None = None
    notes: str | None = None
    review_period_months: int | None = None
    last_reviewed_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "DocumentMeta":
        _check_keys(payload, {f.name for f in fields(cls)})
        title = clean_str(payload.get("title"))
        if not title:
            raise MissingFieldError("title", "Title is required.")
        _bounded(title, "title")
        review_period = parse_optional_int(payload.get("review_period_months"), field="review_period_months")
        if review_period is not None and review_period < 1:
            raise ValidationError("review_period_months must be at least 1.", field="review_period_months")
        return cls(
            title=title,
            document_type_id=_required_int(payload, "document_type_id"),
            reference_code=_bounded(clean_optional(payload.get("reference_code")), "reference_code"),
            reference_suffix=_bounded(clean_optional(payload.get("reference_suffix")), "reference_suffix", "reference_code"),
            location=resolve_location_name(payload.get("location")),
            section_id=parse_optional_int(payload.get("section_id"), field="section_id"),
            file_url=_bounded(clean_optional(payload.get("file_url")), "file_url"),
            notes=clean_optional(payload.get("notes")),
            review_period_months=review_period,
            last_reviewed_at=parse_timestamp(payload.get("last_reviewed_at"), field="last_reviewed_at"),
        )


@dataclass(frozen=True)
class AmendFields:
    """
    Metadata subset for Amend. Only keys present in the payload are written;
    version, created/reviewed dates and review period are never touched.
    """

    values: dict[str, Any]

    ALLOWED = ("title", "document_type_id", "section_id", "reference_code", "location", "file_url", "notes")

    @classmethod
    def from_payload(cls, payload: dict) -> "AmendFields":
        excluded = sorted(k for k in payload if k in AMEND_EXCLUDED)
        if excluded:
            raise ValidationError(
                "Amend cannot change version, dates or review period.",
                fields=excluded,
            )
        _check_keys(payload, set(cls.ALLOWED))

        values: dict[str, Any] = {}
        if "title" in payload:
            title = clean_str(payload["title"])
            if not title:
                raise MissingFieldError("title", "Title is required.")
            values["title"] = _bounded(title, "title")
        if "document_type_id" in payload:
            values["document_type_id"] = _required_int(payload, "document_type_id")
        if "section_id" in payload:
            values["section_id"] = parse_optional_int(payload["section_id"], field="section_id")
        if "reference_code" in payload:
            code = clean_str(payload["reference_code"])
            if not code:
                raise MissingFieldError("reference_code", "Reference code is required.")
            values["reference_code"] = _bounded(code, "reference_code")
        if "location" in payload:
            values["location"] = resolve_location_name(payload["location"])
        if "file_url" in payload:
            values["file_url"] = _bounded(clean_optional(payload["file_url"]), "file_url")
        if "notes" in payload:
            values["notes"] = clean_optional(payload["notes"])
        return cls(values=values)
