"""
Typed failures for the document lifecycle core.

Every mutating operation either succeeds or raises exactly one of these.
The HTTP layer maps the three families to 400 / 409 / 404; storage errors
(sqlalchemy) are never wrapped.
"""
from __future__ import annotations

from typing import Any


class DocumentControlError(Exception):
    status_code = 500
    code = "document_control_error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.code, "message": self.message}
        out.update(self.extra)
        return out


# -- validation (400) -------------------------------------------------------


class ValidationError(DocumentControlError):
    status_code = 400
    code = "validation_error"


class MissingFieldError(ValidationError):
    code = "missing_field"

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"{field} is required.", field=field)
        self.field = field


class UnknownFieldError(ValidationError):
    code = "unknown_field"

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"Unknown field(s): {', '.join(sorted(fields))}", fields=sorted(fields))
        self.fields = sorted(fields)


class UnknownLocationError(ValidationError):
    code = "unknown_location"

    def __init__(self, location: str) -> None:
        super().__init__(f"Unknown location: {location!r}", location=location)
        self.location = location


class FieldTooLongError(ValidationError):
    code = "field_too_long"

    def __init__(self, field: str, max_length: int) -> None:
        super().__init__(f"{field} must be at most {max_length} characters.", field=field, max_length=max_length)
        self.field = field
        self.max_length = max_length


class MissingSummaryError(ValidationError):
    code = "missing_summary"

    def __init__(self) -> None:
        super().__init__("A change summary is required to archive a document.")


class MissingActorError(ValidationError):
    code = "missing_actor"

    def __init__(self) -> None:
        super().__init__("An acting user is required to archive a document.")


class DocumentArchivedError(ValidationError):
    code = "document_archived"

    def __init__(self, document_id: int) -> None:
        super().__init__(f"Document {document_id} is archived; restore it first.", document_id=document_id)
        self.document_id = document_id


# -- conflicts (409) --------------------------------------------------------


class ConflictError(DocumentControlError):
    status_code = 409
    code = "conflict"


class DuplicateReferenceCodeError(ConflictError):
    code = "duplicate_reference_code"

    def __init__(self, reference_code: str, suggestions: list[str] | None = None) -> None:
        super().__init__(
            f"Reference code {reference_code} is already used by an active document.",
            reference_code=reference_code,
            suggestions=list(suggestions or []),
        )
        self.reference_code = reference_code
        self.suggestions = list(suggestions or [])


class SelfParentError(ConflictError):
    code = "self_parent"

    def __init__(self, section_id: int) -> None:
        super().__init__("A section cannot be its own parent.", section_id=section_id)


class CycleError(ConflictError):
    code = "cycle"

    def __init__(self, section_id: int, parent_id: int) -> None:
        super().__init__(
            "Cannot set this parent: it would create a circular reference.",
            section_id=section_id,
            parent_id=parent_id,
        )


class DepthExceededError(ConflictError):
    code = "depth_exceeded"

    def __init__(self, parent_id: int) -> None:
        super().__init__("Only top-level sections can be parents.", parent_id=parent_id)


# -- not found (404) --------------------------------------------------------


class NotFoundError(DocumentControlError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found.", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id
