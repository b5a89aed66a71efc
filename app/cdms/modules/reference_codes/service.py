"""
Reference code allocation.

A reference code has the shape LOCATION-TYPE-SECTION-SUFFIX, e.g.
"EN-POL-4.1-001". The prefix is built progressively as facets are chosen;
the suffix is free text (upper-cased).

Suggestions use the compact composite prefix (LOCATION+TYPE+SECTION with no
dashes, e.g. "ENPOL4.1") followed by a zero-padded sequence number. They are
display-only: nothing is reserved, and the write path re-checks uniqueness.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cdms.constants import DEFAULT_SUGGESTION_LIMIT, LOCATION_REF_CODES
from app.cdms.errors import DuplicateReferenceCodeError, MissingFieldError, UnknownLocationError
from app.cdms.modules.classification.models import DocumentType, Section
from app.cdms.modules.document_control.models import Document
from app.cdms.utils import clean_str

logger = logging.getLogger(__name__)

_TRAILING_NUMBER = re.compile(r"-(\d+)$")


def resolve_location_code(location: str | None) -> str:
    """
    Map a location name ("England") or its code ("EN") to the 2-letter code.
    Returns "" when unset; raises UnknownLocationError for anything else.
    """
    loc = clean_str(location)
    if not loc:
        return ""
    for name, code in LOCATION_REF_CODES.items():
        if loc.casefold() == name.casefold() or loc.upper() == code:
            return code
    raise UnknownLocationError(loc)


def resolve_location_name(location: str | None) -> str | None:
    code = resolve_location_code(location)
    if not code:
        return None
    return next(name for name, c in LOCATION_REF_CODES.items() if c == code)


def join_prefix(location_code: str, type_code: str = "", section_code: str = "") -> str:
    """Progressive prefix: type only counts after location, section only after type."""
    if not location_code:
        return ""
    prefix = location_code
    if type_code:
        prefix += f"-{type_code}"
        if section_code:
            prefix += f"-{section_code}"
    return prefix


def compose_reference_code(prefix: str, suffix: str | None) -> str:
    suffix = clean_str(suffix).upper()
    if prefix and suffix:
        return f"{prefix}-{suffix}"
    return prefix


def composite_key(code: str) -> str:
    """
    Compact composite prefix of a full code: everything before the last
    dash-separated segment, with the dashes removed.

    "EN-POL-1-002" -> "ENPOL1", "ENPOL1-003" -> "ENPOL1".
    """
    code = clean_str(code)
    if "-" not in code:
        return ""
    head = code.rsplit("-", 1)[0]
    return head.replace("-", "")


@dataclass
class ReferenceCodeAllocator:
    s: Session
    suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT

    # -- facets --------------------------------------------------------------

    def _type_code(self, document_type_id: int | None) -> str:
        if document_type_id is None:
            return ""
        dt = self.s.get(DocumentType, document_type_id)
        return clean_str(dt.ref_code).upper() if dt else ""

    def _section_code(self, section_id: int | None) -> str:
        if section_id is None:
            return ""
        sec = self.s.get(Section, section_id)
        return sec.facet_code if sec else ""

    def build_prefix(self, location: str | None, document_type_id: int | None, section_id: int | None) -> str:
        return join_prefix(
            resolve_location_code(location),
            self._type_code(document_type_id),
            self._section_code(section_id),
        )

    def build_code(
        self,
        location: str | None,
        document_type_id: int | None,
        section_id: int | None,
        suffix: str | None,
    ) -> str:
        return compose_reference_code(self.build_prefix(location, document_type_id, section_id), suffix)

    def composite_prefix(self, location: str | None, document_type_id: int | None, section_id: int | None) -> str | None:
        """
        LOCATION+TYPE+SECTION with every dash removed, or None unless all three resolve.
        Dashes inside a facet code ("A-1") are dropped too, matching composite_key.
        """
        loc = resolve_location_code(location)
        type_code = self._type_code(document_type_id)
        section_code = self._section_code(section_id)
        if not (loc and type_code and section_code):
            return None
        return f"{loc}{type_code}{section_code}".replace("-", "")

    # -- availability --------------------------------------------------------

    def active_codes(self) -> list[str]:
        q = select(Document.reference_code).where(Document.archived.is_(False))
        return [c for c in self.s.scalars(q).all() if c]

    def check_availability(self, full_code: str, exclude_document_id: int | None = None) -> bool:
        """
        True unless an active document other than exclude_document_id already
        holds exactly this code.
        """
        code = clean_str(full_code)
        if not code:
            raise MissingFieldError("reference_code", "Reference code is required.")
        q = select(Document.id).where(Document.reference_code == code, Document.archived.is_(False))
        if exclude_document_id is not None:
            q = q.where(Document.id != exclude_document_id)
        return self.s.scalars(q.limit(1)).first() is None

    def ensure_available(self, full_code: str, exclude_document_id: int | None = None, **facets) -> None:
        if self.check_availability(full_code, exclude_document_id):
            return
        suggestions = self.suggest(full_code, **facets)
        logger.warning("Reference code collision code=%s exclude=%s", full_code, exclude_document_id)
        raise DuplicateReferenceCodeError(clean_str(full_code), suggestions)

    # -- suggestions ---------------------------------------------------------

    def _composite_from_code(self, code: str) -> str | None:
        parts = code.split("-")
        codes = set(LOCATION_REF_CODES.values())
        if len(parts) >= 4 and parts[0] in codes:
            return composite_key(code)
        if len(parts) == 2 and len(parts[0]) > 2 and parts[0][:2] in codes:
            return parts[0]
        return None

    def suggest(
        self,
        full_code: str,
        *,
        location: str | None = None,
        document_type_id: int | None = None,
        section_id: int | None = None,
    ) -> list[str]:
        """
        Up to `suggestion_limit` free codes of the form COMPOSITE-NNN, strictly
        increasing past the highest number already used under the composite prefix.

        Facets, when given, define the composite prefix; otherwise it is read
        from the code itself. Returns [] unless the full triple resolves.
        """
        code = clean_str(full_code).upper()
        if not code:
            return []
        if location is not None or document_type_id is not None or section_id is not None:
            composite = self.composite_prefix(location, document_type_id, section_id)
        else:
            composite = self._composite_from_code(code)
        if not composite:
            return []
        composite = composite.upper()
        if composite_key(code) != composite:
            return []

        existing = self.active_codes()
        highest = 0
        for other in existing:
            if composite_key(other).upper() != composite:
                continue
            m = _TRAILING_NUMBER.search(other)
            if m:
                highest = max(highest, int(m.group(1)))

        taken = set(existing)
        out: list[str] = []
        n = highest
        while len(out) < self.suggestion_limit:
            n += 1
            candidate = f"{composite}-{n:03d}"
            if candidate not in taken:
                out.append(candidate)
        return out
