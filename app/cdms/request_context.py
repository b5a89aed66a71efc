from __future__ import annotations

import uuid

from flask import g, request

from app.cdms.errors import ValidationError
from app.cdms.models import AuditEvent
from app.cdms.utils import check_length, column_length

ACTOR_HEADER = "X-Actor"


def load_request_context() -> None:
    """
    Assigns a per-request request_id (for audit/log correlation) and g.actor,
    the opaque acting-user string taken from the X-Actor header.

    The identity is not validated here; authentication sits in front of this app.
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.actor = None
        return
    g.actor = (request.headers.get(ACTOR_HEADER) or "").strip() or None
    check_length(g.actor, field=ACTOR_HEADER, limit=column_length(AuditEvent, "actor"))


def current_actor() -> str | None:
    return getattr(g, "actor", None)


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload
