from flask import Blueprint, current_app

from app.cdms.db import database_reachable

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check with a DB round-trip. Returns JSON, 503 when the database is unreachable."""
    if not database_reachable(current_app.extensions["sqlalchemy_engine"]):
        return {"ok": False, "db": False}, 503
    return {"ok": True, "db": True}


@bp.get("/healthz")
def healthz():
    """Liveness probe. No DB access."""
    return "ok", 200
