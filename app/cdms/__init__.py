import logging

from flask import Flask, g, jsonify
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.cdms.config import load_config
from app.cdms import models as _models  # noqa: F401  (tables registered before any blueprint loads)
from app.cdms.db import init_db, missing_tables, teardown_db_session
from app.cdms.errors import DocumentControlError
from app.cdms.notifications import notifier_from_config
from app.cdms.request_context import load_request_context
from app.cdms.routes import bp as routes_bp
from app.cdms.modules.classification.admin import bp as classification_bp
from app.cdms.modules.reference_codes.admin import bp as reference_codes_bp
from app.cdms.modules.document_control.admin import bp as document_control_bp

REQUIRED_TABLES = ("standards", "sections", "document_types", "documents", "document_archive", "audit_events")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    logging.basicConfig(level=app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    if app.config["DEFAULT_REVIEW_PERIOD_MONTHS"] < 1:
        raise RuntimeError("DEFAULT_REVIEW_PERIOD_MONTHS must be at least 1.")
    if app.config["REFERENCE_SUGGESTION_LIMIT"] < 0:
        raise RuntimeError("REFERENCE_SUGGESTION_LIMIT cannot be negative.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.extensions["cdms_notifier"] = notifier_from_config(app.config)

    app.register_blueprint(routes_bp)
    app.register_blueprint(classification_bp, url_prefix="/api/classification")
    app.register_blueprint(reference_codes_bp, url_prefix="/api/reference-codes")
    app.register_blueprint(document_control_bp, url_prefix="/api/documents")

    app.before_request(load_request_context)
    app.teardown_appcontext(teardown_db_session)

    # Schema health (lean): warn when migrations have not been applied.
    try:
        missing = missing_tables(app.extensions["sqlalchemy_engine"], REQUIRED_TABLES)
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
    except Exception as e:
        app.logger.exception("Schema health check failed: %s", e)

    def _rollback() -> None:
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()

    @app.errorhandler(DocumentControlError)
    def _err_document_control(e: DocumentControlError):  # type: ignore[no-redef]
        _rollback()
        app.logger.info(
            "Rejected %s (status=%s request_id=%s): %s",
            e.code,
            e.status_code,
            getattr(g, "request_id", None),
            e.message,
        )
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        return jsonify({"error": (e.name or "http_error").lower().replace(" ", "_"), "message": e.description}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        _rollback()
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "internal_error", "message": "Internal server error."}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app

