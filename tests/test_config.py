from datetime import date, datetime

import pytest

from app.cdms import create_app
from app.cdms.config import load_config, load_settings
from app.cdms.db import database_reachable, missing_tables
from app.cdms.utils import add_months, natural_key


def _clear(monkeypatch):
    for k in (
        "SECRET_KEY",
        "ENV",
        "DATABASE_URL",
        "LOG_LEVEL",
        "DEFAULT_REVIEW_PERIOD_MONTHS",
        "REFERENCE_SUGGESTION_LIMIT",
        "NOTIFY_BACKEND",
        "NOTIFY_WEBHOOK_URL",
    ):
        monkeypatch.delenv(k, raising=False)


def test_defaults(monkeypatch):
    _clear(monkeypatch)
    cfg = load_config()
    assert cfg["DATABASE_URL"] == "sqlite:///cdms.db"
    assert cfg["DEFAULT_REVIEW_PERIOD_MONTHS"] == 12
    assert cfg["REFERENCE_SUGGESTION_LIMIT"] == 5
    assert cfg["NOTIFY_BACKEND"] == "log"
    assert cfg["LOG_LEVEL"] == "INFO"


def test_overrides_and_bad_ints(monkeypatch):
    _clear(monkeypatch)
    monkeypatch.setenv("DEFAULT_REVIEW_PERIOD_MONTHS", "24")
    monkeypatch.setenv("NOTIFY_BACKEND", "Webhook")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = load_settings()
    assert s.default_review_period_months == 24
    assert s.notify_backend == "webhook"
    assert s.log_level == "DEBUG"

    monkeypatch.setenv("REFERENCE_SUGGESTION_LIMIT", "five")
    with pytest.raises(RuntimeError):
        load_settings()


def test_production_guardrails(tmp_path, monkeypatch):
    _clear(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("SECRET_KEY", "s3cr3t")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()

    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/cdms")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()


def test_invalid_review_period_fails_fast(tmp_path, monkeypatch):
    _clear(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'t.db'}")
    monkeypatch.setenv("DEFAULT_REVIEW_PERIOD_MONTHS", "0")
    with pytest.raises(RuntimeError):
        create_app()


def test_natural_key_orders_digit_runs_numerically():
    assert sorted(["10", "2", "1"], key=natural_key) == ["1", "2", "10"]
    assert sorted(["b", "A", "a10", "a2"], key=natural_key) == ["A", "a2", "a10", "b"]
    assert natural_key(None) == natural_key("")


def test_add_months_clamps_day():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(datetime(2025, 11, 30, 8, 0), 3) == datetime(2026, 2, 28, 8, 0)
    assert add_months(date(2025, 5, 15), 12) == date(2026, 5, 15)


def test_schema_helpers(app):
    engine = app.extensions["sqlalchemy_engine"]
    assert database_reachable(engine) is True
    assert missing_tables(engine, ("documents", "audit_events", "nope")) == ["nope"]
