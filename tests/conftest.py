from types import SimpleNamespace

import pytest

from app.cdms import create_app
from app.cdms.models import Base
from app.cdms.modules.classification.service import ClassificationStore


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    for k in ("NOTIFY_BACKEND", "NOTIFY_WEBHOOK_URL", "DEFAULT_REVIEW_PERIOD_MONTHS", "REFERENCE_SUGGESTION_LIMIT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def s(app):
    sm = app.extensions["sqlalchemy_sessionmaker"]
    session = sm()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def taxonomy(s):
    """ISO 9001 with clause 1 (and 1.1 under it), plus POL/PRO document types."""
    store = ClassificationStore(s)
    iso = store.create_standard("ISO 9001")
    clause_1 = store.upsert_section("1", "Scope", standard_id=iso.id)
    clause_1_1 = store.upsert_section("1.1", "General", standard_id=iso.id, parent_id=clause_1.id)
    pol = store.create_document_type("Policy", "POL")
    pro = store.create_document_type("Procedure", "PRO")
    s.commit()
    return SimpleNamespace(standard=iso, section=clause_1, subsection=clause_1_1, policy=pol, procedure=pro)
