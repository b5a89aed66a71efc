import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.cdms.constants import DEFAULT_DOCUMENT_TYPES
from app.cdms.modules.classification.models import DocumentType
from app.cdms.modules.classification.service import ClassificationStore
from scripts._db_utils import resolve_database_url, script_session


def seed_document_types(s: Session, *, actor: str = "system:init_db") -> list[str]:
    """
    Ensure the default document types exist (matched by ref_code).
    Existing rows are never renamed or un-archived. Returns the ref codes created.
    """
    existing = {(c or "").upper() for c in s.scalars(select(DocumentType.ref_code)).all()}
    store = ClassificationStore(s)
    created: list[str] = []
    for name, ref_code in DEFAULT_DOCUMENT_TYPES:
        if ref_code in existing:
            continue
        store.create_document_type(name, ref_code, actor=actor)
        created.append(ref_code)
    return created


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed reference data in an idempotent way.
    """
    db_url = resolve_database_url(database_url)

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        created = seed_document_types(s)

    if created:
        print(f"Seeded document types: {', '.join(created)}", flush=True)
    else:
        print("Document types already seeded.", flush=True)


def main() -> None:
    seed_only()


if __name__ == "__main__":
    main()
