from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# --- Force test settings early (before app import) ---
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="rental-import-tests-"))

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DB_DIR / 'test.db'}")
os.environ.setdefault("UPLOAD_ROOT", str(_TEST_DB_DIR / "public"))

from app.core.config import settings  # noqa: E402
from app.db.base import SessionLocal, engine  # noqa: E402
from app.db.models import Base, Property  # noqa: E402
from app.main import create_app  # noqa: E402

LISTING_URL = "https://www.airbnb.com/rooms/12345"


@pytest.fixture(autouse=True)
def _schema() -> Iterator[None]:
    Base.metadata.create_all(engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def upload_root(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "public"
    monkeypatch.setattr(settings, "upload_root", str(root))
    return root


@pytest.fixture()
def db_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client() -> Iterator[TestClient]:
    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def property_row(db_session: Session) -> Property:
    prop = Property(name="Seaside Villa")
    db_session.add(prop)
    db_session.commit()
    return prop

