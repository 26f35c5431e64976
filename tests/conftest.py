# ruff: noqa: E402
# File: /tests/conftest.py | Version: 2.0 | Title: Per-test SQLite store (transactional DDL) + TestClient
import pathlib
import sys

# Make repo root importable as "app"
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.db.base_class import Base
from app.db.session import make_engine
from app.main import app
from app.models import User


@pytest.fixture()
def engine(tmp_path):
    # File-backed so DDL, rollback and the sandbox's PRAGMAs behave like production
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(autouse=True)
def _data_dir(tmp_path, monkeypatch):
    data_dir = tmp_path / "data"
    monkeypatch.setattr(settings, "DATA_DIR", data_dir)
    return data_dir


@pytest.fixture()
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session):
    from app.db.session import get_db  # late import to avoid circulars

    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_owner(db, email: str) -> str:
    user = User(email=email, hashed_password="not-a-real-hash", is_active=True)
    db.add(user)
    db.commit()
    return str(user.id)


@pytest.fixture()
def owner_id(db_session) -> str:
    return make_owner(db_session, "owner@example.com")


@pytest.fixture()
def other_owner_id(db_session) -> str:
    return make_owner(db_session, "other@example.com")
