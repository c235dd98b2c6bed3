"""
Shared fixtures.

Every test gets its own SQLite database file and blob store directory under
``tmp_path``; the app's session and blob store dependencies are overridden to
point at them.
"""

import os
import tempfile

os.environ.setdefault("SHAREBOX_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SHAREBOX_DATABASE_URL", "sqlite://")
os.environ.setdefault("SHAREBOX_STORAGE_PATH", tempfile.mkdtemp(prefix="sharebox-"))
os.environ.setdefault("SHAREBOX_CLEANUP_RETRY_BACKOFF", "0")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from sharebox.auth import create_access_token
from sharebox.db import create_db_engine, get_session
from sharebox.main import app
from sharebox.models import User
from sharebox.storage import BlobStore, get_blob_store


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'sharebox.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def blob_root(tmp_path):
    return tmp_path / "blobs"


@pytest.fixture
def blob_store(blob_root):
    return BlobStore(blob_root, "http://testserver/blobs")


@pytest.fixture
def client(engine, blob_store):
    def _get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(engine, username: str, hashed_password: str = "!unused") -> User:
    with Session(engine) as session:
        user = User(username=username, email=f"{username}@example.com", hashed_password=hashed_password)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def alice(engine):
    return make_user(engine, "alice")


@pytest.fixture
def bob(engine):
    return make_user(engine, "bob")


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.username)}"}


def stored_blobs(blob_root) -> list:
    if not blob_root.exists():
        return []
    return sorted(p for p in blob_root.rglob("*") if p.is_file())
