"""Pytest configuration and shared fixtures."""

import os
import tempfile
from pathlib import Path

# Keep the module-level app in docvault.main away from the working directory
_DATA_DIR = Path(tempfile.mkdtemp(prefix="docvault-tests-"))
os.environ["ENV"] = "test"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["DATABASE_URL"] = f"sqlite:///{_DATA_DIR / 'docvault.db'}"
os.environ["LOCAL_STORAGE_PATH"] = str(_DATA_DIR / "objects")
os.environ["UPLOAD_STATE_DIR"] = str(_DATA_DIR / "tus")

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from docvault.core.config import Settings
from docvault.db.repository import DocumentRepository
from docvault.db.session import create_db_engine, create_session_factory, create_tables
from docvault.main import create_app
from docvault.storage.local import LocalStorageBackend
from docvault.storage.upload_store import UploadStore

JWT_SECRET = "test-secret"


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing every store at the test's temporary directory."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'docvault.db'}",
        STORAGE_BACKEND="local",
        LOCAL_STORAGE_PATH=str(tmp_path / "objects"),
        UPLOAD_STATE_DIR=str(tmp_path / "tus"),
        MAX_UPLOAD_MB=0,
        AUTH_ENABLED=False,
        JWT_SECRET_KEY=JWT_SECRET,
        JWT_ALGORITHM="HS256",
    )


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest.fixture
def client(app):
    """Test client with the application lifespan (and dispatcher) running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def wait_for_ingest(client, app):
    """Block until every completed upload has been processed."""

    def _wait():
        client.portal.call(app.state.dispatcher.join)

    return _wait


@pytest.fixture
def make_token():
    def _make_token(user_id: str, secret: str = JWT_SECRET) -> str:
        return jwt.encode({"sub": user_id}, secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token):
    def _auth_headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _auth_headers


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'repository.db'}")
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def repository(session_factory):
    return DocumentRepository(session_factory)


@pytest.fixture
def storage(tmp_path):
    return LocalStorageBackend(tmp_path / "objects")


@pytest.fixture
def upload_store(tmp_path):
    return UploadStore(tmp_path / "tus")
