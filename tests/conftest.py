"""
Shared pytest fixtures: a relay wired to a throwaway SQLite database and a
temporary storage directory, with a synthetic secret.
"""

import pytest
from fastapi.testclient import TestClient

from uprelay.crud import create_store
from uprelay.lifecycle import DeclaredFile, FileLifecycleManager
from uprelay.main import create_app
from uprelay.models import ContentDisposition, FileAcl
from uprelay.sessions import UploadSessionIssuer
from uprelay.settings import Settings
from uprelay.storage.factory import create_storage


SECRET = "sk_test_0123456789abcdef"
BASE_URL = "http://relay.test"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        API_SECRET=SECRET,
        BASE_URL=BASE_URL,
        APP_ID="test-app",
        DATABASE_URL=f"sqlite:///{tmp_path / 'relay.db'}",
        STORAGE_DIR=tmp_path / "uploads",
        LOG_DIR=tmp_path / "logs",
    )


@pytest.fixture
def store(settings):
    s = create_store(settings.DATABASE_URL)
    s.init_db()
    yield s
    s.engine.dispose()


@pytest.fixture
def storage(settings):
    return create_storage(settings)


@pytest.fixture
def lifecycle(store, storage) -> FileLifecycleManager:
    return FileLifecycleManager(store, storage)


@pytest.fixture
def issuer(settings) -> UploadSessionIssuer:
    return UploadSessionIssuer(settings)


@pytest.fixture
def client(settings, store, storage):
    app = create_app(settings, store=store, storage=storage)
    with TestClient(app, base_url=BASE_URL) as c:
        yield c


@pytest.fixture
def api_headers():
    return {"x-uploadthing-api-key": SECRET}


@pytest.fixture
def declared() -> DeclaredFile:
    return DeclaredFile(
        name="report.pdf",
        size=11,
        type="application/pdf",
        acl=FileAcl.PRIVATE,
        content_disposition=ContentDisposition.INLINE,
    )
