"""Pytest configuration and shared fixtures."""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from specstate.api.deps import get_db
from specstate.api.main import create_app
from specstate.client.http import HttpStateStoreClient
from specstate.client.local import LocalStateStoreClient
from specstate.core.config import Settings
from specstate.db.repository import EntityStateRepository
from specstate.db.session import init_db, make_engine, make_session_factory
from specstate.sync.service import WorkspaceStateService

WORKSPACE = "ws-test"


@pytest.fixture
def settings():
    """Settings isolated from the environment and .env files."""
    return Settings(_env_file=None, database_url="sqlite://", debug=True)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """A session whose work is rolled back after the test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def repo(db_session):
    return EntityStateRepository(db_session, WORKSPACE)


@pytest.fixture
def app(settings, session_factory):
    """API app with its database dependency bound to the test engine."""
    app = create_app(settings)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def local_store(session_factory):
    return LocalStateStoreClient(session_factory)


@pytest.fixture
async def http_store(app):
    """HTTP store client talking to the app in-process."""
    store = HttpStateStoreClient("http://testserver", transport=httpx.ASGITransport(app=app))
    yield store
    await store.close()


@pytest.fixture
def service(local_store):
    return WorkspaceStateService(local_store, WORKSPACE)
