import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
import utils.datetime_helpers as datetime_helpers
from core.deps import get_current_user, get_socket_user
from db.session import get_session
from main import app
from services.broadcaster import broadcaster

WORKER = {"uid": "worker-1", "name": "Alice Employee", "email": "alice@acme.com", "role": "employee"}
OTHER_WORKER = {"uid": "worker-2", "name": "Bob Employee", "email": "bob@acme.com", "role": "employee"}
MANAGER = {"uid": "manager-1", "name": "Manny Manager", "email": "manager@acme.com", "role": "manager"}
VIEWER = {"uid": "viewer-1", "name": "Vera Viewer", "email": "viewer@acme.com", "role": "viewer"}


@pytest.fixture(autouse=True)
def utc_display(monkeypatch):
    # Keep 12h clock strings and shift status independent of the host's .env
    monkeypatch.setattr(datetime_helpers, "DISPLAY_TIMEZONE", "UTC")


@pytest.fixture(autouse=True)
def clean_broadcaster():
    broadcaster.reset()
    yield
    broadcaster.reset()


@pytest.fixture
def engine(tmp_path):
    # File-backed so threads and the test client share one database
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.sqlite'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def current_user():
    return {"user": WORKER}


@pytest.fixture
def login(current_user):
    def _login(user: dict):
        current_user["user"] = user

    return _login


@pytest.fixture
def client(engine, current_user):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_current_user] = lambda: current_user["user"]
    app.dependency_overrides[get_socket_user] = lambda: current_user["user"]

    yield TestClient(app)

    app.dependency_overrides.clear()
