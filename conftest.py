import os
import tempfile

# Point the module-level engine at a scratch database before threatlens is imported
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.gettempdir()}/threatlens-test.db")

import pytest
from fastapi.testclient import TestClient

from threatlens.core.reputation import ReputationLoader
from threatlens.database import create_session_factory, init_db
from threatlens.services.security_core import SecurityCore
from threatlens.services.storage import SecurityStorage


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def reputation():
    return ReputationLoader().load()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    engine, session_factory = create_session_factory("sqlite://")
    init_db(bind=engine)
    yield SecurityStorage(session_factory)
    engine.dispose()


@pytest.fixture
def core(reputation, storage, clock):
    security_core = SecurityCore(reputation, storage, clock=clock)
    security_core.load_state()
    return security_core


@pytest.fixture
def client(core):
    from threatlens.main import app

    # No context manager: the lifespan would build its own engine
    app.state.core = core
    test_client = TestClient(app)
    yield test_client
    app.state.core = None
