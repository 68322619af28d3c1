import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from timecapsule.auth import issue_token
from timecapsule.config import Settings
from timecapsule.context import CallContext, ManualClock
from timecapsule.database import init_db, make_engine
from timecapsule.main import create_app
from timecapsule.registry import CapsuleRegistry
from timecapsule.store import MemoryCapsuleStore, SqlCapsuleStore

START = 1_700_000_000


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    if request.param == "sql":
        return SqlCapsuleStore(session_factory)
    return MemoryCapsuleStore()


@pytest.fixture
def subscriber():
    """Records every event delivered to subscribers."""
    return []


@pytest.fixture
def registry(store, subscriber):
    return CapsuleRegistry(store=store, event_sink=subscriber.append)


@pytest.fixture
def ctx(clock):
    """Build a CallContext for an identity at the clock's current time."""
    def make(identity="alice"):
        return CallContext(identity=identity, now=clock.now())
    return make


@pytest.fixture
def settings():
    settings = Settings()
    settings.notify_on_unlock = False
    return settings


@pytest.fixture
def client(clock, settings):
    registry = CapsuleRegistry(store=MemoryCapsuleStore(), event_sink=lambda event: None)
    return TestClient(create_app(registry=registry, clock=clock, settings=settings))


@pytest.fixture
def sql_client(clock, settings, session_factory):
    registry = CapsuleRegistry(store=SqlCapsuleStore(session_factory), event_sink=lambda event: None)
    return TestClient(create_app(registry=registry, clock=clock, settings=settings))


@pytest.fixture
def auth():
    def headers(username="alice"):
        return {"Authorization": f"Bearer {issue_token(username)}"}
    return headers
