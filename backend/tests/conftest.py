"""
Configuration partagée pour tous les tests.
Base locale SQLite en mémoire, sync automatique désactivée, services mockés côté API.
"""

import os

os.environ["LOCAL_DATABASE_URL"] = "sqlite://"
os.environ["AUTO_SYNC_INTERVAL_MINUTES"] = "0"
os.environ["REMOTE_ACCESS_TOKEN"] = ""

from types import SimpleNamespace  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.database import build_engine  # noqa: E402
from app.dependencies import (  # noqa: E402
    get_local_store,
    get_location_provider,
    get_session,
    get_sync_coordinator,
    get_trip_controller,
)
from app.events import EventBus  # noqa: E402
from app.main import app  # noqa: E402
from app.services.local_store import LocalStore, init_local_db  # noqa: E402


class FakeClock:
    """Horloge epoch ms contrôlée par le test."""

    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def local_store(clock, event_bus):
    """LocalStore réel sur une base SQLite en mémoire propre à chaque test."""
    engine = build_engine("sqlite://")
    init_local_db(engine, schema_version=1)
    store = LocalStore(sessionmaker(autocommit=False, autoflush=False, bind=engine), event_bus, clock=clock)
    yield store
    engine.dispose()


@pytest.fixture
def services():
    """Services mockés injectés dans les routers."""
    return SimpleNamespace(
        local_store=MagicMock(),
        sync_coordinator=MagicMock(),
        trip_controller=MagicMock(),
        location_provider=MagicMock(),
        session=MagicMock(),
    )


@pytest.fixture
def client(services):
    """Client HTTP de test avec les services mockés."""
    app.dependency_overrides[get_local_store] = lambda: services.local_store
    app.dependency_overrides[get_sync_coordinator] = lambda: services.sync_coordinator
    app.dependency_overrides[get_trip_controller] = lambda: services.trip_controller
    app.dependency_overrides[get_location_provider] = lambda: services.location_provider
    app.dependency_overrides[get_session] = lambda: services.session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
