"""
Câblage des services au démarrage et dépendances FastAPI.

Tous les services sont des singletons de processus, construits une fois dans le
lifespan de l'application puis injectés dans les routers via Depends(...).
"""

from dataclasses import dataclass

from fastapi import Request

from app.config import settings
from app.database import SessionLocal, engine
from app.events import EventBus
from app.remote.client import RemoteClient
from app.remote.diary_api import DiaryFeedAPI
from app.remote.transport_api import TransportAPI
from app.scheduler import scheduler
from app.services.local_store import LocalStore, init_local_db
from app.services.location_provider import DeviceFeedLocationProvider
from app.services.location_reporter import LocationReporter
from app.services.session_service import SessionService
from app.services.sync_service import SyncCoordinator
from app.services.trip_service import TripController


@dataclass
class Services:
    event_bus: EventBus
    remote_client: RemoteClient
    local_store: LocalStore
    sync_coordinator: SyncCoordinator
    location_provider: DeviceFeedLocationProvider
    trip_controller: TripController
    session: SessionService


def build_services() -> Services:
    """Construit le graphe de services autour d'un bus d'événements partagé."""
    init_local_db(engine, settings.LOCAL_SCHEMA_VERSION)

    event_bus = EventBus()
    store = LocalStore(SessionLocal, event_bus)
    session = SessionService(event_bus, store, settings.REMOTE_ACCESS_TOKEN)

    remote_client = RemoteClient(
        settings.REMOTE_API_URL,
        timeout=settings.REMOTE_API_TIMEOUT,
        token_provider=session.get_access_token,
        event_bus=event_bus,
    )
    transport_api = TransportAPI(remote_client)
    provider = DeviceFeedLocationProvider()
    trip_controller = TripController(transport_api, LocationReporter(transport_api, provider, scheduler))
    session.add_logout_hook(trip_controller.reset)

    return Services(
        event_bus=event_bus,
        remote_client=remote_client,
        local_store=store,
        sync_coordinator=SyncCoordinator(store, DiaryFeedAPI(remote_client)),
        location_provider=provider,
        trip_controller=trip_controller,
        session=session,
    )


def get_local_store(request: Request) -> LocalStore:
    return request.app.state.services.local_store


def get_sync_coordinator(request: Request) -> SyncCoordinator:
    return request.app.state.services.sync_coordinator


def get_trip_controller(request: Request) -> TripController:
    return request.app.state.services.trip_controller


def get_location_provider(request: Request) -> DeviceFeedLocationProvider:
    return request.app.state.services.location_provider


def get_session(request: Request) -> SessionService:
    return request.app.state.services.session
