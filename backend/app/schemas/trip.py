"""
Schémas Pydantic pour le suivi des trajets de bus (rôle chauffeur).

API distante consommée :
  GET  /transport/driver/my-bus                 → bus, itinéraires, trajet actif éventuel
  GET  /transport/driver/route/{id}/stops       → arrêts statiques d'un itinéraire
  GET  /transport/trips/{id}/status             → statut arrêt par arrêt
  POST /transport/trips/start | {id}/end | {id}/stops/{stop_id}/{arrive,complete,skip}
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

StopStatus = Literal["pending", "arrived", "completed", "skipped"]
TripStatus = Literal["not_started", "active", "ended"]

OPEN_STOP_STATUSES = ("pending", "arrived")
TERMINAL_STOP_STATUSES = ("completed", "skipped")


def _id_as_string(v):
    return str(v) if isinstance(v, (int, float)) else v


class BusInfo(BaseModel):
    id: str
    bus_no: str = ""
    capacity: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v):
        return _id_as_string(v)


class RouteInfo(BaseModel):
    id: str
    name: str = ""
    direction: str = ""
    total_stops: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v):
        return _id_as_string(v)


class RouteStop(BaseModel):
    """Arrêt de la définition statique d'un itinéraire."""
    id: str
    name: str = ""
    stop_order: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    student_count: int = 0

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v):
        return _id_as_string(v)


class TripStop(BaseModel):
    """
    Instance d'un arrêt pour un trajet.
    `id` est vide tant que le trajet n'a pas démarré ; `stop_id` référence l'arrêt
    de l'itinéraire et sert de clé pour les actions du chauffeur.
    """
    id: str = ""
    stop_id: str
    stop_name: str = ""
    stop_order: int
    status: StopStatus = "pending"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    student_count: int = 0
    arrival_time: Optional[datetime] = None
    departure_time: Optional[datetime] = None

    @field_validator("id", "stop_id", mode="before")
    @classmethod
    def ids_as_strings(cls, v):
        # id absent (null) avant le démarrage du trajet
        return "" if v is None else _id_as_string(v)

    @classmethod
    def pending_from_route(cls, stop: RouteStop) -> "TripStop":
        return cls(
            stop_id=stop.id,
            stop_name=stop.name,
            stop_order=stop.stop_order,
            latitude=stop.latitude,
            longitude=stop.longitude,
            student_count=stop.student_count,
        )


class ActiveTripInfo(BaseModel):
    """Trajet déjà actif côté serveur (reprise après redémarrage de l'app)."""
    id: str
    route_id: str
    started_at: datetime

    @field_validator("id", "route_id", mode="before")
    @classmethod
    def ids_as_strings(cls, v):
        return _id_as_string(v)


class DriverAssignment(BaseModel):
    """Réponse de GET /transport/driver/my-bus."""
    bus: Optional[BusInfo] = None
    routes: List[RouteInfo] = []
    active_trip: Optional[ActiveTripInfo] = Field(default=None, alias="activeTrip")

    model_config = {"populate_by_name": True}

    @field_validator("routes", mode="before")
    @classmethod
    def null_routes_as_empty(cls, v):
        return [] if v is None else v


class TripInfo(BaseModel):
    id: str
    route_id: str
    bus_id: str
    status: TripStatus
    started_at: datetime
    ended_at: Optional[datetime] = None


class TripState(BaseModel):
    """Instantané en lecture seule du tableau de bord chauffeur."""
    bus: Optional[BusInfo]
    routes: List[RouteInfo]
    selected_route_id: Optional[str]
    trip: Optional[TripInfo]
    active_trip_id: Optional[str]
    stops: List[TripStop]
    current_stop_id: Optional[str]
    completed_count: int
    progress_percent: float
    elapsed_minutes: int
    is_tracking: bool
    tracking_warning: Optional[str] = None
    speed_kmh: float


class StartTripRequest(BaseModel):
    route_id: Optional[str] = None  # à défaut, l'itinéraire sélectionné


class SkipStopRequest(BaseModel):
    confirmed: bool = False  # confirmation explicite du chauffeur (action irréversible)
