"""
API distante de transport : bus du chauffeur, itinéraires, trajets, positions.
"""

from typing import List

from app.remote.client import RemoteAPIError, RemoteClient
from app.schemas.location import LocationSample
from app.schemas.trip import DriverAssignment, RouteStop, TripStop

STOP_ACTIONS = ("arrive", "complete", "skip")


class TransportAPI:

    def __init__(self, client: RemoteClient) -> None:
        self._client = client

    def get_driver_assignment(self) -> DriverAssignment:
        return DriverAssignment.model_validate(self._client.get("/transport/driver/my-bus") or {})

    def get_route_stops(self, route_id: str) -> List[RouteStop]:
        data = self._client.get(f"/transport/driver/route/{route_id}/stops") or []
        return [RouteStop.model_validate(s) for s in data]

    def get_trip_status(self, trip_id: str) -> List[TripStop]:
        data = self._client.get(f"/transport/trips/{trip_id}/status") or {}
        return [TripStop.model_validate(s) for s in data.get("stops", [])]

    def start_trip(self, route_id: str) -> str:
        data = self._client.post("/transport/trips/start", {"route_id": route_id}) or {}
        trip = data.get("trip") or {}
        if not trip.get("id"):
            raise RemoteAPIError("Réponse de démarrage de trajet sans identifiant.")
        return str(trip["id"])

    def end_trip(self, trip_id: str) -> None:
        self._client.post(f"/transport/trips/{trip_id}/end")

    def stop_action(self, trip_id: str, stop_id: str, action: str) -> None:
        if action not in STOP_ACTIONS:
            raise ValueError(f"Action d'arrêt inconnue : {action}")
        self._client.post(f"/transport/trips/{trip_id}/stops/{stop_id}/{action}")

    def post_location(self, bus_id: str, sample: LocationSample) -> None:
        self._client.post(f"/transport/buses/{bus_id}/location", sample.model_dump(mode="json"))

    def heartbeat(self, bus_id: str) -> None:
        self._client.post(f"/transport/buses/{bus_id}/heartbeat")
