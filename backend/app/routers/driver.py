"""
Router du tableau de bord chauffeur : trajet, arrêts et position GPS.
Chaque action renvoie l'instantané à jour du trajet.
"""

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_location_provider, get_trip_controller
from app.exceptions import InvalidStopTransitionError, PreconditionError, TripAlreadyActiveError
from app.remote.client import RemoteAPIError
from app.schemas.location import LocationDispatchResult, LocationPermission, RawLocationFix
from app.schemas.trip import SkipStopRequest, StartTripRequest, TripState
from app.services.location_provider import DeviceFeedLocationProvider
from app.services.trip_service import TripController

router = APIRouter(prefix="/api/v1/driver", tags=["Chauffeur"])


def _to_http_error(exc: Exception) -> HTTPException:
    """Traduit une erreur métier ou distante en réponse HTTP affichable."""
    if isinstance(exc, (InvalidStopTransitionError, TripAlreadyActiveError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PreconditionError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, RemoteAPIError) and exc.is_rejection:
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    # Réseau ou erreur serveur distante
    return HTTPException(status_code=502, detail=str(exc))


@router.get("/dashboard", response_model=TripState, summary="Tableau de bord chauffeur")
def get_dashboard(controller: TripController = Depends(get_trip_controller)):
    return controller.snapshot()


@router.post("/dashboard/refresh", response_model=TripState, summary="Recharger bus, itinéraires et trajet actif")
def refresh_dashboard(controller: TripController = Depends(get_trip_controller)):
    """Un trajet déjà actif côté serveur est repris (statut des arrêts + suivi GPS)."""
    try:
        controller.load_driver_data()
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/routes/{route_id}/select", response_model=TripState, summary="Sélectionner un itinéraire")
def select_route(route_id: str, controller: TripController = Depends(get_trip_controller)):
    try:
        controller.select_route(route_id)
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/trips/start", response_model=TripState, summary="Démarrer un trajet")
def start_trip(
    data: StartTripRequest = StartTripRequest(),
    controller: TripController = Depends(get_trip_controller),
):
    """
    Démarre un trajet sur l'itinéraire fourni (à défaut, l'itinéraire sélectionné).
    400 sans bus ou sans itinéraire, 409 si un trajet est déjà actif ;
    un refus du serveur est renvoyé avec son statut et son message.
    """
    try:
        controller.start_trip(data.route_id)
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/trips/end", response_model=TripState, summary="Terminer le trajet actif")
def end_trip(controller: TripController = Depends(get_trip_controller)):
    """En cas d'échec distant, le trajet reste actif et le suivi GPS continue."""
    try:
        controller.end_trip()
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/trips/stops/{stop_id}/arrive", response_model=TripState, summary="Arrivée à l'arrêt courant")
def arrive_at_stop(stop_id: str, controller: TripController = Depends(get_trip_controller)):
    try:
        controller.arrive_at_stop(stop_id)
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/trips/stops/{stop_id}/complete", response_model=TripState, summary="Départ de l'arrêt courant")
def complete_stop(stop_id: str, controller: TripController = Depends(get_trip_controller)):
    try:
        controller.complete_stop(stop_id)
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/trips/stops/{stop_id}/skip", response_model=TripState, summary="Sauter l'arrêt courant")
def skip_stop(
    stop_id: str,
    data: SkipStopRequest = SkipStopRequest(),
    controller: TripController = Depends(get_trip_controller),
):
    """Action irréversible : le corps doit contenir {"confirmed": true}, sinon 400."""
    try:
        controller.skip_stop(stop_id, confirmed=data.confirmed)
    except (PreconditionError, RemoteAPIError) as e:
        raise _to_http_error(e)
    return controller.snapshot()


@router.post("/location", response_model=LocationDispatchResult, summary="Position GPS brute de l'appareil")
def push_location(fix: RawLocationFix, provider: DeviceFeedLocationProvider = Depends(get_location_provider)):
    """
    Transmise par l'app à chaque mise à jour du GPS. Filtrée par intervalle de temps
    et de distance ; `accepted` vaut false si aucun abonnement ne l'a retenue.
    """
    delivered = provider.push_fix(fix)
    return LocationDispatchResult(accepted=delivered > 0, subscribers=provider.active_subscriptions)


@router.put("/location/permission", response_model=LocationPermission, summary="Permission de localisation")
def set_location_permission(
    data: LocationPermission,
    provider: DeviceFeedLocationProvider = Depends(get_location_provider),
    controller: TripController = Depends(get_trip_controller),
):
    """Accorder la permission relance le suivi d'un trajet actif démarré sans GPS."""
    provider.set_permission(data.granted)
    granted = provider.request_foreground_permission()
    if granted:
        controller.resume_tracking()
    return LocationPermission(granted=granted)
