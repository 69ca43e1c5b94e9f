"""
Service de suivi de trajet du chauffeur (TripController).

Cycle de vie d'un trajet : not_started → active → ended (immuable une fois terminé).
Le serveur fait autorité :
- aucune transition n'est appliquée localement avant sa confirmation distante ;
- après chaque action, le statut arrêt par arrêt est relu depuis le serveur ;
- un refus distant laisse l'état local inchangé et remonte tel quel à l'écran.
Les préconditions (bus, itinéraire, ordre des arrêts) sont vérifiées AVANT tout appel.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.exceptions import (
    ConfirmationRequiredError,
    NoActiveTripError,
    NoBusAssignedError,
    NoRouteSelectedError,
    TripAlreadyActiveError,
)
from app.remote.transport_api import TransportAPI
from app.schemas.trip import BusInfo, RouteInfo, RouteStop, TripInfo, TripState, TripStop
from app.services import stop_sequencer
from app.services.call_policy import best_effort, critical
from app.services.location_reporter import LocationReporter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


class TripController:

    def __init__(
        self,
        transport_api: TransportAPI,
        reporter: LocationReporter,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._api = transport_api
        self._reporter = reporter
        self._clock = clock
        # Les actions du chauffeur sont sérialisées (routers exécutés en threadpool)
        self._lock = threading.RLock()

        self.bus: Optional[BusInfo] = None
        self.routes: List[RouteInfo] = []
        self.selected_route: Optional[RouteInfo] = None
        self.stops: List[TripStop] = []
        self.trip: Optional[TripInfo] = None
        self._route_stops: List[RouteStop] = []
        # Message affichable quand le suivi GPS n'a pas pu démarrer (permission refusée)
        self.tracking_warning: Optional[str] = None

    @property
    def active_trip_id(self) -> Optional[str]:
        if self.trip is not None and self.trip.status == "active":
            return self.trip.id
        return None

    # ------------------------------------------------------------------
    # Chargement
    # ------------------------------------------------------------------

    def load_driver_data(self) -> None:
        """
        Charge le bus, les itinéraires et un éventuel trajet déjà actif côté serveur.
        Trajet actif → reprise (statut des arrêts + suivi de position).
        Sinon → sélection de l'itinéraire courant (ou du premier) et de ses arrêts.
        """
        with self._lock:
            assignment = critical("chargement du bus du chauffeur", self._api.get_driver_assignment)
            self.bus = assignment.bus
            self.routes = list(assignment.routes)
            active = assignment.active_trip

            if active is not None and self.bus is not None:
                if self.active_trip_id != active.id:
                    # Arrêts statiques (pending) en repli si la relecture du statut échoue
                    outcome = best_effort("chargement des arrêts", self._api.get_route_stops, active.route_id)
                    self._use_route(
                        self._find_route(active.route_id) or RouteInfo(id=active.route_id),
                        outcome.value if outcome.ok else [],
                    )
                self.trip = TripInfo(
                    id=active.id,
                    route_id=active.route_id,
                    bus_id=self.bus.id,
                    status="active",
                    started_at=_aware(active.started_at),
                )
                self._refresh_stops()
                self._start_tracking()
                logger.info("Trajet actif repris : %s (itinéraire %s)", active.id, active.route_id)
                return

            if self.active_trip_id is not None:
                # Le serveur ne connaît plus de trajet actif : il fait autorité
                logger.warning("Trajet %s absent côté serveur, suivi local arrêté.", self.active_trip_id)
                self._reporter.stop()
                self.trip = None

            if not self.routes:
                self.selected_route = None
                self._route_stops = []
                self.stops = []
                return

            route = self._find_route(self.selected_route.id) if self.selected_route else None
            route = route or self.routes[0]
            outcome = best_effort("chargement des arrêts", self._api.get_route_stops, route.id)
            self._use_route(route, outcome.value if outcome.ok else [])

    def select_route(self, route_id: str) -> None:
        """Sélectionne un itinéraire avant le départ et charge ses arrêts statiques."""
        with self._lock:
            if self.active_trip_id is not None:
                raise TripAlreadyActiveError("Impossible de changer d'itinéraire pendant un trajet.")
            route = self._find_route(route_id)
            if route is None:
                raise NoRouteSelectedError(f"Itinéraire {route_id} non attribué à ce bus.")
            route_stops = critical("chargement des arrêts", self._api.get_route_stops, route.id)
            self._use_route(route, route_stops)

    # ------------------------------------------------------------------
    # Trajet
    # ------------------------------------------------------------------

    def start_trip(self, route_id: Optional[str] = None) -> str:
        """
        Démarre un trajet sur l'itinéraire donné (à défaut, l'itinéraire sélectionné).
        Retourne l'id du trajet. Un refus distant (ex. trajet déjà actif pour ce bus)
        laisse l'état local inchangé.
        """
        with self._lock:
            if self.bus is None:
                raise NoBusAssignedError("Aucun bus n'est attribué à ce chauffeur.")
            if self.active_trip_id is not None:
                raise TripAlreadyActiveError(f"Un trajet est déjà actif pour ce bus ({self.active_trip_id}).")

            if route_id is not None and (self.selected_route is None or self.selected_route.id != route_id):
                route = self._find_route(route_id)
                if route is None:
                    raise NoRouteSelectedError(f"Itinéraire {route_id} non attribué à ce bus.")
                route_stops = critical("chargement des arrêts", self._api.get_route_stops, route.id)
            else:
                route = self.selected_route
                if route is None:
                    raise NoRouteSelectedError("Aucun itinéraire sélectionné.")
                route_stops = self._route_stops

            trip_id = critical("démarrage du trajet", self._api.start_trip, route.id)

            self._use_route(route, route_stops)
            self.trip = TripInfo(
                id=trip_id,
                route_id=route.id,
                bus_id=self.bus.id,
                status="active",
                started_at=self._clock(),
            )
            self._refresh_stops()
            self._start_tracking()

            logger.info(
                "Trajet démarré : %s, bus %s, itinéraire %s, %d arrêts",
                trip_id, self.bus.id, route.id, len(self.stops),
            )
            return trip_id

    def end_trip(self) -> None:
        """
        Termine le trajet actif. Le suivi (GPS + heartbeat) n'est libéré qu'après
        confirmation distante : en cas d'échec, le trajet reste actif localement.
        """
        with self._lock:
            trip = self._require_active_trip()
            critical("fin du trajet", self._api.end_trip, trip.id)

            self._reporter.stop()
            self.tracking_warning = None
            self.trip = trip.model_copy(update={"status": "ended", "ended_at": self._clock()})
            logger.info("Trajet terminé : %s (%d min)", trip.id, self.elapsed_minutes())

    def refresh_status(self) -> None:
        """Relit le statut des arrêts du trajet actif depuis le serveur."""
        with self._lock:
            trip = self._require_active_trip()
            self.stops = stop_sequencer.ordered(
                critical("relecture du statut du trajet", self._api.get_trip_status, trip.id)
            )

    # ------------------------------------------------------------------
    # Arrêts
    # ------------------------------------------------------------------

    def arrive_at_stop(self, stop_id: str) -> None:
        self._transition(stop_id, "arrive")

    def complete_stop(self, stop_id: str) -> None:
        self._transition(stop_id, "complete")

    def skip_stop(self, stop_id: str, confirmed: bool = False) -> None:
        """Saute l'arrêt courant (pending → skipped). Exige une confirmation explicite."""
        self._transition(stop_id, "skip", confirmed=confirmed, needs_confirmation=True)

    def _transition(self, stop_id: str, action: str, confirmed: bool = True, needs_confirmation: bool = False) -> None:
        with self._lock:
            trip = self._require_active_trip()
            stop = stop_sequencer.check_transition(self.stops, stop_id, action)
            if needs_confirmation and not confirmed:
                raise ConfirmationRequiredError(
                    f"Confirmation requise : sauter l'arrêt {stop.stop_order} est irréversible."
                )

            critical(f"{action} arrêt {stop_id}", self._api.stop_action, trip.id, stop_id, action)

            if not self._refresh_stops():
                # Transition confirmée par le serveur mais relecture impossible
                self.stops = stop_sequencer.apply_transition(self.stops, stop_id, action, self._clock())
            logger.info("Arrêt %s : %s (trajet %s)", stop.stop_order, action, trip.id)

    # ------------------------------------------------------------------
    # Lecture
    # ------------------------------------------------------------------

    def elapsed_minutes(self) -> int:
        if self.trip is None:
            return 0
        end = self.trip.ended_at or self._clock()
        elapsed = (_aware(end) - _aware(self.trip.started_at)).total_seconds()
        return max(0, int(elapsed // 60))

    def snapshot(self) -> TripState:
        with self._lock:
            current = stop_sequencer.current_stop(self.stops)
            last_sample = self._reporter.last_sample
            return TripState(
                bus=self.bus,
                routes=list(self.routes),
                selected_route_id=self.selected_route.id if self.selected_route else None,
                trip=self.trip,
                active_trip_id=self.active_trip_id,
                stops=stop_sequencer.ordered(self.stops),
                current_stop_id=current.stop_id if current else None,
                completed_count=stop_sequencer.completed_count(self.stops),
                progress_percent=stop_sequencer.progress_percent(self.stops),
                elapsed_minutes=self.elapsed_minutes(),
                is_tracking=self._reporter.is_active,
                tracking_warning=self.tracking_warning,
                speed_kmh=last_sample.speed if last_sample is not None and self._reporter.is_active else 0.0,
            )

    # ------------------------------------------------------------------
    # Arrêt du service / déconnexion
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Libère les ressources de suivi (idempotent). L'état du trajet est conservé."""
        self._reporter.stop()

    def reset(self) -> None:
        """Déconnexion : libère le suivi et oublie tout l'état chauffeur."""
        with self._lock:
            self._reporter.stop()
            self.bus = None
            self.tracking_warning = None
            self.routes = []
            self.selected_route = None
            self.stops = []
            self.trip = None
            self._route_stops = []

    # ------------------------------------------------------------------

    def resume_tracking(self) -> bool:
        """
        Relance le suivi d'un trajet actif resté sans GPS (permission accordée après coup).
        Retourne True si le suivi est actif à l'issue de l'appel.
        """
        with self._lock:
            if self.active_trip_id is None:
                return False
            if self._reporter.is_active:
                return True
            return self._start_tracking()

    def _start_tracking(self) -> bool:
        if self._reporter.start(self.bus.id):
            self.tracking_warning = None
            return True
        self.tracking_warning = "Permission de localisation refusée : la position du bus n'est pas transmise."
        logger.warning("Trajet %s actif sans suivi GPS (permission refusée).", self.trip.id)
        return False

    def _require_active_trip(self) -> TripInfo:
        if self.active_trip_id is None:
            raise NoActiveTripError("Aucun trajet actif.")
        return self.trip

    def _find_route(self, route_id: str) -> Optional[RouteInfo]:
        return next((r for r in self.routes if r.id == route_id), None)

    def _use_route(self, route: RouteInfo, route_stops: List[RouteStop]) -> None:
        """Itinéraire courant + arrêts initialisés en pending, triés par stop_order."""
        self.selected_route = route
        self._route_stops = sorted(route_stops, key=lambda s: s.stop_order)
        self.stops = [TripStop.pending_from_route(s) for s in self._route_stops]
        if self.trip is not None and self.trip.status == "ended":
            self.trip = None

    def _refresh_stops(self) -> bool:
        outcome = best_effort("relecture du statut du trajet", self._api.get_trip_status, self.trip.id)
        if not outcome.ok or not outcome.value:
            return False
        self.stops = stop_sequencer.ordered(outcome.value)
        return True
