"""
Tests unitaires du suivi de trajet chauffeur (TripController).
API de transport simulée : les transitions d'arrêt sont appliquées « côté serveur »
puis relues, comme en production.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.exceptions import (
    ConfirmationRequiredError,
    InvalidStopTransitionError,
    NoActiveTripError,
    NoBusAssignedError,
    NoRouteSelectedError,
    TripAlreadyActiveError,
)
from app.remote.client import RemoteAPIError
from app.schemas.location import LocationSample
from app.schemas.trip import ActiveTripInfo, BusInfo, DriverAssignment, RouteInfo, RouteStop, TripStop
from app.services import stop_sequencer
from app.services.trip_service import TripController

START = datetime(2026, 3, 2, 7, 30, tzinfo=timezone.utc)


# --- Helpers ---

class Clock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now


class FakeTransportServer:
    """État « serveur » des arrêts d'un trajet."""

    def __init__(self, count=3):
        self.stops = [
            TripStop(id=f"ts{i}", stop_id=f"s{i}", stop_name=f"Arrêt {i}", stop_order=i)
            for i in range(1, count + 1)
        ]

    def status(self, trip_id):
        return list(self.stops)

    def action(self, trip_id, stop_id, action):
        stop_sequencer.check_transition(self.stops, stop_id, action)
        self.stops = stop_sequencer.apply_transition(self.stops, stop_id, action, START)


def make_route_stops(count=3):
    return [RouteStop(id=f"s{i}", name=f"Arrêt {i}", stop_order=i) for i in range(count, 0, -1)]


def make_api(bus=True, routes=None, active_trip=None, server=None):
    server = server or FakeTransportServer()
    api = MagicMock()
    api.get_driver_assignment.return_value = DriverAssignment(
        bus=BusInfo(id="b1", bus_no="12") if bus else None,
        routes=routes if routes is not None else [RouteInfo(id="r1", name="Matin"), RouteInfo(id="r2", name="Soir")],
        active_trip=active_trip,
    )
    api.get_route_stops.return_value = make_route_stops()
    api.start_trip.return_value = "t1"
    api.get_trip_status.side_effect = server.status
    api.stop_action.side_effect = server.action
    return api


def make_reporter():
    reporter = MagicMock()
    reporter.is_active = False
    reporter.last_sample = None
    return reporter


def make_controller(api=None, reporter=None, clock=None):
    controller = TripController(api or make_api(), reporter or make_reporter(), clock=clock or Clock())
    return controller


def started_controller(**kwargs):
    controller = make_controller(**kwargs)
    controller.load_driver_data()
    controller.start_trip()
    return controller


def statuses(controller):
    return [s.status for s in controller.stops]


# ============================================================
# Chargement
# ============================================================

def test_chargement_selectionne_le_premier_itineraire():
    controller = make_controller()

    controller.load_driver_data()

    assert controller.bus.id == "b1"
    assert controller.selected_route.id == "r1"
    assert [s.stop_order for s in controller.stops] == [1, 2, 3]
    assert statuses(controller) == ["pending"] * 3
    assert controller.active_trip_id is None


def test_chargement_reprend_un_trajet_actif():
    reporter = make_reporter()
    api = make_api(active_trip=ActiveTripInfo(id="t9", route_id="r2", started_at=START))
    controller = make_controller(api=api, reporter=reporter)

    controller.load_driver_data()

    assert controller.active_trip_id == "t9"
    assert controller.selected_route.id == "r2"
    api.get_trip_status.assert_called_with("t9")
    reporter.start.assert_called_once_with("b1")


def test_chargement_sans_trajet_serveur_arrete_le_suivi_local():
    reporter = make_reporter()
    controller = started_controller(reporter=reporter)

    controller.load_driver_data()

    assert controller.active_trip_id is None
    reporter.stop.assert_called()


def test_chargement_echec_des_arrets_laisse_une_liste_vide():
    api = make_api()
    api.get_route_stops.side_effect = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")
    controller = make_controller(api=api)

    controller.load_driver_data()

    assert controller.selected_route.id == "r1"
    assert controller.stops == []


def test_selection_itineraire_pendant_un_trajet_refusee():
    controller = started_controller()
    with pytest.raises(TripAlreadyActiveError):
        controller.select_route("r2")


def test_selection_itineraire_inconnu_refusee():
    controller = make_controller()
    controller.load_driver_data()
    with pytest.raises(NoRouteSelectedError):
        controller.select_route("r404")


# ============================================================
# start_trip
# ============================================================

def test_demarrage_trajet():
    reporter = make_reporter()
    api = make_api()
    controller = make_controller(api=api, reporter=reporter)
    controller.load_driver_data()

    trip_id = controller.start_trip()

    assert trip_id == "t1"
    api.start_trip.assert_called_once_with("r1")
    assert controller.active_trip_id == "t1"
    assert controller.trip.started_at == START
    assert [s.id for s in controller.stops] == ["ts1", "ts2", "ts3"]
    reporter.start.assert_called_once_with("b1")


def test_demarrage_sur_un_autre_itineraire_charge_ses_arrets():
    api = make_api()
    controller = make_controller(api=api)
    controller.load_driver_data()

    controller.start_trip("r2")

    api.get_route_stops.assert_called_with("r2")
    api.start_trip.assert_called_once_with("r2")
    assert controller.selected_route.id == "r2"


def test_demarrage_sans_bus_refuse():
    api = make_api(bus=False)
    controller = make_controller(api=api)
    controller.load_driver_data()

    with pytest.raises(NoBusAssignedError):
        controller.start_trip("r1")
    api.start_trip.assert_not_called()


def test_demarrage_sans_itineraire_refuse():
    api = make_api(routes=[])
    controller = make_controller(api=api)
    controller.load_driver_data()

    with pytest.raises(NoRouteSelectedError):
        controller.start_trip()
    api.start_trip.assert_not_called()


def test_demarrage_avec_trajet_deja_actif_refuse():
    """Un seul trajet actif : le second démarrage est refusé avant tout appel."""
    api = make_api()
    controller = make_controller(api=api)
    controller.load_driver_data()
    controller.start_trip()

    with pytest.raises(TripAlreadyActiveError):
        controller.start_trip()

    assert api.start_trip.call_count == 1
    assert controller.active_trip_id == "t1"


def test_demarrage_refuse_par_le_serveur_laisse_l_etat_inchange():
    reporter = make_reporter()
    api = make_api()
    api.start_trip.side_effect = RemoteAPIError("Un trajet est déjà actif pour ce bus.", 409)
    controller = make_controller(api=api, reporter=reporter)
    controller.load_driver_data()
    before = controller.snapshot()

    with pytest.raises(RemoteAPIError) as exc:
        controller.start_trip()

    assert exc.value.status_code == 409
    assert controller.snapshot() == before
    reporter.start.assert_not_called()


# ============================================================
# Arrêts
# ============================================================

def test_arrivee_hors_ordre_refusee_sans_appel_distant():
    api = make_api()
    controller = started_controller(api=api)

    with pytest.raises(InvalidStopTransitionError):
        controller.arrive_at_stop("s2")
    api.stop_action.assert_not_called()


def test_arrivee_puis_depart_avance_l_arret_courant():
    controller = started_controller()

    controller.arrive_at_stop("s1")
    assert statuses(controller) == ["arrived", "pending", "pending"]
    controller.complete_stop("s1")

    assert statuses(controller) == ["completed", "pending", "pending"]
    assert controller.snapshot().current_stop_id == "s2"


def test_saut_confirme_puis_arrivee_refusee():
    controller = started_controller()

    controller.skip_stop("s1", confirmed=True)
    assert statuses(controller)[0] == "skipped"

    with pytest.raises(InvalidStopTransitionError):
        controller.arrive_at_stop("s1")


def test_saut_sans_confirmation_refuse():
    api = make_api()
    controller = started_controller(api=api)

    with pytest.raises(ConfirmationRequiredError):
        controller.skip_stop("s1")
    api.stop_action.assert_not_called()
    assert statuses(controller)[0] == "pending"


def test_saut_d_un_arret_arrive_refuse():
    controller = started_controller()
    controller.arrive_at_stop("s1")

    with pytest.raises(InvalidStopTransitionError):
        controller.skip_stop("s1", confirmed=True)


def test_refus_distant_laisse_les_arrets_inchanges():
    api = make_api()
    controller = started_controller(api=api)
    api.stop_action.side_effect = RemoteAPIError("Arrêt précédent non terminé.", 400)

    with pytest.raises(RemoteAPIError):
        controller.arrive_at_stop("s1")

    assert statuses(controller) == ["pending"] * 3


def test_relecture_impossible_applique_la_transition_confirmee():
    api = make_api()
    controller = started_controller(api=api)
    api.get_trip_status.side_effect = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")

    controller.arrive_at_stop("s1")

    assert controller.stops[0].status == "arrived"
    assert controller.stops[0].arrival_time == START


def test_action_sans_trajet_actif_refusee():
    controller = make_controller()
    controller.load_driver_data()
    with pytest.raises(NoActiveTripError):
        controller.arrive_at_stop("s1")


def test_progression_monotone_sur_un_trajet():
    controller = started_controller()
    progress = [controller.snapshot().progress_percent]

    for action, stop_id in [("arrive", "s1"), ("complete", "s1"), ("skip", "s2"), ("arrive", "s3"), ("complete", "s3")]:
        if action == "arrive":
            controller.arrive_at_stop(stop_id)
        elif action == "complete":
            controller.complete_stop(stop_id)
        else:
            controller.skip_stop(stop_id, confirmed=True)
        progress.append(controller.snapshot().progress_percent)

    assert progress == sorted(progress)
    assert progress[-1] == 100.0
    assert controller.snapshot().current_stop_id is None


# ============================================================
# end_trip
# ============================================================

def test_fin_de_trajet_libere_le_suivi():
    reporter = make_reporter()
    clock = Clock()
    controller = started_controller(reporter=reporter, clock=clock)
    clock.now = START + timedelta(minutes=42)

    controller.end_trip()

    reporter.stop.assert_called()
    assert controller.trip.status == "ended"
    assert controller.trip.ended_at == clock.now
    assert controller.active_trip_id is None
    assert controller.elapsed_minutes() == 42


def test_fin_de_trajet_en_echec_garde_le_trajet_actif():
    reporter = make_reporter()
    api = make_api()
    controller = started_controller(api=api, reporter=reporter)
    reporter.stop.reset_mock()
    api.end_trip.side_effect = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")

    with pytest.raises(RemoteAPIError):
        controller.end_trip()

    assert controller.active_trip_id == "t1"
    reporter.stop.assert_not_called()


def test_fin_de_trajet_sans_trajet_actif():
    with pytest.raises(NoActiveTripError):
        make_controller().end_trip()


def test_nouveau_trajet_apres_fin():
    api = make_api()
    controller = started_controller(api=api)
    controller.end_trip()
    api.start_trip.return_value = "t2"

    assert controller.start_trip() == "t2"
    assert controller.trip.status == "active"


# ============================================================
# Lecture / déconnexion
# ============================================================

def test_snapshot_expose_la_vitesse_du_dernier_echantillon():
    reporter = make_reporter()
    reporter.is_active = True
    reporter.last_sample = LocationSample(latitude=50.0, longitude=4.0, speed=36.0, timestamp=START)
    clock = Clock()
    controller = started_controller(reporter=reporter, clock=clock)
    clock.now = START + timedelta(minutes=5, seconds=30)

    state = controller.snapshot()

    assert state.speed_kmh == 36.0
    assert state.is_tracking is True
    assert state.elapsed_minutes == 5
    assert state.active_trip_id == "t1"


def test_reset_oublie_l_etat_chauffeur():
    reporter = make_reporter()
    controller = started_controller(reporter=reporter)

    controller.reset()

    reporter.stop.assert_called()
    assert controller.bus is None
    assert controller.active_trip_id is None
    assert controller.stops == []


# ============================================================
# Suivi GPS sans permission
# ============================================================

def test_demarrage_sans_permission_signale_le_suivi_inactif():
    reporter = make_reporter()
    reporter.start.return_value = False

    controller = started_controller(reporter=reporter)
    state = controller.snapshot()

    assert state.active_trip_id == "t1"
    assert state.is_tracking is False
    assert "Permission de localisation" in state.tracking_warning


def test_permission_accordee_relance_le_suivi_du_trajet_actif():
    reporter = make_reporter()
    reporter.start.return_value = False
    controller = started_controller(reporter=reporter)

    reporter.start.return_value = True
    resumed = controller.resume_tracking()

    assert resumed is True
    assert reporter.start.call_count == 2
    reporter.start.assert_called_with("b1")
    assert controller.snapshot().tracking_warning is None


def test_relance_du_suivi_sans_trajet_actif_ne_fait_rien():
    reporter = make_reporter()
    controller = make_controller(reporter=reporter)
    controller.load_driver_data()

    assert controller.resume_tracking() is False
    reporter.start.assert_not_called()


def test_relance_du_suivi_deja_actif_ne_redemarre_pas():
    reporter = make_reporter()
    controller = started_controller(reporter=reporter)
    reporter.is_active = True

    assert controller.resume_tracking() is True
    reporter.start.assert_called_once_with("b1")


def test_reprise_sans_permission_signale_le_suivi_inactif():
    reporter = make_reporter()
    reporter.start.return_value = False
    api = make_api(active_trip=ActiveTripInfo(id="t9", route_id="r2", started_at=START))
    controller = make_controller(api=api, reporter=reporter)

    controller.load_driver_data()

    assert controller.active_trip_id == "t9"
    assert controller.tracking_warning is not None

    reporter.start.return_value = True
    controller.resume_tracking()

    assert controller.tracking_warning is None


def test_fin_de_trajet_efface_l_avertissement_de_suivi():
    reporter = make_reporter()
    reporter.start.return_value = False
    controller = started_controller(reporter=reporter)

    controller.end_trip()

    assert controller.tracking_warning is None


# ============================================================
# Reprise d'un trajet actif : arrêts statiques en repli
# ============================================================

def test_reprise_relecture_impossible_affiche_les_arrets_statiques():
    api = make_api(active_trip=ActiveTripInfo(id="t9", route_id="r2", started_at=START))
    api.get_trip_status.side_effect = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")
    controller = make_controller(api=api)

    controller.load_driver_data()

    api.get_route_stops.assert_called_once_with("r2")
    assert controller.active_trip_id == "t9"
    assert [s.stop_order for s in controller.stops] == [1, 2, 3]
    assert statuses(controller) == ["pending"] * 3
    assert controller.snapshot().current_stop_id == "s1"


def test_reprise_echec_des_arrets_statiques_n_empeche_pas_la_reprise():
    api = make_api(active_trip=ActiveTripInfo(id="t9", route_id="r2", started_at=START))
    api.get_route_stops.side_effect = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")
    reporter = make_reporter()
    controller = make_controller(api=api, reporter=reporter)

    controller.load_driver_data()

    assert controller.active_trip_id == "t9"
    assert [s.stop_id for s in controller.stops] == ["s1", "s2", "s3"]
    reporter.start.assert_called_once_with("b1")
