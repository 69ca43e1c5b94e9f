"""
Séquencement des arrêts d'un trajet (fonctions pures sur la liste des arrêts).

Machine à états par arrêt :
    pending → arrived → completed
    pending → skipped
Seul l'arrêt courant (plus petit stop_order encore pending/arrived) accepte une action.
"""

from typing import List, Optional

from app.exceptions import InvalidStopTransitionError
from app.schemas.trip import OPEN_STOP_STATUSES, TERMINAL_STOP_STATUSES, TripStop

# action → (statut requis, statut obtenu)
TRANSITIONS = {
    "arrive": ("pending", "arrived"),
    "complete": ("arrived", "completed"),
    "skip": ("pending", "skipped"),
}


def ordered(stops: List[TripStop]) -> List[TripStop]:
    return sorted(stops, key=lambda s: s.stop_order)


def current_stop(stops: List[TripStop]) -> Optional[TripStop]:
    for stop in ordered(stops):
        if stop.status in OPEN_STOP_STATUSES:
            return stop
    return None


def completed_count(stops: List[TripStop]) -> int:
    return sum(1 for s in stops if s.status in TERMINAL_STOP_STATUSES)


def progress_percent(stops: List[TripStop]) -> float:
    if not stops:
        return 0.0
    return completed_count(stops) / len(stops) * 100


def check_transition(stops: List[TripStop], stop_id: str, action: str) -> TripStop:
    """
    Vérifie qu'une action est permise sur un arrêt, sans rien modifier.
    Retourne l'arrêt concerné ; lève InvalidStopTransitionError sinon.
    """
    if action not in TRANSITIONS:
        raise InvalidStopTransitionError(f"Action d'arrêt inconnue : {action}.")
    required, _ = TRANSITIONS[action]

    stop = next((s for s in stops if s.stop_id == stop_id), None)
    if stop is None:
        raise InvalidStopTransitionError(f"Arrêt {stop_id} absent de ce trajet.")

    if stop.status in TERMINAL_STOP_STATUSES:
        raise InvalidStopTransitionError(
            f"L'arrêt {stop.stop_order} est déjà terminé ({stop.status})."
        )
    if stop.status != required:
        raise InvalidStopTransitionError(
            f"Action '{action}' impossible : l'arrêt {stop.stop_order} est en statut {stop.status}."
        )

    current = current_stop(stops)
    if current is None or current.stop_id != stop_id:
        raise InvalidStopTransitionError(
            f"L'arrêt {stop.stop_order} n'est pas l'arrêt courant "
            f"(arrêt courant : {current.stop_order if current else 'aucun'})."
        )
    return stop


def apply_transition(stops: List[TripStop], stop_id: str, action: str, at) -> List[TripStop]:
    """
    Applique localement une transition DÉJÀ confirmée par le serveur.
    Utilisé uniquement quand la relecture du statut distant échoue.
    """
    _, target = TRANSITIONS[action]
    result = []
    for stop in stops:
        if stop.stop_id == stop_id:
            changes = {"status": target}
            if action == "arrive":
                changes["arrival_time"] = at
            elif action == "complete":
                changes["departure_time"] = at
            stop = stop.model_copy(update=changes)
        result.append(stop)
    return ordered(result)
