"""
Politiques explicites de traitement des échecs d'appels distants.

- critical(...)    : chemin critique (pull, démarrage/fin de trajet, transitions d'arrêt).
                     L'échec est loggé puis propagé jusqu'à l'écran.
- best_effort(...) : chemin best-effort (push unitaire, positions GPS, heartbeats).
                     L'échec est loggé et absorbé ; l'appelant reçoit un BestEffortOutcome.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Type

logger = logging.getLogger(__name__)


@dataclass
class BestEffortOutcome:
    action: str
    ok: bool
    value: Any = None
    error: Optional[Exception] = None


def critical(
    action: str,
    func: Callable[..., Any],
    *args: Any,
    error_cls: Optional[Type[Exception]] = None,
    **kwargs: Any,
) -> Any:
    """
    Exécute un appel du chemin critique.
    Si `error_cls` est fourni, l'exception d'origine est encapsulée dans ce type
    (chaînée via __cause__), sauf si elle en est déjà une instance.
    """
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        logger.error("Échec de l'opération critique « %s » : %s", action, exc)
        if error_cls is not None and not isinstance(exc, error_cls):
            raise error_cls(f"{action} : {exc}") from exc
        raise


def best_effort(action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> BestEffortOutcome:
    """Exécute un appel best-effort : ne lève jamais, l'échec est seulement loggé."""
    try:
        return BestEffortOutcome(action=action, ok=True, value=func(*args, **kwargs))
    except Exception as exc:
        logger.warning("Échec ignoré (best-effort) « %s » : %s", action, exc)
        return BestEffortOutcome(action=action, ok=False, error=exc)
