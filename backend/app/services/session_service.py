"""
Session de l'utilisateur sur l'appareil.

Le jeton d'accès est fourni par l'app mobile (l'authentification et le rafraîchissement
du jeton restent externes). La déconnexion est déclenchée soit explicitement, soit par
l'événement `session.expired` publié par le client HTTP sur le bus d'événements.
"""

import logging
import threading
from typing import Callable, List, Optional

from app.events import SESSION_EXPIRED, EventBus
from app.services.local_store import LocalStore

logger = logging.getLogger(__name__)


class SessionService:

    def __init__(self, event_bus: EventBus, store: LocalStore, access_token: Optional[str] = None) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._access_token = access_token or None
        self._logout_hooks: List[Callable[[], None]] = []
        event_bus.subscribe(SESSION_EXPIRED, self._on_session_expired)

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    def get_access_token(self) -> Optional[str]:
        return self._access_token

    def set_access_token(self, token: str) -> None:
        with self._lock:
            self._access_token = token
        logger.info("Jeton d'accès mis à jour.")

    def add_logout_hook(self, hook: Callable[[], None]) -> None:
        """Action exécutée à la déconnexion (ex. libération du suivi de trajet)."""
        self._logout_hooks.append(hook)

    def logout(self, reason: str = "déconnexion demandée") -> None:
        """Oublie le jeton, exécute les hooks de déconnexion puis vide le cache local."""
        with self._lock:
            self._access_token = None
        for hook in self._logout_hooks:
            hook()
        self._store.reset()
        logger.info("Session fermée (%s).", reason)

    def _on_session_expired(self, event: dict) -> None:
        self.logout(reason=f"session expirée sur {event.get('endpoint', '?')}")
