"""
Bus d'événements in-process (pub/sub).

Câblé au démarrage du service : la couche réseau publie `session.expired`,
le service de session s'y abonne ; le LocalStore publie ses mutations
pour les abonnements de requêtes (écrans réactifs).
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

SESSION_EXPIRED = "session.expired"
DIARY_CHANGED = "local_store.diary_changed"
PROFILE_CHANGED = "local_store.profile_changed"

Event = Dict[str, Any]
Handler = Callable[[Event], None]


class EventBus:
    """Bus d'événements avec routage par topic ("*" = tous les topics)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        """Retire un abonné. Sans effet s'il n'est pas (ou plus) abonné."""
        with self._lock:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, topic: str, event: Event) -> None:
        """
        Publie un événement. Les handlers sont appelés hors verrou, dans le thread
        de l'appelant ; l'échec d'un handler est loggé et n'interrompt pas les autres.
        """
        handlers: List[Handler] = []
        with self._lock:
            handlers.extend(self._subscribers.get(topic, []))
            handlers.extend(self._subscribers.get("*", []))
        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                logger.error("Handler en échec pour le topic '%s' : %s", topic, exc)
