"""
Client HTTP vers l'API distante (source de vérité).

Gestion des statuts alignée sur le client de l'app mobile :
- 400 / 422 : message de validation renvoyé tel quel
- 401       : session expirée → publication de `session.expired` sur le bus
              (sauf endpoints de login/refresh : identifiants invalides)
- 403 / 429 : accès refusé / limitation de débit
- réseau    : RemoteAPIError sans statut
- 204       : None
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from app.events import SESSION_EXPIRED, EventBus

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


class RemoteAPIError(Exception):
    """Erreur renvoyée (ou provoquée) par l'API distante."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors
        self.request_id = request_id

    @property
    def is_rejection(self) -> bool:
        """True si le serveur a explicitement refusé l'opération (4xx)."""
        return self.status_code is not None and 400 <= self.status_code < 500


class SessionExpiredError(RemoteAPIError):
    pass


def _error_payload(response: requests.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class RemoteClient:
    """Session HTTP authentifiée vers l'API distante."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        token_provider: Optional[TokenProvider] = None,
        event_bus: Optional[EventBus] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._token_provider = token_provider
        self._event_bus = event_bus
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        headers = {}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        url = f"{self._base_url}{endpoint}"
        try:
            response = self._session.request(
                method,
                url,
                params=params or None,
                json=json,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Erreur réseau %s %s : %s", method, endpoint, exc)
            raise RemoteAPIError("Erreur réseau. Vérifiez votre connexion.") from exc

        request_id = response.headers.get("x-request-id") or response.headers.get("request-id")

        if not response.ok:
            self._raise_for_status(response, endpoint, request_id)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _raise_for_status(self, response: requests.Response, endpoint: str, request_id: Optional[str]) -> None:
        status = response.status_code
        error_data = _error_payload(response)
        remote_message = error_data.get("message") or error_data.get("error")

        if status in (400, 422):
            raise RemoteAPIError(
                remote_message or "Validation refusée par le serveur.",
                status,
                error_data.get("errors"),
                request_id,
            )

        if status == 401:
            if "/login" in endpoint or "/refresh" in endpoint:
                raise RemoteAPIError(remote_message or "Identifiants invalides.", 401, None, request_id)
            logger.warning("Session expirée (401) sur %s, déconnexion globale.", endpoint)
            if self._event_bus is not None:
                self._event_bus.publish(SESSION_EXPIRED, {"endpoint": endpoint, "request_id": request_id})
            raise SessionExpiredError("Session expirée. Veuillez vous reconnecter.", 401, None, request_id)

        if status == 403:
            raise RemoteAPIError("Accès refusé.", 403, None, request_id)

        if status == 429:
            message = remote_message or "Trop de requêtes. Réessayez plus tard."
            logger.warning("Limitation de débit (429) sur %s : %s", endpoint, message)
            raise RemoteAPIError(message, 429, None, request_id)

        logger.error("Erreur API %s %s (request id : %s) : %s", status, endpoint, request_id, error_data)
        raise RemoteAPIError(remote_message or "Requête en échec.", status, None, request_id)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Any = None) -> Any:
        return self.request("POST", endpoint, json=data)

    def put(self, endpoint: str, data: Any = None) -> Any:
        return self.request("PUT", endpoint, json=data)

    def delete(self, endpoint: str) -> Any:
        return self.request("DELETE", endpoint)

    def close(self) -> None:
        self._session.close()
