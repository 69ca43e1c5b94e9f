"""
Remontée de la position du bus pendant un trajet actif.

- Positions : abonnement au fournisseur de localisation (intervalle ~10 s / ~15 m),
  chaque échantillon est envoyé immédiatement, indépendamment des autres.
- Heartbeat : job APScheduler à période fixe (~30 s), indépendant des positions.
Les deux envois sont best-effort : un échec réseau est loggé, jamais rejoué,
et n'interrompt jamais le trajet. Les deux ressources DOIVENT être libérées par
stop() en fin de trajet ou à l'arrêt du service.
"""

import logging
import threading
from typing import Optional

from apscheduler.jobstores.base import JobLookupError

from app.config import settings
from app.remote.transport_api import TransportAPI
from app.schemas.location import LocationSample, RawLocationFix
from app.services.call_policy import best_effort
from app.services.location_provider import DeviceFeedLocationProvider

logger = logging.getLogger(__name__)

MS_TO_KMH = 3.6


def derive_speed_kmh(raw_speed: Optional[float]) -> float:
    """Vitesse brute (m/s) → km/h. Absente, nulle, négative ou NaN → 0."""
    if raw_speed is None or not raw_speed > 0:
        return 0.0
    return raw_speed * MS_TO_KMH


def build_sample(fix: RawLocationFix) -> LocationSample:
    return LocationSample(
        latitude=fix.latitude,
        longitude=fix.longitude,
        speed=derive_speed_kmh(fix.speed),
        heading=fix.heading,
        is_mocked=fix.mocked,
        timestamp=fix.timestamp,
    )


class LocationReporter:

    def __init__(
        self,
        transport_api: TransportAPI,
        provider: DeviceFeedLocationProvider,
        scheduler,
        time_interval_seconds: float = settings.LOCATION_TIME_INTERVAL_SECONDS,
        distance_interval_meters: float = settings.LOCATION_DISTANCE_INTERVAL_METERS,
        heartbeat_interval_seconds: int = settings.HEARTBEAT_INTERVAL_SECONDS,
    ) -> None:
        self._api = transport_api
        self._provider = provider
        self._scheduler = scheduler
        self._time_interval_seconds = time_interval_seconds
        self._distance_interval_meters = distance_interval_meters
        self._heartbeat_interval_seconds = heartbeat_interval_seconds
        self._lock = threading.Lock()
        self._bus_id: Optional[str] = None
        self._subscription = None
        self._heartbeat_job = None
        self.last_sample: Optional[LocationSample] = None

    @property
    def is_active(self) -> bool:
        return self._subscription is not None or self._heartbeat_job is not None

    def start(self, bus_id: str) -> bool:
        """
        Démarre positions + heartbeat pour un bus (redémarre proprement si déjà actif).
        Retourne False si la permission de localisation est refusée : rien n'est démarré.
        """
        self.stop()

        if not self._provider.request_foreground_permission():
            logger.warning("Permission GPS refusée : suivi non démarré pour le bus %s.", bus_id)
            return False

        with self._lock:
            self._bus_id = bus_id
            self._subscription = self._provider.watch_position(
                self._on_fix,
                time_interval_seconds=self._time_interval_seconds,
                distance_interval_meters=self._distance_interval_meters,
            )
            self._heartbeat_job = self._scheduler.add_job(
                self._send_heartbeat,
                trigger="interval",
                seconds=self._heartbeat_interval_seconds,
                id=f"heartbeat_{bus_id}",
                replace_existing=True,
            )

        logger.info(
            "Suivi de position démarré pour le bus %s (heartbeat toutes les %ds).",
            bus_id, self._heartbeat_interval_seconds,
        )
        return True

    def stop(self) -> None:
        """Libère l'abonnement GPS et le job heartbeat. Idempotent."""
        with self._lock:
            subscription, job = self._subscription, self._heartbeat_job
            self._subscription = None
            self._heartbeat_job = None
            bus_id, self._bus_id = self._bus_id, None

        if subscription is None and job is None:
            return

        if subscription is not None:
            subscription.remove()
        if job is not None:
            try:
                job.remove()
            except JobLookupError:
                logger.debug("Job heartbeat déjà retiré (bus %s).", bus_id)
        logger.info("Suivi de position arrêté pour le bus %s.", bus_id)

    def _on_fix(self, fix: RawLocationFix) -> None:
        bus_id = self._bus_id
        if bus_id is None:
            return
        sample = build_sample(fix)
        self.last_sample = sample
        best_effort("envoi de position", self._api.post_location, bus_id, sample)

    def _send_heartbeat(self) -> None:
        bus_id = self._bus_id
        if bus_id is None:
            return
        best_effort("heartbeat", self._api.heartbeat, bus_id)
