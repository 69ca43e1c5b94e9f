"""
Fournisseur de localisation alimenté par l'app mobile.

L'app transmet chaque position brute du GPS (POST /api/v1/driver/location) ;
le fournisseur la redistribue aux abonnements actifs, chacun filtrant selon
un intervalle de temps ET un intervalle de distance : le premier seuil atteint
déclenche un échantillon.
"""

import logging
import math
import threading
from typing import Callable, List, Optional

from app.schemas.location import RawLocationFix

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000.0

FixCallback = Callable[[RawLocationFix], None]


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance orthodromique (haversine) entre deux points, en mètres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


class SampleThrottle:
    """Laisse passer une position si le temps OU la distance depuis la dernière émise dépasse son seuil."""

    def __init__(self, time_interval_seconds: float, distance_interval_meters: float) -> None:
        self.time_interval_seconds = time_interval_seconds
        self.distance_interval_meters = distance_interval_meters
        self._last: Optional[RawLocationFix] = None

    def should_emit(self, fix: RawLocationFix) -> bool:
        last = self._last
        if last is not None:
            elapsed = (fix.timestamp - last.timestamp).total_seconds()
            moved = distance_meters(last.latitude, last.longitude, fix.latitude, fix.longitude)
            if elapsed < self.time_interval_seconds and moved < self.distance_interval_meters:
                return False
        self._last = fix
        return True


class LocationSubscription:

    def __init__(self, provider: "DeviceFeedLocationProvider", callback: FixCallback, throttle: SampleThrottle) -> None:
        self._provider = provider
        self.callback = callback
        self.throttle = throttle

    def remove(self) -> None:
        """Libère l'abonnement. Idempotent."""
        self._provider.release(self)


class DeviceFeedLocationProvider:

    def __init__(self, permission_granted: bool = False) -> None:
        self._lock = threading.Lock()
        self._permission_granted = permission_granted
        self._subscriptions: List[LocationSubscription] = []

    def set_permission(self, granted: bool) -> None:
        self._permission_granted = granted
        logger.info("Permission de localisation au premier plan : %s", "accordée" if granted else "refusée")

    def request_foreground_permission(self) -> bool:
        return self._permission_granted

    @property
    def active_subscriptions(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def watch_position(
        self,
        callback: FixCallback,
        time_interval_seconds: float,
        distance_interval_meters: float,
    ) -> LocationSubscription:
        subscription = LocationSubscription(
            self, callback, SampleThrottle(time_interval_seconds, distance_interval_meters)
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def release(self, subscription: LocationSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def push_fix(self, fix: RawLocationFix) -> int:
        """Distribue une position brute ; retourne le nombre d'abonnements qui l'ont retenue."""
        with self._lock:
            subscriptions = list(self._subscriptions)

        delivered = 0
        for subscription in subscriptions:
            if subscription.throttle.should_emit(fix):
                subscription.callback(fix)
                delivered += 1
        return delivered
