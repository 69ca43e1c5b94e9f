"""
Schémas Pydantic pour la position GPS du bus.

RawLocationFix : position brute transmise par l'app mobile (fournisseur de localisation).
LocationSample : échantillon envoyé au serveur, vitesse convertie en km/h.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class RawLocationFix(BaseModel):
    latitude: float
    longitude: float
    speed: Optional[float] = None     # m/s, peut être absente ou négative (bruit capteur)
    heading: Optional[float] = None
    mocked: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("latitude")
    @classmethod
    def valid_latitude(cls, v: float) -> float:
        if not -90.0 <= v <= 90.0:
            raise ValueError("Latitude hors limites (-90..90).")
        return v

    @field_validator("longitude")
    @classmethod
    def valid_longitude(cls, v: float) -> float:
        if not -180.0 <= v <= 180.0:
            raise ValueError("Longitude hors limites (-180..180).")
        return v


class LocationSample(BaseModel):
    latitude: float
    longitude: float
    speed: float                      # km/h, toujours >= 0
    heading: Optional[float] = None
    is_mocked: bool = False
    timestamp: datetime


class LocationPermission(BaseModel):
    granted: bool


class LocationDispatchResult(BaseModel):
    accepted: bool       # False si la position a été filtrée (intervalle temps/distance)
    subscribers: int
