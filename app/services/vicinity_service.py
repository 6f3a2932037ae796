"""Point-geometry parsing, great-circle distance and vicinity gating.

Geometries arrive either as PostGIS-style text (``POINT(lon lat)``, optionally
prefixed ``SRID=4326;``) or as a GeoJSON-like mapping with a ``coordinates``
``[lon, lat]`` pair. Parsing never raises: anything unusable yields ``None``
and every comparison involving it reports the location as unavailable.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_THRESHOLD_METERS = 50.0

_WRAPPER_RE = re.compile(r"SRID=\d+;|POINT|[()]", re.IGNORECASE)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_point(self, srid: bool = False) -> str:
        point = f"POINT({self.longitude} {self.latitude})"
        return f"SRID=4326;{point}" if srid else point


@dataclass(frozen=True)
class VicinityResult:
    distance_km: Optional[float]
    within_meters: bool


@dataclass(frozen=True)
class GateDecision:
    action: str
    enabled: bool
    permitted: bool
    distance_km: Optional[float]
    threshold_m: float

    @property
    def distance_display(self) -> str:
        return format_distance_display(self.distance_km)


def _finite(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_geometry(geo: Any) -> Optional[Coordinates]:
    if not geo:
        return None
    try:
        if isinstance(geo, str):
            parts = _WRAPPER_RE.sub(" ", geo).split()
            if len(parts) >= 2:
                longitude, latitude = _finite(parts[0]), _finite(parts[1])
                if longitude is not None and latitude is not None:
                    return Coordinates(latitude=latitude, longitude=longitude)
            return None
        if isinstance(geo, Mapping):
            coords = geo.get("coordinates")
            if coords is not None and len(coords) >= 2:
                longitude, latitude = _finite(coords[0]), _finite(coords[1])
                if longitude is not None and latitude is not None:
                    return Coordinates(latitude=latitude, longitude=longitude)
    except TypeError as exc:
        logger.warning("parse_geometry: unusable geometry %r: %s", geo, exc)
    return None


def calculate_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometers over a mean Earth radius of 6371 km."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(a: Coordinates, b: Coordinates) -> float:
    return calculate_distance_km(a.latitude, a.longitude, b.latitude, b.longitude)


def is_within_threshold(distance_km: Optional[float], threshold_m: float) -> bool:
    return distance_km is not None and distance_km * 1000 <= threshold_m


def compare_geometries_vicinity(geo_a: Any, geo_b: Any, meters_threshold: float = DEFAULT_THRESHOLD_METERS) -> VicinityResult:
    a = parse_geometry(geo_a)
    b = parse_geometry(geo_b)
    if a is None or b is None:
        return VicinityResult(distance_km=None, within_meters=False)
    distance_km = distance_between(a, b)
    return VicinityResult(distance_km=distance_km, within_meters=is_within_threshold(distance_km, meters_threshold))


def format_distance_display(distance_km: Optional[float]) -> str:
    if distance_km is None:
        return "Location unavailable"
    if distance_km < 1:
        return f"{max(0, round(distance_km * 1000))} m"
    return f"{distance_km:.2f} km"


class VicinityGate:
    """Decides whether a location-guarded action may proceed.

    One threshold per action. When the gate is disabled every action is
    permitted, but the distance is still reported when it can be computed.
    """

    def __init__(self, enabled: bool, thresholds: Mapping[str, float]):
        self.enabled = enabled
        self.thresholds = dict(thresholds)

    @classmethod
    def from_settings(cls, s=settings) -> "VicinityGate":
        return cls(
            enabled=s.VICINITY_FEATURE_ENABLED,
            thresholds={
                "pickup": s.PICKUP_VICINITY_METERS,
                "deliver": s.DELIVERY_VICINITY_METERS,
                "fail": s.FAILURE_VICINITY_METERS,
            },
        )

    def threshold_for(self, action: str) -> float:
        return self.thresholds.get(action, DEFAULT_THRESHOLD_METERS)

    def check(self, action: str, device_geo: Any, target_geo: Any) -> GateDecision:
        threshold = self.threshold_for(action)
        result = compare_geometries_vicinity(device_geo, target_geo, threshold)
        permitted = True if not self.enabled else result.within_meters
        return GateDecision(
            action=action,
            enabled=self.enabled,
            permitted=permitted,
            distance_km=result.distance_km,
            threshold_m=threshold,
        )
