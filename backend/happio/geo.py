"""Great-circle distance and distance ranking for the nearby page."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

EARTH_RADIUS_KM = 6371.0

# Browser geolocation policy for the nearby page
GEOLOCATION_TIMEOUT_MS = 10_000
GEOLOCATION_MAXIMUM_AGE_MS = 60_000

T = TypeVar("T")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Distance in kilometres between two WGS-84 positions given in degrees.

    Coordinates are not range checked; callers only pass real positions.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True, slots=True)
class Ranked(Generic[T]):
    item: T
    distance_km: float


def _position(item: Any) -> tuple[float | None, float | None, str]:
    if isinstance(item, dict):
        return item.get("latitude"), item.get("longitude"), str(item.get("id", ""))
    return (
        getattr(item, "latitude", None),
        getattr(item, "longitude", None),
        str(getattr(item, "id", "")),
    )


def rank_nearby(
    lat: float | None,
    lon: float | None,
    candidates: Iterable[T],
    limit: int = 10,
) -> list[Ranked[T]]:
    """
    Order candidates by distance from (lat, lon) and keep the closest `limit`.

    Candidates without a position are skipped. Equal distances are ordered by
    restaurant id so the output is reproducible. Returns [] when either caller
    coordinate is missing.
    """
    if lat is None or lon is None or limit <= 0:
        return []
    ranked: list[tuple[float, str, T]] = []
    for candidate in candidates:
        c_lat, c_lon, ident = _position(candidate)
        if c_lat is None or c_lon is None:
            continue
        ranked.append((haversine_km(lat, lon, c_lat, c_lon), ident, candidate))
    ranked.sort(key=lambda entry: (entry[0], entry[1]))
    return [Ranked(item=item, distance_km=distance) for distance, _, item in ranked[:limit]]


class GeolocationFailure(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


GEOLOCATION_MESSAGES: dict[GeolocationFailure, str] = {
    GeolocationFailure.PERMISSION_DENIED: (
        "Je hebt locatietoegang geweigerd. Sta locatietoegang toe in je browserinstellingen "
        "en probeer het opnieuw."
    ),
    GeolocationFailure.POSITION_UNAVAILABLE: (
        "Je locatie kon niet worden bepaald. Controleer of locatievoorzieningen aan staan."
    ),
    GeolocationFailure.TIMEOUT: "Het ophalen van je locatie duurde te lang. Probeer het opnieuw.",
    GeolocationFailure.UNKNOWN: "Er ging iets mis bij het ophalen van je locatie.",
}


def geolocation_policy() -> dict[str, Any]:
    return {
        "timeout_ms": GEOLOCATION_TIMEOUT_MS,
        "maximum_age_ms": GEOLOCATION_MAXIMUM_AGE_MS,
        "messages": {reason.value: text for reason, text in GEOLOCATION_MESSAGES.items()},
    }


__all__ = [
    "EARTH_RADIUS_KM",
    "GeolocationFailure",
    "Ranked",
    "geolocation_policy",
    "haversine_km",
    "rank_nearby",
]
