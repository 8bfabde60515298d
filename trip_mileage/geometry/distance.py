"""Great-circle distance helpers (Distance Estimator)."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..config import DISTANCE_CORRECTION_FACTOR
from ..models import GpsFix, LatLon

EARTH_RADIUS_KM = 6371.0

FloatArray = NDArray[np.float64]


def haversine_km(a: LatLon, b: LatLon) -> float:
    """Return the great-circle distance between two (lat, lon) pairs in km."""

    lat1, lon1 = a
    lat2, lon2 = b
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def segment_distances_km(fixes: Sequence[GpsFix]) -> FloatArray:
    """Vectorised haversine between consecutive fixes (length ``n - 1``)."""

    if len(fixes) < 2:
        return np.empty(0, dtype=float)
    lats = np.radians(np.asarray([f.latitude for f in fixes], dtype=float))
    lons = np.radians(np.asarray([f.longitude for f in fixes], dtype=float))
    dlat = np.diff(lats)
    dlon = np.diff(lons)
    h = (
        np.sin(dlat / 2) ** 2
        + np.cos(lats[:-1]) * np.cos(lats[1:]) * np.sin(dlon / 2) ** 2
    )
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))


def segment_speeds_kmh(fixes: Sequence[GpsFix]) -> FloatArray:
    """Inter-fix speeds in km/h; pairs with no elapsed time yield ``nan``."""

    distances = segment_distances_km(fixes)
    if distances.size == 0:
        return distances
    seconds = np.asarray(
        [
            (b.captured_at - a.captured_at).total_seconds()
            for a, b in zip(fixes[:-1], fixes[1:])
        ],
        dtype=float,
    )
    hours = seconds / 3600.0
    with np.errstate(divide="ignore", invalid="ignore"):
        speeds = np.where(hours > 0, distances / np.where(hours > 0, hours, 1.0), np.nan)
    return speeds


def path_distance_km(fixes: Sequence[GpsFix]) -> float:
    """Sum of great-circle distances along the fix trail."""

    return float(np.sum(segment_distances_km(fixes)))


def corrected_distance_km(
    raw_km: float, correction_factor: float = DISTANCE_CORRECTION_FACTOR
) -> float:
    """Approximate road distance from summed straight-line segments."""

    return raw_km * correction_factor


__all__ = [
    "EARTH_RADIUS_KM",
    "haversine_km",
    "segment_distances_km",
    "segment_speeds_kmh",
    "path_distance_km",
    "corrected_distance_km",
]
