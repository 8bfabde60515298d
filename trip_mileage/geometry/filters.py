"""Point normalizer: drops unreliable fixes and computes effective speeds."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, List, Optional

from ..config import (
    DEFAULT_ACCURACY_M,
    MAX_ACCURACY_M,
    MAX_SPEED_KMH,
    SENSOR_STATIONARY_MPS,
)
from ..models import GpsFix
from .distance import haversine_km

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FilterThresholds:
    """Limits applied before a fix pair is allowed to drive segmentation."""

    max_accuracy_m: float = MAX_ACCURACY_M
    max_speed_kmh: float = MAX_SPEED_KMH
    default_accuracy_m: float = DEFAULT_ACCURACY_M
    sensor_stationary_mps: float = SENSOR_STATIONARY_MPS


@dataclass(frozen=True, slots=True)
class PairMeasurement:
    """Displacement and effective speed between two adjacent fixes."""

    distance_km: float
    elapsed_s: float
    speed_kmh: float
    glitch: bool


def filter_fixes(
    fixes: Iterable[GpsFix], max_accuracy_m: float = MAX_ACCURACY_M
) -> List[GpsFix]:
    """Return fixes whose reported accuracy is within ``max_accuracy_m``.

    Fixes without an accuracy value are kept.
    """

    kept: List[GpsFix] = []
    dropped = 0
    for fix in fixes:
        if fix.accuracy_m is not None and fix.accuracy_m > max_accuracy_m:
            dropped += 1
            continue
        kept.append(fix)
    if dropped:
        LOGGER.debug(
            "Dropped %d fixes with accuracy worse than %.0fm", dropped, max_accuracy_m
        )
    return kept


def measure_pair(
    earlier: GpsFix,
    later: GpsFix,
    thresholds: FilterThresholds = FilterThresholds(),
) -> Optional[PairMeasurement]:
    """Measure the pair ``earlier -> later``.

    Returns ``None`` when no time elapsed between the fixes. The effective
    speed is zero when the displacement is inside either fix's error circle or
    when both fixes report a near-zero sensor speed.
    """

    elapsed_s = (later.captured_at - earlier.captured_at).total_seconds()
    if elapsed_s <= 0:
        return None
    distance_km = haversine_km(earlier.coord, later.coord)
    speed_kmh = distance_km / (elapsed_s / 3600.0)

    noise_floor_m = max(
        _accuracy_or_default(earlier, thresholds.default_accuracy_m),
        _accuracy_or_default(later, thresholds.default_accuracy_m),
    )
    if distance_km * 1000.0 < noise_floor_m:
        speed_kmh = 0.0

    if (
        earlier.sensor_speed_mps is not None
        and later.sensor_speed_mps is not None
        and earlier.sensor_speed_mps < thresholds.sensor_stationary_mps
        and later.sensor_speed_mps < thresholds.sensor_stationary_mps
    ):
        speed_kmh = 0.0

    return PairMeasurement(
        distance_km=distance_km,
        elapsed_s=elapsed_s,
        speed_kmh=speed_kmh,
        glitch=speed_kmh > thresholds.max_speed_kmh,
    )


def effective_speed_kmh(
    earlier: GpsFix,
    later: GpsFix,
    thresholds: FilterThresholds = FilterThresholds(),
) -> float:
    """Return the noise-aware speed between two chronologically ordered fixes."""

    measurement = measure_pair(earlier, later, thresholds)
    if measurement is None:
        raise ValueError("Fixes must be in strictly increasing time order")
    return measurement.speed_kmh


def _accuracy_or_default(fix: GpsFix, default: float) -> float:
    return fix.accuracy_m if fix.accuracy_m is not None else default


__all__ = [
    "FilterThresholds",
    "PairMeasurement",
    "filter_fixes",
    "measure_pair",
    "effective_speed_kmh",
]
