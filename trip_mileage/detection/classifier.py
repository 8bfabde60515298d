"""Transport-mode classification for finalized trips."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ..config import (
    DRIVING_AVG_SPEED_KMH,
    GREY_ZONE_TIEBREAK_KMH,
    MAX_SPEED_KMH,
    SLOW_SEGMENT_RATIO,
    SLOW_SEGMENT_SPEED_KMH,
    WALKING_AVG_SPEED_KMH,
    WALKING_MAX_DISTANCE_KM,
)
from ..geometry.distance import segment_speeds_kmh
from ..models import GpsFix, TransportMode

LOGGER = logging.getLogger(__name__)


def classify_transport_mode(
    fixes: Sequence[GpsFix],
    distance_km: float,
    elapsed_s: float,
) -> TransportMode:
    """Label a trip as driving or walking.

    Args:
        fixes: The trip's fixes in chronological order.
        distance_km: Corrected trip distance.
        elapsed_s: Seconds between the trip's first and last fix.

    Returns:
        ``TransportMode.DRIVING`` or ``TransportMode.WALKING``. Average speeds in
        the grey zone between the walking and driving limits are resolved from
        the inter-fix speeds: a short trip made mostly of slow segments is a
        walk, anything else is treated as stop-and-go driving.
    """

    if elapsed_s <= 0:
        return TransportMode.DRIVING
    avg_speed = distance_km / (elapsed_s / 3600.0)
    if avg_speed > DRIVING_AVG_SPEED_KMH:
        return TransportMode.DRIVING
    if avg_speed < WALKING_AVG_SPEED_KMH:
        return TransportMode.WALKING

    speeds = segment_speeds_kmh(fixes)
    valid = speeds[np.isfinite(speeds) & (speeds < MAX_SPEED_KMH)]
    if valid.size < 2:
        LOGGER.debug(
            "Grey-zone trip with %d usable segments; avg speed %.1f km/h decides",
            valid.size,
            avg_speed,
        )
        if avg_speed >= GREY_ZONE_TIEBREAK_KMH:
            return TransportMode.DRIVING
        return TransportMode.WALKING

    slow_ratio = float(np.count_nonzero(valid < SLOW_SEGMENT_SPEED_KMH)) / valid.size
    if slow_ratio > SLOW_SEGMENT_RATIO and distance_km < WALKING_MAX_DISTANCE_KM:
        return TransportMode.WALKING
    return TransportMode.DRIVING


__all__ = ["classify_transport_mode"]
