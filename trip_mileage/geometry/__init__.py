"""GPS geometry helpers: distances, fix filtering and trace simplification."""

from .distance import (
    corrected_distance_km,
    haversine_km,
    path_distance_km,
    segment_distances_km,
    segment_speeds_kmh,
)
from .filters import (
    FilterThresholds,
    PairMeasurement,
    effective_speed_kmh,
    filter_fixes,
    measure_pair,
)
from .simplify import simplify_trace

__all__ = [
    "corrected_distance_km",
    "haversine_km",
    "path_distance_km",
    "segment_distances_km",
    "segment_speeds_kmh",
    "FilterThresholds",
    "PairMeasurement",
    "effective_speed_kmh",
    "filter_fixes",
    "measure_pair",
    "simplify_trace",
]
