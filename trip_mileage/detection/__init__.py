"""Trip detection: segmentation state machine and transport-mode classifier."""

from .classifier import classify_transport_mode
from .segmentation import (
    DetectedTrip,
    DetectionThresholds,
    SegmentationResult,
    SegmentationState,
    TripCandidate,
    TripSegmenter,
    detect_trip_segments,
)

__all__ = [
    "classify_transport_mode",
    "DetectedTrip",
    "DetectionThresholds",
    "SegmentationResult",
    "SegmentationState",
    "TripCandidate",
    "TripSegmenter",
    "detect_trip_segments",
]
