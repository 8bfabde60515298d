"""Service layer package.

Exports the services driven by the CLI and by operational triggers.
"""

from .batch_service import BatchMatchService, BatchRequest, BatchResponse
from .detection_service import DetectionServiceConfig, TripDetectionService
from .match_service import MatchServiceConfig, RoadMatchService, TripMatchReport

__all__ = [
    "BatchMatchService",
    "BatchRequest",
    "BatchResponse",
    "DetectionServiceConfig",
    "TripDetectionService",
    "MatchServiceConfig",
    "RoadMatchService",
    "TripMatchReport",
]
