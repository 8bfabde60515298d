"""Trip detection and road-matching pipeline package."""

from .main import main
from .models import GpsFix, MatchResult, MatchStatus, Shift, TransportMode, Trip
from .errors import (
    ConfigurationError,
    InvalidRequestError,
    MatchServiceError,
    TripMileageError,
)

__all__ = [
    "main",
    "GpsFix",
    "MatchResult",
    "MatchStatus",
    "Shift",
    "TransportMode",
    "Trip",
    "ConfigurationError",
    "InvalidRequestError",
    "MatchServiceError",
    "TripMileageError",
]
