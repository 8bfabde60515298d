"""Central error types used across the application."""

from __future__ import annotations


class TripMileageError(RuntimeError):
    """Base error for the trip detection and matching pipeline."""


class ConfigurationError(TripMileageError):
    """Raised when the map-matching service is not configured."""


class InvalidRequestError(TripMileageError):
    """Raised when a batch request names no selector or has bad values."""


class ShiftNotFoundError(TripMileageError):
    """Raised when trip detection is asked for an unknown shift."""


class TripNotFoundError(TripMileageError):
    """Raised when a trip id does not exist."""


class MaxAttemptsReachedError(TripMileageError):
    """Raised when a single-trip match is requested after the retry cap."""


class MatchServiceError(TripMileageError):
    """Raised on network failures or non-2xx responses from the matcher."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "TripMileageError",
    "ConfigurationError",
    "InvalidRequestError",
    "ShiftNotFoundError",
    "TripNotFoundError",
    "MaxAttemptsReachedError",
    "MatchServiceError",
]
