"""Single-trip road matching.

``RoadMatchService`` owns the path from a persisted trip to its persisted
match decision: load the trip's fixes, pick the regional endpoint, call the
Road Matcher and store the terminal outcome. The batch orchestrator reuses
:meth:`RoadMatchService.run_match` for every trip it processes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Optional, Sequence

import requests

from ..config import (
    MATCH_MAX_ATTEMPTS,
    MATCH_MAX_POINTS,
    MATCH_MIN_FIXES,
    MATCH_SERVICE_REGIONS,
    MATCH_SERVICE_URL,
    REQUEST_TIMEOUT,
)
from ..errors import ConfigurationError, MaxAttemptsReachedError, TripNotFoundError
from ..matching.matcher import match_trip_to_road
from ..matching.pacing import CallPacer
from ..matching.regions import parse_regions, resolve_service_url
from ..matching.session import get_default_session
from ..models import MatchResult, MatchStatus, ServiceRegion, TransportMode, Trip
from ..storage.repository import TripStore

SKIPPED = "skipped"
WALKING_SKIP_MESSAGE = "Walking trips do not require road matching"
CLAIMED_SKIP_MESSAGE = "Already being processed"


def _default_regions() -> Sequence[ServiceRegion]:
    return parse_regions(MATCH_SERVICE_REGIONS)


@dataclass(slots=True)
class MatchServiceConfig:
    service_url: str = MATCH_SERVICE_URL
    regions: Sequence[ServiceRegion] = field(default_factory=_default_regions)
    max_points: int = MATCH_MAX_POINTS
    max_attempts: int = MATCH_MAX_ATTEMPTS
    timeout: float = REQUEST_TIMEOUT
    session: Optional[requests.Session] = None
    logger: logging.Logger | None = None


@dataclass(slots=True)
class MatchRun:
    """What happened to one trip on the matching path."""

    result: MatchResult
    called_service: bool


@dataclass(slots=True)
class TripMatchReport:
    """Response of a single-trip match request."""

    trip_id: str
    status: str
    result: Optional[MatchResult] = None
    haversine_distance_km: Optional[float] = None
    distance_change_pct: Optional[float] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = self.result
        return {
            "success": bool(result and result.success),
            "trip_id": self.trip_id,
            "match_status": self.status,
            "road_distance_km": result.road_distance_km if result else None,
            "match_confidence": result.match_confidence if result else None,
            "match_error": result.match_error if result else None,
            "geometry_points": result.geometry_point_count if result else 0,
            "haversine_distance_km": self.haversine_distance_km,
            "distance_change_pct": self.distance_change_pct,
            "message": self.message,
        }


def distance_change_pct(
    road_distance_km: Optional[float], haversine_distance_km: Optional[float]
) -> Optional[float]:
    """Relative change from the haversine estimate to the road distance."""

    if not road_distance_km or not haversine_distance_km or haversine_distance_km <= 0:
        return None
    change = (road_distance_km - haversine_distance_km) / haversine_distance_km
    return round(change * 100.0, 1)


class RoadMatchService:
    def __init__(
        self,
        store: TripStore,
        config: MatchServiceConfig | None = None,
        *,
        pacer: CallPacer | None = None,
    ) -> None:
        self.store = store
        self.config = config or MatchServiceConfig()
        self.pacer = pacer
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def ensure_configured(self) -> None:
        if not self.config.service_url:
            raise ConfigurationError("MATCH_SERVICE_URL is not configured")

    def match_trip(self, trip_id: str) -> TripMatchReport:
        """Match one trip on demand and persist the outcome."""

        self.ensure_configured()
        trip = self.store.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(f"Trip not found: {trip_id}")
        if trip.classification == TransportMode.WALKING:
            self._log.info("Trip %s skipped: walking", trip_id)
            return TripMatchReport(
                trip_id=trip_id,
                status=SKIPPED,
                haversine_distance_km=trip.haversine_distance_km,
                message=WALKING_SKIP_MESSAGE,
            )
        if trip.match_attempts >= self.config.max_attempts:
            raise MaxAttemptsReachedError(
                f"Maximum matching attempts reached for trip {trip_id}"
            )
        if not self.store.claim_trip(trip_id):
            return TripMatchReport(
                trip_id=trip_id,
                status=SKIPPED,
                haversine_distance_km=trip.haversine_distance_km,
                message=CLAIMED_SKIP_MESSAGE,
            )

        run = self.run_match(trip)
        return TripMatchReport(
            trip_id=trip_id,
            status=run.result.match_status.value,
            result=run.result,
            haversine_distance_km=trip.haversine_distance_km,
            distance_change_pct=distance_change_pct(
                run.result.road_distance_km, trip.haversine_distance_km
            ),
        )

    def run_match(self, trip: Trip) -> MatchRun:
        """Match a trip that the caller has already claimed."""

        fixes = self.store.trip_fixes(trip.id)
        if len(fixes) < MATCH_MIN_FIXES:
            result = MatchResult.failure(
                f"Insufficient GPS points: {len(fixes)} (minimum {MATCH_MIN_FIXES})"
            )
            called = False
        else:
            url = resolve_service_url(
                fixes[0].coord, self.config.regions, self.config.service_url
            )
            if self.pacer is not None:
                self.pacer.wait()
            self._log.debug("Matching trip %s (%d fixes) via %s", trip.id, len(fixes), url)
            result = match_trip_to_road(
                fixes,
                trip.haversine_distance_km,
                url,
                max_points=self.config.max_points,
                session=self.config.session or get_default_session(),
                timeout=self.config.timeout,
            )
            called = True

        self.store.update_trip_match(trip.id, result.outcome())
        if result.match_status == MatchStatus.MATCHED:
            self._log.info(
                "Trip %s matched: %.3fkm (haversine %.3fkm, confidence %.2f)",
                trip.id,
                result.road_distance_km or 0.0,
                trip.haversine_distance_km,
                result.match_confidence or 0.0,
            )
        else:
            self._log.warning(
                "Trip %s %s: %s", trip.id, result.match_status.value, result.match_error
            )
        return MatchRun(result=result, called_service=called)


__all__ = [
    "CLAIMED_SKIP_MESSAGE",
    "MatchRun",
    "MatchServiceConfig",
    "RoadMatchService",
    "SKIPPED",
    "TripMatchReport",
    "WALKING_SKIP_MESSAGE",
    "distance_change_pct",
]
