"""Quality gates deciding whether a road match is trustworthy."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from ..config import (
    MATCH_ANOMALY_RATIO,
    MATCH_CONFIDENCE_RESCUE_COVERAGE,
    MATCH_MIN_CONFIDENCE,
    MATCH_MIN_COVERAGE,
)
from ..models import MatchResult, MatchStatus

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RoadMatch:
    """Aggregated, not yet validated response from the matching service."""

    road_distance_km: float
    confidence: float
    route_geometry: str
    matched_count: int
    trace_size: int
    geometry_point_count: int = 0
    segment_count: int = 1

    @property
    def matched_fix_ratio(self) -> float:
        if self.trace_size <= 0:
            return 0.0
        return self.matched_count / self.trace_size


def validate_match(match: RoadMatch, haversine_distance_km: float) -> MatchResult:
    """Turn a raw road match into a final :class:`MatchResult`.

    Rules apply in order and the first failing one decides:

    1. fewer than half of the submitted fixes snapped to a road -> failed;
    2. near-zero confidence *and* under 80% coverage -> failed. The service's
       confidence mostly reflects how many alternative routes exist, so on its
       own it is not disqualifying;
    3. road distance above three times the haversine estimate -> anomalous,
       geometry kept for review;
    4. otherwise matched, with distance rounded to metres and confidence to
       two decimals.
    """

    ratio = match.matched_fix_ratio
    pct = _percent(ratio)
    if ratio < MATCH_MIN_COVERAGE:
        LOGGER.warning("Rejecting match: %d%% coverage", pct)
        return MatchResult.failure(
            f"Only {pct}% of GPS points matched to roads",
            confidence=match.confidence,
        )

    if (
        match.confidence < MATCH_MIN_CONFIDENCE
        and ratio < MATCH_CONFIDENCE_RESCUE_COVERAGE
    ):
        LOGGER.warning(
            "Rejecting match: confidence %.2f with %d%% coverage",
            match.confidence,
            pct,
        )
        return MatchResult.failure(
            f"Match confidence too low: {match.confidence:.2f} "
            f"with only {pct}% points matched",
            confidence=match.confidence,
        )

    if (
        haversine_distance_km > 0
        and match.road_distance_km > MATCH_ANOMALY_RATIO * haversine_distance_km
    ):
        LOGGER.warning(
            "Anomalous match: road %.1fkm vs haversine %.1fkm",
            match.road_distance_km,
            haversine_distance_km,
        )
        return MatchResult(
            success=False,
            match_status=MatchStatus.ANOMALOUS,
            route_geometry=match.route_geometry,
            road_distance_km=match.road_distance_km,
            match_confidence=match.confidence,
            match_error=(
                f"Road distance {match.road_distance_km:.1f}km exceeds "
                f"{MATCH_ANOMALY_RATIO:g}x haversine {haversine_distance_km:.1f}km"
            ),
            geometry_point_count=match.geometry_point_count,
        )

    return MatchResult(
        success=True,
        match_status=MatchStatus.MATCHED,
        route_geometry=match.route_geometry,
        road_distance_km=round(match.road_distance_km, 3),
        match_confidence=round(match.confidence, 2),
        geometry_point_count=match.geometry_point_count,
    )


def _percent(ratio: float) -> int:
    return int(ratio * 100 + 0.5)


__all__ = ["RoadMatch", "validate_match"]
