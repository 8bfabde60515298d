"""Road matcher: submits a trace to the matching service and folds the reply."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import polyline
import requests

from ..config import MATCH_MAX_POINTS, MATCH_MIN_FIXES, REQUEST_TIMEOUT
from ..errors import MatchServiceError
from ..geometry.simplify import simplify_trace
from ..models import GpsFix, MatchResult
from .client import request_match
from .validation import RoadMatch, validate_match

LOGGER = logging.getLogger(__name__)

POLYLINE_PRECISION = 6


def match_trace(
    trace: Sequence[GpsFix],
    haversine_distance_km: float,
    service_url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> MatchResult:
    """Match an already simplified trace and validate the outcome."""

    try:
        data = request_match(service_url, trace, session=session, timeout=timeout)
    except MatchServiceError as exc:
        LOGGER.warning("Map matching failed for %d points: %s", len(trace), exc)
        return MatchResult.failure(str(exc))

    road_match = parse_match_response(data, len(trace))
    if road_match is None:
        code = data.get("code") or "no matchings"
        if code == "Ok":
            code = "no matchings"
        return MatchResult.failure(f"Matching service error: {code}")
    LOGGER.debug(
        "Matched %d/%d points over %d segment(s): %.3fkm confidence %.2f",
        road_match.matched_count,
        road_match.trace_size,
        road_match.segment_count,
        road_match.road_distance_km,
        road_match.confidence,
    )
    return validate_match(road_match, haversine_distance_km)


def match_trip_to_road(
    fixes: Sequence[GpsFix],
    haversine_distance_km: float,
    service_url: str,
    *,
    max_points: int = MATCH_MAX_POINTS,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> MatchResult:
    """Simplify a trip's fixes, match them and validate the result."""

    if len(fixes) < MATCH_MIN_FIXES:
        return MatchResult.failure(
            f"Insufficient GPS points: {len(fixes)} (minimum {MATCH_MIN_FIXES})"
        )
    trace = simplify_trace(fixes, max_points)
    return match_trace(
        trace, haversine_distance_km, service_url, session=session, timeout=timeout
    )


def parse_match_response(
    data: Mapping[str, Any], trace_size: int
) -> Optional[RoadMatch]:
    """Aggregate the service's matchings into one :class:`RoadMatch`.

    Returns ``None`` when the service reported an error code or no matchings.
    When the trace was split into several matchings their distances are
    summed, confidence is averaged weighted by each matching's distance, and
    the geometry of the longest matching represents the route.
    """

    if data.get("code") != "Ok":
        return None
    matchings: List[Dict[str, Any]] = [
        m for m in (data.get("matchings") or []) if isinstance(m, dict)
    ]
    if not matchings:
        return None

    distances = [float(m.get("distance") or 0.0) for m in matchings]
    confidences = [float(m.get("confidence") or 0.0) for m in matchings]
    total_m = sum(distances)
    if total_m > 0:
        confidence = sum(c * d for c, d in zip(confidences, distances)) / total_m
    else:
        confidence = sum(confidences) / len(confidences)

    longest_index = max(range(len(matchings)), key=lambda i: distances[i])
    geometry = str(matchings[longest_index].get("geometry") or "")

    tracepoints = data.get("tracepoints") or []
    matched_count = sum(1 for tp in tracepoints if tp is not None)

    return RoadMatch(
        road_distance_km=total_m / 1000.0,
        confidence=confidence,
        route_geometry=geometry,
        matched_count=matched_count,
        trace_size=trace_size,
        geometry_point_count=count_geometry_points(geometry),
        segment_count=len(matchings),
    )


def count_geometry_points(encoded: str) -> int:
    """Number of coordinates in a polyline6 string (0 when undecodable)."""

    if not encoded:
        return 0
    try:
        return len(polyline.decode(encoded, POLYLINE_PRECISION))
    except (ValueError, IndexError, TypeError) as exc:
        LOGGER.debug("Unable to decode route geometry: %s", exc)
        return 0


__all__ = [
    "POLYLINE_PRECISION",
    "count_geometry_points",
    "match_trace",
    "match_trip_to_road",
    "parse_match_response",
]
