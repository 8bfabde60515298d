"""Road matching against the external map-matching service."""

from .client import build_match_url, request_match, search_radius_m
from .matcher import (
    count_geometry_points,
    match_trace,
    match_trip_to_road,
    parse_match_response,
)
from .pacing import CallPacer
from .regions import parse_regions, resolve_service_url
from .session import create_default_session, get_default_session
from .validation import RoadMatch, validate_match

__all__ = [
    "build_match_url",
    "request_match",
    "search_radius_m",
    "count_geometry_points",
    "match_trace",
    "match_trip_to_road",
    "parse_match_response",
    "CallPacer",
    "parse_regions",
    "resolve_service_url",
    "create_default_session",
    "get_default_session",
    "RoadMatch",
    "validate_match",
]
