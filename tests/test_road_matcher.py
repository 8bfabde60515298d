"""Tests for the map-matching client, response folding and validation."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlsplit

import polyline
import pytest
import requests

from trip_mileage.errors import MatchServiceError
from trip_mileage.matching import (
    RoadMatch,
    build_match_url,
    match_trip_to_road,
    parse_match_response,
    request_match,
    search_radius_m,
    validate_match,
)
from trip_mileage.models import Anomalous, Failed, Matched, MatchStatus

from conftest import FakeResp, FakeSession, make_track, osrm_body, speed_steps

BASE_URL = "http://matcher.test"


@pytest.fixture
def trip_fixes():
    return make_track(speed_steps([30] * 9))


def _road_match(**overrides) -> RoadMatch:
    values = dict(
        road_distance_km=5.0,
        confidence=0.9,
        route_geometry="abc",
        matched_count=10,
        trace_size=10,
    )
    values.update(overrides)
    return RoadMatch(**values)


def test_search_radius_clamps_accuracy():
    assert search_radius_m(None) == 30
    assert search_radius_m(5.0) == 20
    assert search_radius_m(45.0) == 45
    assert search_radius_m(400.0) == 100


def test_build_match_url_lists_lon_lat_pairs(trip_fixes):
    url = build_match_url(BASE_URL + "/", trip_fixes[:3])
    parts = urlsplit(url)
    assert parts.path.startswith("/match/v1/driving/")
    coords = parts.path.rsplit("/", 1)[-1].split(";")
    assert coords[0] == f"{trip_fixes[0].longitude:.6f},{trip_fixes[0].latitude:.6f}"
    query = parse_qs(parts.query)
    assert query["geometries"] == ["polyline6"]
    assert query["overview"] == ["full"]
    assert query["gaps"] == ["ignore"]
    assert query["radiuses"] == ["20;20;20"]
    stamps = [int(s) for s in query["timestamps"][0].split(";")]
    assert stamps == [int(f.captured_at.timestamp()) for f in trip_fixes[:3]]


def test_request_match_wraps_http_errors(trip_fixes):
    session = FakeSession(FakeResp(503, {"code": "TooBusy", "message": "try later"}))
    with pytest.raises(MatchServiceError) as excinfo:
        request_match(BASE_URL, trip_fixes, session=session)
    assert excinfo.value.status_code == 503
    assert "HTTP 503" in str(excinfo.value)
    assert "TooBusy: try later" in str(excinfo.value)


def test_request_match_wraps_network_errors(trip_fixes):
    session = FakeSession(requests.ConnectionError("refused"))
    with pytest.raises(MatchServiceError, match="request failed"):
        request_match(BASE_URL, trip_fixes, session=session)


def test_request_match_rejects_non_json(trip_fixes):
    session = FakeSession(FakeResp(200, None, text="<html>oops</html>"))
    with pytest.raises(MatchServiceError):
        request_match(BASE_URL, trip_fixes, session=session)


def test_insufficient_fixes_never_call_service():
    session = FakeSession(FakeResp(200, osrm_body()))
    result = match_trip_to_road(make_track([(100.0, 10.0)]), 1.0, BASE_URL, session=session)
    assert result.match_status == MatchStatus.FAILED
    assert "Insufficient GPS points: 2" in result.match_error
    assert session.calls == []


def test_long_traces_are_simplified_before_request():
    fixes = make_track(speed_steps([30] * 249, seconds=10.0))
    session = FakeSession(FakeResp(200, osrm_body(distances=(20000.0,), matched=100, total=100)))
    result = match_trip_to_road(fixes, 20.0, BASE_URL, session=session)
    assert result.match_status == MatchStatus.MATCHED
    coords = urlsplit(session.calls[0]).path.rsplit("/", 1)[-1].split(";")
    assert len(coords) == 100


def test_successful_match_rounds_values(trip_fixes):
    route = [(45.5, -73.6), (45.51, -73.6), (45.52, -73.61)]
    body = osrm_body(
        distances=(4512.3456,),
        confidences=(0.87654,),
        geometries=[polyline.encode(route, 6)],
        matched=10,
        total=10,
    )
    result = match_trip_to_road(trip_fixes, 4.0, BASE_URL, session=FakeSession(FakeResp(200, body)))
    assert result.success
    assert result.road_distance_km == 4.512
    assert result.match_confidence == 0.88
    assert result.geometry_point_count == 3
    assert isinstance(result.outcome(), Matched)


def test_low_coverage_is_rejected(trip_fixes, caplog):
    body = osrm_body(matched=3, total=10)
    with caplog.at_level(logging.WARNING):
        result = match_trip_to_road(trip_fixes, 1.0, BASE_URL, session=FakeSession(FakeResp(200, body)))
    assert result.match_status == MatchStatus.FAILED
    assert "30%" in result.match_error
    assert result.route_geometry is None
    assert isinstance(result.outcome(), Failed)


def test_low_confidence_with_partial_coverage_is_rejected():
    result = validate_match(_road_match(confidence=0.03, matched_count=75, trace_size=100), 5.0)
    assert result.match_status == MatchStatus.FAILED
    assert "Match confidence too low: 0.03" in result.match_error
    assert "75%" in result.match_error


def test_low_confidence_with_high_coverage_is_accepted():
    result = validate_match(_road_match(confidence=0.03, matched_count=85, trace_size=100), 5.0)
    assert result.match_status == MatchStatus.MATCHED
    assert result.match_confidence == 0.03


def test_anomalous_distance_keeps_geometry():
    result = validate_match(_road_match(road_distance_km=10.0), 3.0)
    assert result.match_status == MatchStatus.ANOMALOUS
    assert not result.success
    assert result.route_geometry == "abc"
    assert result.road_distance_km == 10.0
    assert result.match_error == "Road distance 10.0km exceeds 3x haversine 3.0km"
    outcome = result.outcome()
    assert isinstance(outcome, Anomalous)
    assert outcome.reason == result.match_error


def test_zero_haversine_skips_anomaly_check():
    result = validate_match(_road_match(road_distance_km=10.0), 0.0)
    assert result.match_status == MatchStatus.MATCHED


def test_multiple_matchings_are_distance_weighted():
    long_geom = polyline.encode([(45.5, -73.6), (45.51, -73.6), (45.52, -73.6)], 6)
    short_geom = polyline.encode([(45.53, -73.6), (45.54, -73.6)], 6)
    body = osrm_body(
        distances=(3000.0, 1000.0),
        confidences=(0.9, 0.5),
        geometries=[long_geom, short_geom],
        matched=8,
        total=10,
    )
    match = parse_match_response(body, 10)
    assert match.road_distance_km == pytest.approx(4.0)
    assert match.confidence == pytest.approx(0.8)
    assert match.route_geometry == long_geom
    assert match.geometry_point_count == 3
    assert match.segment_count == 2
    assert match.matched_fix_ratio == pytest.approx(0.8)


def test_service_error_code_becomes_failure(trip_fixes):
    body = {"code": "NoMatch", "matchings": []}
    result = match_trip_to_road(trip_fixes, 1.0, BASE_URL, session=FakeSession(FakeResp(200, body)))
    assert result.match_status == MatchStatus.FAILED
    assert result.match_error == "Matching service error: NoMatch"


def test_empty_matchings_becomes_failure(trip_fixes):
    body = {"code": "Ok", "matchings": [], "tracepoints": []}
    result = match_trip_to_road(trip_fixes, 1.0, BASE_URL, session=FakeSession(FakeResp(200, body)))
    assert result.match_error == "Matching service error: no matchings"


def test_http_failure_becomes_failed_result(trip_fixes):
    result = match_trip_to_road(
        trip_fixes, 1.0, BASE_URL, session=FakeSession(FakeResp(502, None, text="Bad Gateway"))
    )
    assert result.match_status == MatchStatus.FAILED
    assert "HTTP 502" in result.match_error
    assert "Bad Gateway" in result.match_error
