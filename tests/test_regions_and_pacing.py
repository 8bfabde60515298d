"""Tests for regional endpoint selection and matcher call pacing."""

from __future__ import annotations

import json

import pytest

from trip_mileage.errors import ConfigurationError
from trip_mileage.matching import CallPacer, parse_regions, resolve_service_url
from trip_mileage.matching.session import (
    GATEWAY_RETRY_STATUSES,
    create_default_session,
    get_default_session,
)

DEFAULT = "http://default.test"

REGIONS_JSON = json.dumps(
    [
        {
            "name": "quebec",
            "min_lat": 45.0,
            "min_lon": -80.0,
            "max_lat": 62.0,
            "max_lon": -57.0,
            "url": "http://qc.test",
        },
        {
            "name": "montreal",
            "min_lat": 45.4,
            "min_lon": -74.0,
            "max_lat": 45.7,
            "max_lon": -73.4,
            "url": "http://mtl.test",
        },
    ]
)


def test_first_matching_region_wins():
    regions = parse_regions(REGIONS_JSON)
    assert [r.name for r in regions] == ["quebec", "montreal"]
    assert resolve_service_url((45.5, -73.6), regions, DEFAULT) == "http://qc.test"
    assert resolve_service_url((45.5, -73.6), regions[1:], DEFAULT) == "http://mtl.test"


def test_region_edges_are_inclusive():
    regions = parse_regions(REGIONS_JSON)[1:]
    assert resolve_service_url((45.4, -74.0), regions, DEFAULT) == "http://mtl.test"
    assert resolve_service_url((45.7, -73.4), regions, DEFAULT) == "http://mtl.test"


def test_outside_all_regions_uses_default():
    regions = parse_regions(REGIONS_JSON)
    assert resolve_service_url((48.85, 2.35), regions, DEFAULT) == DEFAULT
    assert resolve_service_url((48.85, 2.35), (), DEFAULT) == DEFAULT


def test_empty_region_config_is_empty_tuple():
    assert parse_regions("") == ()
    assert parse_regions(None) == ()


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        json.dumps([{"name": "x", "min_lat": 1}]),
        json.dumps(
            [
                {
                    "name": "inverted",
                    "min_lat": 46.0,
                    "min_lon": -74.0,
                    "max_lat": 45.0,
                    "max_lon": -73.0,
                    "url": "http://x.test",
                }
            ]
        ),
    ],
)
def test_bad_region_config_raises(raw):
    with pytest.raises(ConfigurationError):
        parse_regions(raw)


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_pacer_first_call_does_not_wait():
    clock = FakeClock()
    pacer = CallPacer(0.2, clock=clock, sleep=clock.sleep)
    assert pacer.wait() == 0.0
    assert clock.sleeps == []


def test_pacer_spaces_consecutive_calls():
    clock = FakeClock()
    pacer = CallPacer(0.2, clock=clock, sleep=clock.sleep)
    pacer.wait()
    clock.now += 0.05
    waited = pacer.wait()
    assert waited == pytest.approx(0.15)
    clock.now += 1.0
    assert pacer.wait() == 0.0
    assert clock.sleeps == [pytest.approx(0.15)]


def test_pacer_reset_and_validation():
    clock = FakeClock()
    pacer = CallPacer(0.2, clock=clock, sleep=clock.sleep)
    pacer.wait()
    pacer.reset()
    assert pacer.wait() == 0.0
    with pytest.raises(ValueError):
        CallPacer(-1)


def test_default_session_retries_gateway_errors():
    session = create_default_session()
    adapter = session.get_adapter("http://matcher.test")
    retry = adapter.max_retries
    assert retry.total == 2
    assert set(retry.status_forcelist) == set(GATEWAY_RETRY_STATUSES) == {502, 503, 504}
    assert "GET" in retry.allowed_methods
    assert retry.raise_on_status is False
    assert session.headers["Accept"] == "application/json"


def test_default_session_is_shared():
    assert get_default_session() is get_default_session()
