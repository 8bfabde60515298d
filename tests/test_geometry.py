"""Tests for distance, point filtering and trace simplification helpers."""

from __future__ import annotations

from datetime import timedelta

import numpy as np
import pytest

from trip_mileage.geometry import (
    FilterThresholds,
    corrected_distance_km,
    effective_speed_kmh,
    filter_fixes,
    haversine_km,
    measure_pair,
    path_distance_km,
    segment_speeds_kmh,
    simplify_trace,
)
from trip_mileage.models import GpsFix

from conftest import BASE_TIME, make_track


def test_haversine_one_degree_latitude():
    assert haversine_km((45.0, -73.0), (46.0, -73.0)) == pytest.approx(111.195, abs=1e-3)
    assert haversine_km((45.0, -73.0), (45.0, -73.0)) == 0.0


def test_path_distance_matches_sum_of_pairs():
    fixes = make_track([(100.0, 10.0), (250.0, 10.0), (50.0, 10.0)])
    assert path_distance_km(fixes) == pytest.approx(0.4, abs=1e-6)
    assert corrected_distance_km(0.4) == pytest.approx(0.52)


def test_segment_speeds_nan_for_zero_elapsed():
    fixes = make_track([(100.0, 10.0), (100.0, 0.0)])
    speeds = segment_speeds_kmh(fixes)
    assert speeds[0] == pytest.approx(36.0, rel=1e-6)
    assert np.isnan(speeds[1])


def test_filter_fixes_drops_inaccurate_and_keeps_unknown():
    good = GpsFix(45.0, -73.0, BASE_TIME, accuracy_m=15.0)
    bad = GpsFix(45.0, -73.0, BASE_TIME, accuracy_m=250.0)
    unknown = GpsFix(45.0, -73.0, BASE_TIME, accuracy_m=None)
    assert filter_fixes([good, bad, unknown]) == [good, unknown]


def test_noise_floor_zeroes_speed_inside_error_circle():
    """Two fixes 50 m apart with 60/70 m accuracy are stationary."""

    earlier, later = make_track([(50.0, 10.0)])
    earlier = GpsFix(earlier.latitude, earlier.longitude, earlier.captured_at, 60.0)
    later = GpsFix(later.latitude, later.longitude, later.captured_at, 70.0)
    assert effective_speed_kmh(earlier, later) == 0.0


def test_noise_floor_defaults_unknown_accuracy_to_ten_metres():
    near = make_track([(8.0, 10.0)], accuracy_m=None)
    far = make_track([(12.0, 10.0)], accuracy_m=None)
    assert effective_speed_kmh(*near) == 0.0
    assert effective_speed_kmh(*far) == pytest.approx(4.32, rel=1e-3)


def test_sensor_override_needs_both_fixes():
    still = make_track([(100.0, 60.0)], sensor_speed_mps=0.3)
    assert effective_speed_kmh(*still) == 0.0

    a, b = make_track([(100.0, 60.0)])
    a = GpsFix(a.latitude, a.longitude, a.captured_at, 5.0, sensor_speed_mps=0.3)
    assert effective_speed_kmh(a, b) == pytest.approx(6.0, rel=1e-3)


def test_measure_pair_flags_glitch_and_skips_zero_elapsed():
    a, b = make_track([(5000.0, 60.0)])
    m = measure_pair(a, b)
    assert m is not None and m.glitch
    assert m.speed_kmh == pytest.approx(300.0, rel=1e-3)

    same_time = GpsFix(b.latitude, b.longitude, a.captured_at, 5.0)
    assert measure_pair(a, same_time) is None
    with pytest.raises(ValueError):
        effective_speed_kmh(a, same_time)

    relaxed = FilterThresholds(max_speed_kmh=400.0)
    assert not measure_pair(a, b, relaxed).glitch


def test_simplify_trace_keeps_short_traces():
    points = list(range(50))
    out = simplify_trace(points, 100)
    assert out == points
    assert out is not points


def test_simplify_trace_caps_points_and_keeps_endpoints():
    points = list(range(250))
    out = simplify_trace(points, 100)
    assert len(out) == 100
    assert out[0] == 0 and out[-1] == 249
    assert out == sorted(out)
    assert len(set(out)) == 100


def test_simplify_trace_rejects_tiny_cap():
    with pytest.raises(ValueError):
        simplify_trace([1, 2, 3], 1)


def test_simplify_trace_on_fixes_preserves_order():
    fixes = make_track([(100.0, 10.0)] * 149)
    out = simplify_trace(fixes, 100)
    times = [f.captured_at for f in out]
    assert times == sorted(times)
    assert out[-1].captured_at - out[0].captured_at == timedelta(seconds=1490)
