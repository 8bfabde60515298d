"""Tests for the segmentation state machine and transport-mode classifier."""

from __future__ import annotations

from datetime import timedelta

import pytest

from trip_mileage.detection import (
    DetectionThresholds,
    SegmentationState,
    TripSegmenter,
    classify_transport_mode,
    detect_trip_segments,
)
from trip_mileage.models import GpsFix, TransportMode

from conftest import BASE_TIME, make_track, speed_steps


def test_single_drive_ends_at_last_moving_fix():
    fixes = make_track(speed_steps([12, 18, 20, 2, 0]))
    result = detect_trip_segments(fixes)

    assert len(result.trips) == 1
    trip = result.trips[0]
    assert trip.fixes == fixes[:4]
    assert trip.started_at == fixes[0].captured_at
    assert trip.ended_at == fixes[3].captured_at
    assert trip.haversine_distance_km == pytest.approx(50 / 60 * 1.3, abs=1e-3)
    assert trip.classification == TransportMode.DRIVING
    assert trip.duration_minutes == 3
    assert trip.fix_count == 4
    assert trip.gps_confidence == 1.0


def test_stationary_gap_splits_trips():
    drive = speed_steps([30] * 5)
    parked = [(0.0, 60.0)] * 5
    fixes = make_track(drive + parked + drive)

    result = detect_trip_segments(fixes)

    assert len(result.trips) == 2
    first, second = result.trips
    assert first.ended_at == fixes[5].captured_at
    assert second.started_at == fixes[10].captured_at
    assert second.ended_at == fixes[-1].captured_at


def test_short_stop_does_not_split_trip():
    fixes = make_track(speed_steps([30] * 5) + [(0.0, 60.0)] * 2 + speed_steps([30] * 5))
    result = detect_trip_segments(fixes)
    assert len(result.trips) == 1
    assert result.trips[0].fix_count == len(fixes) - 2


def test_gps_gap_ends_trip_at_last_fix_before_gap():
    before = speed_steps([30] * 5)
    gap = [(9000.0, 20 * 60.0)]
    after = speed_steps([30] * 5)
    fixes = make_track(before + gap + after)

    result = detect_trip_segments(fixes)

    assert len(result.trips) == 2
    assert result.trips[0].ended_at == fixes[5].captured_at
    assert result.trips[1].started_at == fixes[6].captured_at


def test_glitch_pair_adds_no_distance():
    steps = speed_steps([30] * 3) + [(5000.0, 60.0)] + speed_steps([30] * 3)
    fixes = make_track(steps)
    result = detect_trip_segments(fixes)

    assert len(result.trips) == 1
    trip = result.trips[0]
    assert fixes[4] not in trip.fixes
    assert trip.haversine_distance_km == pytest.approx(6 * 0.5 * 1.3, abs=1e-3)


def test_zero_elapsed_pair_is_skipped():
    fixes = make_track(speed_steps([30] * 3))
    duplicate = GpsFix(
        fixes[-1].latitude + 0.001,
        fixes[-1].longitude,
        fixes[-1].captured_at,
        5.0,
    )
    tail = make_track(
        speed_steps([30] * 3),
        start=fixes[-1].captured_at + timedelta(minutes=1),
        lat=duplicate.latitude,
    )
    result = detect_trip_segments(fixes + [duplicate] + tail)
    assert len(result.trips) == 1


def test_walking_trip_below_displacement_is_discarded():
    fixes = make_track([(25.0, 10.0)] + [(11.0, 10.0)] * 5)
    result = detect_trip_segments(fixes)
    assert result.trips == []
    assert result.discarded == 1


def test_walking_trip_above_displacement_is_kept():
    fixes = make_track([(25.0, 10.0)] + [(9.5, 10.0)] * 10)
    result = detect_trip_segments(fixes)

    assert len(result.trips) == 1
    trip = result.trips[0]
    assert trip.classification == TransportMode.WALKING
    assert trip.displacement_km == pytest.approx(0.12, abs=1e-4)
    assert trip.duration_minutes == 1


def test_short_drive_is_discarded():
    fixes = make_track(speed_steps([20] * 1))
    result = detect_trip_segments(fixes)
    assert result.trips == []
    assert result.discarded == 1


def test_inaccurate_fixes_are_ignored():
    fixes = make_track(speed_steps([30] * 4))
    noisy = GpsFix(fixes[2].latitude + 0.05, fixes[2].longitude, fixes[2].captured_at + timedelta(seconds=30), 500.0)
    result = detect_trip_segments(fixes[:3] + [noisy] + fixes[3:])
    assert len(result.trips) == 1
    assert noisy not in result.trips[0].fixes


def test_open_trip_kept_pending_when_not_closing():
    fixes = make_track(speed_steps([30] * 5))
    result = TripSegmenter().run(fixes, close_open_trip=False)
    assert result.trips == []
    assert result.open_trip is not None
    assert result.final_state == SegmentationState.MOVING


def test_low_accuracy_fixes_lower_gps_confidence():
    fixes = make_track(speed_steps([30] * 5), accuracy_m=80.0)
    fixes[0] = GpsFix(fixes[0].latitude, fixes[0].longitude, fixes[0].captured_at, 5.0)
    result = detect_trip_segments(fixes)
    trip = result.trips[0]
    assert trip.low_accuracy_fixes == 5
    assert trip.gps_confidence == pytest.approx(round(1 - 5 / 6, 2))


def test_custom_thresholds_change_movement_start():
    fixes = make_track(speed_steps([6] * 10))
    assert detect_trip_segments(fixes).trips == []

    thresholds = DetectionThresholds(movement_kmh=5.0)
    result = detect_trip_segments(fixes, thresholds)
    assert len(result.trips) == 1


# --- Classifier ------------------------------------------------------
def test_classifier_fast_average_is_driving():
    fixes = make_track(speed_steps([40] * 3))
    assert classify_transport_mode(fixes, 2.0, 180.0) == TransportMode.DRIVING


def test_classifier_slow_average_is_walking():
    fixes = make_track(speed_steps([3] * 3))
    assert classify_transport_mode(fixes, 0.15, 180.0) == TransportMode.WALKING


def test_classifier_grey_zone_mostly_slow_segments_is_walking():
    fixes = make_track(speed_steps([20] + [4] * 9, seconds=10.0))
    assert classify_transport_mode(fixes, 0.2, 100.0) == TransportMode.WALKING


def test_classifier_grey_zone_stop_and_go_is_driving():
    fixes = make_track(speed_steps([25, 2, 25, 2, 25, 2], seconds=20.0))
    assert classify_transport_mode(fixes, 0.3, 120.0) == TransportMode.DRIVING


def test_classifier_grey_zone_fallback_without_usable_segments():
    fixes = make_track([(50.0, 30.0)])
    assert classify_transport_mode(fixes, 0.055, 30.0) == TransportMode.DRIVING
    assert classify_transport_mode(fixes, 0.045, 30.0) == TransportMode.WALKING


def test_classifier_zero_elapsed_defaults_to_driving():
    fixes = [GpsFix(45.0, -73.0, BASE_TIME), GpsFix(45.0, -73.0, BASE_TIME)]
    assert classify_transport_mode(fixes, 0.0, 0.0) == TransportMode.DRIVING
