"""Segmentation state machine turning a fix sequence into trips.

The machine has two states. ``IDLE`` switches to ``MOVING`` as soon as a fix
pair reaches the movement threshold; the earlier fix of that pair becomes the
trip start. ``MOVING`` keeps absorbing fixes while the effective speed stays at
or above the stationary threshold and ends the trip when the speed stays below
it for the stationary gap, or when two consecutive fixes are further apart
than the GPS gap. Finished trips are measured, classified and dropped when they
are too small for their transport mode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from typing import List, Optional, Sequence

from ..config import (
    DISTANCE_CORRECTION_FACTOR,
    GPS_GAP_MINUTES,
    LOW_ACCURACY_M,
    MIN_DRIVING_DISTANCE_KM,
    MIN_WALKING_DISPLACEMENT_KM,
    MOVEMENT_THRESHOLD_KMH,
    STATIONARY_GAP_MINUTES,
    STATIONARY_THRESHOLD_KMH,
)
from ..geometry.distance import corrected_distance_km, haversine_km
from ..geometry.filters import FilterThresholds, filter_fixes, measure_pair
from ..models import GpsFix, LatLon, TransportMode
from .classifier import classify_transport_mode

LOGGER = logging.getLogger(__name__)


class SegmentationState(str, Enum):
    IDLE = "idle"
    MOVING = "moving"


@dataclass(frozen=True, slots=True)
class DetectionThresholds:
    """Tunable limits for trip segmentation."""

    movement_kmh: float = MOVEMENT_THRESHOLD_KMH
    stationary_kmh: float = STATIONARY_THRESHOLD_KMH
    stationary_gap_minutes: float = STATIONARY_GAP_MINUTES
    gps_gap_minutes: float = GPS_GAP_MINUTES
    correction_factor: float = DISTANCE_CORRECTION_FACTOR
    min_walking_displacement_km: float = MIN_WALKING_DISPLACEMENT_KM
    min_driving_distance_km: float = MIN_DRIVING_DISTANCE_KM
    low_accuracy_m: float = LOW_ACCURACY_M
    filters: FilterThresholds = field(default_factory=FilterThresholds)


@dataclass(slots=True)
class TripCandidate:
    """An in-progress trip accumulated while the machine is ``MOVING``."""

    fixes: List[GpsFix]
    raw_distance_km: float = 0.0

    @property
    def started_at(self) -> datetime:
        return self.fixes[0].captured_at

    @property
    def ended_at(self) -> datetime:
        return self.fixes[-1].captured_at

    def add(self, fix: GpsFix, distance_km: float) -> None:
        self.fixes.append(fix)
        self.raw_distance_km += distance_km


@dataclass(slots=True)
class DetectedTrip:
    """A finalized trip ready to be persisted."""

    fixes: List[GpsFix]
    started_at: datetime
    ended_at: datetime
    start_coord: LatLon
    end_coord: LatLon
    haversine_distance_km: float
    duration_minutes: int
    classification: TransportMode
    fix_count: int
    low_accuracy_fixes: int
    gps_confidence: float
    displacement_km: float


@dataclass(slots=True)
class SegmentationResult:
    trips: List[DetectedTrip] = field(default_factory=list)
    open_trip: Optional[TripCandidate] = None
    discarded: int = 0
    final_state: SegmentationState = SegmentationState.IDLE


class TripSegmenter:
    """Walk a chronological fix sequence and emit finalized trips."""

    def __init__(self, thresholds: DetectionThresholds | None = None) -> None:
        self.thresholds = thresholds or DetectionThresholds()

    def run(
        self, fixes: Sequence[GpsFix], *, close_open_trip: bool = True
    ) -> SegmentationResult:
        """Segment ``fixes`` into trips.

        ``close_open_trip`` finalizes a trip still in progress after the last
        fix (completed shifts). When false the trip is returned as
        ``open_trip`` instead and nothing is emitted for it.
        """

        t = self.thresholds
        gps_gap_s = t.gps_gap_minutes * 60.0
        stationary_gap_s = t.stationary_gap_minutes * 60.0
        result = SegmentationResult()

        current: Optional[TripCandidate] = None
        stationary_since: Optional[datetime] = None
        prev: Optional[GpsFix] = None

        for fix in filter_fixes(fixes, t.filters.max_accuracy_m):
            if prev is None:
                prev = fix
                continue
            measurement = measure_pair(prev, fix, t.filters)
            if measurement is None:
                prev = fix
                continue

            if measurement.elapsed_s > gps_gap_s:
                if current is not None:
                    LOGGER.debug(
                        "GPS gap of %.1f min closes trip started %s",
                        measurement.elapsed_s / 60.0,
                        current.started_at,
                    )
                    self._close(current, result)
                    current = None
                stationary_since = None
                prev = fix
                continue

            if measurement.glitch:
                LOGGER.debug(
                    "Ignoring %.0f km/h glitch at %s",
                    measurement.speed_kmh,
                    fix.captured_at,
                )
                prev = fix
                continue

            speed = measurement.speed_kmh
            if speed >= t.movement_kmh:
                stationary_since = None
                if current is None:
                    current = TripCandidate(fixes=[prev])
                current.add(fix, measurement.distance_km)
            elif current is not None and speed >= t.stationary_kmh:
                stationary_since = None
                current.add(fix, measurement.distance_km)
            elif current is not None:
                if stationary_since is None:
                    stationary_since = fix.captured_at
                stationary_for = (fix.captured_at - stationary_since).total_seconds()
                if stationary_for >= stationary_gap_s:
                    self._close(current, result)
                    current = None
                    stationary_since = None
            prev = fix

        if current is not None:
            if close_open_trip:
                self._close(current, result)
            else:
                result.open_trip = current
                result.final_state = SegmentationState.MOVING
        return result

    def _close(self, candidate: TripCandidate, result: SegmentationResult) -> None:
        trip = self.finalize(candidate)
        if trip is None:
            result.discarded += 1
        else:
            result.trips.append(trip)

    def finalize(self, candidate: TripCandidate) -> Optional[DetectedTrip]:
        """Measure and classify ``candidate``; ``None`` when it is too small."""

        t = self.thresholds
        if len(candidate.fixes) < 2:
            return None
        start, end = candidate.fixes[0], candidate.fixes[-1]
        elapsed_s = (end.captured_at - start.captured_at).total_seconds()
        distance_km = corrected_distance_km(
            candidate.raw_distance_km, t.correction_factor
        )
        mode = classify_transport_mode(candidate.fixes, distance_km, elapsed_s)
        displacement_km = haversine_km(start.coord, end.coord)

        if (
            mode == TransportMode.WALKING
            and displacement_km < t.min_walking_displacement_km
        ):
            LOGGER.debug(
                "Discarding walking trip at %s: displacement %.0fm",
                start.captured_at,
                displacement_km * 1000.0,
            )
            return None
        if mode == TransportMode.DRIVING and distance_km < t.min_driving_distance_km:
            LOGGER.debug(
                "Discarding driving trip at %s: distance %.3fkm",
                start.captured_at,
                distance_km,
            )
            return None

        fix_count = len(candidate.fixes)
        low_accuracy = sum(
            1
            for f in candidate.fixes
            if f.accuracy_m is not None and f.accuracy_m > t.low_accuracy_m
        )
        return DetectedTrip(
            fixes=list(candidate.fixes),
            started_at=start.captured_at,
            ended_at=end.captured_at,
            start_coord=start.coord,
            end_coord=end.coord,
            haversine_distance_km=round(distance_km, 3),
            duration_minutes=max(1, int(elapsed_s // 60)),
            classification=mode,
            fix_count=fix_count,
            low_accuracy_fixes=low_accuracy,
            gps_confidence=round(max(0.0, 1.0 - low_accuracy / fix_count), 2),
            displacement_km=displacement_km,
        )


def detect_trip_segments(
    fixes: Sequence[GpsFix],
    thresholds: DetectionThresholds | None = None,
    *,
    close_open_trip: bool = True,
) -> SegmentationResult:
    """Convenience wrapper around :class:`TripSegmenter`."""

    return TripSegmenter(thresholds).run(fixes, close_open_trip=close_open_trip)


__all__ = [
    "DetectionThresholds",
    "DetectedTrip",
    "SegmentationResult",
    "SegmentationState",
    "TripCandidate",
    "TripSegmenter",
    "detect_trip_segments",
]
