"""Global pytest fixtures & helpers.

Adds project root to path and provides fix-track builders plus an in-memory
trip store shared by the detection, matching and batch tests.
"""
from __future__ import annotations

import json
import math
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from trip_mileage.models import GpsFix, Shift, ShiftStatus
from trip_mileage.storage.repository import TripStore

# Metres per degree of latitude on the haversine sphere.
METERS_PER_DEG = 6371000.0 * math.pi / 180.0

BASE_TIME = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)
BASE_LAT = 45.5000
BASE_LON = -73.6000


# --- Factory helpers -------------------------------------------------
def make_track(
    steps: Iterable[Tuple[float, float]],
    *,
    start: datetime = BASE_TIME,
    lat: float = BASE_LAT,
    lon: float = BASE_LON,
    accuracy_m: Optional[float] = 5.0,
    sensor_speed_mps: Optional[float] = None,
) -> List[GpsFix]:
    """Build fixes heading due north.

    ``steps`` holds ``(metres, seconds)`` per pair; the first fix sits at
    ``(lat, lon)`` at ``start``.
    """

    fixes = [
        GpsFix(
            latitude=lat,
            longitude=lon,
            captured_at=start,
            accuracy_m=accuracy_m,
            sensor_speed_mps=sensor_speed_mps,
        )
    ]
    for metres, seconds in steps:
        prev = fixes[-1]
        fixes.append(
            GpsFix(
                latitude=prev.latitude + metres / METERS_PER_DEG,
                longitude=lon,
                captured_at=prev.captured_at + timedelta(seconds=seconds),
                accuracy_m=accuracy_m,
                sensor_speed_mps=sensor_speed_mps,
            )
        )
    return fixes


def speed_steps(speeds_kmh: Sequence[float], seconds: float = 60.0):
    """Turn per-pair speeds into ``(metres, seconds)`` steps."""

    return [(kmh / 3.6 * seconds, seconds) for kmh in speeds_kmh]


def osrm_body(
    *,
    distances: Sequence[float] = (1000.0,),
    confidences: Sequence[float] = (0.9,),
    geometries: Optional[Sequence[str]] = None,
    matched: int = 5,
    total: int = 5,
    code: str = "Ok",
) -> dict:
    geometries = geometries or ["_ibE_ibE" for _ in distances]
    return {
        "code": code,
        "matchings": [
            {"distance": d, "confidence": c, "geometry": g}
            for d, c, g in zip(distances, confidences, geometries)
        ],
        "tracepoints": [{"location": [0, 0]}] * matched + [None] * (total - matched),
    }


class FakeResp:
    """Minimal fake response matching needed parts of requests.Response."""

    def __init__(self, status_code=200, data=None, text=None):
        self.status_code = status_code
        self._data = data
        self._text = text
        self.url = "http://matcher.test"

    def json(self):
        if self._data is None:
            raise ValueError("No JSON body")
        return self._data

    @property
    def text(self):
        if self._text is not None:
            return self._text
        return json.dumps(self._data)


class FakeSession:
    """Records GET calls and replays queued responses or exceptions."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: List[str] = []

    def get(self, url, timeout=None):
        self.calls.append(url)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def store() -> TripStore:
    return TripStore.from_url("sqlite://")


@pytest.fixture
def add_shift(store):
    def _add(
        shift_id: str = "shift-1",
        fixes: Sequence[GpsFix] = (),
        status: ShiftStatus = ShiftStatus.COMPLETED,
    ) -> List[GpsFix]:
        if store.get_shift(shift_id) is None:
            store.add_shift(Shift(id=shift_id, status=status, employee_id="emp-1"))
        return store.add_fixes(shift_id, fixes)

    return _add
