"""Load GPS fixes from CSV exports into a shift."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from ..models import GpsFix, Shift, ShiftStatus
from ..storage.repository import TripStore

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

REQUIRED_COLUMNS = ("latitude", "longitude", "captured_at")
_COLUMN_ALIASES = {
    "lat": "latitude",
    "lon": "longitude",
    "lng": "longitude",
    "accuracy_m": "accuracy",
    "timestamp": "captured_at",
    "speed_mps": "speed",
}


def _optional_float(value: object) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def read_fixes_csv(path: PathLike) -> List[GpsFix]:
    """Parse ``latitude,longitude,accuracy,captured_at[,speed]`` rows.

    Timestamps without an offset are taken as UTC. Rows are returned in
    capture order; rows with missing coordinates or timestamps are dropped.
    """

    df = pd.read_csv(path)
    df = df.rename(columns=lambda c: str(c).strip().lower())
    df = df.rename(columns=_COLUMN_ALIASES)
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"CSV {path} is missing columns: {', '.join(missing)}")

    df["captured_at"] = pd.to_datetime(df["captured_at"], utc=True, errors="coerce")
    before = len(df)
    df = df.dropna(subset=list(REQUIRED_COLUMNS))
    if len(df) < before:
        LOGGER.warning("Dropped %d incomplete rows from %s", before - len(df), path)
    df = df.sort_values("captured_at", kind="stable")

    has_accuracy = "accuracy" in df.columns
    has_speed = "speed" in df.columns
    fixes: List[GpsFix] = []
    for row in df.itertuples(index=False):
        fixes.append(
            GpsFix(
                latitude=float(row.latitude),
                longitude=float(row.longitude),
                captured_at=row.captured_at.to_pydatetime(),
                accuracy_m=_optional_float(row.accuracy) if has_accuracy else None,
                sensor_speed_mps=_optional_float(row.speed) if has_speed else None,
            )
        )
    return fixes


def import_fixes(
    store: TripStore,
    shift_id: str,
    path: PathLike,
    *,
    status: ShiftStatus = ShiftStatus.ACTIVE,
    employee_id: Optional[str] = None,
) -> List[GpsFix]:
    """Insert the CSV's fixes for ``shift_id``, creating the shift if needed."""

    fixes = read_fixes_csv(path)
    if store.get_shift(shift_id) is None:
        started = fixes[0].captured_at if fixes else None
        ended = fixes[-1].captured_at if fixes and status == ShiftStatus.COMPLETED else None
        store.add_shift(
            Shift(
                id=shift_id,
                status=status,
                employee_id=employee_id,
                started_at=started,
                ended_at=ended,
            )
        )
        LOGGER.info("Created %s shift %s", status.value, shift_id)
    else:
        store.set_shift_status(shift_id, status)
    stored = store.add_fixes(shift_id, fixes)
    LOGGER.info("Imported %d fixes into shift %s from %s", len(stored), shift_id, path)
    return stored


__all__ = ["import_fixes", "read_fixes_csv"]
