"""Trip detection service.

Loads a shift's fixes, runs the segmentation state machine and persists the
resulting trips. Completed shifts are reprocessed from scratch and their trips
replaced atomically; active shifts are scanned incrementally from the end of
the latest persisted trip so that already-stored trips are never rewritten.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import List

from ..detection.segmentation import DetectionThresholds, TripSegmenter
from ..errors import ShiftNotFoundError
from ..models import ShiftStatus, Trip
from ..storage.repository import TripStore


@dataclass(slots=True)
class DetectionServiceConfig:
    thresholds: DetectionThresholds = field(default_factory=DetectionThresholds)
    logger: logging.Logger | None = None


class TripDetectionService:
    def __init__(
        self, store: TripStore, config: DetectionServiceConfig | None = None
    ) -> None:
        self.store = store
        self.config = config or DetectionServiceConfig()
        self._segmenter = TripSegmenter(self.config.thresholds)
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)

    def detect_trips(self, shift_id: str) -> List[Trip]:
        """Detect and persist trips for ``shift_id``.

        Returns the trips written by this call ordered by start time.
        """

        shift = self.store.get_shift(shift_id)
        if shift is None:
            raise ShiftNotFoundError(f"Shift not found: {shift_id}")

        if shift.status == ShiftStatus.COMPLETED:
            fixes = self.store.list_fixes(shift_id)
            result = self._segmenter.run(fixes, close_open_trip=True)
            trips = self.store.replace_trips(shift_id, result.trips)
            mode = "full"
        else:
            cutoff = self.store.latest_trip_end(shift_id)
            fixes = self.store.list_fixes(shift_id, after=cutoff)
            result = self._segmenter.run(fixes, close_open_trip=False)
            trips = self.store.append_trips(shift_id, result.trips)
            mode = "incremental"

        self._log.info(
            "Shift %s (%s): %d fixes -> %d trips (%d discarded%s)",
            shift_id,
            mode,
            len(fixes),
            len(trips),
            result.discarded,
            ", trip in progress" if result.open_trip is not None else "",
        )
        return sorted(trips, key=lambda trip: trip.started_at)


__all__ = ["DetectionServiceConfig", "TripDetectionService"]
