"""Batch reprocessing orchestrator.

Selects trips by explicit id list, by shift, or system wide, enforces the
skip and retry policy and runs them one after another through
:class:`RoadMatchService`. Calls to the matching service are spaced by a
fixed delay. One trip raising never stops the rest of the queue; it is
recorded as a ``failed`` result line instead.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import (
    BATCH_DEFAULT_LIMIT,
    BATCH_MAX_TRIPS,
    MATCH_CALL_DELAY_SECONDS,
    MATCH_MAX_ATTEMPTS,
)
from ..errors import InvalidRequestError
from ..matching.pacing import CallPacer
from ..models import MatchStatus
from .match_service import CLAIMED_SKIP_MESSAGE, SKIPPED, RoadMatchService

MAX_ATTEMPTS_MESSAGE = "Max attempts reached"
TRIP_NOT_FOUND_MESSAGE = "Trip not found"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(slots=True)
class BatchRequest:
    """Selection for one batch run. At least one selector is required."""

    trip_ids: Optional[List[str]] = None
    shift_id: Optional[str] = None
    reprocess_failed: bool = False
    reprocess_all: bool = False
    limit: int = BATCH_DEFAULT_LIMIT

    def __post_init__(self) -> None:
        if not (
            self.trip_ids or self.shift_id or self.reprocess_failed or self.reprocess_all
        ):
            raise InvalidRequestError(
                "Provide trip_ids, shift_id, reprocess_failed or reprocess_all"
            )
        try:
            limit = int(self.limit)
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError(f"Invalid limit: {self.limit!r}") from exc
        if limit < 1:
            raise InvalidRequestError(f"Invalid limit: {self.limit!r}")
        self.limit = min(limit, BATCH_MAX_TRIPS)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "BatchRequest":
        """Build a request from a snake_case or camelCase JSON payload."""

        def pick(snake: str, camel: str) -> Any:
            if snake in payload:
                return payload[snake]
            return payload.get(camel)

        trip_ids = pick("trip_ids", "tripIds")
        if trip_ids is not None and not isinstance(trip_ids, (list, tuple)):
            raise InvalidRequestError("trip_ids must be a list")
        limit = payload.get("limit")
        return cls(
            trip_ids=[str(t) for t in trip_ids] if trip_ids else None,
            shift_id=pick("shift_id", "shiftId") or None,
            reprocess_failed=_as_bool(pick("reprocess_failed", "reprocessFailed")),
            reprocess_all=_as_bool(pick("reprocess_all", "reprocessAll")),
            limit=BATCH_DEFAULT_LIMIT if limit is None else limit,
        )


@dataclass(slots=True)
class BatchTripResult:
    trip_id: str
    status: str
    road_distance_km: Optional[float] = None
    match_confidence: Optional[float] = None
    error: Optional[str] = None


@dataclass(slots=True)
class BatchSummary:
    total_requested: int = 0
    processed: int = 0
    matched: int = 0
    failed: int = 0
    anomalous: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0

    def record(self, status: str) -> None:
        if status == MatchStatus.MATCHED.value:
            self.matched += 1
        elif status == MatchStatus.ANOMALOUS.value:
            self.anomalous += 1
        elif status == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


@dataclass(slots=True)
class BatchResponse:
    summary: BatchSummary = field(default_factory=BatchSummary)
    results: List[BatchTripResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "summary": asdict(self.summary),
            "results": [asdict(r) for r in self.results],
        }


class BatchMatchService:
    """Run batch requests through ``matcher``, one trip at a time.

    A matcher without a pacer gets ``pacer`` installed, or a
    :class:`CallPacer` spacing calls by ``MATCH_CALL_DELAY_SECONDS``.
    """

    def __init__(
        self,
        matcher: RoadMatchService,
        *,
        pacer: CallPacer | None = None,
        max_attempts: int = MATCH_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self.matcher = matcher
        if matcher.pacer is None:
            matcher.pacer = pacer or CallPacer(MATCH_CALL_DELAY_SECONDS)
        self.store = matcher.store
        self.max_attempts = max_attempts
        self._clock = clock
        self._log = logger or logging.getLogger(self.__class__.__name__)

    def select_trip_ids(self, request: BatchRequest) -> List[str]:
        if request.trip_ids:
            return list(dict.fromkeys(request.trip_ids))[: request.limit]
        if request.shift_id:
            return self.store.unmatched_trip_ids(request.shift_id, request.limit)
        if request.reprocess_all:
            return self.store.recent_trip_ids(request.limit)
        return self.store.retryable_trip_ids(self.max_attempts, request.limit)

    def run(self, request: BatchRequest) -> BatchResponse:
        self.matcher.ensure_configured()
        self.matcher.pacer.reset()
        started = self._clock()
        response = BatchResponse()
        trip_ids = self.select_trip_ids(request)
        response.summary.total_requested = len(trip_ids)
        self._log.info(
            "Batch matching %d trips (shift=%s reprocess_failed=%s reprocess_all=%s)",
            len(trip_ids),
            request.shift_id,
            request.reprocess_failed,
            request.reprocess_all,
        )

        for trip_id in trip_ids:
            try:
                line = self._process_trip(trip_id, request, response.summary)
            except Exception as exc:
                self._log.error(
                    "Trip %s batch matching failed: %s", trip_id, exc, exc_info=True
                )
                line = BatchTripResult(
                    trip_id=trip_id,
                    status=MatchStatus.FAILED.value,
                    error=str(exc) or exc.__class__.__name__,
                )
            response.results.append(line)
            response.summary.record(line.status)

        response.summary.duration_seconds = round(self._clock() - started, 1)
        s = response.summary
        self._log.info(
            "Batch done in %.1fs: %d requested, %d processed, %d matched, "
            "%d failed, %d anomalous, %d skipped",
            s.duration_seconds,
            s.total_requested,
            s.processed,
            s.matched,
            s.failed,
            s.anomalous,
            s.skipped,
        )
        return response

    def _process_trip(
        self, trip_id: str, request: BatchRequest, summary: BatchSummary
    ) -> BatchTripResult:
        trip = self.store.get_trip(trip_id)
        if trip is None:
            return BatchTripResult(
                trip_id=trip_id,
                status=MatchStatus.FAILED.value,
                error=TRIP_NOT_FOUND_MESSAGE,
            )
        if trip.match_status == MatchStatus.MATCHED and not request.reprocess_all:
            return BatchTripResult(
                trip_id=trip_id,
                status=SKIPPED,
                road_distance_km=trip.road_distance_km,
                match_confidence=trip.match_confidence,
            )
        if trip.match_attempts >= self.max_attempts and not request.reprocess_all:
            self._log.warning(
                "Trip %s skipped: %d attempts", trip_id, trip.match_attempts
            )
            return BatchTripResult(
                trip_id=trip_id, status=SKIPPED, error=MAX_ATTEMPTS_MESSAGE
            )
        if not self.store.claim_trip(trip_id, reset_attempts=request.reprocess_all):
            return BatchTripResult(
                trip_id=trip_id, status=SKIPPED, error=CLAIMED_SKIP_MESSAGE
            )

        run = self.matcher.run_match(trip)
        if run.called_service:
            summary.processed += 1
        result = run.result
        return BatchTripResult(
            trip_id=trip_id,
            status=result.match_status.value,
            road_distance_km=result.road_distance_km,
            match_confidence=result.match_confidence,
            error=result.match_error,
        )


__all__ = [
    "BatchMatchService",
    "BatchRequest",
    "BatchResponse",
    "BatchSummary",
    "BatchTripResult",
    "MAX_ATTEMPTS_MESSAGE",
    "TRIP_NOT_FOUND_MESSAGE",
]
