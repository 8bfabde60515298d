"""Trip store: the only component that reads and writes the pipeline tables."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Callable, Iterable, List, Optional, Sequence
import uuid

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from ..config import DATABASE_URL, MATCH_CLAIM_TIMEOUT_SECONDS
from ..detection.segmentation import DetectedTrip
from ..errors import TripNotFoundError
from ..models import (
    Anomalous,
    Failed,
    GpsFix,
    Matched,
    MatchOutcome,
    MatchState,
    MatchStatus,
    Pending,
    Processing,
    Shift,
    ShiftStatus,
    TransportMode,
    Trip,
)
from .db import create_db_engine, create_session_factory, init_db
from .tables import GpsFixRow, ShiftRow, TripFixRow, TripRow

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TripStore:
    """Persistence for shifts, fixes, trips and their match fields.

    Every public method runs in its own transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        clock: Clock = _utcnow,
        claim_timeout_s: float = MATCH_CLAIM_TIMEOUT_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._claim_timeout = timedelta(seconds=claim_timeout_s)

    @classmethod
    def from_url(cls, url: str = DATABASE_URL, **kwargs) -> "TripStore":
        engine = create_db_engine(url)
        init_db(engine)
        return cls(create_session_factory(engine), **kwargs)

    # ------------------------------------------------------------------
    # Shifts and fixes
    # ------------------------------------------------------------------
    def add_shift(self, shift: Shift) -> Shift:
        with self._session_factory.begin() as session:
            session.add(
                ShiftRow(
                    id=shift.id,
                    employee_id=shift.employee_id,
                    status=ShiftStatus(shift.status).value,
                    started_at=as_utc(shift.started_at),
                    ended_at=as_utc(shift.ended_at),
                )
            )
        return shift

    def get_shift(self, shift_id: str) -> Optional[Shift]:
        with self._session_factory() as session:
            row = session.get(ShiftRow, shift_id)
            if row is None:
                return None
            return Shift(
                id=row.id,
                status=ShiftStatus(row.status),
                employee_id=row.employee_id,
                started_at=as_utc(row.started_at),
                ended_at=as_utc(row.ended_at),
            )

    def set_shift_status(
        self, shift_id: str, status: ShiftStatus, *, ended_at: Optional[datetime] = None
    ) -> None:
        with self._session_factory.begin() as session:
            row = session.get(ShiftRow, shift_id)
            if row is None:
                raise KeyError(shift_id)
            row.status = ShiftStatus(status).value
            if ended_at is not None:
                row.ended_at = as_utc(ended_at)

    def add_fixes(self, shift_id: str, fixes: Iterable[GpsFix]) -> List[GpsFix]:
        """Insert fixes for a shift and return them with their new ids."""

        with self._session_factory.begin() as session:
            rows = [
                GpsFixRow(
                    shift_id=shift_id,
                    latitude=fix.latitude,
                    longitude=fix.longitude,
                    accuracy_m=fix.accuracy_m,
                    captured_at=as_utc(fix.captured_at),
                    sensor_speed_mps=fix.sensor_speed_mps,
                )
                for fix in fixes
            ]
            session.add_all(rows)
            session.flush()
            return [_fix_from_row(row) for row in rows]

    def list_fixes(
        self, shift_id: str, *, after: Optional[datetime] = None
    ) -> List[GpsFix]:
        """Fixes of a shift in capture order, optionally strictly after ``after``."""

        stmt = select(GpsFixRow).where(GpsFixRow.shift_id == shift_id)
        if after is not None:
            stmt = stmt.where(GpsFixRow.captured_at > as_utc(after))
        stmt = stmt.order_by(GpsFixRow.captured_at, GpsFixRow.id)
        with self._session_factory() as session:
            return [_fix_from_row(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------
    def get_trip(self, trip_id: str) -> Optional[Trip]:
        with self._session_factory() as session:
            row = session.get(TripRow, trip_id)
            return _trip_from_row(row) if row is not None else None

    def list_trips(self, shift_id: str) -> List[Trip]:
        stmt = (
            select(TripRow)
            .where(TripRow.shift_id == shift_id)
            .order_by(TripRow.started_at)
        )
        with self._session_factory() as session:
            return [_trip_from_row(row) for row in session.scalars(stmt)]

    def trip_fixes(self, trip_id: str) -> List[GpsFix]:
        """The fixes a trip was built from, in trip order."""

        stmt = (
            select(GpsFixRow)
            .join(TripFixRow, TripFixRow.fix_id == GpsFixRow.id)
            .where(TripFixRow.trip_id == trip_id)
            .order_by(TripFixRow.sequence_order)
        )
        with self._session_factory() as session:
            return [_fix_from_row(row) for row in session.scalars(stmt)]

    def latest_trip_end(self, shift_id: str) -> Optional[datetime]:
        stmt = select(func.max(TripRow.ended_at)).where(TripRow.shift_id == shift_id)
        with self._session_factory() as session:
            return as_utc(session.scalar(stmt))

    def replace_trips(
        self, shift_id: str, detected: Sequence[DetectedTrip]
    ) -> List[Trip]:
        """Atomically delete every trip of ``shift_id`` and insert ``detected``."""

        with self._session_factory.begin() as session:
            old_ids = select(TripRow.id).where(TripRow.shift_id == shift_id)
            session.execute(
                delete(TripFixRow)
                .where(TripFixRow.trip_id.in_(old_ids))
                .execution_options(synchronize_session=False)
            )
            removed = session.execute(
                delete(TripRow)
                .where(TripRow.shift_id == shift_id)
                .execution_options(synchronize_session=False)
            ).rowcount
            LOGGER.debug("Removed %s existing trips for shift %s", removed, shift_id)
            return self._insert_trips(session, shift_id, detected)

    def append_trips(
        self, shift_id: str, detected: Sequence[DetectedTrip]
    ) -> List[Trip]:
        with self._session_factory.begin() as session:
            return self._insert_trips(session, shift_id, detected)

    def _insert_trips(
        self, session: Session, shift_id: str, detected: Sequence[DetectedTrip]
    ) -> List[Trip]:
        now = self._clock()
        rows: List[TripRow] = []
        for item in detected:
            row = TripRow(
                id=str(uuid.uuid4()),
                shift_id=shift_id,
                started_at=as_utc(item.started_at),
                ended_at=as_utc(item.ended_at),
                start_latitude=item.start_coord[0],
                start_longitude=item.start_coord[1],
                end_latitude=item.end_coord[0],
                end_longitude=item.end_coord[1],
                haversine_distance_km=item.haversine_distance_km,
                duration_minutes=item.duration_minutes,
                classification=TransportMode(item.classification).value,
                fix_count=item.fix_count,
                low_accuracy_fixes=item.low_accuracy_fixes,
                gps_confidence=item.gps_confidence,
                match_status=MatchStatus.PENDING.value,
                match_attempts=0,
                created_at=now,
            )
            row.fix_links = [
                TripFixRow(fix_id=fix.id, sequence_order=index)
                for index, fix in enumerate(item.fixes, start=1)
                if fix.id is not None
            ]
            session.add(row)
            rows.append(row)
        session.flush()
        return [_trip_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Match selection and updates
    # ------------------------------------------------------------------
    def unmatched_trip_ids(self, shift_id: str, limit: int) -> List[str]:
        stmt = (
            select(TripRow.id)
            .where(
                TripRow.shift_id == shift_id,
                TripRow.match_status != MatchStatus.MATCHED.value,
            )
            .order_by(TripRow.created_at, TripRow.started_at)
            .limit(limit)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def recent_trip_ids(self, limit: int) -> List[str]:
        stmt = (
            select(TripRow.id)
            .order_by(TripRow.created_at.desc(), TripRow.started_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def retryable_trip_ids(self, max_attempts: int, limit: int) -> List[str]:
        stmt = (
            select(TripRow.id)
            .where(
                TripRow.match_status.in_(
                    [MatchStatus.PENDING.value, MatchStatus.FAILED.value]
                ),
                TripRow.match_attempts < max_attempts,
            )
            .order_by(TripRow.created_at.desc(), TripRow.started_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    def claim_trip(self, trip_id: str, *, reset_attempts: bool = False) -> bool:
        """Mark a trip ``processing`` unless another run holds a fresh claim.

        The check and the update are one conditional UPDATE, so two runs can
        never both claim the same trip. Claims older than the claim timeout
        are considered abandoned and may be taken over.
        """

        now = self._clock()
        values = {
            "match_status": MatchStatus.PROCESSING.value,
            "claimed_at": now,
            "road_distance_km": None,
            "match_confidence": None,
            "route_geometry": None,
            "match_error": None,
        }
        if reset_attempts:
            values["match_attempts"] = 0
        stmt = (
            update(TripRow)
            .where(
                TripRow.id == trip_id,
                or_(
                    TripRow.match_status != MatchStatus.PROCESSING.value,
                    TripRow.claimed_at.is_(None),
                    TripRow.claimed_at < now - self._claim_timeout,
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory.begin() as session:
            claimed = session.execute(stmt).rowcount == 1
        if not claimed:
            LOGGER.info("Trip %s is already being processed", trip_id)
        return claimed

    def update_trip_match(self, trip_id: str, outcome: MatchOutcome) -> Trip:
        """Persist a final match decision and count the attempt."""

        if not isinstance(outcome, (Matched, Anomalous, Failed)):
            raise TypeError(f"Not a terminal match outcome: {outcome!r}")
        with self._session_factory.begin() as session:
            row = session.get(TripRow, trip_id)
            if row is None:
                raise TripNotFoundError(f"Trip not found: {trip_id}")
            row.match_status = outcome.status.value
            if isinstance(outcome, (Matched, Anomalous)):
                row.road_distance_km = outcome.road_distance_km
                row.match_confidence = outcome.confidence
                row.route_geometry = outcome.route_geometry
            else:
                row.road_distance_km = None
                row.match_confidence = None
                row.route_geometry = None
            row.match_error = None if isinstance(outcome, Matched) else outcome.reason
            row.match_attempts = row.match_attempts + 1
            row.matched_at = self._clock()
            row.claimed_at = None
            session.flush()
            return _trip_from_row(row)


def _fix_from_row(row: GpsFixRow) -> GpsFix:
    return GpsFix(
        id=row.id,
        latitude=row.latitude,
        longitude=row.longitude,
        accuracy_m=row.accuracy_m,
        captured_at=as_utc(row.captured_at),
        sensor_speed_mps=row.sensor_speed_mps,
    )


def _match_state_from_row(row: TripRow) -> MatchState:
    status = MatchStatus(row.match_status)
    if status == MatchStatus.MATCHED:
        return Matched(
            road_distance_km=float(row.road_distance_km or 0.0),
            confidence=float(row.match_confidence or 0.0),
            route_geometry=row.route_geometry or "",
        )
    if status == MatchStatus.ANOMALOUS:
        return Anomalous(
            road_distance_km=float(row.road_distance_km or 0.0),
            confidence=float(row.match_confidence or 0.0),
            route_geometry=row.route_geometry or "",
            reason=row.match_error or "",
        )
    if status == MatchStatus.FAILED:
        return Failed(reason=row.match_error or "")
    if status == MatchStatus.PROCESSING:
        return Processing()
    return Pending()


def _trip_from_row(row: TripRow) -> Trip:
    return Trip(
        id=row.id,
        shift_id=row.shift_id,
        started_at=as_utc(row.started_at),
        ended_at=as_utc(row.ended_at),
        start_coord=(row.start_latitude, row.start_longitude),
        end_coord=(row.end_latitude, row.end_longitude),
        haversine_distance_km=row.haversine_distance_km,
        duration_minutes=row.duration_minutes,
        classification=TransportMode(row.classification),
        fix_count=row.fix_count,
        match=_match_state_from_row(row),
        match_attempts=row.match_attempts,
        gps_confidence=row.gps_confidence,
        low_accuracy_fixes=row.low_accuracy_fixes,
        fix_ids=[link.fix_id for link in row.fix_links],
        matched_at=as_utc(row.matched_at),
    )


__all__ = ["TripStore", "as_utc"]
