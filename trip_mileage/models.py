"""Domain dataclasses shared by detection, matching and storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, List, Optional, Tuple, Union

LatLon = Tuple[float, float]


class ShiftStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class TransportMode(str, Enum):
    DRIVING = "driving"
    WALKING = "walking"


class MatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    MATCHED = "matched"
    FAILED = "failed"
    ANOMALOUS = "anomalous"


@dataclass(frozen=True, slots=True)
class GpsFix:
    """One location sample as delivered by the capture subsystem."""

    latitude: float
    longitude: float
    captured_at: datetime
    accuracy_m: Optional[float] = None
    sensor_speed_mps: Optional[float] = None
    id: Optional[int] = None

    @property
    def coord(self) -> LatLon:
        return (self.latitude, self.longitude)


@dataclass(slots=True)
class Shift:
    id: str
    status: ShiftStatus
    employee_id: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Match state. Each variant carries only the data valid for its status, so a
# trip can never hold a route geometry while pending or failed.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Pending:
    status: ClassVar[MatchStatus] = MatchStatus.PENDING


@dataclass(frozen=True, slots=True)
class Processing:
    status: ClassVar[MatchStatus] = MatchStatus.PROCESSING


@dataclass(frozen=True, slots=True)
class Matched:
    road_distance_km: float
    confidence: float
    route_geometry: str
    status: ClassVar[MatchStatus] = MatchStatus.MATCHED


@dataclass(frozen=True, slots=True)
class Anomalous:
    road_distance_km: float
    confidence: float
    route_geometry: str
    reason: str
    status: ClassVar[MatchStatus] = MatchStatus.ANOMALOUS


@dataclass(frozen=True, slots=True)
class Failed:
    reason: str
    status: ClassVar[MatchStatus] = MatchStatus.FAILED


MatchOutcome = Union[Matched, Anomalous, Failed]
MatchState = Union[Pending, Processing, Matched, Anomalous, Failed]


@dataclass(slots=True)
class Trip:
    """A detected movement segment within one shift."""

    id: str
    shift_id: str
    started_at: datetime
    ended_at: datetime
    start_coord: LatLon
    end_coord: LatLon
    haversine_distance_km: float
    duration_minutes: int
    classification: TransportMode
    fix_count: int
    match: MatchState = field(default_factory=Pending)
    match_attempts: int = 0
    gps_confidence: float = 1.0
    low_accuracy_fixes: int = 0
    fix_ids: List[int] = field(default_factory=list)
    matched_at: Optional[datetime] = None

    @property
    def match_status(self) -> MatchStatus:
        return self.match.status

    @property
    def road_distance_km(self) -> Optional[float]:
        if isinstance(self.match, (Matched, Anomalous)):
            return self.match.road_distance_km
        return None

    @property
    def match_confidence(self) -> Optional[float]:
        if isinstance(self.match, (Matched, Anomalous)):
            return self.match.confidence
        return None

    @property
    def route_geometry(self) -> Optional[str]:
        if isinstance(self.match, (Matched, Anomalous)):
            return self.match.route_geometry
        return None

    @property
    def match_error(self) -> Optional[str]:
        if isinstance(self.match, (Anomalous, Failed)):
            return self.match.reason
        return None

    @property
    def effective_distance_km(self) -> float:
        """Road distance once matched, otherwise the corrected haversine."""

        if isinstance(self.match, Matched):
            return self.match.road_distance_km
        return self.haversine_distance_km


@dataclass(slots=True)
class MatchResult:
    """Outcome of one Road Matcher invocation for one trip."""

    success: bool
    match_status: MatchStatus
    route_geometry: Optional[str] = None
    road_distance_km: Optional[float] = None
    match_confidence: Optional[float] = None
    match_error: Optional[str] = None
    geometry_point_count: int = 0

    @classmethod
    def failure(
        cls, message: str, *, confidence: Optional[float] = None
    ) -> "MatchResult":
        return cls(
            success=False,
            match_status=MatchStatus.FAILED,
            match_confidence=confidence,
            match_error=message,
        )

    def outcome(self) -> MatchOutcome:
        """Return the terminal match state to persist for this result."""

        if self.match_status == MatchStatus.MATCHED:
            return Matched(
                road_distance_km=float(self.road_distance_km or 0.0),
                confidence=float(self.match_confidence or 0.0),
                route_geometry=self.route_geometry or "",
            )
        if self.match_status == MatchStatus.ANOMALOUS:
            return Anomalous(
                road_distance_km=float(self.road_distance_km or 0.0),
                confidence=float(self.match_confidence or 0.0),
                route_geometry=self.route_geometry or "",
                reason=self.match_error or "",
            )
        return Failed(reason=self.match_error or "Unknown matching failure")


@dataclass(frozen=True, slots=True)
class ServiceRegion:
    """Bounding box mapped to its own map-matching endpoint."""

    name: str
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float
    url: str
