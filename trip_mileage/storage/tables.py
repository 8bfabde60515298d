from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class ShiftRow(Base):
    __tablename__ = "shifts"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed')", name="ck_shift_status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    employee_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="active", nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class GpsFixRow(Base):
    __tablename__ = "gps_fixes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shift_id: Mapped[str] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    accuracy_m: Mapped[float | None] = mapped_column(Float, nullable=True)
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    sensor_speed_mps: Mapped[float | None] = mapped_column(Float, nullable=True)


class TripRow(Base):
    __tablename__ = "trips"
    __table_args__ = (
        CheckConstraint(
            "match_status IN ('pending', 'processing', 'matched', 'failed', 'anomalous')",
            name="ck_trip_match_status",
        ),
        CheckConstraint(
            "match_status IN ('matched', 'anomalous') OR ("
            "road_distance_km IS NULL AND match_confidence IS NULL "
            "AND route_geometry IS NULL)",
            name="ck_trip_match_fields",
        ),
        CheckConstraint(
            "match_confidence IS NULL OR (match_confidence >= 0 AND match_confidence <= 1)",
            name="ck_trip_match_confidence",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shift_id: Mapped[str] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    start_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    end_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    end_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    haversine_distance_km: Mapped[float] = mapped_column(Float, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    classification: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    fix_count: Mapped[int] = mapped_column(Integer, nullable=False)
    low_accuracy_fixes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gps_confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)

    match_status: Mapped[str] = mapped_column(
        String(16), default="pending", nullable=False, index=True
    )
    match_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    road_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    route_geometry: Mapped[str | None] = mapped_column(Text, nullable=True)
    match_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    fix_links: Mapped[list[TripFixRow]] = relationship(
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="TripFixRow.sequence_order",
        lazy="selectin",
    )


class TripFixRow(Base):
    __tablename__ = "trip_fixes"

    trip_id: Mapped[str] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), primary_key=True
    )
    fix_id: Mapped[int] = mapped_column(
        ForeignKey("gps_fixes.id", ondelete="CASCADE"), primary_key=True
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    trip: Mapped[TripRow] = relationship(back_populates="fix_links")
