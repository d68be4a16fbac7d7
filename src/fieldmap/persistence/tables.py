"""ORM tables for the local store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ZoneRow(Base):
    __tablename__ = "zones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class StopRow(Base):
    __tablename__ = "stops"
    __table_args__ = (
        CheckConstraint("plan IN ('A', 'B')", name="ck_stops_plan"),
        Index("idx_stops_zone_plan", "zone_id", "plan"),
        Index("idx_stops_manual", "is_manual"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey("zones.id"))
    plan: Mapped[str] = mapped_column(String(1))
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    is_manual: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class RunRow(Base):
    __tablename__ = "runs"
    __table_args__ = (
        CheckConstraint("plan IN ('A', 'B')", name="ck_runs_plan"),
        CheckConstraint("status IN ('active', 'completed', 'paused')", name="ck_runs_status"),
        Index("idx_runs_zone_plan", "zone_id", "plan"),
        Index("idx_runs_status", "status"),
        Index("idx_runs_started_at", "started_at"),
        # At most one active run.
        Index("idx_runs_single_active", "status", unique=True, sqlite_where=text("status = 'active'")),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey("zones.id"))
    plan: Mapped[str] = mapped_column(String(1))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String, default="active")
    total_distance: Mapped[Optional[float]] = mapped_column(Float)
    total_time: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class RunStopRow(Base):
    __tablename__ = "run_stops"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'failed', 'skipped')", name="ck_run_stops_status"),
        Index("idx_run_stops_run_id", "run_id"),
        Index("idx_run_stops_stop_id", "stop_id"),
        Index("idx_run_stops_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("runs.id"))
    stop_id: Mapped[int] = mapped_column(ForeignKey("stops.id"))
    status: Mapped[str] = mapped_column(String, default="pending")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    accuracy: Mapped[Optional[float]] = mapped_column(Float)


class SettingRow(Base):
    __tablename__ = "settings"
    __table_args__ = (
        CheckConstraint("type IN ('string', 'number', 'boolean', 'json')", name="ck_settings_type"),
    )

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String, default="string")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class KMLCacheRow(Base):
    __tablename__ = "kml_cache"

    zone_id: Mapped[int] = mapped_column(ForeignKey("zones.id"), primary_key=True)
    plan: Mapped[str] = mapped_column(String(1), primary_key=True)
    content: Mapped[Optional[str]] = mapped_column(Text)
    parsed_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    last_modified: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
