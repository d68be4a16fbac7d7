"""Local persistence for zones, stops, runs, settings and the KML cache."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, TypeVar

from sqlalchemy import Engine, create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import settings
from ..errors import ActiveRunExistsError, DomainValidationError, FieldMapError
from ..models.domain import (
    RUN_STATUSES,
    RUN_STOP_STATUSES,
    Run,
    RunStop,
    RunStopStats,
    Stop,
    normalize_plan,
    validate_zone_id,
)
from ..services.geospatial import is_valid_coordinate
from .tables import Base, KMLCacheRow, RunRow, RunStopRow, SettingRow, StopRow, ZoneRow, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEED_ZONES = ({"id": 9, "name": "Zona 9", "description": "Castel San Giovanni"},)
SEED_SETTINGS = (
    ("gps_accuracy_threshold", "50", "number"),
    ("marker_radius", "200", "number"),
    ("auto_save_interval", "30", "number"),
    ("map_style", "default", "string"),
    ("notification_enabled", "true", "boolean"),
)
SETTING_TYPES = ("string", "number", "boolean", "json")


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands datetimes back without tzinfo; everything is stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _require_positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise DomainValidationError(field_name, f"{field_name} must be a positive integer, got {value!r}")
    return value


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise DomainValidationError(field_name, f"{field_name} must be a non-empty string")
    return value.strip()


def _encode_setting(value: Any, value_type: str) -> str:
    if value_type == "json":
        return json.dumps(value)
    if value_type == "boolean":
        return "true" if value else "false"
    return str(value)


def _decode_setting(value: Optional[str], value_type: str) -> Any:
    if value is None:
        return None
    if value_type == "number":
        number = float(value)
        return int(number) if number.is_integer() else number
    if value_type == "boolean":
        return value == "true"
    if value_type == "json":
        return json.loads(value)
    return value


def _zone_dict(row: ZoneRow) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "created_at": _aware(row.created_at),
        "updated_at": _aware(row.updated_at),
    }


def _stop_from_row(row: StopRow) -> Stop:
    return Stop(
        id=row.id,
        zone_id=row.zone_id,
        plan=row.plan,
        name=row.name,
        description=row.description or "",
        latitude=row.lat,
        longitude=row.lng,
        is_manual=bool(row.is_manual),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _run_from_row(row: RunRow) -> Run:
    return Run(
        id=row.id,
        zone_id=row.zone_id,
        plan=row.plan,
        status=row.status,
        started_at=_aware(row.started_at),
        ended_at=_aware(row.ended_at),
        total_distance=row.total_distance,
        total_time=row.total_time,
        notes=row.notes or "",
    )


def _run_stop_from_row(row: RunStopRow) -> RunStop:
    return RunStop(
        id=row.id,
        run_id=row.run_id,
        stop_id=row.stop_id,
        status=row.status,
        completed_at=_aware(row.completed_at),
        notes=row.notes or "",
        latitude=row.latitude,
        longitude=row.longitude,
        accuracy=row.accuracy,
    )


def _seed(session: Session) -> None:
    for zone in SEED_ZONES:
        if session.get(ZoneRow, zone["id"]) is None:
            session.add(ZoneRow(**zone))
    for key, value, value_type in SEED_SETTINGS:
        if session.get(SettingRow, key) is None:
            session.add(SettingRow(key=key, value=value, type=value_type))


def _create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    with Session(engine) as session, session.begin():
        _seed(session)


class LocalStore:
    """Local relational store on a SQLAlchemy engine (SQLite by default).

    Every coroutine runs its unit of work in a worker thread. One unit of work
    runs at a time, so an in-memory database can share a single connection.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = str(path if path is not None else settings.database_path)
        self._engine: Optional[Engine] = None
        self._sessions: Optional[sessionmaker[Session]] = None
        self._lock = threading.Lock()

    def _create_engine(self) -> Engine:
        if self.path == ":memory:":
            return create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(f"sqlite:///{self.path}", connect_args={"check_same_thread": False})

    async def _run(self, work: Callable[[Session], T]) -> T:
        sessions = self._sessions
        if sessions is None:
            raise FieldMapError("Database is not initialized. Call initialize() first.")

        def unit() -> T:
            with self._lock, sessions.begin() as session:
                return work(session)

        return await asyncio.to_thread(unit)

    async def initialize(self) -> None:
        if self._engine is not None:
            return
        engine = self._create_engine()
        await asyncio.to_thread(_create_schema, engine)
        self._engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)
        logger.info(f"Database ready at {self.path}")

    async def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessions = None

    # Zones

    async def insert_zone(self, name: str, description: str = "", zone_id: Optional[int] = None) -> int:
        name = _require_text(name, "name")
        if zone_id is not None:
            _require_positive_int(zone_id, "id")

        def work(session: Session) -> int:
            row = ZoneRow(id=zone_id, name=name, description=description)
            session.add(row)
            session.flush()
            return row.id

        return await self._run(work)

    async def get_zones(self) -> list[dict[str, Any]]:
        return await self._run(
            lambda session: [_zone_dict(row) for row in session.scalars(select(ZoneRow).order_by(ZoneRow.name))]
        )

    async def get_zone(self, zone_id: int) -> Optional[dict[str, Any]]:
        def work(session: Session) -> Optional[dict[str, Any]]:
            row = session.get(ZoneRow, zone_id)
            return _zone_dict(row) if row else None

        return await self._run(work)

    # Stops

    async def insert_stop(self, data: Mapping[str, Any]) -> Stop:
        """Insert a stop; accepts lat/lng or latitude/longitude keys.

        Raises:
            DomainValidationError: before any write, naming the invalid field.
        """
        zone_id = _require_positive_int(data.get("zone_id"), "zone_id")
        plan = normalize_plan(data.get("plan"))
        name = _require_text(data.get("name"), "name")
        lat = data.get("lat") if data.get("lat") is not None else data.get("latitude")
        lng = data.get("lng") if data.get("lng") is not None else data.get("longitude")
        if isinstance(lat, bool) or not isinstance(lat, (int, float)) or not -90 <= lat <= 90:
            raise DomainValidationError("lat", f"lat must be a number in [-90, 90], got {lat!r}")
        if isinstance(lng, bool) or not isinstance(lng, (int, float)) or not -180 <= lng <= 180:
            raise DomainValidationError("lng", f"lng must be a number in [-180, 180], got {lng!r}")
        is_manual = data.get("is_manual", False)
        if is_manual not in (0, 1, True, False):
            raise DomainValidationError("is_manual", f"is_manual must be 0/1, got {is_manual!r}")

        def work(session: Session) -> Stop:
            now = utcnow()
            row = StopRow(
                zone_id=zone_id,
                plan=plan,
                name=name,
                description=data.get("description") or "",
                lat=lat,
                lng=lng,
                is_manual=bool(is_manual),
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            return _stop_from_row(row)

        return await self._run(work)

    async def get_stops_by_zone(self, zone_id: int, plan: str) -> list[Stop]:
        query = (
            select(StopRow)
            .where(StopRow.zone_id == zone_id, StopRow.plan == str(plan).upper())
            .order_by(StopRow.name)
        )
        return await self._run(lambda session: [_stop_from_row(row) for row in session.scalars(query)])

    async def get_manual_stops(self) -> list[Stop]:
        query = select(StopRow).where(StopRow.is_manual.is_(True)).order_by(StopRow.created_at.desc())
        return await self._run(lambda session: [_stop_from_row(row) for row in session.scalars(query)])

    async def get_stop(self, stop_id: int) -> Optional[Stop]:
        def work(session: Session) -> Optional[Stop]:
            row = session.get(StopRow, stop_id)
            return _stop_from_row(row) if row else None

        return await self._run(work)

    async def update_stop(self, stop_id: int, changes: Mapping[str, Any]) -> Optional[Stop]:
        columns = {"name": "name", "description": "description", "lat": "lat", "lng": "lng",
                   "latitude": "lat", "longitude": "lng"}
        updates = {columns[key]: value for key, value in changes.items() if key in columns}
        if "name" in updates:
            updates["name"] = _require_text(updates["name"], "name")

        def work(session: Session) -> Optional[Stop]:
            row = session.get(StopRow, stop_id)
            if row is None:
                return None
            lat = updates.get("lat", row.lat)
            lng = updates.get("lng", row.lng)
            if not is_valid_coordinate(lat, lng):
                raise DomainValidationError("lat", f"Invalid coordinates ({lat}, {lng})")
            if updates:
                for column, value in updates.items():
                    setattr(row, column, value)
                row.updated_at = utcnow()
            return _stop_from_row(row)

        return await self._run(work)

    async def delete_stop(self, stop_id: int) -> bool:
        def work(session: Session) -> bool:
            row = session.get(StopRow, stop_id)
            if row is None:
                return False
            session.delete(row)
            return True

        return await self._run(work)

    # Runs

    async def start_run(self, data: Mapping[str, Any]) -> Run:
        zone_id = _require_positive_int(data.get("zone_id"), "zone_id")
        plan = normalize_plan(data.get("plan"))

        def work(session: Session) -> Run:
            row = RunRow(zone_id=zone_id, plan=plan, status="active", started_at=utcnow(), notes=data.get("notes") or "")
            session.add(row)
            session.flush()
            return _run_from_row(row)

        try:
            return await self._run(work)
        except IntegrityError as exc:
            raise ActiveRunExistsError("Another run is already active") from exc

    async def get_run(self, run_id: int) -> Optional[Run]:
        def work(session: Session) -> Optional[Run]:
            row = session.get(RunRow, run_id)
            return _run_from_row(row) if row else None

        return await self._run(work)

    async def complete_run(
        self,
        run_id: int,
        total_distance: Optional[float] = None,
        total_time: Optional[int] = None,
        notes: str = "",
    ) -> Run:
        def work(session: Session) -> Run:
            row = session.get(RunRow, run_id)
            if row is None:
                raise DomainValidationError("run_id", f"Run {run_id} does not exist")
            row.status = "completed"
            row.ended_at = utcnow()
            row.total_distance = total_distance
            row.total_time = total_time
            row.notes = notes
            return _run_from_row(row)

        return await self._run(work)

    async def set_run_status(self, run_id: int, status: str) -> Optional[Run]:
        if status not in RUN_STATUSES:
            raise DomainValidationError("status", f"status must be one of {RUN_STATUSES}, got {status!r}")

        def work(session: Session) -> Optional[Run]:
            row = session.get(RunRow, run_id)
            if row is None:
                return None
            row.status = status
            session.flush()
            return _run_from_row(row)

        try:
            return await self._run(work)
        except IntegrityError as exc:
            raise ActiveRunExistsError("Another run is already active") from exc

    async def get_active_run(self) -> Optional[Run]:
        query = select(RunRow).where(RunRow.status == "active").order_by(RunRow.started_at.desc()).limit(1)

        def work(session: Session) -> Optional[Run]:
            row = session.scalars(query).first()
            return _run_from_row(row) if row else None

        return await self._run(work)

    async def get_runs_by_zone(self, zone_id: int, plan: str) -> list[Run]:
        query = (
            select(RunRow)
            .where(RunRow.zone_id == zone_id, RunRow.plan == str(plan).upper())
            .order_by(RunRow.started_at.desc())
        )
        return await self._run(lambda session: [_run_from_row(row) for row in session.scalars(query)])

    # Run stops

    async def add_stop_to_run(
        self, run_id: int, stop_id: int | str, status: str = "pending", notes: str = ""
    ) -> RunStop:
        _require_positive_int(run_id, "run_id")
        _require_positive_int(stop_id, "stop_id")
        if status not in RUN_STOP_STATUSES:
            raise DomainValidationError("status", f"status must be one of {RUN_STOP_STATUSES}, got {status!r}")

        def work(session: Session) -> RunStop:
            row = RunStopRow(run_id=run_id, stop_id=stop_id, status=status, notes=notes)
            session.add(row)
            session.flush()
            return _run_stop_from_row(row)

        return await self._run(work)

    async def get_run_stop(self, run_id: int, stop_id: int | str) -> Optional[RunStop]:
        query = (
            select(RunStopRow)
            .where(RunStopRow.run_id == run_id, RunStopRow.stop_id == stop_id)
            .order_by(RunStopRow.id.desc())
            .limit(1)
        )

        def work(session: Session) -> Optional[RunStop]:
            row = session.scalars(query).first()
            return _run_stop_from_row(row) if row else None

        return await self._run(work)

    async def get_run_stops(self, run_id: int, status: Optional[str] = None) -> list[RunStop]:
        query = select(RunStopRow).where(RunStopRow.run_id == run_id).order_by(RunStopRow.id)
        if status is not None:
            query = query.where(RunStopRow.status == status)
        return await self._run(lambda session: [_run_stop_from_row(row) for row in session.scalars(query)])

    async def complete_stop_in_run(self, run_stop_id: int, data: Mapping[str, Any]) -> RunStop:
        status = data.get("status", "completed")
        if status not in RUN_STOP_STATUSES:
            raise DomainValidationError("status", f"status must be one of {RUN_STOP_STATUSES}, got {status!r}")

        def work(session: Session) -> RunStop:
            row = session.get(RunStopRow, run_stop_id)
            if row is None:
                raise DomainValidationError("run_stop_id", f"Run stop {run_stop_id} does not exist")
            row.status = status
            row.completed_at = utcnow()
            row.notes = data.get("notes") or ""
            row.latitude = data.get("latitude")
            row.longitude = data.get("longitude")
            row.accuracy = data.get("accuracy")
            return _run_stop_from_row(row)

        return await self._run(work)

    async def get_run_stop_stats(self, run_id: int) -> RunStopStats:
        query = (
            select(RunStopRow.status, func.count())
            .where(RunStopRow.run_id == run_id)
            .group_by(RunStopRow.status)
        )

        def work(session: Session) -> RunStopStats:
            stats = RunStopStats()
            for status, count in session.execute(query):
                if status in RUN_STOP_STATUSES:
                    setattr(stats, status, count)
            return stats

        return await self._run(work)

    # Settings

    async def get_setting(self, key: str) -> Any:
        def work(session: Session) -> Any:
            row = session.get(SettingRow, key)
            return _decode_setting(row.value, row.type) if row else None

        return await self._run(work)

    async def set_setting(self, key: str, value: Any, value_type: str = "string") -> None:
        if value_type not in SETTING_TYPES:
            raise DomainValidationError("type", f"Unsupported setting type {value_type!r}")
        row = SettingRow(key=key, value=_encode_setting(value, value_type), type=value_type, updated_at=utcnow())
        await self._run(lambda session: session.merge(row))

    # KML cache

    async def save_kml_cache(
        self,
        zone_id: int,
        plan: str,
        content: str,
        parsed_data: dict[str, Any],
        file_size: int,
        last_modified: Optional[datetime] = None,
    ) -> None:
        row = KMLCacheRow(
            zone_id=validate_zone_id(zone_id),
            plan=normalize_plan(plan),
            content=content,
            parsed_data=parsed_data,
            file_size=file_size,
            last_modified=last_modified or utcnow(),
        )
        await self._run(lambda session: session.merge(row))

    async def get_kml_cache(self, zone_id: int, plan: str) -> Optional[dict[str, Any]]:
        def work(session: Session) -> Optional[dict[str, Any]]:
            row = session.get(KMLCacheRow, (zone_id, str(plan).upper()))
            if row is None:
                return None
            return {
                "zone_id": row.zone_id,
                "plan": row.plan,
                "content": row.content,
                "parsed_data": row.parsed_data,
                "file_size": row.file_size,
                "last_modified": _aware(row.last_modified),
                "created_at": _aware(row.created_at),
            }

        return await self._run(work)

    # Maintenance

    async def get_stats(self) -> dict[str, int]:
        def count(session: Session, query: Any) -> int:
            return session.scalar(query) or 0

        def work(session: Session) -> dict[str, int]:
            return {
                "total_stops": count(session, select(func.count()).select_from(StopRow)),
                "manual_stops": count(session, select(func.count()).where(StopRow.is_manual.is_(True))),
                "total_runs": count(session, select(func.count()).select_from(RunRow)),
                "completed_runs": count(session, select(func.count()).where(RunRow.status == "completed")),
            }

        return await self._run(work)

    async def reset(self) -> None:
        """Drop all data and recreate the schema with seed rows."""
        engine = self._engine
        if engine is None:
            raise FieldMapError("Database is not initialized. Call initialize() first.")

        def rebuild() -> None:
            with self._lock:
                Base.metadata.drop_all(engine)
                _create_schema(engine)

        await asyncio.to_thread(rebuild)
        logger.info("Database reset")
