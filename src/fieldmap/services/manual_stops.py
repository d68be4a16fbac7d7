"""Runtime collection of stops added by hand in the field."""

from __future__ import annotations

import json
import logging
import secrets
import string
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..errors import DomainValidationError
from ..models.domain import Stop, normalize_plan, validate_zone_id
from .events import EventBus, ManualStopEvent
from .geospatial import is_valid_coordinate

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_UPDATABLE_FIELDS = ("name", "description", "latitude", "longitude")


def generate_manual_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"manual_{int(time.time() * 1000)}_{suffix}"


def _as_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise DomainValidationError(field_name, f"{field_name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise DomainValidationError(field_name, f"{field_name} must be a number, got {value!r}") from exc


def _is_valid_manual_stop(stop: Stop) -> bool:
    return bool(
        stop.id
        and str(stop.id).startswith("manual_")
        and stop.name
        and stop.zone_id
        and stop.plan in ("A", "B")
        and stop.is_manual
        and is_valid_coordinate(stop.latitude, stop.longitude)
    )


class ManualStopService:
    """Process-wide manual stops; grows until ``clear`` or ``reset`` is called."""

    def __init__(self, events: EventBus[ManualStopEvent] | None = None) -> None:
        self.events: EventBus[ManualStopEvent] = events or EventBus("manual_stops")
        self._stops: list[Stop] = []

    def add(self, data: Mapping[str, Any]) -> Stop:
        """Validate and store a new manual stop.

        ``data`` carries latitude, longitude, name, zone (or zone_id), plan and
        an optional description.

        Raises:
            DomainValidationError: a required field is missing or invalid.
        """
        zone = data.get("zone", data.get("zone_id"))
        plan = data.get("plan", data.get("subzone"))
        for field_name, value in (
            ("latitude", data.get("latitude")),
            ("longitude", data.get("longitude")),
            ("name", data.get("name")),
            ("zone_id", zone),
            ("plan", plan),
        ):
            if value is None or (isinstance(value, str) and not value.strip()):
                raise DomainValidationError(field_name, f"{field_name} is required")

        latitude = _as_float(data["latitude"], "latitude")
        longitude = _as_float(data["longitude"], "longitude")
        if not is_valid_coordinate(latitude, longitude):
            raise DomainValidationError("latitude", f"Invalid coordinates ({latitude}, {longitude})")

        try:
            zone_id = int(zone)
        except (TypeError, ValueError) as exc:
            raise DomainValidationError("zone_id", f"zone_id must be an integer, got {zone!r}") from exc

        now = datetime.now(timezone.utc)
        stop = Stop(
            id=generate_manual_id(),
            zone_id=validate_zone_id(zone_id),
            plan=normalize_plan(plan),
            name=str(data["name"]).strip(),
            description=str(data.get("description") or "").strip(),
            latitude=latitude,
            longitude=longitude,
            is_manual=True,
            created_at=now,
            updated_at=now,
        )
        self._stops.append(stop)
        logger.info(f"Manual stop added: {stop.name} ({stop.id})")
        self.events.emit("manual_stop_added", {"stop": stop, "total_count": len(self._stops)})
        return stop

    def remove(self, stop_id: str) -> bool:
        for index, stop in enumerate(self._stops):
            if stop.id == stop_id:
                del self._stops[index]
                self.events.emit(
                    "manual_stop_removed",
                    {"stop_id": stop_id, "stop": stop, "total_count": len(self._stops)},
                )
                return True
        logger.warning(f"Manual stop not found: {stop_id}")
        return False

    def update(self, stop_id: str, changes: Mapping[str, Any]) -> Optional[Stop]:
        """Apply name/description/coordinate changes; id and manual flag never change."""
        for index, stop in enumerate(self._stops):
            if stop.id != stop_id:
                continue
            values = {key: changes[key] for key in _UPDATABLE_FIELDS if key in changes}
            updated = replace(stop, **values, id=stop.id, is_manual=True, updated_at=datetime.now(timezone.utc))
            if not is_valid_coordinate(updated.latitude, updated.longitude):
                raise DomainValidationError("latitude", "Invalid coordinates")
            self._stops[index] = updated
            self.events.emit(
                "manual_stop_updated",
                {"stop_id": stop_id, "old_stop": stop, "updated_stop": updated, "total_count": len(self._stops)},
            )
            return updated
        logger.warning(f"Manual stop not found for update: {stop_id}")
        return None

    def get(self, stop_id: str) -> Optional[Stop]:
        return next((stop for stop in self._stops if stop.id == stop_id), None)

    def list(self, zone: Optional[int] = None, plan: Optional[str] = None) -> list[Stop]:
        stops = list(self._stops)
        if zone is not None:
            stops = [stop for stop in stops if stop.zone_id == zone]
        if plan is not None:
            stops = [stop for stop in stops if stop.plan == plan.upper()]
        return stops

    def is_manual(self, stop_id: str) -> bool:
        return any(stop.id == stop_id for stop in self._stops)

    def search(self, term: Optional[str]) -> list[Stop]:
        if not term or not term.strip():
            return list(self._stops)
        needle = term.strip().lower()
        return [
            stop
            for stop in self._stops
            if needle in stop.name.lower() or (stop.description and needle in stop.description.lower())
        ]

    def stats(self) -> dict[str, Any]:
        by_zone: dict[str, int] = {}
        for stop in self._stops:
            key = str(stop.zone_key)
            by_zone[key] = by_zone.get(key, 0) + 1

        today = datetime.now(timezone.utc).date()
        added_today = sum(1 for stop in self._stops if stop.created_at and stop.created_at.date() >= today)
        return {
            "total_count": len(self._stops),
            "by_zone": by_zone,
            "added_today": added_today,
            "last_added": self._stops[-1].created_at if self._stops else None,
        }

    def export_json(self) -> str:
        return json.dumps(
            {
                "manual_stops": [stop.to_dict() for stop in self._stops],
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "count": len(self._stops),
            },
            ensure_ascii=False,
            indent=2,
        )

    def import_json(self, text: str) -> dict[str, Any]:
        """Append the valid manual stops from an export; invalid entries are counted, not raised."""
        try:
            data = json.loads(text)
            raw_stops = data.get("manual_stops") if isinstance(data, dict) else None
            if not isinstance(raw_stops, list):
                raise ValueError("manual_stops list is missing")
        except ValueError as exc:
            logger.error(f"Manual stop import failed: {exc}")
            return {"success": False, "error": str(exc)}

        valid: list[Stop] = []
        for raw in raw_stops:
            try:
                stop = Stop.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError):
                continue
            if _is_valid_manual_stop(stop):
                valid.append(stop)

        self._stops.extend(valid)
        self.events.emit(
            "manual_stops_imported",
            {"imported_count": len(raw_stops), "valid_count": len(valid), "total_count": len(self._stops)},
        )
        return {
            "success": True,
            "imported_count": len(raw_stops),
            "valid_count": len(valid),
            "errors": len(raw_stops) - len(valid),
        }

    def clear(self) -> int:
        count = len(self._stops)
        self._stops = []
        self.events.emit("manual_stops_cleared", {"cleared_count": count})
        logger.info(f"Cleared {count} manual stops")
        return count

    def reset(self) -> None:
        self.clear()
        self.events.clear()

    def __len__(self) -> int:
        return len(self._stops)
