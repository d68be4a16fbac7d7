"""Field session: ties KML data, stored stops, map state, navigation and runs together."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..errors import DomainValidationError, FieldMapError, ZoneNotLoadedError
from ..models.domain import (
    LoadMetadata,
    Location,
    MarkerView,
    ParsedDocument,
    RoadPath,
    Route,
    Run,
    RunStop,
    Stop,
    ValidationResult,
    ZoneKey,
)
from ..persistence.database import LocalStore
from ..persistence.remote_routes import RemoteRouteStore
from .events import EventBus, SessionEvent
from .export.geojson import parsed_document_to_geojson
from .kml.service import KMLService
from .manual_stops import ManualStopService
from .map_state import MapStateService, ZoneData
from .navigation import NavigationTracker
from .proximity import build_markers, visible_stops
from .routing.service import RoadRouter
from .runs import RunCoordinator

logger = logging.getLogger(__name__)

EXPORT_VERSION = "3.0.0"


@dataclass(slots=True)
class ZoneLoadResult:
    success: bool
    zone: int
    plan: str
    routes: list[Route] = field(default_factory=list)
    stops: list[Stop] = field(default_factory=list)
    validation: Optional[ValidationResult] = None
    metadata: Optional[LoadMetadata] = None
    error: Optional[str] = None


class FieldSession:
    """Integration coordinator used by the HTTP layer.

    Map selection drives navigation: ``stop_selected`` starts tracking the
    stop from the last known fix and ``stop_deselected`` stops it.
    """

    def __init__(
        self,
        kml: KMLService,
        store: LocalStore,
        map_state: MapStateService,
        navigation: NavigationTracker,
        manual_stops: ManualStopService,
        runs: RunCoordinator,
        router: RoadRouter,
        remote: RemoteRouteStore,
        events: EventBus[SessionEvent] | None = None,
    ) -> None:
        self.kml = kml
        self.store = store
        self.map_state = map_state
        self.navigation = navigation
        self.manual_stops = manual_stops
        self.runs = runs
        self.router = router
        self.remote = remote
        self.events: EventBus[SessionEvent] = events or EventBus("session")
        self.last_location: Optional[Location] = None
        self.is_initialized = False
        # manual stop id -> stored stop id
        self._persisted_manual: dict[str, int] = {}

    async def initialize(self) -> None:
        await self.store.initialize()
        self._wire_events()
        self.is_initialized = True
        logger.info("Field session initialized")

    def _wire_events(self) -> None:
        self.map_state.events.subscribe(
            "stop_selected", lambda data: self.navigation.select_stop(data["stop"], self.last_location)
        )
        self.map_state.events.subscribe("stop_deselected", lambda data: self.navigation.deselect_stop())

    async def load_zone(self, zone: int, plan: str) -> ZoneLoadResult:
        """Load KML routes and stored stops for a zone and make it the current view.

        Expected failures (no KML yet, unreadable file, storage errors) come back
        as ``success=False``; invalid zone/plan values raise.
        """
        key = ZoneKey.of(zone, plan)
        result = await self.kml.load_for_zone(key.zone, key.plan)
        if not result.success:
            return ZoneLoadResult(
                success=False, zone=key.zone, plan=key.plan, metadata=result.metadata,
                error=f"KML load failed: {result.error}",
            )

        try:
            stored = await self.store.get_stops_by_zone(key.zone, key.plan)
            pending_manual = [
                stop for stop in self.manual_stops.list(key.zone, key.plan)
                if stop.id not in self._persisted_manual
            ]
            data = ZoneData(routes=list(result.parsed_document.routes), stops=[*stored, *pending_manual])
            self.map_state.switch_to_zone(key.zone, key.plan, data)
        except FieldMapError as exc:
            logger.error(f"Failed to load zone {key}: {exc}")
            return ZoneLoadResult(success=False, zone=key.zone, plan=key.plan, error=str(exc))

        await self._save_kml_cache(key, result.content or "", result.parsed_document.to_dict(),
                                   result.metadata.file_size_chars or 0)

        state = self.map_state.current_state()
        loaded = ZoneLoadResult(
            success=True,
            zone=key.zone,
            plan=key.plan,
            routes=state.routes,
            stops=state.stops,
            validation=result.validation,
            metadata=result.metadata,
        )
        logger.info(f"Zone {key} ready: {len(loaded.routes)} routes, {len(loaded.stops)} stops")
        self.events.emit("zone_loaded", {"result": loaded})
        return loaded

    async def _save_kml_cache(self, key: ZoneKey, content: str, parsed: dict[str, Any], size: int) -> None:
        try:
            await self.store.save_kml_cache(key.zone, key.plan, content, parsed, size)
        except Exception:
            logger.exception(f"Could not persist KML cache row for {key}")

    async def add_manual_stop(self, data: Mapping[str, Any]) -> Stop:
        """Add a manual stop, show it if its zone is current, and persist it.

        Raises:
            DomainValidationError: the stop data is incomplete or invalid.
        """
        stop = self.manual_stops.add(data)
        state = self.map_state.current_state()
        if state.zone == stop.zone_id and state.plan == stop.plan:
            self.map_state.add_manual_stop(stop)

        try:
            stored = await self.store.insert_stop(
                {
                    "zone_id": stop.zone_id,
                    "plan": stop.plan,
                    "name": stop.name,
                    "description": stop.description,
                    "lat": stop.latitude,
                    "lng": stop.longitude,
                    "is_manual": True,
                }
            )
            self._persisted_manual[str(stop.id)] = stored.id
        except Exception:
            logger.exception(f"Could not persist manual stop {stop.id}")

        self.events.emit("manual_stop_added", {"stop": stop})
        return stop

    def update_user_location(self, location: Location) -> list[MarkerView]:
        """Refresh navigation and recompute markers for the current stops."""
        self.last_location = location
        self.navigation.update_user_location(location)

        state = self.map_state.current_state()
        if not state.stops:
            return []
        markers = build_markers(visible_stops(location, state.stops), state.markers)
        self.map_state.update_markers(markers)
        return markers

    def _find_stop(self, stop_id: int | str) -> Stop:
        for stop in self.map_state.current_state().stops:
            if str(stop.id) == str(stop_id):
                return stop
        raise DomainValidationError("stop_id", f"Stop {stop_id} is not in the current zone")

    def select_stop_for_navigation(self, stop_id: int | str) -> Stop:
        stop = self._find_stop(stop_id)
        self.map_state.select_stop(stop)
        return stop

    def deselect_stop(self) -> None:
        self.map_state.deselect_stop()

    async def start_run(self, zone: Optional[int] = None, plan: Optional[str] = None, notes: str = "") -> Run:
        """Start a run, defaulting to the currently loaded zone."""
        state = self.map_state.current_state()
        zone = zone if zone is not None else state.zone
        plan = plan if plan is not None else state.plan
        if zone is None or plan is None:
            raise ZoneNotLoadedError("No zone given and no zone loaded")
        return await self.runs.start_run(zone, plan, notes)

    async def complete_stop(
        self, stop_id: int | str, location: Optional[Location] = None, notes: str = ""
    ) -> RunStop:
        """Complete a stop in the active run; manual stops resolve to their stored id."""
        stored_id = self._persisted_manual.get(str(stop_id), stop_id)
        try:
            stored_id = int(stored_id)
        except (TypeError, ValueError) as exc:
            raise DomainValidationError("stop_id", f"Stop {stop_id} has not been stored yet") from exc
        return await self.runs.complete_stop(stored_id, location or self.last_location, notes)

    async def road_path_for_route(self, route_id: str) -> RoadPath:
        for route in self.map_state.current_state().routes:
            if route.id == route_id:
                return await self.router.compute_road_path(route.path)
        raise DomainValidationError("route_id", f"Route {route_id} is not in the current zone")

    async def sync_current_zone_routes(self) -> int:
        """Push the current zone's routes to the remote store; returns how many were saved."""
        if not self.remote.is_enabled:
            logger.warning("Route sync disabled, nothing pushed")
            return 0
        state = self.map_state.current_state()
        saved = 0
        for route in state.routes:
            name = f"Zona {state.zone} Sottozona {state.plan} - {route.name}"
            if await self.remote.save_route(name, route, state.stops, description=route.description):
                saved += 1
        return saved

    def zone_geojson(self) -> dict[str, Any]:
        state = self.map_state.current_state()
        return parsed_document_to_geojson(ParsedDocument(metadata=None, routes=state.routes), state.stops)

    async def complete_stats(self) -> dict[str, Any]:
        navigation = self.navigation.current_state()
        selected = navigation["selected_stop"]
        return {
            "database": await self.store.get_stats(),
            "map": self.map_state.stats(),
            "manual_stops": self.manual_stops.stats(),
            "navigation": {
                "selected_stop_id": selected.id if selected else None,
                "banner_visible": navigation["banner_visible"],
                "is_updating": navigation["is_updating"],
            },
            "kml_cache": self.kml.cache_stats(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def export_data(self) -> str:
        state = self.map_state.current_state()
        runs = await self.store.get_runs_by_zone(state.zone, state.plan) if state.zone else []
        export = {
            "version": EXPORT_VERSION,
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "stats": await self.complete_stats(),
            "data": {
                "manual_stops": [stop.to_dict() for stop in await self.store.get_manual_stops()],
                "runs": [asdict(run) for run in runs],
            },
        }
        return json.dumps(export, ensure_ascii=False, indent=2, default=str)

    async def reset(self) -> None:
        self.map_state.reset()
        self.navigation.reset()
        self.manual_stops.reset()
        await self.store.reset()
        self.kml.clear_cache()
        self.router.clear_cache()
        self.events.clear()
        self.last_location = None
        self._persisted_manual.clear()
        self._wire_events()
        logger.info("Field session reset")
