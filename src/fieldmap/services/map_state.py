"""The single "current zone" view and its transitions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from ..errors import ZoneNotLoadedError
from ..models.domain import MarkerView, Route, Stop, ZoneState, normalize_plan
from .events import EventBus, MapEvent

logger = logging.getLogger(__name__)

_STATE_FIELDS = frozenset(f.name for f in fields(ZoneState))


@dataclass(slots=True)
class ZoneData:
    """Routes and candidate stops for a zone switch.

    Routes come from the zone's own KML file and are taken as-is; stops are
    filtered to the target zone and plan on load.
    """

    routes: list[Route] = field(default_factory=list)
    stops: list[Stop] = field(default_factory=list)


class MapStateService:
    """Owns the ZoneState. Every mutation goes through ``_set_state``.

    Events (payload keys):
        state_changed: old_state, new_state, changes
        before_cleanup / after_cleanup: zone, plan (the zone being torn down)
        data_loaded / data_updated: zone, plan, routes, stops
        markers_updated: markers
        stop_selected: stop; stop_deselected: none
        manual_stop_added: stop; manual_stop_removed: stop_id
    """

    def __init__(self, events: EventBus[MapEvent] | None = None) -> None:
        self.events: EventBus[MapEvent] = events or EventBus("map_state")
        self._state = ZoneState()

    def current_state(self) -> ZoneState:
        return self._state.copy()

    def is_zone_loaded(self, zone: int, plan: str) -> bool:
        return (
            self._state.zone == zone
            and self._state.plan == str(plan).upper()
            and self._state.is_loaded
        )

    def _set_state(self, **changes: Any) -> None:
        unknown = set(changes) - _STATE_FIELDS
        if unknown:
            raise AttributeError(f"Unknown map state fields: {sorted(unknown)}")
        old_state = self._state.copy()
        self._state = replace(self._state, **changes)
        self.events.emit(
            "state_changed",
            {"old_state": old_state, "new_state": self._state.copy(), "changes": list(changes)},
        )

    def switch_to_zone(self, zone: int, plan: str, data: ZoneData) -> None:
        """Make (zone, plan) the current view.

        Same zone: data is refreshed in place. Other zone: the old state is torn
        down first. On failure the state is left neither loading nor loaded and
        the error propagates.
        """
        plan = normalize_plan(plan)
        logger.info(f"Switching to zone {zone} plan {plan}")

        if self.is_zone_loaded(zone, plan):
            self.update_zone_data(zone, plan, data)
            return

        try:
            self.clear_current_state()
            self._set_state(zone=zone, plan=plan, is_loading=True, is_loaded=False)
            self.load_zone_data(zone, plan, data)
            self._set_state(is_loading=False, is_loaded=True)
        except Exception:
            logger.exception(f"Failed to switch to zone {zone} plan {plan}")
            self._set_state(is_loading=False, is_loaded=False)
            raise

        logger.info(f"Zone {zone} plan {plan} loaded")

    def clear_current_state(self) -> None:
        old_zone, old_plan = self._state.zone, self._state.plan
        if old_zone and old_plan:
            logger.info(f"Unloading zone {old_zone} plan {old_plan}")
            self.events.emit("before_cleanup", {"zone": old_zone, "plan": old_plan})

        self._set_state(
            zone=None,
            plan=None,
            routes=[],
            stops=[],
            markers=[],
            selected_stop=None,
            is_loaded=False,
            is_loading=False,
        )
        self.events.emit("after_cleanup", {"zone": old_zone, "plan": old_plan})

    def load_zone_data(self, zone: int, plan: str, data: ZoneData) -> None:
        plan = normalize_plan(plan)
        routes = list(data.routes)
        stops = [stop for stop in data.stops if stop.zone_id == zone and stop.plan == plan]
        logger.debug(f"Zone {zone} plan {plan}: {len(routes)} routes, {len(stops)} stops")

        # Markers are derived from GPS fixes and pushed in later.
        self._set_state(routes=routes, stops=stops, markers=[])
        self.events.emit("data_loaded", {"zone": zone, "plan": plan, "routes": routes, "stops": stops})

    def update_zone_data(self, zone: int, plan: str, data: ZoneData) -> None:
        if not self.is_zone_loaded(zone, plan):
            raise ZoneNotLoadedError(f"Zone {zone} plan {plan} is not loaded")
        self.load_zone_data(zone, plan, data)
        self.events.emit(
            "data_updated",
            {"zone": zone, "plan": plan.upper(), "routes": list(self._state.routes), "stops": list(self._state.stops)},
        )

    def update_markers(self, markers: Sequence[MarkerView]) -> None:
        self._set_state(markers=list(markers))
        self.events.emit("markers_updated", {"markers": list(markers)})

    def select_stop(self, stop: Stop) -> None:
        self._set_state(selected_stop=stop)
        self.events.emit("stop_selected", {"stop": stop})

    def deselect_stop(self) -> None:
        self._set_state(selected_stop=None)
        self.events.emit("stop_deselected")

    def add_manual_stop(self, stop: Stop) -> Stop:
        """Append a manual stop to the current view; persistence is the caller's job."""
        now = datetime.now(timezone.utc)
        stop_id = stop.id if str(stop.id).startswith("manual_") else f"manual_{int(time.time() * 1000)}"
        manual_stop = replace(
            stop,
            id=stop_id,
            is_manual=True,
            created_at=stop.created_at or now,
            updated_at=stop.updated_at or now,
        )
        self._set_state(stops=[*self._state.stops, manual_stop])
        self.events.emit("manual_stop_added", {"stop": manual_stop})
        return manual_stop

    def remove_manual_stop(self, stop_id: int | str) -> None:
        stops = [stop for stop in self._state.stops if not (stop.id == stop_id and stop.is_manual)]
        self._set_state(stops=stops)
        self.events.emit("manual_stop_removed", {"stop_id": stop_id})

    def stats(self) -> dict[str, Any]:
        state = self._state
        return {
            "current_zone": state.zone,
            "current_plan": state.plan,
            "route_count": len(state.routes),
            "stop_count": len(state.stops),
            "manual_stop_count": sum(1 for stop in state.stops if stop.is_manual),
            "marker_count": len(state.markers),
            "is_loaded": state.is_loaded,
            "is_loading": state.is_loading,
            "has_selected_stop": state.selected_stop is not None,
        }

    def reset(self) -> None:
        self.clear_current_state()
        self.events.clear()
        logger.info("Map state reset")

    @property
    def selected_stop(self) -> Optional[Stop]:
        return self._state.selected_stop
