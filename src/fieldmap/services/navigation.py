"""Selected-stop navigation banner with periodic refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from ..config import settings
from ..models.domain import Coordinate, Location, NavigationInfo, Stop
from .events import EventBus, NavigationEvent
from .geospatial import haversine_m, is_valid_coordinate
from .proximity import navigation_info

logger = logging.getLogger(__name__)


class NavigationTracker:
    """Tracks the selected stop and republishes navigation info.

    While a stop is selected and a fix is known, ``navigation_updated`` is
    emitted every ``refresh_seconds`` from an asyncio task. Tracking is started
    by ``select_stop`` and always stopped by ``deselect_stop``.
    """

    def __init__(
        self,
        events: EventBus[NavigationEvent] | None = None,
        refresh_seconds: float | None = None,
        walking_speed_kmh: float | None = None,
    ) -> None:
        self.events: EventBus[NavigationEvent] = events or EventBus("navigation")
        self.refresh_seconds = refresh_seconds if refresh_seconds is not None else settings.navigation_refresh_seconds
        self.walking_speed_kmh = walking_speed_kmh
        self.selected_stop: Optional[Stop] = None
        self.banner_visible = False
        self.last_location: Optional[Location] = None
        self._refresh_task: Optional[asyncio.Task[None]] = None

    def _info(self, stop: Stop, location: Optional[Location]) -> NavigationInfo:
        return navigation_info(stop, location, self.walking_speed_kmh)

    def select_stop(self, stop: Stop, location: Optional[Location] = None) -> None:
        logger.info(f"Stop selected: {stop.name}")
        self.selected_stop = stop
        self.banner_visible = True
        self.last_location = location

        self.events.emit(
            "stop_selected",
            {"stop": stop, "navigation_info": self._info(stop, location), "banner_visible": True},
        )
        if location is not None:
            self._start_tracking()

    def deselect_stop(self) -> None:
        self.selected_stop = None
        self.banner_visible = False
        self.last_location = None
        self._stop_tracking()
        self.events.emit("stop_deselected", {"banner_visible": False})

    def update_user_location(self, location: Location) -> None:
        self.last_location = location
        if self.banner_visible and self.selected_stop is not None:
            self._publish()
            if self._refresh_task is None:
                self._start_tracking()

    def _publish(self) -> None:
        self.events.emit(
            "navigation_updated",
            {
                "stop": self.selected_stop,
                "navigation_info": self._info(self.selected_stop, self.last_location),
                "location": self.last_location,
            },
        )

    def _start_tracking(self) -> None:
        self._stop_tracking()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; navigation refresh disabled")
            return
        self._refresh_task = loop.create_task(self._refresh_loop())

    def _stop_tracking(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            if self.banner_visible and self.selected_stop is not None and self.last_location is not None:
                self._publish()

    @property
    def is_tracking(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def find_nearest_stop(self, stops: Sequence[Stop], location: Optional[Location]) -> Optional[dict[str, Any]]:
        """Nearest stop with full navigation info; accuracy is not gated here."""
        if location is None or not is_valid_coordinate(location.latitude, location.longitude):
            return None
        origin = Coordinate(location.latitude, location.longitude)
        candidates = [
            (haversine_m(origin, Coordinate(stop.latitude, stop.longitude)), stop)
            for stop in stops
            if is_valid_coordinate(stop.latitude, stop.longitude)
        ]
        if not candidates:
            return None
        _, stop = min(candidates, key=lambda item: item[0])
        return {"stop": stop, "navigation_info": self._info(stop, location), "is_nearest": True}

    def current_state(self) -> dict[str, Any]:
        return {
            "selected_stop": self.selected_stop,
            "banner_visible": self.banner_visible,
            "last_location": self.last_location,
            "is_updating": self.is_tracking,
        }

    def reset(self) -> None:
        self.deselect_stop()
        self.events.clear()
        logger.info("Navigation tracker reset")
