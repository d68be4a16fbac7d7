"""Typed observer used by the stateful services to publish changes."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Generic, Literal, TypeVar

logger = logging.getLogger(__name__)

MapEvent = Literal[
    "state_changed",
    "before_cleanup",
    "after_cleanup",
    "data_loaded",
    "data_updated",
    "markers_updated",
    "stop_selected",
    "stop_deselected",
    "manual_stop_added",
    "manual_stop_removed",
]
NavigationEvent = Literal["stop_selected", "stop_deselected", "navigation_updated"]
ManualStopEvent = Literal[
    "manual_stop_added",
    "manual_stop_removed",
    "manual_stop_updated",
    "manual_stops_imported",
    "manual_stops_cleared",
]
RunEvent = Literal["run_started", "run_completed", "stop_completed"]
SessionEvent = Literal["zone_loaded", "manual_stop_added"]

E = TypeVar("E", bound=str)
Listener = Callable[[dict[str, Any]], Any]


class EventBus(Generic[E]):
    """Synchronous publish/subscribe channel over a closed set of event names.

    A failing listener is logged and skipped; the emitter and the remaining
    listeners are not affected.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, event: E, callback: Listener) -> None:
        self._listeners[event].append(callback)

    def unsubscribe(self, event: E, callback: Listener) -> None:
        callbacks = self._listeners.get(event)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: E, payload: dict[str, Any] | None = None) -> None:
        data = payload if payload is not None else {}
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(data)
            except Exception:
                logger.exception(f"Listener for {self.name}.{event} failed")

    def listener_count(self, event: E) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners.clear()
