"""Work run lifecycle over the storage collaborator."""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import ActiveRunExistsError, NoActiveRunError
from ..models.domain import Location, Run, RunStop, RunStopStats, ZoneKey
from ..persistence.base import FieldStore
from .events import EventBus, RunEvent

logger = logging.getLogger(__name__)


class RunCoordinator:
    """Starts and completes runs and records stop completions with their GPS fix.

    Only one run may be active. The check here gives a clear error; the store
    enforces the same rule so a racing second start still fails.
    """

    def __init__(self, store: FieldStore, events: EventBus[RunEvent] | None = None) -> None:
        self.store = store
        self.events: EventBus[RunEvent] = events or EventBus("runs")

    async def active_run(self) -> Optional[Run]:
        return await self.store.get_active_run()

    async def _require_active_run(self) -> Run:
        run = await self.store.get_active_run()
        if run is None:
            raise NoActiveRunError("No active run")
        return run

    async def start_run(self, zone: int, plan: str, notes: str = "") -> Run:
        key = ZoneKey.of(zone, plan)
        active = await self.store.get_active_run()
        if active is not None:
            raise ActiveRunExistsError(
                f"Run {active.id} for zone {active.zone_id} plan {active.plan} is still active"
            )
        run = await self.store.start_run({"zone_id": key.zone, "plan": key.plan, "notes": notes})
        logger.info(f"Run {run.id} started for zone {key.zone} plan {key.plan}")
        self.events.emit("run_started", {"run": run})
        return run

    async def complete_run(
        self,
        run_id: Optional[int] = None,
        total_distance: Optional[float] = None,
        total_time: Optional[int] = None,
        notes: str = "",
    ) -> Run:
        if run_id is None:
            run_id = (await self._require_active_run()).id
        run = await self.store.complete_run(run_id, total_distance, total_time, notes)
        stats = await self.store.get_run_stop_stats(run_id)
        logger.info(f"Run {run_id} completed: {stats.completed}/{stats.total} stops done")
        self.events.emit("run_completed", {"run": run, "stats": stats})
        return run

    async def attach_stop(self, stop_id: int, run_id: Optional[int] = None) -> RunStop:
        if run_id is None:
            run_id = (await self._require_active_run()).id
        return await self.store.add_stop_to_run(run_id, stop_id)

    async def complete_stop(
        self,
        stop_id: int,
        location: Optional[Location] = None,
        notes: str = "",
        status: str = "completed",
    ) -> RunStop:
        """Mark a stop done in the active run, attaching it first if needed.

        Raises:
            NoActiveRunError: no run is active.
        """
        run = await self._require_active_run()
        run_stop = await self.store.get_run_stop(run.id, stop_id)
        if run_stop is None:
            run_stop = await self.store.add_stop_to_run(run.id, stop_id)

        completed = await self.store.complete_stop_in_run(
            run_stop.id,
            {
                "status": status,
                "notes": notes,
                "latitude": location.latitude if location else None,
                "longitude": location.longitude if location else None,
                "accuracy": location.accuracy if location else None,
            },
        )
        logger.info(f"Stop {stop_id} marked {status} in run {run.id}")
        self.events.emit("stop_completed", {"run_id": run.id, "run_stop": completed})
        return completed

    async def run_stats(self, run_id: int) -> RunStopStats:
        return await self.store.get_run_stop_stats(run_id)

    async def runs_for_zone(self, zone: int, plan: str) -> list[Run]:
        key = ZoneKey.of(zone, plan)
        return await self.store.get_runs_by_zone(key.zone, key.plan)
