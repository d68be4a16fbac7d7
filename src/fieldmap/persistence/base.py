"""Collaborator interfaces the services depend on."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ..models.domain import KMLFileInfo, Run, RunStop, RunStopStats, Stop, ZoneKey


class KMLSource(Protocol):
    async def exists(self, zone: int, plan: str) -> bool: ...

    async def read_text(self, zone: int, plan: str) -> str: ...

    async def list_available(self) -> list[ZoneKey]: ...

    async def info(self, zone: int, plan: str) -> KMLFileInfo: ...


class FieldStore(Protocol):
    """Relational store for stops, runs, settings and the KML cache."""

    async def get_stops_by_zone(self, zone_id: int, plan: str) -> list[Stop]: ...

    async def insert_stop(self, data: dict[str, Any]) -> Stop: ...

    async def start_run(self, data: dict[str, Any]) -> Run: ...

    async def complete_run(
        self,
        run_id: int,
        total_distance: Optional[float] = None,
        total_time: Optional[int] = None,
        notes: str = "",
    ) -> Run: ...

    async def get_active_run(self) -> Optional[Run]: ...

    async def get_runs_by_zone(self, zone_id: int, plan: str) -> list[Run]: ...

    async def add_stop_to_run(self, run_id: int, stop_id: int | str) -> RunStop: ...

    async def get_run_stop(self, run_id: int, stop_id: int | str) -> Optional[RunStop]: ...

    async def complete_stop_in_run(self, run_stop_id: int, data: dict[str, Any]) -> RunStop: ...

    async def get_run_stop_stats(self, run_id: int) -> RunStopStats: ...

    async def save_kml_cache(
        self,
        zone_id: int,
        plan: str,
        content: str,
        parsed_data: dict[str, Any],
        file_size: int,
    ) -> None: ...

    async def get_kml_cache(self, zone_id: int, plan: str) -> Optional[dict[str, Any]]: ...
