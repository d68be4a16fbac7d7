"""Work run endpoints."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from ...errors import FieldMapError
from ...models.domain import Location
from ...schemas.runs import (
    CompleteRunRequest,
    CompleteStopRequest,
    RunModel,
    RunStatsModel,
    RunStopModel,
    StartRunRequest,
)
from ...services.session import FieldSession
from ..deps import get_session, to_http_error

router = APIRouter(prefix="/runs", tags=["runs"])


@router.post("/start", response_model=RunModel, status_code=status.HTTP_201_CREATED)
async def start_run(payload: StartRunRequest, session: FieldSession = Depends(get_session)) -> RunModel:
    """Start a run for the given zone, or the loaded one; 409 while another run is active."""
    try:
        run = await session.start_run(payload.zone_id, payload.plan, payload.notes)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return RunModel.from_run(run)


@router.get("/active", response_model=Optional[RunModel])
async def active_run(session: FieldSession = Depends(get_session)) -> Optional[RunModel]:
    run = await session.runs.active_run()
    return RunModel.from_run(run) if run else None


@router.post("/complete", response_model=RunModel)
async def complete_run(payload: CompleteRunRequest, session: FieldSession = Depends(get_session)) -> RunModel:
    try:
        run = await session.runs.complete_run(
            payload.run_id, payload.total_distance, payload.total_time, payload.notes
        )
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return RunModel.from_run(run)


@router.post("/complete-stop", response_model=RunStopModel)
async def complete_stop(payload: CompleteStopRequest, session: FieldSession = Depends(get_session)) -> RunStopModel:
    """Mark a stop done in the active run with the given fix (or the last known one)."""
    location = None
    if payload.latitude is not None and payload.longitude is not None:
        location = Location(latitude=payload.latitude, longitude=payload.longitude, accuracy=payload.accuracy)
    try:
        run_stop = await session.complete_stop(payload.stop_id, location, payload.notes)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return RunStopModel.from_run_stop(run_stop)


@router.get("/zone/{zone}/{plan}", response_model=List[RunModel])
async def runs_for_zone(zone: int, plan: str, session: FieldSession = Depends(get_session)) -> List[RunModel]:
    try:
        runs = await session.runs.runs_for_zone(zone, plan)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return [RunModel.from_run(run) for run in runs]


@router.get("/{run_id}/stats", response_model=RunStatsModel)
async def run_stats(run_id: int, session: FieldSession = Depends(get_session)) -> RunStatsModel:
    stats = await session.runs.run_stats(run_id)
    return RunStatsModel.from_stats(stats)
