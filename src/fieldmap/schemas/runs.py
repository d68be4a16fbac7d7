"""Run API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from ..models.domain import Run, RunStop, RunStopStats


class StartRunRequest(BaseModel):
    zone_id: Optional[int] = None
    plan: Optional[str] = Field(None, pattern="^[ABab]$")
    notes: str = ""


class CompleteRunRequest(BaseModel):
    run_id: Optional[int] = None
    total_distance: Optional[float] = Field(None, ge=0)
    total_time: Optional[int] = Field(None, ge=0)
    notes: str = ""


class CompleteStopRequest(BaseModel):
    stop_id: Union[int, str]
    notes: str = ""
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class RunModel(BaseModel):
    id: int
    zone_id: int
    plan: str
    status: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    total_distance: Optional[float] = None
    total_time: Optional[int] = None
    notes: str = ""

    @classmethod
    def from_run(cls, run: Run) -> "RunModel":
        return cls(
            id=run.id,
            zone_id=run.zone_id,
            plan=run.plan,
            status=run.status,
            started_at=run.started_at,
            ended_at=run.ended_at,
            total_distance=run.total_distance,
            total_time=run.total_time,
            notes=run.notes or "",
        )


class RunStopModel(BaseModel):
    id: int
    run_id: int
    stop_id: Union[int, str]
    status: str
    completed_at: Optional[datetime] = None
    notes: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None

    @classmethod
    def from_run_stop(cls, run_stop: RunStop) -> "RunStopModel":
        return cls(
            id=run_stop.id,
            run_id=run_stop.run_id,
            stop_id=run_stop.stop_id,
            status=run_stop.status,
            completed_at=run_stop.completed_at,
            notes=run_stop.notes or "",
            latitude=run_stop.latitude,
            longitude=run_stop.longitude,
            accuracy=run_stop.accuracy,
        )


class RunStatsModel(BaseModel):
    pending: int
    completed: int
    failed: int
    skipped: int
    total: int

    @classmethod
    def from_stats(cls, stats: RunStopStats) -> "RunStatsModel":
        return cls(
            pending=stats.pending,
            completed=stats.completed,
            failed=stats.failed,
            skipped=stats.skipped,
            total=stats.total,
        )
