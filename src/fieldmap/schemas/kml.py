"""KML file API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class KMLFileModel(BaseModel):
    zone: int
    plan: str
    filename: str
    exists: bool
    size: Optional[int] = None
    modified: Optional[datetime] = None


class KMLUploadRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Raw KML document text.")


class ValidationModel(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    route_count: int
    valid_routes: int
    total_points: int
    average_points_per_route: int


class KMLReportResponse(BaseModel):
    zone: int
    plan: str
    report: str


class CacheStatsResponse(BaseModel):
    cache_size: int
    cached_keys: List[str]
    loading_count: int
    loading_keys: List[str]
