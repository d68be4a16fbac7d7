"""KML file endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...context import AppContext
from ...errors import FieldMapError, KMLParseError
from ...models.domain import KMLFileInfo, ValidationResult, ZoneKey
from ...schemas.kml import (
    CacheStatsResponse,
    KMLFileModel,
    KMLReportResponse,
    KMLUploadRequest,
    ValidationModel,
)
from ...services.kml.parser import parse_kml
from ..deps import get_context, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kml", tags=["kml"])


def _file_model(info: KMLFileInfo) -> KMLFileModel:
    return KMLFileModel(
        zone=info.zone,
        plan=info.plan,
        filename=info.filename,
        exists=info.exists,
        size=info.size,
        modified=info.modified,
    )


def _validation_model(validation: ValidationResult) -> ValidationModel:
    return ValidationModel(
        is_valid=validation.is_valid,
        errors=validation.errors,
        warnings=validation.warnings,
        route_count=validation.stats.route_count,
        valid_routes=validation.stats.valid_routes,
        total_points=validation.stats.total_points,
        average_points_per_route=validation.stats.average_points_per_route,
    )


@router.get("/files", response_model=List[KMLFileModel])
async def list_files(context: AppContext = Depends(get_context)) -> List[KMLFileModel]:
    files = await context.session.kml.list_available()
    return [_file_model(info) for info in files]


@router.get("/cache", response_model=CacheStatsResponse)
async def cache_stats(context: AppContext = Depends(get_context)) -> CacheStatsResponse:
    return CacheStatsResponse(**context.session.kml.cache_stats())


@router.delete("/cache", status_code=status.HTTP_200_OK)
async def clear_cache(context: AppContext = Depends(get_context)) -> dict:
    context.session.kml.clear_cache()
    return {"success": True}


@router.get("/{zone}/{plan}", response_model=KMLFileModel)
async def file_info(zone: int, plan: str, context: AppContext = Depends(get_context)) -> KMLFileModel:
    try:
        info = await context.session.kml.get_info(zone, plan)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return _file_model(info)


@router.put("/{zone}/{plan}", response_model=KMLFileModel)
async def upload_file(
    zone: int, plan: str, payload: KMLUploadRequest, context: AppContext = Depends(get_context)
) -> KMLFileModel:
    """Store a zone's KML file after checking it parses; the cached copy is dropped."""
    try:
        key = ZoneKey.of(zone, plan)
        parse_kml(payload.content)
    except KMLParseError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except FieldMapError as exc:
        raise to_http_error(exc) from exc

    context.files.write_text(key.zone, key.plan, payload.content)
    context.session.kml.remove_from_cache(key.zone, key.plan)
    return _file_model(await context.session.kml.get_info(key.zone, key.plan))


@router.get("/{zone}/{plan}/validation", response_model=ValidationModel)
async def validate_file(zone: int, plan: str, context: AppContext = Depends(get_context)) -> ValidationModel:
    try:
        if not await context.session.kml.is_available(zone, plan):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"KML file not found for zone {zone} plan {plan}",
            )
        validation = await context.session.kml.validate_zone(zone, plan)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return _validation_model(validation)


@router.get("/{zone}/{plan}/report", response_model=KMLReportResponse)
async def validation_report(zone: int, plan: str, context: AppContext = Depends(get_context)) -> KMLReportResponse:
    try:
        key = ZoneKey.of(zone, plan)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    report = await context.session.kml.validation_report(key.zone, key.plan)
    return KMLReportResponse(zone=key.zone, plan=key.plan, report=report)
