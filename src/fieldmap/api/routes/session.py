"""Session-wide endpoints: stats, export, remote sync and reset."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ...errors import FieldMapError
from ...schemas.zones import SettingRequest
from ...services.session import FieldSession
from ..deps import get_session, to_http_error

router = APIRouter(prefix="/session", tags=["session"])


@router.get("/stats")
async def stats(session: FieldSession = Depends(get_session)) -> dict:
    return await session.complete_stats()


@router.get("/export")
async def export(session: FieldSession = Depends(get_session)) -> Response:
    payload = await session.export_data()
    return Response(
        content=payload,
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="fieldmap-export.json"'},
    )


@router.post("/sync", status_code=status.HTTP_200_OK)
async def sync_routes(session: FieldSession = Depends(get_session)) -> dict:
    """Push the current zone's routes to remote storage."""
    try:
        saved = await session.sync_current_zone_routes()
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return {"enabled": session.remote.is_enabled, "saved": saved}


@router.post("/reset", status_code=status.HTTP_200_OK)
async def reset(session: FieldSession = Depends(get_session)) -> dict:
    await session.reset()
    return {"success": True}


@router.get("/settings/{key}")
async def get_setting(key: str, session: FieldSession = Depends(get_session)) -> dict:
    return {"key": key, "value": await session.store.get_setting(key)}


@router.put("/settings/{key}")
async def set_setting(key: str, payload: SettingRequest, session: FieldSession = Depends(get_session)) -> dict:
    try:
        await session.store.set_setting(key, payload.value, payload.type)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return {"key": key, "value": await session.store.get_setting(key)}
