"""Zone view endpoints: loading, user location, stop selection and manual stops."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import FieldMapError
from ...models.domain import Location
from ...schemas.zones import (
    CoordinateModel,
    LocationRequest,
    ManualStopRequest,
    MarkerModel,
    NavigationModel,
    RoadPathResponse,
    RouteModel,
    SelectStopRequest,
    SelectStopResponse,
    StopModel,
    ZoneLoadResponse,
    ZoneStateResponse,
)
from ...services.proximity import navigation_info
from ...services.session import FieldSession, ZoneLoadResult
from ..deps import get_session, to_http_error

router = APIRouter(prefix="/zones", tags=["zones"])


def _load_response(result: ZoneLoadResult) -> ZoneLoadResponse:
    return ZoneLoadResponse(
        success=result.success,
        zone=result.zone,
        plan=result.plan,
        routes=[RouteModel.from_route(route) for route in result.routes],
        stops=[StopModel.from_stop(stop) for stop in result.stops],
        is_valid=result.validation.is_valid if result.validation else None,
        warnings=result.validation.warnings if result.validation else [],
        load_time_ms=result.metadata.load_time_ms if result.metadata else None,
        error=result.error,
    )


@router.post("/{zone}/{plan}/load", response_model=ZoneLoadResponse)
async def load_zone(zone: int, plan: str, session: FieldSession = Depends(get_session)) -> ZoneLoadResponse:
    """Load a zone into the current view; a missing KML file is a 404."""
    try:
        result = await session.load_zone(zone, plan)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    if not result.success and not await session.kml.is_available(result.zone, result.plan):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return _load_response(result)


@router.get("/current", response_model=ZoneStateResponse)
async def current_zone(session: FieldSession = Depends(get_session)) -> ZoneStateResponse:
    state = session.map_state.current_state()
    return ZoneStateResponse(
        zone=state.zone,
        plan=state.plan,
        is_loaded=state.is_loaded,
        is_loading=state.is_loading,
        route_count=len(state.routes),
        stop_count=len(state.stops),
        markers=[MarkerModel.from_marker(marker) for marker in state.markers],
        selected_stop=StopModel.from_stop(state.selected_stop) if state.selected_stop else None,
    )


@router.get("/current/geojson")
async def current_zone_geojson(session: FieldSession = Depends(get_session)) -> dict:
    return session.zone_geojson()


@router.post("/location", response_model=List[MarkerModel])
async def update_location(payload: LocationRequest, session: FieldSession = Depends(get_session)) -> List[MarkerModel]:
    """Record a GPS fix and return the markers visible around it."""
    location = Location(latitude=payload.latitude, longitude=payload.longitude, accuracy=payload.accuracy)
    markers = session.update_user_location(location)
    return [MarkerModel.from_marker(marker) for marker in markers]


@router.get("/nearest")
async def nearest_stop(session: FieldSession = Depends(get_session)) -> Optional[dict]:
    nearest = session.navigation.find_nearest_stop(session.map_state.current_state().stops, session.last_location)
    if nearest is None:
        return None
    return {
        "stop": StopModel.from_stop(nearest["stop"]),
        "navigation": NavigationModel.from_info(nearest["navigation_info"]),
    }


@router.post("/select", response_model=SelectStopResponse)
async def select_stop(payload: SelectStopRequest, session: FieldSession = Depends(get_session)) -> SelectStopResponse:
    try:
        stop = session.select_stop_for_navigation(payload.stop_id)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    info = navigation_info(stop, session.last_location)
    return SelectStopResponse(stop=StopModel.from_stop(stop), navigation=NavigationModel.from_info(info))


@router.post("/deselect", status_code=status.HTTP_200_OK)
async def deselect_stop(session: FieldSession = Depends(get_session)) -> dict:
    session.deselect_stop()
    return {"success": True}


@router.get("/manual-stops", response_model=List[StopModel])
async def list_manual_stops(
    zone: Optional[int] = None, plan: Optional[str] = None, session: FieldSession = Depends(get_session)
) -> List[StopModel]:
    return [StopModel.from_stop(stop) for stop in session.manual_stops.list(zone, plan)]


@router.post("/manual-stops", response_model=StopModel, status_code=status.HTTP_201_CREATED)
async def add_manual_stop(payload: ManualStopRequest, session: FieldSession = Depends(get_session)) -> StopModel:
    try:
        stop = await session.add_manual_stop(payload.model_dump())
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    return StopModel.from_stop(stop)


@router.get("/current/routes/{route_id}/road-path", response_model=RoadPathResponse)
async def road_path(route_id: str, session: FieldSession = Depends(get_session)) -> RoadPathResponse:
    try:
        path = await session.road_path_for_route(route_id)
    except FieldMapError as exc:
        raise to_http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return RoadPathResponse(
        route_id=route_id,
        distance_meters=path.distance_meters,
        duration_seconds=path.duration_seconds,
        is_fallback=path.is_fallback,
        coordinates=[CoordinateModel(latitude=p.latitude, longitude=p.longitude) for p in path.coordinates],
    )
