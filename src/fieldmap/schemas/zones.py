"""Zone view API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from ..models.domain import MarkerView, NavigationInfo, Route, Stop


class CoordinateModel(BaseModel):
    latitude: float
    longitude: float


class RouteModel(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    point_count: int
    total_distance_meters: Optional[int] = None
    path: List[CoordinateModel]

    @classmethod
    def from_route(cls, route: Route) -> "RouteModel":
        return cls(
            id=route.id,
            name=route.name,
            description=route.description,
            point_count=route.point_count,
            total_distance_meters=route.stats.total_distance_meters if route.stats else None,
            path=[CoordinateModel(latitude=p.latitude, longitude=p.longitude) for p in route.path],
        )


class StopModel(BaseModel):
    id: Union[int, str]
    zone_id: int
    plan: str
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: str = ""
    is_manual: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_stop(cls, stop: Stop) -> "StopModel":
        return cls(
            id=stop.id,
            zone_id=stop.zone_id,
            plan=stop.plan,
            name=stop.name,
            latitude=stop.latitude,
            longitude=stop.longitude,
            description=stop.description,
            is_manual=stop.is_manual,
            created_at=stop.created_at,
        )


class MarkerModel(BaseModel):
    id: Union[int, str]
    title: str
    latitude: float
    longitude: float
    distance: int
    pin_color: str
    is_manual: bool

    @classmethod
    def from_marker(cls, marker: MarkerView) -> "MarkerModel":
        return cls(
            id=marker.id,
            title=marker.title,
            latitude=marker.coordinate.latitude,
            longitude=marker.coordinate.longitude,
            distance=marker.distance,
            pin_color=marker.pin_color,
            is_manual=marker.is_manual,
        )


class ZoneLoadResponse(BaseModel):
    success: bool
    zone: int
    plan: str
    routes: List[RouteModel] = Field(default_factory=list)
    stops: List[StopModel] = Field(default_factory=list)
    is_valid: Optional[bool] = None
    warnings: List[str] = Field(default_factory=list)
    load_time_ms: Optional[int] = None
    error: Optional[str] = None


class ZoneStateResponse(BaseModel):
    zone: Optional[int] = None
    plan: Optional[str] = None
    is_loaded: bool
    is_loading: bool
    route_count: int
    stop_count: int
    markers: List[MarkerModel]
    selected_stop: Optional[StopModel] = None


class LocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)


class NavigationModel(BaseModel):
    can_navigate: bool
    distance_text: str
    distance: Optional[int] = None
    bearing: Optional[int] = None
    direction: Optional[str] = None
    eta: Optional[int] = None
    eta_text: Optional[str] = None
    accuracy: Optional[float] = None
    reason: Optional[str] = None

    @classmethod
    def from_info(cls, info: NavigationInfo) -> "NavigationModel":
        return cls(
            can_navigate=info.can_navigate,
            distance_text=info.distance_text,
            distance=info.distance,
            bearing=info.bearing,
            direction=info.direction,
            eta=info.eta,
            eta_text=info.eta_text,
            accuracy=info.accuracy,
            reason=info.reason,
        )


class SelectStopRequest(BaseModel):
    stop_id: Union[int, str]


class SelectStopResponse(BaseModel):
    stop: StopModel
    navigation: Optional[NavigationModel] = None


class ManualStopRequest(BaseModel):
    zone_id: int
    plan: str = Field(..., pattern="^[ABab]$")
    name: str = Field(..., min_length=1)
    description: str = ""
    latitude: float
    longitude: float


class RoadPathResponse(BaseModel):
    route_id: str
    distance_meters: float
    duration_seconds: float
    is_fallback: bool
    coordinates: List[CoordinateModel]


class SettingRequest(BaseModel):
    value: Union[bool, float, str, dict, list, None] = None
    type: str = Field("string", pattern="^(string|number|boolean|json)$")
