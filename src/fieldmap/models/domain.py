"""Domain models for geodata, stops, map state and work runs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Literal, Optional

from ..errors import DomainValidationError

Plan = Literal["A", "B"]
RunStatus = Literal["active", "completed", "paused"]
RunStopStatus = Literal["pending", "completed", "failed", "skipped"]

PLANS: tuple[str, ...] = ("A", "B")
RUN_STATUSES: tuple[str, ...] = ("active", "completed", "paused")
RUN_STOP_STATUSES: tuple[str, ...] = ("pending", "completed", "failed", "skipped")


def normalize_plan(plan: Any) -> str:
    """Return the upper-case plan letter or raise if it is not A/B."""
    if not isinstance(plan, str) or plan.strip().upper() not in PLANS:
        raise DomainValidationError("plan", f"plan must be one of {PLANS}, got {plan!r}")
    return plan.strip().upper()


def validate_zone_id(zone: Any, field_name: str = "zone_id") -> int:
    if isinstance(zone, bool) or not isinstance(zone, int) or zone <= 0:
        raise DomainValidationError(field_name, f"{field_name} must be a positive integer, got {zone!r}")
    return zone


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 point in decimal degrees."""

    latitude: float
    longitude: float
    altitude: float = 0.0


@dataclass(slots=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float


@dataclass(slots=True)
class RouteStats:
    """Derived route figures; recomputed from the path, never persisted on their own."""

    point_count: int
    total_distance_meters: int
    bounding_box: BoundingBox
    center: Coordinate


@dataclass(slots=True)
class Route:
    """A polyline read from a KML LineString placemark."""

    id: str
    name: str
    path: list[Coordinate]
    style: Optional[str] = None
    description: Optional[str] = None
    stats: Optional[RouteStats] = None

    @property
    def point_count(self) -> int:
        return len(self.path)


@dataclass(slots=True)
class Stop:
    """A delivery stop, either persisted in storage or created manually at runtime."""

    id: int | str
    zone_id: int
    plan: str
    name: str
    latitude: Optional[float]
    longitude: Optional[float]
    description: str = ""
    is_manual: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def zone_key(self) -> "ZoneKey":
        return ZoneKey(self.zone_id, self.plan)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Stop":
        return cls(
            id=data["id"],
            zone_id=int(data["zone_id"]),
            plan=str(data["plan"]).upper(),
            name=data["name"],
            latitude=data.get("latitude", data.get("lat")),
            longitude=data.get("longitude", data.get("lng")),
            description=data.get("description") or "",
            is_manual=bool(data.get("is_manual", False)),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass(slots=True)
class DocumentMetadata:
    name: str
    description: str = ""
    zone: Optional[int] = None
    subzone: Optional[str] = None


@dataclass(slots=True)
class ParsedDocument:
    """Structured view of one KML file."""

    metadata: Optional[DocumentMetadata]
    routes: list[Route] = field(default_factory=list)
    stops: list[Stop] = field(default_factory=list)

    @property
    def total_points(self) -> int:
        return sum(route.point_count for route in self.routes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": asdict(self.metadata) if self.metadata else None,
            "routes": [asdict(route) for route in self.routes],
            "stops": [stop.to_dict() for stop in self.stops],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedDocument":
        metadata = data.get("metadata")
        routes = []
        for raw in data.get("routes") or []:
            stats = raw.get("stats")
            routes.append(
                Route(
                    id=raw["id"],
                    name=raw["name"],
                    path=[Coordinate(**point) for point in raw.get("path") or []],
                    style=raw.get("style"),
                    description=raw.get("description"),
                    stats=RouteStats(
                        point_count=stats["point_count"],
                        total_distance_meters=stats["total_distance_meters"],
                        bounding_box=BoundingBox(**stats["bounding_box"]),
                        center=Coordinate(**stats["center"]),
                    )
                    if stats
                    else None,
                )
            )
        return cls(
            metadata=DocumentMetadata(**metadata) if metadata else None,
            routes=routes,
            stops=[Stop.from_dict(stop) for stop in data.get("stops") or []],
        )


@dataclass(slots=True)
class ValidationStats:
    route_count: int = 0
    valid_routes: int = 0
    total_points: int = 0
    average_points_per_route: int = 0
    stop_count: int = 0


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: ValidationStats = field(default_factory=ValidationStats)


@dataclass(frozen=True, slots=True)
class ZoneKey:
    """The (zone, plan) pair used to key caching, loading and stop storage."""

    zone: int
    plan: str

    @classmethod
    def of(cls, zone: Any, plan: Any) -> "ZoneKey":
        return cls(validate_zone_id(zone, "zone"), normalize_plan(plan))

    @property
    def filename(self) -> str:
        return f"Zona{self.zone}_Sottozona{self.plan}.kml"

    def __str__(self) -> str:
        return f"{self.zone}_{self.plan}"


@dataclass(slots=True)
class LoadMetadata:
    load_time_ms: int
    file_size_chars: Optional[int] = None
    route_count: int = 0
    total_points: int = 0
    is_valid: bool = False
    error: bool = False


@dataclass(slots=True)
class LoadResult:
    success: bool
    zone: int
    plan: str
    metadata: LoadMetadata
    parsed_document: Optional[ParsedDocument] = None
    validation: Optional[ValidationResult] = None
    error: Optional[str] = None
    content: Optional[str] = field(default=None, repr=False)


@dataclass(slots=True)
class KMLFileInfo:
    zone: int
    plan: str
    filename: str
    exists: bool
    size: Optional[int] = None
    modified: Optional[datetime] = None


@dataclass(slots=True)
class Location:
    """A GPS fix as delivered by the location provider."""

    latitude: Optional[float]
    longitude: Optional[float]
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None


@dataclass(slots=True)
class MarkerView:
    """Renderable projection of a stop plus its live distance."""

    stop: Stop
    distance: int
    pin_color: str = "#FFD800"

    @property
    def id(self) -> int | str:
        return self.stop.id

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.stop.latitude, self.stop.longitude)

    @property
    def title(self) -> str:
        return self.stop.name

    @property
    def is_manual(self) -> bool:
        return self.stop.is_manual


@dataclass(slots=True)
class NearestStop:
    stop: Stop
    distance: int
    bearing: int
    direction: str


@dataclass(slots=True)
class NavigationInfo:
    can_navigate: bool
    distance_text: str
    distance: Optional[int] = None
    bearing: Optional[int] = None
    direction: Optional[str] = None
    eta: Optional[int] = None
    eta_text: Optional[str] = None
    accuracy: Optional[float] = None
    reason: Optional[str] = None


@dataclass(slots=True)
class ZoneState:
    """The single map view currently owned by the map state service."""

    zone: Optional[int] = None
    plan: Optional[str] = None
    routes: list[Route] = field(default_factory=list)
    stops: list[Stop] = field(default_factory=list)
    markers: list[MarkerView] = field(default_factory=list)
    selected_stop: Optional[Stop] = None
    is_loaded: bool = False
    is_loading: bool = False

    def copy(self) -> "ZoneState":
        return replace(
            self,
            routes=list(self.routes),
            stops=list(self.stops),
            markers=list(self.markers),
        )


@dataclass(slots=True)
class Run:
    id: int
    zone_id: int
    plan: str
    status: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    total_distance: Optional[float] = None
    total_time: Optional[int] = None
    notes: str = ""


@dataclass(slots=True)
class RunStop:
    id: int
    run_id: int
    stop_id: int | str
    status: str
    completed_at: Optional[datetime] = None
    notes: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None


@dataclass(slots=True)
class RunStopStats:
    pending: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.completed + self.failed + self.skipped


@dataclass(slots=True)
class RoadPath:
    coordinates: list[Coordinate]
    distance_meters: float
    duration_seconds: float
    is_fallback: bool


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
