"""GeoJSON/WKT export of parsed zone data."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from shapely.geometry import LineString, Point, mapping

from ...models.domain import Coordinate, ParsedDocument, Route, Stop
from ..geospatial import is_valid_coordinate

logger = logging.getLogger(__name__)


def linestring_to_wkt(path: Sequence[Coordinate]) -> str:
    """Convert a path to WKT.

    Args:
        path: Ordered coordinates, at least two.

    Returns:
        WKT LINESTRING string (lon lat order)
    """
    if not path or len(path) < 2:
        raise ValueError("LineString must have at least 2 coordinates")

    # WKT uses lon,lat order (x,y)
    coord_pairs = [f"{point.longitude} {point.latitude}" for point in path]
    return f"LINESTRING({','.join(coord_pairs)})"


def route_to_feature(route: Route, index: int) -> Dict[str, Any]:
    geometry = LineString([(point.longitude, point.latitude) for point in route.path])
    properties: Dict[str, Any] = {
        "name": route.name,
        "type": "route",
        "route_id": route.id,
        "point_count": len(route.path),
    }
    if route.description:
        properties["description"] = route.description
    if route.stats is not None:
        properties["total_distance_meters"] = route.stats.total_distance_meters
    return {
        "type": "Feature",
        "id": f"route_{index}",
        "geometry": mapping(geometry),
        "properties": properties,
    }


def stop_to_feature(stop: Stop) -> Dict[str, Any]:
    return {
        "type": "Feature",
        "id": stop.id,
        "geometry": mapping(Point(stop.longitude, stop.latitude)),
        "properties": {
            "name": stop.name,
            "description": stop.description or "",
            "type": "stop",
            "zone_id": stop.zone_id,
            "plan": stop.plan,
            "is_manual": stop.is_manual,
        },
    }


def parsed_document_to_geojson(
    document: ParsedDocument,
    stops: Optional[Sequence[Stop]] = None,
) -> Dict[str, Any]:
    """Build a FeatureCollection of route LineStrings followed by stop Points.

    Routes with fewer than two points and stops without valid coordinates are skipped.
    """
    features: List[Dict[str, Any]] = []
    for index, route in enumerate(document.routes):
        if len(route.path) < 2:
            continue
        features.append(route_to_feature(route, index))

    for stop in [*document.stops, *(stops or [])]:
        if is_valid_coordinate(stop.latitude, stop.longitude):
            features.append(stop_to_feature(stop))

    logger.debug(f"GeoJSON export: {len(features)} features")
    return {"type": "FeatureCollection", "features": features}


def save_geojson(collection: Dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(collection, f, indent=2, ensure_ascii=False)
