"""Road-following paths between route waypoints, with a straight-line fallback."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from ...config import settings
from ...errors import ExternalServiceError
from ...models.domain import Coordinate, RoadPath
from ..geospatial import path_length_m, round_half_up
from .osrm_client import OSRMClient, decode_polyline

logger = logging.getLogger(__name__)


def decimate_waypoints(waypoints: Sequence[Coordinate], max_count: int) -> list[Coordinate]:
    """Evenly thin waypoints to at most ``max_count``, always keeping the first and last."""
    if len(waypoints) <= max_count:
        return list(waypoints)
    step = (len(waypoints) - 1) / (max_count - 1)
    middle = [waypoints[round_half_up(i * step)] for i in range(1, max_count - 1)]
    result = [waypoints[0], *middle, waypoints[-1]]
    logger.debug(f"Decimated waypoints: {len(waypoints)} -> {len(result)}")
    return result


def cache_key(waypoints: Sequence[Coordinate]) -> str:
    return "|".join(f"{point.longitude:.5f},{point.latitude:.5f}" for point in waypoints)


def straight_line(waypoints: Sequence[Coordinate]) -> RoadPath:
    return RoadPath(
        coordinates=list(waypoints),
        distance_meters=path_length_m(waypoints),
        duration_seconds=0.0,
        is_fallback=True,
    )


class RoadRouter:
    """Computes road paths through OSRM, caching per waypoint set.

    Any routing failure, or no OSRM configured, yields the straight line
    through the original waypoints.
    """

    def __init__(self, client: Optional[OSRMClient] = None, max_waypoints: Optional[int] = None) -> None:
        if client is None and settings.osrm_base_url:
            client = OSRMClient()
        self.client = client
        self.max_waypoints = max_waypoints if max_waypoints is not None else settings.routing_max_waypoints
        self._cache: dict[str, RoadPath] = {}

    @property
    def is_enabled(self) -> bool:
        return self.client is not None

    async def compute_road_path(self, waypoints: Sequence[Coordinate]) -> RoadPath:
        if len(waypoints) < 2:
            raise ValueError("At least two waypoints are required to compute a path")
        if self.client is None:
            return straight_line(waypoints)

        limited = decimate_waypoints(waypoints, self.max_waypoints)
        key = cache_key(limited)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Road path served from cache")
            return cached

        try:
            data = await self.client.route([(point.latitude, point.longitude) for point in limited])
            path = self._path_from_response(data)
        except (ExternalServiceError, ValueError, KeyError, TypeError, AttributeError) as exc:
            # Malformed responses count as routing failures.
            logger.warning(f"Road routing failed, using straight line: {exc}")
            return straight_line(waypoints)

        self._cache[key] = path
        logger.info(f"Road path computed: {len(path.coordinates)} points, {path.distance_meters / 1000:.2f} km")
        return path

    @staticmethod
    def _path_from_response(data: dict[str, Any]) -> RoadPath:
        routes = data.get("routes") or []
        if not routes or not routes[0].get("geometry"):
            raise ValueError("OSRM response has no route geometry")
        route = routes[0]
        coordinates = [Coordinate(lat, lon) for lat, lon in decode_polyline(route["geometry"])]
        if len(coordinates) < 2:
            raise ValueError("OSRM route geometry has fewer than 2 points")
        return RoadPath(
            coordinates=coordinates,
            distance_meters=float(route.get("distance") or 0.0),
            duration_seconds=float(route.get("duration") or 0.0),
            is_fallback=False,
        )

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Road path cache cleared")

    def service_info(self) -> dict[str, Any]:
        return {
            "provider": "osrm",
            "enabled": self.is_enabled,
            "profile": self.client.profile if self.client else None,
            "max_waypoints": self.max_waypoints,
        }
