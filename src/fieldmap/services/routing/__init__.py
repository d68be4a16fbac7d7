"""Road routing."""

from .osrm_client import OSRMClient, check_health, decode_polyline
from .service import RoadRouter

__all__ = ["OSRMClient", "RoadRouter", "check_health", "decode_polyline"]
