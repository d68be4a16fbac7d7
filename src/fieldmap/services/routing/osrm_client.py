"""HTTP client for the OSRM route endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import httpx

from ...config import settings
from ...errors import ExternalServiceError

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.routing_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )

    async def route(self, coordinates: Sequence[tuple[float, float]]) -> dict[str, Any]:
        """Get street-following geometry between waypoints.

        Args:
            coordinates: (lat, lon) waypoints, at least two.

        Returns:
            The OSRM response; ``routes[0].geometry`` is an encoded polyline.

        Raises:
            ExternalServiceError: the service kept failing after all retries.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        # OSRM expects "lon,lat;lon,lat;..."
        coordinate_str = ";".join(f"{lon},{lat}" for lat, lon in coordinates)
        params = {"overview": "full", "geometries": "polyline", "steps": "false"}
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"

        async with self._get_client() as client:
            attempt = 0
            while True:
                try:
                    response = await client.get(url, params=params)
                    response.raise_for_status()
                    data = response.json()
                    if data.get("code") != "Ok":
                        raise ValueError(f"OSRM route request failed: {data.get('message', 'Unknown OSRM route error')}")
                    return data
                except httpx.TimeoutException as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ExternalServiceError(
                            f"OSRM route request timed out after {self.max_retries} retries: {exc}"
                        ) from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    await asyncio.sleep(wait_time)
                except (httpx.ConnectError, httpx.NetworkError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ExternalServiceError(
                            f"Failed to connect to OSRM service at {self.base_url}: {exc}"
                        ) from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {exc}")
                    await asyncio.sleep(wait_time)
                except (httpx.HTTPError, ValueError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ExternalServiceError(str(exc)) from exc
                    await asyncio.sleep(self.backoff_seconds * attempt)


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode a Google encoded polyline (precision 5) into (lat, lon) pairs.

    Raises:
        ValueError: the polyline is truncated or contains invalid characters.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                if index >= len(polyline):
                    raise ValueError(f"Truncated polyline at offset {index}")
                b = ord(polyline[index]) - 63
                if b < 0:
                    raise ValueError(f"Invalid polyline character at offset {index}")
                index += 1
                result |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(result >> 1) if (result & 1) else (result >> 1))
        lat += deltas[0]
        lon += deltas[1]
        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates


async def check_health(base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> bool:
    """Probe OSRM with a minimal two-point route request."""
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/9.58337,44.96544;9.58331,44.96552"
    try:
        async with httpx.AsyncClient(timeout=5.0, transport=transport) as client:
            response = await client.get(url, params={"overview": "false"})
            response.raise_for_status()
            return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
