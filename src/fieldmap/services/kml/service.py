"""KML load coordination: existence check, read, parse, validate and cache per zone/plan."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from ...errors import FieldMapError, KMLNotFoundError, KMLReadError
from ...models.domain import KMLFileInfo, LoadMetadata, LoadResult, ValidationResult, ZoneKey
from ...persistence.base import KMLSource
from ..geospatial import route_stats
from .parser import parse_kml
from .validator import generate_validation_report, validate_kml

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class KMLService:
    """Single entry point for zone KML data.

    Concurrent loads of the same zone/plan share one in-flight task. Successful
    results are cached until removed explicitly or reloaded with ``force_reload``.
    """

    def __init__(self, source: KMLSource) -> None:
        self.source = source
        self._cache: dict[ZoneKey, LoadResult] = {}
        self._loading: dict[ZoneKey, asyncio.Task[LoadResult]] = {}

    async def load_for_zone(self, zone: int, plan: str, force_reload: bool = False) -> LoadResult:
        key = ZoneKey.of(zone, plan)

        pending = self._loading.get(key)
        if pending is not None:
            logger.debug(f"Load for {key} already in progress, waiting for it")
            return await asyncio.shield(pending)

        if not force_reload and key in self._cache:
            logger.debug(f"KML for {key} served from cache")
            return self._cache[key]

        task = asyncio.ensure_future(self._load(key))
        self._loading[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._loading.get(key) is task:
                del self._loading[key]

    async def _load(self, key: ZoneKey) -> LoadResult:
        started = time.perf_counter()
        try:
            if not await self.source.exists(key.zone, key.plan):
                raise KMLNotFoundError(f"KML file not found for zone {key.zone} plan {key.plan}")

            content = await self.source.read_text(key.zone, key.plan)
            if not content or not content.strip():
                raise KMLReadError(f"KML file for zone {key.zone} plan {key.plan} is empty")

            document = parse_kml(content)
            validation = validate_kml(document)
            if not validation.is_valid:
                logger.warning(f"KML for {key} has validation errors: {validation.errors}")

            for route in document.routes:
                route.stats = route_stats(route.path)

            result = LoadResult(
                success=True,
                zone=key.zone,
                plan=key.plan,
                parsed_document=document,
                validation=validation,
                content=content,
                metadata=LoadMetadata(
                    load_time_ms=_elapsed_ms(started),
                    file_size_chars=len(content),
                    route_count=len(document.routes),
                    total_points=document.total_points,
                    is_valid=validation.is_valid,
                ),
            )
        except (FieldMapError, OSError) as exc:
            logger.error(f"Failed to load KML for {key}: {exc}")
            return LoadResult(
                success=False,
                zone=key.zone,
                plan=key.plan,
                error=str(exc),
                metadata=LoadMetadata(load_time_ms=_elapsed_ms(started), error=True),
            )

        self._cache[key] = result
        logger.info(
            f"Loaded KML for {key}: {result.metadata.route_count} routes, "
            f"{result.metadata.total_points} points in {result.metadata.load_time_ms}ms"
        )
        return result

    async def is_available(self, zone: int, plan: str) -> bool:
        key = ZoneKey.of(zone, plan)
        return await self.source.exists(key.zone, key.plan)

    async def list_available(self) -> list[KMLFileInfo]:
        keys = await self.source.list_available()
        return [await self.source.info(key.zone, key.plan) for key in keys]

    async def get_info(self, zone: int, plan: str) -> KMLFileInfo:
        key = ZoneKey.of(zone, plan)
        return await self.source.info(key.zone, key.plan)

    async def validate_zone(self, zone: int, plan: str) -> ValidationResult:
        """Load (or reuse) a zone and return its validation; raises when the load failed."""
        result = await self.load_for_zone(zone, plan)
        if not result.success or result.validation is None:
            raise KMLReadError(f"Cannot validate zone {zone} plan {plan}: {result.error}")
        return result.validation

    async def validation_report(self, zone: int, plan: str) -> str:
        try:
            validation = await self.validate_zone(zone, plan)
        except FieldMapError as exc:
            return f"Error generating report: {exc}"
        return generate_validation_report(validation)

    def is_in_cache(self, zone: int, plan: str) -> bool:
        return ZoneKey.of(zone, plan) in self._cache

    def remove_from_cache(self, zone: int, plan: str) -> bool:
        removed = self._cache.pop(ZoneKey.of(zone, plan), None) is not None
        if removed:
            logger.info(f"Removed zone {zone} plan {plan} from KML cache")
        return removed

    def clear_cache(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info(f"KML cache cleared ({count} entries)")

    def cache_stats(self) -> dict[str, Any]:
        return {
            "cache_size": len(self._cache),
            "cached_keys": [str(key) for key in self._cache],
            "loading_count": len(self._loading),
            "loading_keys": [str(key) for key in self._loading],
        }
