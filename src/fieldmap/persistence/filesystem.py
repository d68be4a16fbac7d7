"""File-based access to the provisioned KML files."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from ..config import settings
from ..errors import KMLReadError
from ..models.domain import KMLFileInfo, ZoneKey

logger = logging.getLogger(__name__)

_FILENAME_PATTERN = re.compile(r"^Zona(\d+)_Sottozona([AB])\.kml$", re.IGNORECASE)


class KMLFileStorage:
    """Thin wrapper around the KML directory; files are named Zona<N>_Sottozona<A|B>.kml."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.kml_directory).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, zone: int, plan: str) -> Path:
        return self.root / ZoneKey.of(zone, plan).filename

    async def exists(self, zone: int, plan: str) -> bool:
        path = self.path_for(zone, plan)
        return await asyncio.to_thread(path.is_file)

    async def read_text(self, zone: int, plan: str) -> str:
        path = self.path_for(zone, plan)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise KMLReadError(f"Cannot read KML file {path.name}: {exc}") from exc
        if not content.strip():
            raise KMLReadError(f"KML file {path.name} is empty")
        return content

    async def list_available(self) -> list[ZoneKey]:
        """Every zone/plan with a KML file, sorted by zone then plan."""
        names = await asyncio.to_thread(lambda: [p.name for p in self.root.iterdir() if p.is_file()])
        keys = []
        for name in names:
            match = _FILENAME_PATTERN.match(name)
            if match:
                keys.append(ZoneKey(int(match.group(1)), match.group(2).upper()))
        return sorted(keys, key=lambda key: (key.zone, key.plan))

    async def info(self, zone: int, plan: str) -> KMLFileInfo:
        key = ZoneKey.of(zone, plan)
        path = self.root / key.filename
        try:
            stat = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            return KMLFileInfo(zone=key.zone, plan=key.plan, filename=key.filename, exists=False)
        return KMLFileInfo(
            zone=key.zone,
            plan=key.plan,
            filename=key.filename,
            exists=True,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def write_text(self, zone: int, plan: str, content: str) -> Path:
        """Provision a KML file for a zone/plan (used by imports and fixtures)."""
        path = self.path_for(zone, plan)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as handle:
            handle.write(content)
        logger.info(f"Stored KML file {path.name} ({len(content)} chars)")
        return path
