"""Wiring of the services shared by the HTTP layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import settings
from .persistence.database import LocalStore
from .persistence.filesystem import KMLFileStorage
from .persistence.remote_routes import RemoteRouteStore
from .services.kml.service import KMLService
from .services.manual_stops import ManualStopService
from .services.map_state import MapStateService
from .services.navigation import NavigationTracker
from .services.routing.service import RoadRouter
from .services.runs import RunCoordinator
from .services.session import FieldSession

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    files: KMLFileStorage
    store: LocalStore
    session: FieldSession

    @classmethod
    def build(
        cls,
        kml_directory: Optional[Path] = None,
        database_path: Optional[Path | str] = None,
        router: Optional[RoadRouter] = None,
        remote: Optional[RemoteRouteStore] = None,
    ) -> "AppContext":
        files = KMLFileStorage(kml_directory or settings.kml_directory)
        store = LocalStore(database_path if database_path is not None else settings.database_path)
        session = FieldSession(
            kml=KMLService(files),
            store=store,
            map_state=MapStateService(),
            navigation=NavigationTracker(),
            manual_stops=ManualStopService(),
            runs=RunCoordinator(store),
            router=router or RoadRouter(),
            remote=remote or RemoteRouteStore(),
        )
        return cls(files=files, store=store, session=session)

    async def startup(self) -> None:
        await self.session.initialize()
        logger.info(f"KML directory: {self.files.root}")

    async def shutdown(self) -> None:
        self.session.navigation.reset()
        await self.store.close()
