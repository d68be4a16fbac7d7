"""Optional remote route sync backed by Supabase."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from ..config import settings
from ..db.supabase import get_supabase_client
from ..errors import ExternalServiceError, SyncAuthenticationError
from ..models.domain import Route, Stop

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def route_payload(route: Route) -> dict[str, Any]:
    data = asdict(route)
    data.pop("stats", None)
    return data


class RemoteRouteStore:
    """Route records in the remote ``routes`` table.

    Without credentials the store is disabled: reads return nothing and writes
    are skipped. Writes need a signed-in user and only touch that user's rows.
    """

    def __init__(self, client: Any = None, table: str | None = None) -> None:
        self.client = client if client is not None else get_supabase_client()
        self.table = table or settings.supabase_routes_table
        self.user: Any = None

    @property
    def is_enabled(self) -> bool:
        return self.client is not None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def current_user(self) -> Any:
        return self.user

    async def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except Exception as exc:
            logger.error(f"Remote {action} failed: {exc}")
            raise ExternalServiceError(f"Remote {action} failed: {exc}") from exc

    def _require_user(self) -> Any:
        if self.user is None:
            raise SyncAuthenticationError("User is not signed in")
        return self.user

    async def sign_up(self, email: str, password: str) -> Any:
        if not self.is_enabled:
            logger.warning("Route sync disabled, sign up skipped")
            return None
        response = await self._call(
            "sign up", lambda: self.client.auth.sign_up({"email": email, "password": password})
        )
        logger.info(f"Registered remote user {email}")
        return response

    async def sign_in(self, email: str, password: str) -> Any:
        if not self.is_enabled:
            logger.warning("Route sync disabled, sign in skipped")
            return None
        response = await self._call(
            "sign in",
            lambda: self.client.auth.sign_in_with_password({"email": email, "password": password}),
        )
        self.user = response.user
        logger.info(f"Signed in as {email}")
        return response

    async def sign_out(self) -> None:
        if not self.is_enabled:
            return
        await self._call("sign out", lambda: self.client.auth.sign_out())
        self.user = None

    async def save_route(
        self,
        name: str,
        route: Route,
        stops: Sequence[Stop] = (),
        is_predefined: bool = False,
        description: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        if not self.is_enabled:
            logger.warning(f"Route sync disabled, route '{name}' not saved remotely")
            return None
        user = self._require_user()
        row = {
            "user_id": user.id,
            "name": name,
            "description": description,
            "is_predefined": is_predefined,
            "route_data": route_payload(route),
            "stops": [stop.to_dict() for stop in stops],
            "created_at": _now(),
            "updated_at": _now(),
        }
        response = await self._call("save route", lambda: self.client.table(self.table).insert(row).execute())
        saved = response.data[0] if response.data else None
        logger.info(f"Route '{name}' saved remotely")
        return saved

    async def get_routes(self, include_predefined: bool = True) -> list[dict[str, Any]]:
        """The user's routes (plus predefined ones), or only predefined routes when signed out."""
        if not self.is_enabled:
            return []

        def query() -> Any:
            builder = self.client.table(self.table).select("*")
            if self.user is not None:
                if include_predefined:
                    builder = builder.or_(f"user_id.eq.{self.user.id},is_predefined.eq.true")
                else:
                    builder = builder.eq("user_id", self.user.id)
            else:
                builder = builder.eq("is_predefined", True)
            return builder.order("created_at", desc=True).execute()

        response = await self._call("get routes", query)
        return list(response.data or [])

    async def get_route(self, route_id: str) -> Optional[dict[str, Any]]:
        if not self.is_enabled:
            return None
        response = await self._call(
            "get route", lambda: self.client.table(self.table).select("*").eq("id", route_id).execute()
        )
        return response.data[0] if response.data else None

    async def update_route(self, route_id: str, changes: dict[str, Any]) -> Optional[dict[str, Any]]:
        if not self.is_enabled:
            logger.warning(f"Route sync disabled, route {route_id} not updated")
            return None
        user = self._require_user()
        allowed = {key: changes[key] for key in ("name", "description", "route_data", "stops") if key in changes}
        allowed["updated_at"] = _now()
        response = await self._call(
            "update route",
            lambda: self.client.table(self.table)
            .update(allowed)
            .eq("id", route_id)
            .eq("user_id", user.id)
            .execute(),
        )
        return response.data[0] if response.data else None

    async def delete_route(self, route_id: str) -> None:
        if not self.is_enabled:
            logger.warning(f"Route sync disabled, route {route_id} not deleted")
            return
        user = self._require_user()
        await self._call(
            "delete route",
            lambda: self.client.table(self.table).delete().eq("id", route_id).eq("user_id", user.id).execute(),
        )
        logger.info(f"Route {route_id} deleted remotely")
