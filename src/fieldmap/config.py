"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDMAP_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Field Route Mapper API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root log level applied at startup.")
    data_root: Path = Field(default=Path("data"), description="Root directory for local data files.")
    kml_directory: Path = Field(
        default=Path("data/kml"),
        description="Directory holding Zona<N>_Sottozona<A|B>.kml files.",
    )
    database_path: Path = Field(
        default=Path("data/fieldmap.db"),
        description="SQLite file backing stops, runs, settings and the KML cache.",
    )

    marker_radius_meters: float = Field(default=200.0, gt=0.0)
    gps_accuracy_threshold_meters: float = Field(default=50.0, gt=0.0)
    walking_speed_kmh: float = Field(default=5.0, gt=0.0)
    navigation_refresh_seconds: float = Field(default=1.0, gt=0.0)

    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service. Unset means straight-line paths only.",
    )
    osrm_profile: Literal["foot", "driving", "bike"] = Field(
        default="foot",
        description="OSRM profile used when following roads between waypoints.",
    )
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)
    routing_max_waypoints: int = Field(default=50, ge=2)
    routing_timeout_seconds: float = Field(default=30.0, gt=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:8081",
            "http://127.0.0.1:8081",
            "http://localhost:19006",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase anon key used for route sync.",
    )
    supabase_routes_table: str = "routes"

    @field_validator("data_root", "kml_directory", "database_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @property
    def sync_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


settings = Settings()
