"""Route group exports."""

from . import health, kml, runs, session, zones

__all__ = ["health", "kml", "zones", "runs", "session"]
