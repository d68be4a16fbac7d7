"""Central error types used across the application."""

from __future__ import annotations


class FieldMapError(RuntimeError):
    """Base error for the field mapping core."""


class KMLParseError(FieldMapError):
    """Raised when KML text is empty or lacks the kml/Document root."""


class KMLNotFoundError(FieldMapError):
    """Raised when no KML file is provisioned for a zone/plan."""


class KMLReadError(FieldMapError):
    """Raised when a KML file exists but cannot be read or is empty."""


class DomainValidationError(FieldMapError, ValueError):
    """Raised before any I/O when a stop, run or run-stop field is invalid."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} is not valid")


class NoActiveRunError(FieldMapError):
    """Raised when an operation needs an active run and none exists."""


class ActiveRunExistsError(FieldMapError):
    """Raised when starting a run while another run is still active."""


class ZoneNotLoadedError(FieldMapError):
    """Raised when refreshing data for a zone that is not the loaded one."""


class ExternalServiceError(FieldMapError):
    """Raised when the routing service or the remote sync backend fails."""


class SyncAuthenticationError(ExternalServiceError):
    """Raised when a remote route write is attempted without a signed-in user."""


__all__ = [
    "FieldMapError",
    "KMLParseError",
    "KMLNotFoundError",
    "KMLReadError",
    "DomainValidationError",
    "NoActiveRunError",
    "ActiveRunExistsError",
    "ZoneNotLoadedError",
    "ExternalServiceError",
    "SyncAuthenticationError",
]
