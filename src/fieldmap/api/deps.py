"""Request-scoped access to the shared services."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..context import AppContext
from ..errors import (
    ActiveRunExistsError,
    DomainValidationError,
    ExternalServiceError,
    FieldMapError,
    KMLNotFoundError,
    NoActiveRunError,
    SyncAuthenticationError,
    ZoneNotLoadedError,
)
from ..services.session import FieldSession

_STATUS_BY_ERROR: tuple[tuple[type[FieldMapError], int], ...] = (
    (DomainValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (KMLNotFoundError, status.HTTP_404_NOT_FOUND),
    (NoActiveRunError, status.HTTP_409_CONFLICT),
    (ActiveRunExistsError, status.HTTP_409_CONFLICT),
    (ZoneNotLoadedError, status.HTTP_409_CONFLICT),
    (SyncAuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
)


def to_http_error(exc: FieldMapError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
    return context


def get_session(request: Request) -> FieldSession:
    return get_context(request).session
