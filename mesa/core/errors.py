"""
Engine error taxonomy and its mapping onto HTTP responses.

Services raise these; routers stay thin and let the exception handler
registered in main.py translate them. New error types only need an entry in
ERROR_STATUS.
"""
from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse


class EngineError(Exception):
    """Base class for all reservation engine errors."""

    code = "engine_error"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(EngineError):
    """Bad input the client can fix (malformed date/time, party size, hours)."""
    code = "validation_error"


class InvalidPartySize(ValidationError):
    code = "invalid_party_size"


class OutsideOperatingHours(ValidationError):
    code = "outside_operating_hours"


class NotFound(EngineError):
    code = "not_found"


class PermissionDenied(EngineError):
    code = "permission_denied"


class NoTableAvailable(EngineError):
    """Expected business outcome: no table of sufficient capacity is free."""
    code = "no_table_available"


class ConflictError(EngineError):
    """Transient contention on the same table/window."""
    code = "conflict"
    retryable = True


class Busy(ConflictError):
    """Lock could not be acquired within the bounded timeout."""
    code = "busy"


class InvalidTransition(EngineError):
    """State change not permitted from the current status."""
    code = "invalid_transition"


class DependencyFailure(EngineError):
    """Payment or notification collaborator unreachable."""
    code = "dependency_failure"
    retryable = True


# Most specific first; first isinstance match wins.
ERROR_STATUS: list[tuple[type[EngineError], int]] = [
    (Busy, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (NoTableAvailable, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (DependencyFailure, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: EngineError) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Render an EngineError as a structured JSON body."""
    return JSONResponse(
        status_code=status_for(exc),
        content={
            "error": exc.code,
            "message": exc.message,
            "retryable": exc.retryable,
        },
    )
