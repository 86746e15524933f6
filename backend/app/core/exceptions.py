"""
Application errors and their HTTP rendering.

Every error leaves the API as ``{"error_code", "message", "details"}``.
Sharing-state and bus-assignment problems have their own subclasses so the
position store can raise them by name; they map onto the generic codes
clients switch on (ERR_STATE_001, ERR_PERM_001, ...).
"""

import logging
import math
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger("bustracker.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        super().__init__(message)


class AuthenticationError(AppException):
    """Missing, invalid or expired bearer token, or a token for an unknown user."""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"}
        )


class InsufficientPermissionsError(AppException):
    """Caller is identified but may not do this. Never says who may."""

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class BusNotAssignedError(InsufficientPermissionsError):
    def __init__(self):
        super().__init__("Access denied. This bus is not assigned to you.")


class NotSessionOwnerError(InsufficientPermissionsError):
    def __init__(self):
        super().__init__("Access denied. You can only update your own bus location.")


class ResourceNotFoundError(AppException):
    """Unknown bus, route, stop or location record."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class StateConflictError(AppException):
    """
    The operation does not fit the bus's current sharing state.

    Existing state is left untouched; clients should read the current state
    before retrying.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class SharingAlreadyActiveError(StateConflictError):
    def __init__(self, bus_id: int):
        super().__init__("Location sharing is already active for this bus", details={"bus_id": bus_id})


class SharingNotActiveError(StateConflictError):
    def __init__(self, bus_id: int, hint: str = ""):
        message = "Location sharing is not active for this bus"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message, details={"bus_id": bus_id})


class BusInactiveError(StateConflictError):
    def __init__(self, bus_id: int):
        super().__init__("Cannot start location sharing for an inactive bus", details={"bus_id": bus_id})


# Global Exception Handlers

def _error_response(status_code: int, error_code: str, message: Any, details: Dict[str, Any], headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details
        },
        headers=headers
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for application exceptions."""
    logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.error_code)
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.details, exc.headers)


HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_UNAUTHORIZED",
    403: "ERR_FORBIDDEN",
    404: "ERR_NOT_FOUND",
    405: "ERR_METHOD_NOT_ALLOWED",
    409: "ERR_CONFLICT",
    500: "ERR_INTERNAL_SERVER"
}


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for framework-raised HTTP errors (missing bearer, unknown path, ...)."""
    return _error_response(
        exc.status_code,
        HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN"),
        exc.detail,
        {},
        getattr(exc, "headers", None)
    )


def _renderable_errors(errors) -> list:
    # JSON has no Infinity or NaN, so echo rejected non-finite inputs as text
    rendered = []
    for error in errors:
        value = error.get("input")
        if isinstance(value, float) and not math.isfinite(value):
            error = {**error, "input": str(value)}
        rendered.append(error)
    return jsonable_encoder(rendered)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for request validation errors (out-of-range coordinates and the like)."""
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ERR_VALIDATION",
        "Validation error",
        {"errors": _renderable_errors(exc.errors())}
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "ERR_INTERNAL_SERVER",
        "An internal server error occurred",
        {}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
