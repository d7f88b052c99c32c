"""
Ledger errors and the handlers that render them.

Services raise the AppException subclasses below; every error leaves the
API as the same body: {error_code, message, details, correlation_id}.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base of every error a ledger operation reports to its caller."""

    error_code = "ERR_INTERNAL_SERVER"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(AppException):
    """No caller identity could be established."""

    error_code = "ERR_AUTH_001"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """The caller lacks the role or relationship an action needs."""

    error_code = "ERR_PERM_001"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ResourceNotFoundError(AppException):
    """A team, expense, settlement or agreement is missing or soft-deleted."""

    error_code = "ERR_NOT_FOUND_001"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found" if resource_id is None else f"{resource} with ID {resource_id} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class InvalidInputError(AppException):
    error_code = "ERR_INPUT_001"
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(AppException):
    """Current ledger state forbids the change (wrong status, stale agreement, last admin)."""

    error_code = "ERR_CONFLICT_001"
    status_code = status.HTTP_409_CONFLICT


_HTTP_ERROR_CODES = {
    400: "ERR_BAD_REQUEST",
    401: "ERR_UNAUTHORIZED",
    403: "ERR_FORBIDDEN",
    404: "ERR_NOT_FOUND",
    405: "ERR_METHOD_NOT_ALLOWED",
    409: "ERR_CONFLICT",
}


def _error_response(request: Request, status_code: int, error_code: str, message: Any,
                    details: Optional[Dict[str, Any]] = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details or {},
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    logger.info("%s rejected with %s: %s", request.url.path, exc.error_code, exc.message)
    return _error_response(request, exc.status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _HTTP_ERROR_CODES.get(exc.status_code, "ERR_UNKNOWN")
    return _error_response(request, exc.status_code, code, exc.detail, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ERR_VALIDATION",
        "Validation error",
        {"errors": jsonable_errors(exc)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "ERR_INTERNAL_SERVER",
        "An internal server error occurred",
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # Decimal and exception objects inside ctx are not JSON serializable
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        if "input" in error:
            error["input"] = str(error["input"])
        errors.append(error)
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
