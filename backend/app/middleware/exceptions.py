"""Custom exceptions and handlers for consistent error responses.

Provides the approval engine's error taxonomy, standardized error
formatting, security-safe error messages, and logging for debugging.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class MemoriaException(Exception):
    """Base exception for Memoria application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ApprovalEngineError(MemoriaException):
    """Base for errors raised by the approval workflow services."""


class ValidationError(ApprovalEngineError):
    """Malformed or missing fields in a submission or review request.

    `errors` is a list of {"field", "message"} dicts naming every problem.
    """

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details={"errors": self.errors} if self.errors else None,
        )


class NotFoundError(ApprovalEngineError):
    """Target entity or pending action does not exist."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
        )


class ConflictError(ApprovalEngineError):
    """Pending action is no longer reviewable (already reviewed or expired)."""

    ALREADY_REVIEWED = "ALREADY_REVIEWED"
    ALREADY_EXPIRED = "ALREADY_EXPIRED"
    INVALID_STATUS = "INVALID_STATUS"

    def __init__(self, message: str, current_status: str, error_code: str = ALREADY_REVIEWED):
        self.current_status = current_status
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
            details={"status": current_status},
        )


class ExecutionError(ApprovalEngineError):
    """Applying an approved action's change_data to its target failed.

    Raised by executor handlers; the executor converts it into an outcome
    so it never escapes the review path.
    """

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="EXECUTION_FAILED",
        )


class PolicyError(ApprovalEngineError):
    """Approval policy could not be loaded or evaluated."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="POLICY_UNAVAILABLE",
        )


class PermissionDeniedError(MemoriaException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Build the error envelope shared by every endpoint:

        {"success": false, "error": {"code": ..., "message": ..., "details": ...}}

    `details` is omitted when empty.
    """
    error = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


async def memoria_exception_handler(
    request: Request,
    exc: MemoriaException,
) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s %s -> %s: %s",
        request.method, request.url.path, exc.error_code, exc.message,
        extra={"error_code": exc.error_code, **_request_context(request)},
    )
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Auth failures and routing errors raised by FastAPI itself."""
    if exc.status_code >= 500:
        logger.error("HTTP %d on %s: %s", exc.status_code, request.url.path, exc.detail,
                     extra=_request_context(request))

    response = create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError],
) -> JSONResponse:
    """Request bodies and query params that fail pydantic validation.

    Errors use the same {"field", "message"} items as ValidationError, with
    the location joined by dots (``body.change_data``).
    """
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Invalid request on %s: %d error(s)", request.url.path, len(errors),
                   extra=_request_context(request))
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


# Substring of the driver message -> (client message, error code)
_INTEGRITY_ERRORS = (
    ("unique", "A record with this value already exists", "DUPLICATE_RECORD"),
    ("foreign key", "Referenced record does not exist", "FOREIGN_KEY_VIOLATION"),
    ("not null", "Required field is missing", "NULL_VALUE_NOT_ALLOWED"),
    ("check constraint", "Change violates a data integrity rule", "CHECK_VIOLATION"),
)


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Constraint violations that escaped the services."""
    detail = str(getattr(exc, "orig", exc))
    logger.error("Integrity error on %s: %s", request.url.path, detail,
                 extra=_request_context(request))

    lowered = detail.lower()
    message, error_code = "Database constraint violation", "INTEGRITY_ERROR"
    for needle, msg, code in _INTEGRITY_ERRORS:
        if needle in lowered:
            message, error_code = msg, code
            break
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", request.url.path, exc,
                 extra=_request_context(request))
    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Last resort: log the traceback, return a generic 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path,
                     extra=_request_context(request))
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Attach every handler above to the FastAPI app."""
    app.add_exception_handler(MemoriaException, memoria_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
