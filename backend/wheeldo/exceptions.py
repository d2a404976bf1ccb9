"""
Structured exceptions and error responses for Wheeldo.

Expected failures (bad input, missing permission, state machine guards)
are raised as WheeldoException subclasses from the service layer and
turned into a structured JSON body here. Anything else is logged and
reported as a generic internal error.
"""

from typing import Any, Dict, Optional, List
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wheeldo.logging_config import get_logger

logger = get_logger("error")

# Starlette renamed its 422 constant; the literal is stable across releases
HTTP_422_UNPROCESSABLE = 422


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a single error."""
    loc: Optional[List[str]] = None  # e.g. ["body", "title"]
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """Structured error response format."""
    error: str  # unauthorized, forbidden, not_found, validation_error, conflict, internal_error
    message: str
    details: Optional[List[ErrorDetail]] = None


# =============================================================================
# Custom Exceptions
# =============================================================================

class WheeldoException(Exception):
    """Base exception for all Wheeldo errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class UnauthorizedError(WheeldoException):
    """No authenticated actor."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code="unauthorized",
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class ForbiddenError(WheeldoException):
    """Actor can address the resource but lacks permission."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="forbidden",
            status_code=status.HTTP_403_FORBIDDEN,
        )


class NotFoundError(WheeldoException):
    """Resource absent, or invisible to the actor."""

    def __init__(self, resource: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"{resource} not found",
            error_code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )
        self.resource = resource


class ValidationError(WheeldoException):
    """Malformed or out-of-policy input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        if details is None and field is not None:
            details = [{"loc": ["body", field], "msg": message, "type": "value_error"}]
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=HTTP_422_UNPROCESSABLE,
            details=details,
        )


class InviteExpiredError(ValidationError):
    """Invite token exists but is past its expiry."""

    def __init__(self):
        super().__init__(message="Invite has expired")
        self.status_code = status.HTTP_410_GONE


class ConflictError(WheeldoException):
    """A state machine guard rejected the operation."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="conflict",
            status_code=status.HTTP_409_CONFLICT,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def wheeldo_exception_handler(request: Request, exc: WheeldoException) -> JSONResponse:
    """Handle WheeldoException and return structured response."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Re-shape FastAPI's request validation failures into our error body."""
    details = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", "value_error"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE,
        content={
            "error": "validation_error",
            "message": "Invalid input",
            "details": details,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without exposing internals."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "details": None,
        },
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(WheeldoException, wheeldo_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
