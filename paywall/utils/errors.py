"""Standardized error handling for the application."""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logger
logger = logging.getLogger(__name__)


class PaywallError(Exception):
    """Base exception class for all application errors."""

    status_code: int = 500
    default_message: str = "An error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the error.

        Args:
            message: Human-readable error message
            status_code: HTTP status code, overrides the class default
            details: Additional error details merged into the response body
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for API responses.

        Returns:
            Dict in the ``{"error": {"code": ..., "message": ...}}`` shape
        """
        return {
            "error": {
                "code": str(self.status_code),
                "message": self.message,
                **self.details,
            }
        }

    def log(self, level: int = logging.ERROR) -> None:
        """Log the error with appropriate level and context.

        Args:
            level: Logging level to use
        """
        log_context = {
            "error_type": self.__class__.__name__,
            "status_code": self.status_code,
        }
        logger.log(level, f"{self.message}", extra=log_context)


class InvalidArgumentError(PaywallError):
    """Malformed or missing input."""

    status_code = 400
    default_message = "Invalid argument"


class UnauthenticatedError(PaywallError):
    """A signed payload could not be authenticated."""

    status_code = 400
    default_message = "Signature verification failed"


class InvalidCredentialsError(PaywallError):
    status_code = 401
    default_message = "Invalid email or password"


class ForbiddenError(PaywallError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(PaywallError):
    """Requested record does not exist."""

    status_code = 404
    default_message = "Not found"


class CouponInactiveError(NotFoundError):
    """Coupon exists but has been deactivated."""

    default_message = "Coupon code is inactive"


class ConflictError(PaywallError):
    """Record would collide with an existing one."""

    status_code = 409
    default_message = "Conflict"


class UpstreamUnavailableError(PaywallError):
    """Payment or mail provider failed or could not be reached."""

    status_code = 500
    default_message = "Upstream service unavailable"


class ConfigurationError(PaywallError):
    """Required configuration is missing."""

    status_code = 500
    default_message = "Service is not configured"


def error_response(status_code: int, message: str, **details: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": str(status_code), "message": message, **details}},
    )


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(messages) or "Invalid request"


async def paywall_error_handler(request: Request, exc: PaywallError) -> JSONResponse:
    exc.log(logging.ERROR if exc.status_code >= 500 else logging.INFO)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, _validation_message(exc))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        message = str(detail.get("reason") or detail.get("code") or detail)
    else:
        message = str(detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": str(exc.status_code), "message": message}},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(500, str(exc) or "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Render every failure in the unified error shape.

    Args:
        app: The FastAPI application
    """
    app.add_exception_handler(PaywallError, paywall_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
