"""Middleware for request handling."""

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from paywall.config import settings

logger = logging.getLogger(__name__)

# Polled by load balancers; not worth a line each
QUIET_PATHS = {"/", "/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and latency of every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        path = request.url.path
        if path in QUIET_PATHS and response.status_code < 400:
            return response

        context = {
            "path": path,
            "method": request.method,
            "client": request.client.host if request.client else "unknown",
            "status_code": response.status_code,
            "process_time_ms": elapsed_ms,
        }
        summary = f"{request.method} {path} -> {response.status_code} in {elapsed_ms}ms"
        if response.status_code >= 500:
            logger.error(summary, extra=context)
        elif response.status_code >= 400:
            logger.warning(summary, extra=context)
        else:
            logger.info(summary, extra=context)
        return response


def setup_middleware(app: FastAPI) -> None:
    """Set up all middleware for the application.

    Args:
        app: The FastAPI application
    """
    # All origins, no credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=settings.api.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Key", "Stripe-Signature"],
    )

    if settings.logging.enable_endpoint_logging:
        app.add_middleware(RequestLoggingMiddleware)
