"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

Only request-level failures surface through this hierarchy. Per-channel
delivery failures never raise to the caller: they are recorded as a
``failed`` status on the notification record instead.

Usage:
    from backend.app.core.errors import (
        NotificationServiceError,
        UnknownEventError,
        PersistenceError,
        register_error_handlers,
    )

    raise UnknownEventError("order_shipped")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class NotificationServiceError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(NotificationServiceError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(NotificationServiceError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class ConfigurationError(NotificationServiceError):
    """Request references something the service is not configured for (400)."""

    def __init__(self, message: str, *, error_code: str = "CONFIGURATION_ERROR", **details: Any):
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details,
        )


class UnknownEventError(ConfigurationError):
    """Event type has no EventConfig entry."""

    def __init__(self, event: str):
        super().__init__(
            f"Invalid event type: {event}",
            error_code="UNKNOWN_EVENT",
            event=event,
        )
        self.event = event


class TemplateNotConfiguredError(ConfigurationError):
    """No usable template for an event (or channel, after fallback)."""

    def __init__(self, event: str, channel: Optional[str] = None):
        message = f"No template configured for event '{event}'"
        if channel:
            message += f" on channel '{channel}'"
        super().__init__(
            message,
            error_code="TEMPLATE_NOT_CONFIGURED",
            event=event,
            channel=channel,
        )
        self.event = event
        self.channel = channel


class PersistenceError(NotificationServiceError):
    """Attempt store could not persist a record (503)."""

    def __init__(self, message: str = "", **details: Any):
        super().__init__(
            message=f"Notification persistence failed: {message}",
            status_code=503,
            error_code="PERSISTENCE_ERROR",
            details=details,
        )


class InvalidStatusTransitionError(NotificationServiceError):
    """Status change would move a record backwards or out of a terminal state (409)."""

    def __init__(self, idempotency_key: str, current: str, requested: str):
        super().__init__(
            message=(
                f"Cannot move notification {idempotency_key} "
                f"from '{current}' to '{requested}'"
            ),
            status_code=409,
            error_code="INVALID_STATUS_TRANSITION",
            details={
                "idempotency_key": idempotency_key,
                "current": current,
                "requested": requested,
            },
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(NotificationServiceError)
    async def handle_service_error(request: Request, exc: NotificationServiceError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
