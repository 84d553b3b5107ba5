"""
Heimursaga API — Exception Hierarchy & Handlers
=================================================

What:  Application exceptions plus the global handlers that turn them into
       JSON error responses.
How:   Every exception carries a `message`, an optional `context` dict, an
       HTTP `status_code` and a machine-readable `error` code. The handlers
       registered by `register_exception_handlers()` render them as
       `{"error", "message", "details", "request_id"}`.
Who:   Raised by services, dependencies and guards; handled in one place.

Exception Hierarchy:
    SagaError (base)                   → 500
    ├── ValidationError                → 400 (field-level or business rule)
    ├── BadRequestError                → 400
    ├── UnauthorizedError              → 401
    ├── ForbiddenError                 → 403
    ├── NotFoundError                  → 404
    ├── ConflictError                  → 409
    ├── RateLimitExceededError         → 429
    ├── ExternalServiceError           → 502 (Stripe, SMTP, Mapbox)
    │   └── StripeError
    ├── CircuitBreakerOpenError        → 503
    ├── FileStorageError               → 500
    └── DatabaseError                  → 503

Error tracking:
    Responses with status >= 500 and every unhandled exception are sent to
    Sentry (when configured). Client errors are never forwarded.
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from saga.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class SagaError(Exception):
    """
    Base exception for all Heimursaga application errors.

    Attributes:
        message:  User-facing description (safe to return in a response)
        context:  Extra details; returned as `details` for 4xx, logged only for 5xx
    """

    status_code: int = 500
    error: str = "internal_server_error"
    default_message: str = "an unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SagaError):
    """Client input failed a business rule (not Pydantic's schema check)."""

    status_code = 400
    error = "validation_error"
    default_message = "validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class BadRequestError(SagaError):
    status_code = 400
    error = "bad_request"
    default_message = "bad request"


class UnauthorizedError(SagaError):
    status_code = 401
    error = "unauthorized"
    default_message = "unauthorized"


class ForbiddenError(SagaError):
    status_code = 403
    error = "forbidden"
    default_message = "forbidden"


class NotFoundError(SagaError):
    """
    Requested resource does not exist (or is soft-deleted / hidden).

    `NotFoundError("entry")` renders as "entry not found".
    """

    status_code = 404
    error = "not_found"
    default_message = "not found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=f"{resource} not found", context=ctx)


class ConflictError(SagaError):
    status_code = 409
    error = "conflict"
    default_message = "conflict"


class RateLimitExceededError(SagaError):
    status_code = 429
    error = "rate_limit_exceeded"

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(
            message=f"Too many requests. Please wait {retry_after} seconds before retrying.",
            context=ctx,
        )
        self.retry_after = retry_after


class ExternalServiceError(SagaError):
    """A third-party API (Stripe, Mapbox, SMTP) failed after retries."""

    status_code = 502
    error = "external_service_error"
    default_message = "an external service is temporarily unavailable"

    def __init__(
        self,
        message: Optional[str] = None,
        service: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if service:
            ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.service = service


class StripeError(ExternalServiceError):
    """
    Error object returned by the Stripe API.

    `code` is Stripe's error code (e.g. `resource_missing`); `http_status`
    is the status Stripe answered with.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if code:
            ctx["code"] = code
        super().__init__(message=message or "stripe request failed", service="stripe", context=ctx)
        self.code = code
        self.http_status = http_status

    @property
    def is_resource_missing(self) -> bool:
        return self.code == "resource_missing" or "No such subscription" in self.message


class CircuitBreakerOpenError(SagaError):
    status_code = 503
    error = "service_unavailable"

    def __init__(self, recovery_time: int = 60, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(
            message=(
                "A payment service is temporarily unavailable due to repeated failures. "
                f"Please retry in about {recovery_time} seconds."
            ),
            context=ctx,
        )
        self.recovery_time = recovery_time


class FileStorageError(SagaError):
    status_code = 500
    error = "server_error"
    default_message = "file storage operation failed"


class DatabaseError(SagaError):
    """Message is always generic; details stay in the server log."""

    status_code = 503
    error = "database_error"
    default_message = "a database error occurred, please try again later"


# ══════════════════════════════════════════════════════════════════════════
# Handlers
# ══════════════════════════════════════════════════════════════════════════


def _report_to_sentry(request: Request, exc: BaseException) -> None:
    """Forward a server-side failure to Sentry, tagged with request metadata."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("request_id", request_id_var.get(""))
        scope.set_tag("method", request.method)
        scope.set_extra("url", str(request.url))
        sentry_sdk.capture_exception(exc)


def error_body(error: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": error,
        "message": message,
        "details": details or {},
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    SagaError subclasses       → their own status_code
    RequestValidationError     → 400 with details.validation
    Starlette HTTPException    → its status_code
    Exception (fallback)       → 500, reported to Sentry
    """

    @app.exception_handler(SagaError)
    async def handle_saga_error(request: Request, exc: SagaError):
        rid = request_id_var.get("")
        headers: Dict[str, str] = {}

        if exc.status_code >= 500:
            logger.error(
                "[%s] %s: %s | context=%s", rid, type(exc).__name__, exc.message, exc.context
            )
            _report_to_sentry(request, exc)
            details: Dict[str, Any] = {}
            if isinstance(exc, CircuitBreakerOpenError):
                details = {"recovery_time": exc.recovery_time}
                headers["Retry-After"] = str(exc.recovery_time)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)
            details = exc.context

        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)

        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error, exc.message, details),
            headers=headers or None,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", "validation failed", {"validation": errors}),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            _report_to_sentry(request, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("http_error", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Stack trace goes to the log and Sentry, never into the response."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        _report_to_sentry(request, exc)
        return JSONResponse(
            status_code=500,
            content=error_body("internal_server_error", SagaError.default_message),
        )
