"""
Error Handling & Sanitization
Structured service errors and the handlers that render them

SECURITY REQUIREMENTS:
- No internal detail (SQL, stack, paths) in error responses
- Every failure carries a stable kind and code the client can branch on
- Detailed errors only in secure logs
- Consistent error format: {"kind", "code", "message"}
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from sihha.core.logging import log_error, log_info

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for every failure raised by the chat core."""

    kind = "internal"
    status_code = 500

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class ValidationError(ServiceError):
    """Malformed or out-of-range input. Safe to retry after correction."""
    kind = "validation"
    status_code = 400


class UnauthenticatedError(ServiceError):
    kind = "unauthenticated"
    status_code = 401


class AuthorizationError(ServiceError):
    """Caller is not a participant, target or owner of the entity."""
    kind = "authorization"
    status_code = 403


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    """Entity is not in the state the operation requires. Re-fetch before retrying."""
    kind = "conflict"
    status_code = 409


class DependencyUnavailableError(ServiceError):
    """Store or external issuer unavailable. Not retried inside the core."""
    kind = "unavailable"
    status_code = 503


class ErrorSanitizer:
    """Sanitizes unexpected errors to prevent information leakage"""

    @staticmethod
    def sanitize_error(error: Exception) -> Dict[str, Any]:
        if isinstance(error, ServiceError):
            return error.to_dict()

        if isinstance(error, OperationalError):
            return {
                "kind": "unavailable",
                "code": "store-unavailable",
                "message": "Service temporarily unavailable",
            }

        return {
            "kind": "internal",
            "code": "server-error",
            "message": "An error occurred processing your request",
            "error_id": ErrorSanitizer._generate_error_id(),
        }

    @staticmethod
    def _generate_error_id() -> str:
        """Generate a unique error ID for tracking"""
        return str(uuid.uuid4())[:8]


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = {
        401: "unauthenticated",
        403: "authorization",
        404: "not_found",
        405: "validation",
    }.get(exc.status_code, "internal")
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content={"kind": kind, "code": kind.replace("_", "-"), "message": detail},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
    return JSONResponse(
        status_code=400,
        content={
            "kind": "validation",
            "code": "invalid-request",
            "message": f"{field}: {first.get('msg', 'invalid value')}",
        },
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    error_id = ErrorSanitizer._generate_error_id()
    log_error(f"Store unavailable [{error_id}]: {type(exc).__name__}", logger_name="error_handler")
    sanitized = ErrorSanitizer.sanitize_error(exc)
    sanitized["error_id"] = error_id
    return JSONResponse(status_code=503, content=sanitized)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Catches anything the exception handlers did not, logs it with an error id
    and returns a sanitized 500. Also logs request timing.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            sanitized = ErrorSanitizer.sanitize_error(e)
            error_id = sanitized.setdefault("error_id", ErrorSanitizer._generate_error_id())
            log_error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}",
                logger_name="error_handler",
                exc_info=True
            )
            response = JSONResponse(status_code=500, content=sanitized)

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        log_info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)",
            logger_name="http",
        )
        return response


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_middleware(ErrorHandlingMiddleware)
