from __future__ import annotations

import logging
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as SATimeoutError
from starlette.exceptions import HTTPException
from starlette.responses import Response

from costcontrol.core.errors import LedgerError, TransientConflict

_APP_START_MONOTONIC = time.monotonic()

_SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "2000"))

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHENTICATED",
    403: "TENANT_PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def _logger(request: Request) -> logging.Logger:
    return getattr(request.app.state, "logger", None) or logging.getLogger("costcontrol")


def _request_id(request: Request) -> str:
    rid = getattr(request.state, "request_id", None)
    return rid or request.headers.get("x-request-id") or str(uuid.uuid4())


def _pool_status() -> str | None:
    try:
        from costcontrol.database import engine

        return engine.pool.status()
    except Exception:
        return None


def uptime_seconds() -> float:
    return max(0.0, time.monotonic() - _APP_START_MONOTONIC)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def error_response(
    status_code: int,
    code: str,
    message: str | None,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    headers = {"X-Request-ID": _request_id(request)}
    if isinstance(exc, TransientConflict):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.status_code >= 500 or isinstance(exc, TransientConflict):
        _logger(request).warning(
            "ledger_transient_conflict",
            extra={"request_id": headers["X-Request-ID"], "code": exc.code},
        )
    return error_response(exc.status_code, exc.code, exc.message, exc.details, headers)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Per-field messages keyed by the last element of the error location."""

    validation: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[-1]) if loc else "body"
        validation.setdefault(field, []).append(str(err.get("msg") or "Invalid value"))
    return error_response(
        422,
        "VALIDATION_FAILED",
        "The given data was invalid",
        {"validation": validation},
        {"X-Request-ID": _request_id(request)},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    headers = dict(exc.headers or {})
    headers.setdefault("X-Request-ID", _request_id(request))
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else None
    details = None if isinstance(exc.detail, str) else {"detail": exc.detail}
    return error_response(exc.status_code, code, message, details, headers)


async def database_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    """Lock waits, statement timeouts and pool exhaustion are retryable."""

    request_id = _request_id(request)
    _logger(request).warning(
        "db_unavailable",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "exception_type": type(exc).__name__,
            "pool_status": _pool_status(),
        },
    )
    conflict = TransientConflict()
    return error_response(
        conflict.status_code,
        conflict.code,
        conflict.message,
        headers={
            "X-Request-ID": request_id,
            "Retry-After": str(conflict.retry_after_seconds),
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler that returns a structured error response.

    Internals never reach the client; the traceback is logged with the
    request id the client receives.
    """
    request_id = _request_id(request)

    extra = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "exception_type": type(exc).__name__,
    }
    _logger(request).exception("unhandled_exception", extra=extra)

    return error_response(
        500,
        "INTERNAL_SERVER_ERROR",
        "Internal server error. Try again later.",
        {"request_id": request_id},
        {"X-Request-ID": request_id},
    )


async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Request-level logging middleware.

    Adds/propagates X-Request-ID and measures request duration.
    Does not log request/response bodies.
    """

    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    logger = _logger(request)

    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    except SATimeoutError as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.error(
            "db_pool_timeout",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
                "pool_status": _pool_status(),
                "error": str(exc),
            },
        )
        raise
    except Exception:
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.exception(
            "http_request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
            },
        )
        raise

    duration_ms = (time.perf_counter() - start) * 1000.0
    if duration_ms >= _SLOW_REQUEST_MS:
        logger.info(
            "slow_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration_ms, 2),
                "pool_status": _pool_status(),
            },
        )

    # Avoid noisy logging for liveness endpoints.
    if request.url.path not in {"/health", "/healthz"}:
        logger.info(
            "http_request",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )

    response.headers.setdefault("X-Request-ID", request_id)
    return response


DATABASE_UNAVAILABLE_ERRORS = (OperationalError, SATimeoutError)
