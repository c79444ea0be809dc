# ruff: noqa: I001

import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from costcontrol.api.router import api_router
from costcontrol.config import settings
from costcontrol.core.errors import LedgerError
from costcontrol.core.observability import (
    DATABASE_UNAVAILABLE_ERRORS,
    database_unavailable_handler,
    global_exception_handler,
    http_exception_handler,
    ledger_error_handler,
    request_logging_middleware,
    request_validation_error_handler,
    uptime_seconds,
    utc_now_iso,
)
from costcontrol.core.permissions import PermissionGate, StaticRoleOracle, build_role_capabilities
from costcontrol.database import POOL_CONFIG, SessionLocal, engine
from costcontrol.services.idempotency import purge_expired

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("costcontrol")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger

# Role -> capability map is resolved once; requests only read it.
app.state.permission_gate = PermissionGate(
    StaticRoleOracle(build_role_capabilities(settings.role_capabilities))
)

app.add_exception_handler(LedgerError, ledger_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
for _exc_type in DATABASE_UNAVAILABLE_ERRORS:
    app.add_exception_handler(_exc_type, database_unavailable_handler)
# Global exception handler - catches all unhandled exceptions and returns structured error
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Idempotent-Replayed", "Retry-After"],
)

app.include_router(api_router, prefix=api_prefix)

_MIGRATION_LOCK_KEY = 70412233


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return

    # Avoid running migrations during tests.
    if (settings.environment or "").lower() == "test":
        return

    # Import lazily to keep import graph light for non-migration startups.
    from alembic import command
    from alembic.config import Config
    from sqlalchemy import create_engine, text
    from sqlalchemy.engine.url import make_url

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))

    url_obj = make_url(str(settings.database_url))
    logger.info(
        "migrations_db_target",
        extra={
            "driver": url_obj.drivername,
            "host": url_obj.host,
            "db": url_obj.database,
            "has_password": bool(url_obj.password),
        },
    )

    try:
        db_engine = create_engine(settings.database_url, future=True)
        with db_engine.connect() as connection:
            dialect = str(connection.dialect.name or "").lower()

            # Avoid concurrent migrations across multiple instances.
            lock_acquired = True
            if dialect == "postgresql":
                lock_acquired = bool(
                    connection.execute(
                        text("select pg_try_advisory_lock(:k)"), {"k": _MIGRATION_LOCK_KEY}
                    ).scalar()
                )

            if not lock_acquired:
                logger.info("migrations_skipped_lock_not_acquired")
                return

            try:
                # Reuse this connection inside Alembic env.py (config.attributes['connection']).
                alembic_cfg.attributes["connection"] = connection
                command.upgrade(alembic_cfg, "head")
                logger.info("migrations_applied")
            finally:
                if dialect == "postgresql":
                    connection.execute(
                        text("select pg_advisory_unlock(:k)"), {"k": _MIGRATION_LOCK_KEY}
                    )
                    connection.commit()
    except OperationalError as e:
        # Don't crash the API if the database is unreachable; endpoints answer 503.
        logger.error("migrations_failed", extra={"error": str(e)})


def _purge_idempotency_keys() -> None:
    db = SessionLocal()
    try:
        purge_expired(db)
        db.commit()
    except OperationalError as e:
        # Tables may not exist yet on a fresh database.
        logger.warning("idempotency_purge_failed", extra={"error": str(e)})
        db.rollback()
    finally:
        db.close()


@app.on_event("startup")
def _startup():
    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "environment": settings.environment,
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
            "db_pool_status": engine.pool.status(),
        },
    )
    _run_migrations_if_configured()
    _purge_idempotency_keys()


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    return {"message": settings.app_name, "docs": docs_path}


@app.get("/health", tags=["meta"])
@app.get("/healthz", tags=["meta"])
def healthcheck():
    """Liveness; keep payload stable for monitoring systems."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
