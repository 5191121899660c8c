"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

from confsync import __version__
from confsync.api.configs import router as configs_router
from confsync.api.health import router as health_router
from confsync.api.reconcile import router as reconcile_router
from confsync.api.scopes import router as scopes_router
from confsync.config import Settings
from confsync.database import create_engine, create_tables, ensure_sqlite_directory
from confsync.exceptions import InternalServerError
from confsync.filesystem.file_store import FileStore
from confsync.services.materializer import Materializer
from confsync.services.reconcile_service import Reconciler, ScopeLockRegistry
from confsync.services.sweep_service import Sweeper

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def build_engine_components(settings: Settings) -> tuple[FileStore, Materializer, Reconciler]:
    """Wire the file store, materializer, sweeper and reconciler for one base path."""
    file_store = FileStore(base_path=settings.config_base_path, backup_path=settings.backup_path)
    materializer = Materializer(file_store, verify_checksum=settings.verify_checksum)
    reconciler = Reconciler(materializer, Sweeper(file_store), ScopeLockRegistry())
    return file_store, materializer, reconciler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting confsync (debug=%s)", settings.debug)

    ensure_sqlite_directory(settings.database_url)
    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        await create_tables(engine)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    file_store, materializer, reconciler = build_engine_components(settings)
    try:
        file_store.ensure_base()
    except Exception as exc:
        logger.critical(
            "Failed to initialize config directory at %s: %s.", settings.config_base_path, exc
        )
        raise
    app.state.file_store = file_store
    app.state.materializer = materializer
    app.state.reconciler = reconciler

    if settings.reconcile_on_startup:
        try:
            async with session_factory() as session:
                await reconciler.full_reconcile(session)
        except Exception as exc:
            logger.critical("Startup reconciliation failed: %s.", exc)
            raise

    yield

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("confsync stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="confsync",
        description="Reconciles configuration records with the files a proxy watches",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(configs_router)
    app.include_router(scopes_router)
    app.include_router(reconcile_router)

    # Global exception handlers: safety net for errors the routers let through

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(LookupError)
    async def lookup_error_handler(request: Request, exc: LookupError) -> JSONResponse:
        logger.info("Not found in %s %s: %s", request.method, request.url.path, exc)
        message = str(exc.args[0]) if exc.args else "Not found"
        return JSONResponse(status_code=404, content={"detail": message})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.error("ValueError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        message = str(exc) or "Invalid value"
        return JSONResponse(status_code=422, content={"detail": message})

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Storage operation failed"})

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        logger.error(
            "InternalServerError in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning(
            "IntegrityError in %s %s: %s", request.method, request.url.path, exc.orig
        )
        return JSONResponse(status_code=409, content={"detail": "Conflicting record exists"})

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "confsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
