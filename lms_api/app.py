"""
Application factory for the LMS HTTP surface.

``create_app()`` wires settings, clock and session factory onto
``app.state``, installs the error handlers and mounts the routers.  When no
session factory is supplied, the lifespan initializes the engine from
settings and creates missing tables.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import Session

import lms_kernel
from lms_api.errors import KernelErrorHandler, RequestValidationErrorHandler
from lms_api.routers import logs, notifications, records, tax, workflow
from lms_config import LmsSettings, get_active_config
from lms_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from lms_kernel.domain.clock import Clock, SystemClock
from lms_kernel.exceptions import LmsKernelError
from lms_kernel.logging_config import configure_logging, get_logger

logger = get_logger("api.app")


def create_app(
    settings: LmsSettings | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings or get_active_config()
    owns_engine = session_factory is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(level=settings.logging.level)
        if owns_engine:
            db = settings.database
            init_engine_from_url(
                db.url,
                echo=db.echo,
                pool_size=db.pool_size,
                max_overflow=db.max_overflow,
                pool_timeout=db.pool_timeout,
            )
            create_tables()
            app.state.session_factory = get_session_factory()
        logger.info(
            "api_started",
            extra={"config_checksum": settings.checksum, "config_source": settings.source},
        )
        yield
        if owns_engine:
            reset_engine()
        logger.info("api_stopped")

    app = FastAPI(
        title="Land Management System",
        version=lms_kernel.__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.clock = clock or SystemClock()
    app.state.session_factory = session_factory

    app.add_exception_handler(LmsKernelError, KernelErrorHandler())
    app.add_exception_handler(RequestValidationError, RequestValidationErrorHandler())

    app.include_router(workflow.router)
    app.include_router(records.router)
    app.include_router(tax.router)
    app.include_router(logs.router)
    app.include_router(notifications.router)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok"}

    return app
