"""FastAPI application for ehr-guard."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ehr_guard import __version__
from ehr_guard.access.errors import AccessError, Unauthenticated, ValidationFailed
from ehr_guard.api.middleware import RequestLoggingMiddleware
from ehr_guard.api.routes import appointments, audit, clinical, health, me, notes, patients, users
from ehr_guard.config import get_settings
from ehr_guard.core.database import get_session_factory
from ehr_guard.triggers.notifications import build_dispatcher
from ehr_guard.triggers.sweeper import NoteLockSweeper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting ehr-guard API")

    settings = get_settings()
    sweep_task = None

    if settings.lock_sweep_enabled:
        sweeper = NoteLockSweeper(get_session_factory())
        app.state.sweeper = sweeper
        sweep_task = asyncio.create_task(sweeper.run_loop())

    logger.info("ehr-guard API started successfully")

    yield

    logger.info("Shutting down ehr-guard API")
    await app.state.dispatcher.drain()
    if sweep_task is not None:
        app.state.sweeper.stop()
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ehr-guard API",
        description="Row-level access control, audit trail and consistency triggers for clinical records",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.dispatcher = build_dispatcher(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(me.router, prefix="/api/v1", tags=["me"])
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(patients.router, prefix="/api/v1")
    app.include_router(appointments.router, prefix="/api/v1")
    app.include_router(notes.router, prefix="/api/v1")
    app.include_router(clinical.care_plans_router, prefix="/api/v1")
    app.include_router(clinical.medications_router, prefix="/api/v1")
    app.include_router(clinical.assessments_router, prefix="/api/v1")
    app.include_router(audit.router, prefix="/api/v1")

    # Exception handlers
    @app.exception_handler(AccessError)
    async def access_error_handler(request: Request, exc: AccessError):
        content = {"error": exc.error, "detail": exc.detail}
        if isinstance(exc, ValidationFailed) and exc.fields:
            content["fields"] = exc.fields
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        if exc.status_code >= 403:
            logger.info(f"{exc.error}: {request.method} {request.url.path} - {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug_mode else None,
            },
        )

    return app
