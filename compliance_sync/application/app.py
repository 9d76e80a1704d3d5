#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Local agent for the compliance sync subsystem. The host UI talks to it over
HTTP on localhost; it owns the submission queue, the session and the drain
triggers through one ComplianceContext.
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from compliance_sync.application.api.routes import (
    connectivity_router,
    health_router,
    metrics_router,
    queue_router,
    session_router,
)
from compliance_sync.application.context import ComplianceContext
from compliance_sync.core.config.constants import HEADER_REQUEST_ID
from compliance_sync.core.config.settings import get_settings
from compliance_sync.core.exceptions import ComplianceSyncError, StorageError
from compliance_sync.core.logging.logger import (
    clear_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


def _lifespan_for(context: ComplianceContext | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build (unless injected) and start the context; tear it down on exit."""
        settings = get_settings()
        setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

        logger.info(
            "Starting compliance sync agent",
            stage="APP.0",
            environment=settings.app.ENVIRONMENT,
            version=settings.app.APP_VERSION,
        )

        ctx = context or ComplianceContext.create(settings)
        app.state.context = ctx
        try:
            await ctx.init()
            logger.info("Application startup complete", stage="APP.0")
            yield
        finally:
            logger.info("Shutting down application", stage="APP.9")
            await ctx.teardown()
            logger.info("Application shutdown complete", stage="APP.9")

    return lifespan


# ============================================================================
# Application Factory
# ============================================================================


def create_app(context: ComplianceContext | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        context: Pre-built context (tests); built from settings otherwise
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Offline-first submission queue and session agent for compliance logging",
        lifespan=_lifespan_for(context),
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Tag every log line of a request with one correlation id."""
        correlation_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = correlation_id
            return response
        finally:
            clear_correlation_id()

    @app.exception_handler(ComplianceSyncError)
    async def compliance_exception_handler(request: Request, exc: ComplianceSyncError):
        logger.error(
            f"Compliance sync exception: {exc.message}",
            stage="APP.1",
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        status_code = 503 if isinstance(exc, StorageError) else 500
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    base_path = settings.app.API_BASE_PATH
    app.include_router(health_router, prefix=base_path)
    app.include_router(queue_router, prefix=base_path)
    app.include_router(session_router, prefix=base_path)
    app.include_router(connectivity_router, prefix=base_path)
    app.include_router(metrics_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "health": f"{base_path}/health",
        }

    return app


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(),
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
