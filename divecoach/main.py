"""
DiveCoach ASGI entry point.

This module creates and configures the FastAPI application through an
application factory, so tests can build an app after changing settings.

For local development:
    uvicorn divecoach.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import analysis, coaching, diagnostics, dive_logs, health
from .config.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration problems on startup; nothing to release on shutdown."""
    settings = get_settings()

    logger.info(
        "DiveCoach API starting",
        extra={
            "version": __version__,
            "api_version": settings.api_version,
            "mock_mode": {"snowflake": settings.snowflake_mock_mode},
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Diagnostics still work; readiness reports what is missing
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("DiveCoach API shutting down")


def create_app() -> FastAPI:
    """
    Build the DiveCoach app from current settings.
    """
    settings = get_settings()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=settings.log_level.upper(),
    )

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Freediving dive logs with rule-based coaching.

        ## Features

        - Keep a dive log per diver
        - Audit a dive: speeds, scores, risk and flags
        - E.N.C.L.O.S.E. diagnosis of what went wrong, with drills
        - Depth-bucket pattern analysis across recent dives
        - Coaching chat and EQ plans from Claude

        ## Authentication

        All endpoints require an API key in the `X-API-Key` header.
        Dive log routes also need the diver's id in `X-User-Id`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    api_prefix = f"/api/{settings.api_version}"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        dive_logs.router,
        prefix=f"{api_prefix}/dive-logs",
        tags=["Dive Logs"],
    )

    app.include_router(
        diagnostics.router,
        prefix=f"{api_prefix}/diagnostics",
        tags=["Diagnostics"],
    )

    app.include_router(
        analysis.router,
        prefix=f"{api_prefix}/analysis",
        tags=["Analysis"],
    )

    app.include_router(
        coaching.router,
        prefix=f"{api_prefix}/coaching",
        tags=["Coaching"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "DiveCoach API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Last-resort handler for anything a route did not map.

        Logs the full error server-side and returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error."
            }
        )

    logger.info(
        "DiveCoach app ready",
        extra={"title": settings.api_title, "version": __version__}
    )

    return app


# The instance uvicorn imports
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "divecoach.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
