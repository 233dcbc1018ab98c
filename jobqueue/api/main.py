"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from jobqueue import __version__
from jobqueue.api.errors import register_error_handlers
from jobqueue.api.middleware import create_request_metrics_middleware
from jobqueue.api.routes import health_router, jobs_router
from jobqueue.cache.backends import close_status_cache, get_status_cache
from jobqueue.config import get_settings
from jobqueue.db import close_db, get_engine, init_db
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()
    instrument_sqlalchemy(get_engine())
    get_status_cache()

    logger.info("Application started")

    yield

    # Shutdown
    await close_status_cache()
    await close_db()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Job Queue API",
        description="Priority job queue with processor dispatch and cached status reads",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=create_request_metrics_middleware(),
    )

    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "jobqueue.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
