"""
FastAPI application for the artifact feedback engine.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .db.base import init_database
from .error_handlers import register_error_handlers
from .feedback.dependencies import get_backend
from .feedback.routes import router as feedback_router
from .logging_config import setup_logging

logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging(level=settings.log_level, fmt=settings.log_format, debug=settings.debug)
    logger.info("starting_artifact_feedback", environment=settings.environment)

    if settings.create_tables_on_startup:
        init_database()
        logger.info("database_initialized")

    yield

    logger.info("shutting_down_artifact_feedback")
    get_backend().close()


app = FastAPI(
    title=settings.app_name,
    description="Threaded comments and ratings on artifacts",
    version=importlib.metadata.version("artifact-feedback"),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(feedback_router)


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/version", tags=["system"])
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": importlib.metadata.version("artifact-feedback")}
