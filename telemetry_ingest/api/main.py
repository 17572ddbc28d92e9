"""
FastAPI application entry point for the telemetry ingestion API.

Settings are loaded and validated in the lifespan; a missing required setting
aborts startup. DEVICE_TOKENS is parsed into a ``BearerAuth`` instance stored
on ``app.state`` for the route dependencies.

Run with ``uvicorn telemetry_ingest.api.main:app``.

CHANGELOG:
- 2026-10-16: Initial creation
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from telemetry_ingest import __version__
from telemetry_ingest.api.health import router as health_router
from telemetry_ingest.api.ingest import router as ingest_router
from telemetry_ingest.api.views import router as views_router
from telemetry_ingest.auth.bearer import BearerAuth, parse_device_tokens
from telemetry_ingest.config import Settings, configure_logging
from telemetry_ingest.db.session import dispose_engine, init_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: load settings on startup, release the engine on shutdown.

    Raises:
        pydantic.ValidationError: If a required setting is missing or invalid.
        RuntimeError: If DEVICE_TOKENS contains no usable entry.
    """
    settings = Settings()
    configure_logging(settings.log_level)
    app.state.settings = settings

    token_map = parse_device_tokens(settings.device_tokens)
    if not token_map:
        raise RuntimeError(
            "DEVICE_TOKENS parsed but contains no valid token:device entries"
        )
    app.state.auth = BearerAuth(token_map)
    logger.info("Parsed %d device token(s) from DEVICE_TOKENS", len(token_map))

    init_engine(settings.database_url)
    logger.info("Telemetry ingestion API %s ready", __version__)
    yield
    await dispose_engine()
    logger.info("Telemetry ingestion API shutting down")


app = FastAPI(
    title="Telemetry Ingestion API",
    description="Device telemetry ingestion, calibration and measurement views.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(views_router)


@app.get("/")
async def root() -> dict:
    """Root health check endpoint."""
    return {"status": "ok"}
