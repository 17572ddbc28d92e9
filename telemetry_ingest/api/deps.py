"""
FastAPI dependency providers.

Database sessions, the measurement store, the device configuration source,
settings and authentication, for use with ``Depends()``. Tests replace
``get_db``, ``get_store`` or ``get_config_source`` through
``app.dependency_overrides``.

CHANGELOG:
- 2026-10-16: Initial creation
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_ingest.auth.bearer import ensure_device_access
from telemetry_ingest.config import Settings
from telemetry_ingest.db.session import get_async_session
from telemetry_ingest.models import DeviceConfig
from telemetry_ingest.pipeline.transformer import DeviceConfigSource
from telemetry_ingest.services.device_config import SqlDeviceConfigSource
from telemetry_ingest.services.measurement_store import (
    MeasurementStore,
    SqlMeasurementStore,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session.

    Yields:
        AsyncSession: An async SQLAlchemy session.
    """
    async for session in get_async_session():
        yield session


def get_store(db: Annotated[AsyncSession, Depends(get_db)]) -> MeasurementStore:
    """Return the measurement store bound to the request's session."""
    return SqlMeasurementStore(db)


def get_config_source(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> DeviceConfigSource:
    """Return the device configuration source bound to the request's session."""
    return SqlDeviceConfigSource(db)


def get_settings(request: Request) -> Settings:
    """Return the settings loaded at startup."""
    return request.app.state.settings


async def get_auth_identifier(request: Request) -> str:
    """Return the device identifier authenticated by the bearer token.

    Thin wrapper so ``Depends()`` can reach the ``BearerAuth`` instance
    stored on ``app.state.auth``.
    """
    return await request.app.state.auth.verify(request)


async def get_device(
    device_id: Annotated[str, Path(min_length=1)],
    auth_identifier: Annotated[str, Depends(get_auth_identifier)],
    config_source: Annotated[DeviceConfigSource, Depends(get_config_source)],
) -> DeviceConfig:
    """Resolve the device addressed by the path and check token ownership.

    Raises:
        HTTPException: 404 if the device does not exist.
        HTTPException: 403 if the token belongs to another device.
    """
    device = await config_source.get_device(device_id)
    if device is None:
        raise HTTPException(status_code=404, detail=f"Device '{device_id}' not found.")
    ensure_device_access(auth_identifier, device)
    return device


Store = Annotated[MeasurementStore, Depends(get_store)]
ConfigSource = Annotated[DeviceConfigSource, Depends(get_config_source)]
AppSettings = Annotated[Settings, Depends(get_settings)]
AuthIdentifier = Annotated[str, Depends(get_auth_identifier)]
Device = Annotated[DeviceConfig, Depends(get_device)]
