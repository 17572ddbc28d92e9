"""
Device configuration lookup.

Resolves a device identifier (primary id or external configuration id) to a
``DeviceConfig`` with its port tree validated into typed port variants. This
is read-only: ingestion and the views never write device configuration.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import logging
from collections.abc import Iterable

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_ingest.db.models import Device
from telemetry_ingest.models import DeviceConfig

logger = logging.getLogger(__name__)


def device_to_config(device: Device) -> DeviceConfig:
    """Validate an ORM ``Device`` row into a typed ``DeviceConfig``.

    Raises:
        pydantic.ValidationError: If the stored port tree is malformed.
    """
    return DeviceConfig.model_validate(
        {
            "id": device.id,
            "configId": device.config_id,
            "name": device.name,
            "organizationId": device.organization_id,
            "status": device.status,
            "ports": device.ports or [],
        }
    )


class SqlDeviceConfigSource:
    """Device configuration lookup backed by the ``devices`` table.

    Attributes:
        db: Async SQLAlchemy session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_device(self, identifier: str) -> DeviceConfig | None:
        """Return the device whose id or config_id equals *identifier*.

        Raises:
            pydantic.ValidationError: If the stored port tree is malformed.
        """
        stmt = select(Device).where(
            or_(Device.id == identifier, Device.config_id == identifier)
        )
        result = await self.db.execute(stmt)
        device = result.scalars().first()
        if device is None:
            return None
        try:
            return device_to_config(device)
        except ValidationError:
            logger.error(
                "Stored configuration of device %s failed validation",
                device.id,
                exc_info=True,
            )
            raise


class StaticDeviceConfigSource:
    """In-memory device configuration lookup (tests and local development)."""

    def __init__(self, devices: Iterable[DeviceConfig] = ()) -> None:
        self._devices: dict[str, DeviceConfig] = {}
        for device in devices:
            self.add(device)

    def add(self, device: DeviceConfig) -> None:
        """Register or replace *device*."""
        self._devices[device.id] = device

    async def get_device(self, identifier: str) -> DeviceConfig | None:
        """Return the device whose id or config_id equals *identifier*."""
        device = self._devices.get(identifier)
        if device is not None:
            return device
        for candidate in self._devices.values():
            if candidate.config_id and candidate.config_id == identifier:
                return candidate
        return None
