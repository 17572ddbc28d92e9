"""
Ingestion service: transform a device payload and persist the records.

Runs the value transformer (one configuration fetch, then in-memory
conversion), hands every resulting record to the measurement store in one
bulk insert, and invalidates the device's snapshot cache when anything was
stored. There is no dedup: submitting the same payload twice stores two sets
of records.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from telemetry_ingest.cache.redis_client import invalidate_device_cache
from telemetry_ingest.models import DevicePayload, MeasurementRecord
from telemetry_ingest.pipeline.transformer import DeviceConfigSource, ValueTransformer
from telemetry_ingest.services.measurement_store import MeasurementStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IngestResult:
    """Outcome of one ingest call.

    Attributes:
        device_id: Primary id of the resolved device, or None when no
            channel produced a record.
        received: Number of channel entries in the payload.
        stored: Number of measurement records persisted.
    """

    device_id: str | None
    received: int
    stored: int


async def ingest_payload(
    payload: DevicePayload,
    config_source: DeviceConfigSource,
    store: MeasurementStore,
    *,
    ingested_at: datetime | None = None,
) -> IngestResult:
    """Transform *payload* and persist its measurement records.

    Args:
        payload: Validated inbound payload.
        config_source: Device configuration lookup.
        store: Destination measurement store.
        ingested_at: Server receipt time; defaults to now.

    Returns:
        IngestResult: Received channel count and stored record count.

    Raises:
        DeviceNotFoundError: If the device cannot be resolved.
        OrganizationMissingError: If the device has no organization.
        Exception: Any store failure, for the batch as a whole.
    """
    transformer = ValueTransformer(config_source)
    records: list[MeasurementRecord] = await transformer.transform(
        payload, ingested_at=ingested_at
    )

    device_id = records[0].device_id if records else None

    stored = await store.insert_many(records)
    logger.info(
        "Ingested %d/%d record(s) from %d channel(s) for device %s",
        stored,
        len(records),
        len(payload.values),
        device_id or payload.device_identifier,
    )

    if stored > 0 and device_id is not None:
        await invalidate_device_cache(device_id)

    return IngestResult(device_id=device_id, received=len(payload.values), stored=stored)
