"""
GET /v1/devices/{device_id}/... read-side views of stored measurements.

Every route resolves the device (by id or configuration id), checks that the
bearer token belongs to it, and delegates to a view builder. The snapshot is
served through the Redis cache with a ``CACHE_TTL_S`` expiry.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from telemetry_ingest.api.deps import AppSettings, Device, Store
from telemetry_ingest.cache.redis_client import cache_snapshot, get_cached_snapshot
from telemetry_ingest.models import ChannelStats
from telemetry_ingest.pipeline.read_index import build_read_index
from telemetry_ingest.services.measurement_store import MeasurementQuery
from telemetry_ingest.services.views import (
    TIME_SERIES_LIMIT_DEFAULT,
    build_export,
    build_latest_values,
    build_snapshot,
    build_status_summary,
    build_table,
    build_time_series,
    export_to_csv,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/devices/{device_id}", tags=["views"])

MAX_QUERY_LIMIT = 100_000

Start = Annotated[datetime | None, Query(description="Inclusive lower bound (ISO 8601).")]
End = Annotated[datetime | None, Query(description="Inclusive upper bound (ISO 8601).")]
Limit = Annotated[int | None, Query(ge=1, le=MAX_QUERY_LIMIT)]


def _check_window(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=422, detail="start must be before end.")


# ---------------------------------------------------------------------------
# Latest state
# ---------------------------------------------------------------------------


@router.get("/snapshot")
async def snapshot(device: Device, store: Store, settings: AppSettings) -> dict[str, Any]:
    """Return the latest value of every channel, served from cache when fresh."""
    cached = await get_cached_snapshot(device.id)
    if cached is not None:
        return cached

    result = await build_snapshot(device, store)
    await cache_snapshot(device.id, result, settings.cache_ttl_s)
    return result


@router.get("/latest")
async def latest(device: Device, store: Store) -> dict[str, Any]:
    """Return the device's port tree with the latest values merged in."""
    return await build_latest_values(device, store)


@router.get("/status")
async def status(device: Device, store: Store) -> dict[str, Any]:
    """Return the per-port status summary."""
    return await build_status_summary(device, store)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/values")
async def values(
    device: Device,
    store: Store,
    settings: AppSettings,
    start: Start = None,
    end: End = None,
    port_key: Annotated[str | None, Query(alias="portKey")] = None,
    read_id: Annotated[str | None, Query(alias="readId")] = None,
    limit: Limit = None,
) -> list[dict[str, Any]]:
    """Return raw measurement records, newest first."""
    _check_window(start, end)
    records = await store.query(
        MeasurementQuery(
            device_id=device.id,
            start=start,
            end=end,
            port_key=port_key,
            read_id=read_id,
            limit=limit or settings.query_limit_default,
        )
    )
    return [record.model_dump(by_alias=True, mode="json") for record in records]


@router.get("/table")
async def table(
    device: Device,
    store: Store,
    settings: AppSettings,
    start: Start = None,
    end: End = None,
    limit: Limit = None,
) -> list[dict[str, Any]]:
    """Return measurements grouped into rows by timestamp, newest first."""
    _check_window(start, end)
    return await build_table(
        device,
        store,
        start=start,
        end=end,
        limit=limit or settings.query_limit_default,
    )


@router.get("/timeseries/modbus/{read_id}")
async def read_time_series(
    read_id: str,
    device: Device,
    store: Store,
    start: Start = None,
    end: End = None,
    limit: Limit = None,
) -> dict[str, Any]:
    """Return the time series of one Modbus read, oldest first.

    Raises:
        HTTPException: 404 if the read is neither configured nor stored.
    """
    _check_window(start, end)
    result = await build_time_series(
        device,
        store,
        read_id=read_id,
        start=start,
        end=end,
        limit=limit or TIME_SERIES_LIMIT_DEFAULT,
    )
    if read_id not in build_read_index(device) and not result["dataPoints"]:
        raise HTTPException(status_code=404, detail=f"No data found for read '{read_id}'.")
    return result


@router.get("/timeseries/{port_key}")
async def port_time_series(
    port_key: str,
    device: Device,
    store: Store,
    start: Start = None,
    end: End = None,
    limit: Limit = None,
) -> dict[str, Any]:
    """Return the time series of one port, oldest first.

    Raises:
        HTTPException: 404 if the port is not configured on the device.
    """
    _check_window(start, end)
    if device.find_port(port_key) is None:
        raise HTTPException(status_code=404, detail=f"Port '{port_key}' not found.")
    return await build_time_series(
        device,
        store,
        port_key=port_key,
        start=start,
        end=end,
        limit=limit or TIME_SERIES_LIMIT_DEFAULT,
    )


@router.get("/stats/{port_key}", response_model=ChannelStats, response_model_by_alias=True)
async def stats(
    port_key: str,
    device: Device,
    store: Store,
    read_id: Annotated[str | None, Query(alias="readId")] = None,
    start: Start = None,
    end: End = None,
) -> ChannelStats:
    """Return count/min/max/avg/last of a port (or one of its reads).

    Raises:
        HTTPException: 404 if no measurement matches.
    """
    _check_window(start, end)
    result = await store.aggregate(
        device.id, port_key=port_key, read_id=read_id, start=start, end=end
    )
    if result is None:
        raise HTTPException(status_code=404, detail=f"No data found for port '{port_key}'.")
    return result


@router.get("/export", response_model=None)
async def export(
    device: Device,
    store: Store,
    start: Start = None,
    end: End = None,
    export_format: Annotated[Literal["json", "csv"], Query(alias="format")] = "json",
) -> list[dict[str, Any]] | Response:
    """Return the flattened export table as JSON rows or as a CSV file."""
    _check_window(start, end)
    rows = await build_export(device, store, start=start, end=end)
    if export_format == "csv":
        return Response(
            content=export_to_csv(rows),
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="{device.id}_export.csv"'
            },
        )
    return rows
