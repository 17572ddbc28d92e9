"""
View builders: reshape stored measurements for dashboards.

Thin projections over the ``MeasurementStore`` query surface. Every builder
returns JSON-serialisable dicts (timestamps as ISO 8601 strings) so results
can be cached in Redis or returned by FastAPI as-is.

- snapshot: latest value per port / per Modbus read.
- latest values: the device's port tree with latest values merged in.
- table: records grouped by ``measured_at``, newest first.
- time series: data points for one port or one read, oldest first, plus stats.
- status summary: per-port last update and quality.
- export: the table flattened to one column per channel, optionally as CSV.

Modbus reads are labelled by tag, then name, then read id.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import datetime
from typing import Any

from telemetry_ingest.models import (
    DeviceConfig,
    MeasurementRecord,
    ModbusPort,
    PortType,
    Quality,
)
from telemetry_ingest.pipeline.read_index import build_read_index
from telemetry_ingest.services.measurement_store import MeasurementQuery, MeasurementStore

logger = logging.getLogger(__name__)

TABLE_LIMIT_DEFAULT = 1000
TIME_SERIES_LIMIT_DEFAULT = 10_000
EXPORT_LIMIT = 100_000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def _read_label(record: MeasurementRecord) -> str:
    channel = record.channel
    return channel.tag or channel.name or channel.read_id or ""


def _decode_dict(record: MeasurementRecord) -> dict[str, Any] | None:
    if record.modbus_decode is None:
        return None
    return record.modbus_decode.model_dump(by_alias=True, mode="json")


def _numeric(value: bool | int | float) -> float:
    return float(value)


def _series_stats(records: list[MeasurementRecord]) -> dict[str, Any]:
    values = [_numeric(r.calibrated_value) for r in records]
    return {
        "count": len(records),
        "minValue": min(values) if values else None,
        "maxValue": max(values) if values else None,
        "avgValue": sum(values) / len(values) if values else None,
        "firstTimestamp": _iso(records[0].measured_at) if records else None,
        "lastTimestamp": _iso(records[-1].measured_at) if records else None,
    }


def _simple_cell(record: MeasurementRecord) -> dict[str, Any]:
    return {
        "rawValue": record.raw_value,
        "calibratedValue": record.calibrated_value,
        "unit": record.unit,
        "quality": record.quality.value,
        "portType": record.channel.port_type.value,
    }


def _modbus_cell(record: MeasurementRecord) -> dict[str, Any]:
    return {
        "readId": record.channel.read_id,
        "slaveId": record.channel.slave_id,
        "readName": record.channel.name,
        "tag": record.channel.tag,
        "rawValue": record.raw_value,
        "calibratedValue": record.calibrated_value,
        "unit": record.unit,
        "quality": record.quality.value,
        "registers": _decode_dict(record),
    }


# ---------------------------------------------------------------------------
# Snapshot / latest values
# ---------------------------------------------------------------------------


async def build_snapshot(device: DeviceConfig, store: MeasurementStore) -> dict[str, Any]:
    """Return the latest value of every port and Modbus read of a device.

    Shape::

        {
          "deviceId": "...",
          "timestamp": "<newest measuredAt>",
          "ports": {
            "AI_1": {"value": ..., "rawValue": ..., "unit": ..., ...},
            "MI_1": {"<slaveId>": {"<readLabel>": {"value": ..., ...}}}
          }
        }
    """
    latest = await store.latest_per_channel(device.id)
    ports: dict[str, Any] = {}

    for record in latest:
        port_key = record.channel.port_key
        if record.channel.port_type is PortType.MODBUS:
            slave = ports.setdefault(port_key, {}).setdefault(
                record.channel.slave_id or "", {}
            )
            slave[_read_label(record)] = {
                "readId": record.channel.read_id,
                "name": record.channel.name,
                "tag": record.channel.tag,
                "value": record.calibrated_value,
                "rawValue": record.raw_value,
                "unit": record.unit,
                "timestamp": _iso(record.measured_at),
                "quality": record.quality.value,
                "registers": _decode_dict(record),
            }
        else:
            port = device.find_port(port_key)
            ports[port_key] = {
                "name": (port.name if port is not None else "") or port_key,
                "value": record.calibrated_value,
                "rawValue": record.raw_value,
                "unit": record.unit,
                "timestamp": _iso(record.measured_at),
                "quality": record.quality.value,
            }

    newest = max((r.measured_at for r in latest), default=None)
    return {"deviceId": device.id, "timestamp": _iso(newest), "ports": ports}


def _latest_fields(record: MeasurementRecord | None) -> dict[str, Any]:
    return {
        "rawValue": record.raw_value if record else None,
        "calibratedValue": record.calibrated_value if record else None,
        "quality": record.quality.value if record else Quality.UNCERTAIN.value,
        "timestamp": _iso(record.measured_at) if record else None,
        "ingestTimestamp": _iso(record.ingested_at) if record else None,
    }


async def build_latest_values(
    device: DeviceConfig, store: MeasurementStore
) -> dict[str, Any]:
    """Return the device's port tree with the latest value merged into each channel.

    Channels that never reported carry ``None`` values and quality
    ``uncertain``.
    """
    latest = {r.channel_key: r for r in await store.latest_per_channel(device.id)}

    ports: list[dict[str, Any]] = []
    for port in device.ports:
        base = {
            "portKey": port.port_key,
            "portType": port.port_type,
            "name": port.name,
            "unit": port.unit,
            "status": port.status,
            "calibration": port.calibration.model_dump(by_alias=True),
            "thresholds": (
                port.thresholds.model_dump(by_alias=True) if port.thresholds else None
            ),
        }
        if isinstance(port, ModbusPort):
            slaves = []
            for slave in port.slaves:
                reads = []
                for read in slave.reads:
                    record = latest.get((port.port_key, read.read_id))
                    entry = read.model_dump(by_alias=True, mode="json")
                    entry.update(_latest_fields(record))
                    entry["rawRegisters"] = (
                        record.modbus_decode.raw_registers_hex
                        if record is not None and record.modbus_decode is not None
                        else None
                    )
                    reads.append(entry)
                slaves.append(
                    {
                        "slaveId": slave.slave_id,
                        "name": slave.name,
                        "serial": slave.serial.model_dump(by_alias=True),
                        "polling": slave.polling.model_dump(by_alias=True),
                        "reads": reads,
                    }
                )
            base["slaves"] = slaves
        else:
            base.update(_latest_fields(latest.get((port.port_key, None))))
        ports.append(base)

    return {
        "device": {"id": device.id, "name": device.name, "status": device.status},
        "count": len(ports),
        "ports": ports,
    }


# ---------------------------------------------------------------------------
# Table / export
# ---------------------------------------------------------------------------


async def build_table(
    device: DeviceConfig,
    store: MeasurementStore,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = TABLE_LIMIT_DEFAULT,
) -> list[dict[str, Any]]:
    """Return records grouped into rows by ``measured_at``, newest first.

    Each row is ``{"ts": ..., "<portKey>": cell, "<modbusPortKey>":
    {"<slaveId>_<readLabel>": cell}}``.
    """
    records = await store.query(
        MeasurementQuery(device_id=device.id, start=start, end=end, limit=limit)
    )

    rows: dict[str, dict[str, Any]] = {}
    for record in records:
        ts = _iso(record.measured_at)
        row = rows.setdefault(ts, {"ts": ts})
        port_key = record.channel.port_key
        if record.channel.port_type is PortType.MODBUS:
            cell_key = f"{record.channel.slave_id}_{_read_label(record)}"
            row.setdefault(port_key, {})[cell_key] = _modbus_cell(record)
        else:
            row[port_key] = _simple_cell(record)

    return list(rows.values())


def flatten_table_row(row: dict[str, Any], device: DeviceConfig) -> dict[str, Any]:
    """Flatten one table row into ``<channel>_value`` / ``<channel>_unit`` columns."""
    flat: dict[str, Any] = {"timestamp": row["ts"]}
    for key, cell in row.items():
        if key == "ts" or not isinstance(cell, dict):
            continue
        if isinstance(device.find_port(key), ModbusPort) or "calibratedValue" not in cell:
            for read_key, read_cell in cell.items():
                flat[f"{key}_{read_key}_value"] = read_cell["calibratedValue"]
                flat[f"{key}_{read_key}_unit"] = read_cell["unit"]
        else:
            flat[f"{key}_value"] = cell["calibratedValue"]
            flat[f"{key}_unit"] = cell["unit"]
    return flat


async def build_export(
    device: DeviceConfig,
    store: MeasurementStore,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[dict[str, Any]]:
    """Return the table view flattened for CSV export."""
    table = await build_table(device, store, start=start, end=end, limit=EXPORT_LIMIT)
    return [flatten_table_row(row, device) for row in table]


def export_to_csv(rows: list[dict[str, Any]]) -> str:
    """Render flattened export rows as CSV, ``timestamp`` first."""
    columns: list[str] = ["timestamp"]
    seen = {"timestamp"}
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, lineterminator="\n")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------


async def build_port_time_series(
    device: DeviceConfig,
    store: MeasurementStore,
    port_key: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = TIME_SERIES_LIMIT_DEFAULT,
) -> dict[str, Any]:
    """Return one port's data points, oldest first, with summary stats."""
    records = await store.query(
        MeasurementQuery(
            device_id=device.id,
            port_key=port_key,
            start=start,
            end=end,
            limit=limit,
            newest_first=False,
        )
    )
    port = device.find_port(port_key)
    return {
        "portKey": port_key,
        "name": (port.name if port is not None else "") or port_key,
        "unit": port.unit if port is not None else None,
        "dataPoints": [
            {
                "ts": _iso(r.measured_at),
                "value": r.calibrated_value,
                "rawValue": r.raw_value,
                "quality": r.quality.value,
            }
            for r in records
        ],
        "stats": _series_stats(records),
    }


async def build_read_time_series(
    device: DeviceConfig,
    store: MeasurementStore,
    read_id: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = TIME_SERIES_LIMIT_DEFAULT,
) -> dict[str, Any]:
    """Return one Modbus read's data points, oldest first, with summary stats.

    Read metadata comes from the current configuration when the read still
    exists there, otherwise from the stored records.
    """
    records = await store.query(
        MeasurementQuery(
            device_id=device.id,
            read_id=read_id,
            start=start,
            end=end,
            limit=limit,
            newest_first=False,
        )
    )
    config = build_read_index(device).get(read_id)
    if config is not None:
        name, tag, unit = config.name, config.tag, config.unit
    elif records:
        name, tag, unit = records[0].channel.name, records[0].channel.tag, records[0].unit
    else:
        name = tag = unit = None

    return {
        "readId": read_id,
        "name": name,
        "tag": tag,
        "unit": unit,
        "dataPoints": [
            {
                "ts": _iso(r.measured_at),
                "value": r.calibrated_value,
                "rawValue": r.raw_value,
                "quality": r.quality.value,
                "registers": _decode_dict(r),
            }
            for r in records
        ],
        "stats": _series_stats(records),
    }


async def build_time_series(
    device: DeviceConfig,
    store: MeasurementStore,
    *,
    port_key: str | None = None,
    read_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = TIME_SERIES_LIMIT_DEFAULT,
) -> dict[str, Any]:
    """Return the time series of a port or of a Modbus read.

    Exactly one of *port_key* and *read_id* must be given.

    Raises:
        ValueError: If neither or both selectors are given.
    """
    if (port_key is None) == (read_id is None):
        raise ValueError("Give exactly one of port_key and read_id")
    if read_id is not None:
        return await build_read_time_series(
            device, store, read_id, start=start, end=end, limit=limit
        )
    return await build_port_time_series(
        device, store, port_key, start=start, end=end, limit=limit
    )


# ---------------------------------------------------------------------------
# Status summary
# ---------------------------------------------------------------------------


async def build_status_summary(
    device: DeviceConfig, store: MeasurementStore
) -> dict[str, Any]:
    """Return a per-port overview: last value, last update and quality."""
    latest = await store.latest_per_channel(device.id)
    by_port: dict[str, list[MeasurementRecord]] = {}
    for record in latest:
        by_port.setdefault(record.channel.port_key, []).append(record)

    port_status: dict[str, Any] = {}
    for port in device.ports:
        records = by_port.get(port.port_key, [])
        newest = max(records, key=lambda r: r.measured_at, default=None)
        entry: dict[str, Any] = {
            "name": port.name,
            "portType": port.port_type,
            "lastUpdate": _iso(newest.measured_at) if newest else None,
            "quality": newest.quality.value if newest else "unknown",
        }
        if isinstance(port, ModbusPort):
            entry["readCount"] = sum(len(slave.reads) for slave in port.slaves)
            entry["slaveCount"] = len(port.slaves)
        else:
            entry["value"] = newest.calibrated_value if newest else None
            entry["unit"] = port.unit
        port_status[port.port_key] = entry

    last_update = max((r.measured_at for r in latest), default=None)
    return {
        "deviceId": device.id,
        "deviceName": device.name,
        "status": device.status,
        "lastUpdate": _iso(last_update),
        "portCount": len(device.ports),
        "portStatus": port_status,
    }
