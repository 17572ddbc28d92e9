"""
Value transformer: raw device payload -> calibrated measurement records.

For one payload the transformer:

1. Resolves the device (by primary id or configuration id) and its owning
   organization. Both are fatal when missing.
2. Builds a fresh read configuration index from the device's current config.
3. Converts each channel:
   - DIGITAL: stored as-is, never scaled.
   - ANALOG: ``raw * port.scaling + port.offset``.
   - MODBUS: register words are decoded, then read-level calibration is
     applied, then port-level calibration on top of that.

Per-channel problems (unknown port, slave or read, malformed registers) are
logged and the channel is skipped; the rest of the payload is still
transformed. The transformer never persists anything.

CHANGELOG:
- 2026-10-16: Skip only the malformed register entry, not its slave group
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from telemetry_ingest.errors import (
    DeviceNotFoundError,
    OrganizationMissingError,
    RegisterDecodeError,
)
from telemetry_ingest.models import (
    AnalogPort,
    ChannelRef,
    DeviceConfig,
    DevicePayload,
    DigitalPort,
    MeasurementRecord,
    ModbusDecode,
    ModbusPort,
    PortType,
    Quality,
    RegisterReading,
    SlaveReading,
)
from telemetry_ingest.pipeline.codec import (
    decode_registers,
    parse_register_word,
    registers_to_hex,
    required_word_count,
)
from telemetry_ingest.pipeline.read_index import ReadConfig, build_read_index

logger = logging.getLogger(__name__)


class DeviceConfigSource(Protocol):
    """Read-only lookup of a device's current configuration."""

    async def get_device(self, identifier: str) -> DeviceConfig | None:
        """Return the device matching a primary id or configuration id."""
        ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_utc(ts: datetime | None) -> datetime:
    """Return *ts* as an aware UTC datetime; ``None`` means now."""
    if ts is None:
        return datetime.now(UTC)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_finite_float(value: Any) -> bool:
    """Return True when *value* converts to a finite float."""
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


class _RecordFactory:
    """Stamps device/organization/timestamps onto every record of a payload."""

    def __init__(
        self,
        device: DeviceConfig,
        organization_id: str,
        measured_at: datetime,
        ingested_at: datetime,
    ) -> None:
        self.device = device
        self.organization_id = organization_id
        self.measured_at = measured_at
        self.ingested_at = ingested_at

    def build(
        self,
        channel: ChannelRef,
        raw_value: bool | int | float,
        calibrated_value: bool | int | float,
        unit: str | None,
        modbus_decode: ModbusDecode | None = None,
    ) -> MeasurementRecord:
        return MeasurementRecord(
            measured_at=self.measured_at,
            ingested_at=self.ingested_at,
            device_id=self.device.id,
            organization_id=self.organization_id,
            channel=channel,
            raw_value=raw_value,
            calibrated_value=calibrated_value,
            unit=unit,
            quality=Quality.GOOD,
            modbus_decode=modbus_decode,
        )


# ---------------------------------------------------------------------------
# Per-port-type conversion
# ---------------------------------------------------------------------------


def _transform_digital(
    port: DigitalPort,
    raw: Any,
    factory: _RecordFactory,
) -> MeasurementRecord | None:
    if not isinstance(raw, bool | int | float):
        logger.warning(
            "Digital port %s: non-numeric reading %r, skipping", port.port_key, raw
        )
        return None
    if not _is_finite_float(raw):
        logger.warning(
            "Digital port %s: reading out of range, skipping", port.port_key
        )
        return None
    return factory.build(
        ChannelRef(port_key=port.port_key, port_type=PortType.DIGITAL),
        raw_value=raw,
        calibrated_value=raw,
        unit=port.unit,
    )


def _transform_analog(
    port: AnalogPort,
    raw: Any,
    factory: _RecordFactory,
) -> MeasurementRecord | None:
    if not _is_number(raw):
        logger.warning(
            "Analog port %s: non-numeric reading %r, skipping", port.port_key, raw
        )
        return None
    if not _is_finite_float(raw):
        logger.warning(
            "Analog port %s: reading out of range, skipping", port.port_key
        )
        return None
    return factory.build(
        ChannelRef(port_key=port.port_key, port_type=PortType.ANALOG),
        raw_value=raw,
        calibrated_value=port.calibration.apply(raw),
        unit=port.unit,
    )


def _transform_modbus_read(
    port: ModbusPort,
    slave_id: str,
    words: list[int | str],
    config: ReadConfig,
    factory: _RecordFactory,
) -> MeasurementRecord:
    """Decode one read and apply read-level, then port-level calibration.

    Raises:
        RegisterDecodeError: If the register words cannot be decoded.
    """
    # words beyond the declared width are ignored, never parsed
    needed = required_word_count(config.bits_to_read)
    parsed = [parse_register_word(word) for word in words[:needed]]
    decoded = decode_registers(parsed, config.bits_to_read, config.endianness)
    read_calibrated = config.calibrate(decoded)
    calibrated = port.calibration.apply(read_calibrated)

    return factory.build(
        ChannelRef(
            port_key=port.port_key,
            port_type=PortType.MODBUS,
            read_id=config.read_id,
            slave_id=slave_id,
            name=config.name,
            tag=config.tag,
        ),
        raw_value=decoded,
        calibrated_value=calibrated,
        unit=config.unit or port.unit,
        modbus_decode=ModbusDecode(
            raw_registers_hex=registers_to_hex(parsed),
            bits_to_read=config.bits_to_read,
            endianness=config.endianness,
        ),
    )


def _transform_modbus(
    port: ModbusPort,
    raw: Any,
    read_index: dict[str, ReadConfig],
    factory: _RecordFactory,
) -> list[MeasurementRecord]:
    if not isinstance(raw, list):
        logger.warning(
            "Modbus port %s: expected a list of slave readings, got %s, skipping",
            port.port_key,
            type(raw).__name__,
        )
        return []

    records: list[MeasurementRecord] = []
    for group in raw:
        if not isinstance(group, dict):
            logger.warning(
                "Modbus port %s: slave reading is not an object, skipping",
                port.port_key,
            )
            continue
        entries = group.get("registers") or []
        try:
            slave_reading = SlaveReading.model_validate({**group, "registers": []})
        except ValidationError as exc:
            logger.warning(
                "Modbus port %s: malformed slave reading skipped (%d error(s))",
                port.port_key,
                exc.error_count(),
            )
            continue

        slave_id = slave_reading.slave_id
        if port.find_slave(slave_id) is None:
            logger.warning(
                "Slave %s not found in port %s config, skipping",
                slave_id,
                port.port_key,
            )
            continue
        if not isinstance(entries, list):
            logger.warning(
                "Modbus port %s, slave %s: registers is not a list, skipping",
                port.port_key,
                slave_id,
            )
            continue

        for entry in entries:
            try:
                register = RegisterReading.model_validate(entry)
            except ValidationError as exc:
                logger.warning(
                    "Modbus port %s, slave %s: malformed register entry skipped "
                    "(%d error(s))",
                    port.port_key,
                    slave_id,
                    exc.error_count(),
                )
                continue

            config = read_index.get(register.read_id)
            if config is None:
                logger.warning(
                    "Read config not found for %s (port %s, slave %s), skipping",
                    register.read_id,
                    port.port_key,
                    slave_id,
                )
                continue
            if config.slave_id != slave_id:
                logger.debug(
                    "Read %s is configured under slave %s but arrived for slave %s",
                    config.read_id,
                    config.slave_id,
                    slave_id,
                )

            try:
                records.append(
                    _transform_modbus_read(port, slave_id, register.value, config, factory)
                )
            except RegisterDecodeError as exc:
                logger.warning(
                    "Error decoding read %s (port %s, slave %s): %s",
                    register.read_id,
                    port.port_key,
                    slave_id,
                    exc,
                )
    return records


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve_organization(device: DeviceConfig) -> str:
    """Return the device's organization id.

    Raises:
        OrganizationMissingError: If the device has no organization.
    """
    if not device.organization_id:
        raise OrganizationMissingError(device.id)
    return device.organization_id


def transform_values(
    device: DeviceConfig,
    payload: DevicePayload,
    *,
    ingested_at: datetime | None = None,
) -> list[MeasurementRecord]:
    """Transform a payload against an already-resolved device configuration.

    Synchronous and side-effect free apart from logging.

    Args:
        device: The device's current configuration.
        payload: The inbound telemetry payload.
        ingested_at: Server receipt time; defaults to now (UTC).

    Returns:
        list[MeasurementRecord]: One record per successfully converted
        channel reading, in payload order.

    Raises:
        OrganizationMissingError: If the device has no organization.
    """
    organization_id = resolve_organization(device)

    ingested = _as_utc(ingested_at)
    measured = _as_utc(payload.measured_at) if payload.measured_at else ingested
    factory = _RecordFactory(device, organization_id, measured, ingested)

    ports = device.port_map()
    read_index = build_read_index(device)

    records: list[MeasurementRecord] = []
    for port_key, raw in payload.values.items():
        if raw is None:
            continue

        port = ports.get(port_key)
        if port is None:
            logger.warning(
                "Port not found in device %s config: %s, skipping", device.id, port_key
            )
            continue

        if isinstance(port, ModbusPort):
            records.extend(_transform_modbus(port, raw, read_index, factory))
        elif isinstance(port, AnalogPort):
            record = _transform_analog(port, raw, factory)
            if record is not None:
                records.append(record)
        else:
            record = _transform_digital(port, raw, factory)
            if record is not None:
                records.append(record)

    logger.debug(
        "Transformed %d record(s) from %d channel(s) for device %s",
        len(records),
        len(payload.values),
        device.id,
    )
    return records


class ValueTransformer:
    """Entry point of the pipeline: payload in, measurement records out.

    Stateless between calls: every call fetches the device configuration
    afresh from *config_source* and rebuilds the read index.

    Attributes:
        config_source: Lookup returning the device's current configuration.
    """

    def __init__(self, config_source: DeviceConfigSource) -> None:
        self.config_source = config_source

    async def transform(
        self,
        payload: DevicePayload,
        *,
        ingested_at: datetime | None = None,
    ) -> list[MeasurementRecord]:
        """Resolve the payload's device and transform its channel readings.

        Raises:
            DeviceNotFoundError: If no device matches the identifier.
            OrganizationMissingError: If the device has no organization.
        """
        device = await self.config_source.get_device(payload.device_identifier)
        if device is None:
            raise DeviceNotFoundError(payload.device_identifier)
        return transform_values(device, payload, ingested_at=ingested_at)
