"""
Read configuration index: flat ``readId -> ReadConfig`` lookup for a device.

Built from the device's current port/slave/read tree at the start of every
ingest call. The index is never cached across requests because a device's
Modbus configuration may change between two polls.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from telemetry_ingest.models import DeviceConfig, Endianness, ModbusPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReadConfig:
    """Decoding and calibration parameters of a single Modbus read.

    Attributes:
        read_id: Globally unique read identifier.
        slave_id: Slave the read is configured under.
        port_key: Modbus port owning the slave.
        start_address: First register address of the read.
        bits_to_read: Width of the decoded value (8, 16, 32 or 64).
        scaling: Read-level multiplicative calibration.
        offset: Read-level additive calibration.
        endianness: Byte-order scheme used to reassemble the words.
        name: Human-readable read name.
        tag: Optional short label used by dashboards.
        unit: Optional engineering unit of the read.
    """

    read_id: str
    slave_id: str
    port_key: str
    start_address: int
    bits_to_read: int
    scaling: float = 1.0
    offset: float = 0.0
    endianness: Endianness = Endianness.NONE
    name: str = ""
    tag: str | None = None
    unit: str | None = None

    def calibrate(self, value: float) -> float:
        """Apply the read-level ``value * scaling + offset``."""
        return value * self.scaling + self.offset

    @property
    def label(self) -> str:
        """Display label: tag, then name, then read id."""
        return self.tag or self.name or self.read_id


def build_read_index(device: DeviceConfig) -> dict[str, ReadConfig]:
    """Flatten every Modbus read of *device* into a ``readId`` lookup.

    Runs in O(total reads). Read ids are expected to be globally unique;
    if one appears twice the later definition wins and a warning is logged.

    Args:
        device: Device with its current port configuration.

    Returns:
        dict[str, ReadConfig]: Mapping of read id to flattened config.
    """
    index: dict[str, ReadConfig] = {}

    for port in device.ports:
        if not isinstance(port, ModbusPort):
            continue
        for slave in port.slaves:
            for read in slave.reads:
                if read.read_id in index:
                    logger.warning(
                        "Duplicate readId %s on device %s (port %s, slave %s); "
                        "later definition wins",
                        read.read_id,
                        device.id,
                        port.port_key,
                        slave.slave_id,
                    )
                index[read.read_id] = ReadConfig(
                    read_id=read.read_id,
                    slave_id=slave.slave_id,
                    port_key=port.port_key,
                    start_address=read.start_address,
                    bits_to_read=read.bits_to_read,
                    scaling=read.calibration.scaling,
                    offset=read.calibration.offset,
                    endianness=read.endianness,
                    name=read.name,
                    tag=read.tag,
                    unit=read.unit,
                )

    return index
