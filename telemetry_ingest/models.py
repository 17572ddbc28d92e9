"""
Pydantic models for device configuration, inbound payloads and measurements.

Device configuration is persisted as a loosely-shaped document (the port tree
of a device). On load it is validated into a closed set of port variants
(``DigitalPort``, ``AnalogPort``, ``ModbusPort``) so the pipeline never has to
probe for optional fields at runtime.

All models accept and emit the camelCase keys used on the wire
(``portKey``, ``bitsToRead``, ``measuredAt``...) while exposing snake_case
attributes in Python.

CHANGELOG:
- 2026-10-16: Accept flat read scaling/offset as read calibration
- 2026-10-16: Infer missing portType from the legacy DI_/AI_/MI_ key prefix
- 2026-10-16: Initial creation
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PortType(StrEnum):
    """Physical channel kind of a device port."""

    DIGITAL = "DIGITAL"
    ANALOG = "ANALOG"
    MODBUS = "MODBUS"


class Endianness(StrEnum):
    """Register-level byte ordering of a multi-word Modbus value."""

    ABCD = "ABCD"
    CDAB = "CDAB"
    BADC = "BADC"
    DCBA = "DCBA"
    NONE = "NONE"


class Quality(StrEnum):
    """Quality flag attached to every measurement record."""

    GOOD = "good"
    BAD = "bad"
    UNCERTAIN = "uncertain"


class RegisterType(StrEnum):
    """Modbus register table addressed by a read."""

    COIL = "coil"
    DISCRETE = "discrete"
    HOLDING = "holding"
    INPUT = "input"


FUNCTION_CODE_TO_REGISTER_TYPE: dict[str, RegisterType] = {
    "fc_1": RegisterType.COIL,
    "fc_2": RegisterType.DISCRETE,
    "fc_3": RegisterType.HOLDING,
    "fc_4": RegisterType.INPUT,
}
"""Maps Modbus read function codes to the register table they address."""

SUPPORTED_BIT_WIDTHS: frozenset[int] = frozenset({8, 16, 32, 64})

# Legacy devices were created before portType was stored on the port.
_PORT_KEY_PREFIXES: dict[str, PortType] = {
    "DI_": PortType.DIGITAL,
    "AI_": PortType.ANALOG,
    "MI_": PortType.MODBUS,
}


def register_type_for(function_code: str | int) -> RegisterType:
    """Return the register type addressed by a Modbus function code.

    Accepts either the stored form (``"fc_3"``) or the bare number (``3``).

    Raises:
        ValueError: If the function code is not one of the four read codes.
    """
    key = f"fc_{function_code}" if isinstance(function_code, int) else function_code
    register_type = FUNCTION_CODE_TO_REGISTER_TYPE.get(str(key).lower())
    if register_type is None:
        raise ValueError(f"Invalid function code: {function_code}")
    return register_type


def port_type_from_key(port_key: str) -> PortType | None:
    """Infer the port type from a legacy ``DI_``/``AI_``/``MI_`` key prefix."""
    for prefix, port_type in _PORT_KEY_PREFIXES.items():
        if port_key.startswith(prefix):
            return port_type
    return None


class _CamelModel(BaseModel):
    """Base model accepting camelCase keys and snake_case field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Device configuration tree
# ---------------------------------------------------------------------------


class Calibration(_CamelModel):
    """Linear calibration ``value * scaling + offset``.

    Absent (``None``) values fall back to the identity transform.
    """

    scaling: float = 1.0
    offset: float = 0.0

    @field_validator("scaling", mode="before")
    @classmethod
    def _default_scaling(cls, v: Any) -> Any:
        return 1.0 if v is None else v

    @field_validator("offset", mode="before")
    @classmethod
    def _default_offset(cls, v: Any) -> Any:
        return 0.0 if v is None else v

    def apply(self, value: float) -> float:
        """Return ``value * scaling + offset``."""
        return value * self.scaling + self.offset


class Thresholds(_CamelModel):
    """Optional alarm band of a port. Stored for dashboards only."""

    min: float | None = None
    max: float | None = None
    message: str | None = None


class SerialSettings(_CamelModel):
    """Serial-line parameters of a Modbus slave."""

    baud_rate: int = 9600
    data_bits: int = 8
    stop_bits: int = 1
    parity: Literal["none", "even", "odd"] = "none"


class PollingPolicy(_CamelModel):
    """How often, and how patiently, the device polls a slave."""

    interval: int = 1000
    timeout: int = 1000
    retries: int = 3


class ModbusRead(_CamelModel):
    """One register group decoded into a single logical value."""

    read_id: str
    name: str = ""
    tag: str | None = None
    unit: str | None = None
    function_code: str | None = None
    register_type: RegisterType | None = None
    start_address: int = 0
    bits_to_read: int = 16
    endianness: Endianness = Endianness.NONE
    calibration: Calibration = Field(default_factory=Calibration)

    @model_validator(mode="before")
    @classmethod
    def _nest_flat_calibration(cls, data: Any) -> Any:
        """Accept legacy reads that carry ``scaling``/``offset`` at the top level."""
        if not isinstance(data, dict) or data.get("calibration") is not None:
            return data
        if "scaling" not in data and "offset" not in data:
            return data
        flat = {key: data[key] for key in ("scaling", "offset") if key in data}
        rest = {key: v for key, v in data.items() if key not in ("scaling", "offset")}
        return {**rest, "calibration": flat}

    @field_validator("endianness", mode="before")
    @classmethod
    def _default_endianness(cls, v: Any) -> Any:
        if v is None or v == "":
            return Endianness.NONE
        return str(v).upper()

    @field_validator("calibration", mode="before")
    @classmethod
    def _default_calibration(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("bits_to_read")
    @classmethod
    def _bits_to_read_supported(cls, v: int) -> int:
        if v not in SUPPORTED_BIT_WIDTHS:
            raise ValueError(
                f"bitsToRead must be one of {sorted(SUPPORTED_BIT_WIDTHS)}, got {v}"
            )
        return v

    @model_validator(mode="after")
    def _derive_register_type(self) -> ModbusRead:
        """Derive registerType from functionCode when it was not stored."""
        if self.register_type is None and self.function_code:
            self.register_type = register_type_for(self.function_code)
        return self

    @property
    def word_count(self) -> int:
        """Number of 16-bit register words this read occupies."""
        return (self.bits_to_read + 15) // 16


class ModbusSlave(_CamelModel):
    """One addressable device on a Modbus serial bus."""

    slave_id: str
    name: str = ""
    serial: SerialSettings = Field(default_factory=SerialSettings)
    polling: PollingPolicy = Field(default_factory=PollingPolicy)
    reads: list[ModbusRead] = Field(default_factory=list)

    @field_validator("slave_id", mode="before")
    @classmethod
    def _slave_id_as_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class _PortBase(_CamelModel):
    port_key: str
    name: str = ""
    unit: str | None = None
    status: Literal["active", "inactive"] = "active"
    calibration: Calibration = Field(
        default_factory=Calibration,
        validation_alias=AliasChoices("calibration", "calibrationValue"),
    )
    thresholds: Thresholds | None = None

    @field_validator("calibration", mode="before")
    @classmethod
    def _default_calibration(cls, v: Any) -> Any:
        return {} if v is None else v


class DigitalPort(_PortBase):
    """Digital input. Readings are stored without calibration."""

    port_type: Literal["DIGITAL"] = "DIGITAL"


class AnalogPort(_PortBase):
    """Analog input calibrated with the port's scaling/offset."""

    port_type: Literal["ANALOG"] = "ANALOG"


class ModbusPort(_PortBase):
    """Modbus RTU port aggregating one or more slaves."""

    port_type: Literal["MODBUS"] = "MODBUS"
    slaves: list[ModbusSlave] = Field(
        default_factory=list,
        validation_alias=AliasChoices("slaves", "modbusSlaves"),
    )

    def find_slave(self, slave_id: str | int) -> ModbusSlave | None:
        """Return the configured slave with the given id, compared as strings."""
        wanted = str(slave_id)
        for slave in self.slaves:
            if slave.slave_id == wanted:
                return slave
        return None


Port = Annotated[DigitalPort | AnalogPort | ModbusPort, Field(discriminator="port_type")]


class DeviceConfig(_CamelModel):
    """A device with its full, current port/slave/read configuration.

    Attributes:
        id: Primary identity of the device.
        config_id: Externally issued configuration identifier, accepted in
            place of ``id`` by ingestion and views.
        name: Display name.
        organization_id: Owning organization. ``None`` means the device
            cannot accept measurements.
        status: Operational status reported to dashboards.
        ports: Typed port variants keyed by an immutable ``port_key``.
    """

    id: str
    config_id: str | None = None
    name: str = ""
    organization_id: str | None = None
    status: Literal["online", "offline", "maintenance"] = "offline"
    ports: list[Port] = Field(default_factory=list)

    @field_validator("ports", mode="before")
    @classmethod
    def _infer_port_types(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        ports: list[Any] = []
        for raw in v:
            if isinstance(raw, dict) and not raw.get("portType", raw.get("port_type")):
                inferred = port_type_from_key(str(raw.get("portKey", raw.get("port_key", ""))))
                if inferred is not None:
                    raw = {**raw, "portType": inferred.value}
            ports.append(raw)
        return ports

    def port_map(self) -> dict[str, DigitalPort | AnalogPort | ModbusPort]:
        """Return the device's ports keyed by ``port_key``."""
        return {port.port_key: port for port in self.ports}

    def find_port(self, port_key: str) -> DigitalPort | AnalogPort | ModbusPort | None:
        """Return the port with the given key, or ``None``."""
        return self.port_map().get(port_key)


# ---------------------------------------------------------------------------
# Inbound payload
# ---------------------------------------------------------------------------


class RegisterReading(_CamelModel):
    """Raw register words reported for one configured read."""

    read_id: str
    value: list[int | str]


class SlaveReading(_CamelModel):
    """All register reads reported for one slave on a Modbus port."""

    slave_id: str
    registers: list[RegisterReading] = Field(default_factory=list)

    @field_validator("slave_id", mode="before")
    @classmethod
    def _slave_id_as_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class DevicePayload(_CamelModel):
    """One telemetry cycle reported by a device.

    ``values`` maps a port key to either a scalar (digital/analog) or a list
    of slave readings (Modbus). Channel values stay untyped here so that a
    single malformed channel is rejected by the transformer, not by payload
    validation.
    """

    device_identifier: str = Field(
        validation_alias=AliasChoices("deviceIdentifier", "device_identifier", "deviceId"),
        min_length=1,
    )
    measured_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("measuredAt", "measured_at", "ts"),
    )
    values: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Outbound measurement record
# ---------------------------------------------------------------------------


class ChannelRef(_CamelModel):
    """Identifies the channel a measurement was read from."""

    port_key: str
    port_type: PortType
    read_id: str | None = None
    slave_id: str | None = None
    name: str | None = None
    tag: str | None = None


class ModbusDecode(_CamelModel):
    """Audit trail of how a Modbus reading was decoded."""

    raw_registers_hex: list[str]
    bits_to_read: int
    endianness: Endianness


class MeasurementRecord(_CamelModel):
    """A single calibrated measurement. Immutable once created.

    Attributes:
        measured_at: Device-reported timestamp shared by the whole payload.
        ingested_at: Server receipt time.
        device_id: Primary identity of the source device.
        organization_id: Owning organization, resolved from the device.
        channel: Port (and for Modbus, read/slave) the value came from.
        raw_value: Decoded value before any calibration. For Modbus this is
            the reassembled unsigned integer.
        calibrated_value: Value after calibration.
        unit: Engineering unit, if configured.
        quality: Always ``good`` when produced by the transformer.
        modbus_decode: Register audit trail for Modbus records.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    measured_at: datetime
    ingested_at: datetime
    device_id: str
    organization_id: str
    channel: ChannelRef
    raw_value: bool | int | float
    calibrated_value: bool | int | float
    unit: str | None = None
    quality: Quality = Quality.GOOD
    modbus_decode: ModbusDecode | None = None

    @property
    def channel_key(self) -> tuple[str, str | None]:
        """``(port_key, read_id)`` pair identifying the logical channel."""
        return (self.channel.port_key, self.channel.read_id)


class ChannelStats(_CamelModel):
    """Aggregate statistics of ``calibrated_value`` over a time range."""

    count: int
    min: float | None = None
    max: float | None = None
    avg: float | None = None
    last: float | None = None
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None
