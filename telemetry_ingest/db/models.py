"""
SQLAlchemy ORM models for the telemetry database.

``Device`` holds a device's identity, owning organization and its port
configuration tree (JSONB, validated into typed port variants on read).
``Measurement`` is the append-only TimescaleDB hypertable of calibrated
readings. Its primary key is a surrogate id plus ``measured_at`` (hypertables
require the time column in every unique constraint), so re-submitting a
payload stores duplicate rows rather than being rejected.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    Double,
    Identity,
    Index,
    Numeric,
    SmallInteger,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ORM models."""

    pass


class Device(Base):
    """A field device and its current port configuration.

    Attributes:
        id: Primary identity of the device.
        config_id: Externally issued configuration identifier (unique).
        name: Display name.
        organization_id: Owning organization; NULL blocks ingestion.
        status: online / offline / maintenance.
        ports: Port tree as stored (list of port documents).
    """

    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    config_id: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    organization_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'offline'")
    )
    ports: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )

    def __repr__(self) -> str:
        """Return string representation of the Device."""
        return f"Device(id={self.id!r}, config_id={self.config_id!r}, name={self.name!r})"


class Measurement(Base):
    """One calibrated channel reading.

    Attributes:
        id: Surrogate identity (no dedup key exists).
        measured_at: Device-reported timestamp (UTC).
        ingested_at: Server receipt time (UTC).
        device_id: Source device.
        organization_id: Owning organization at ingest time.
        port_key: Port the reading came from.
        port_type: DIGITAL / ANALOG / MODBUS.
        read_id: Modbus read id (NULL for digital/analog).
        slave_id: Modbus slave id (NULL for digital/analog).
        read_name: Modbus read name.
        read_tag: Modbus read tag.
        raw_value: Pre-calibration value. NUMERIC keeps 64-bit integers exact.
        calibrated_value: Value after calibration.
        unit: Engineering unit.
        quality: good / bad / uncertain.
        raw_registers: Hex register words (Modbus audit trail).
        bits_to_read: Modbus decode width.
        endianness: Modbus byte order.
    """

    __tablename__ = "measurements"
    __table_args__ = (
        Index("ix_measurements_device_measured_at", "device_id", text("measured_at DESC")),
        Index(
            "ix_measurements_device_channel",
            "device_id",
            "port_key",
            "read_id",
            text("measured_at DESC"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)
    measured_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, nullable=False
    )
    ingested_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    device_id: Mapped[str] = mapped_column(Text, nullable=False)
    organization_id: Mapped[str] = mapped_column(Text, nullable=False)
    port_key: Mapped[str] = mapped_column(Text, nullable=False)
    port_type: Mapped[str] = mapped_column(Text, nullable=False)
    read_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    slave_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    read_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    read_tag: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_value: Mapped[Decimal] = mapped_column(Numeric, nullable=False)
    calibrated_value: Mapped[float] = mapped_column(Double, nullable=False)
    unit: Mapped[str | None] = mapped_column(Text, nullable=True)
    quality: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'good'")
    )
    raw_registers: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
    bits_to_read: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    endianness: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of the Measurement."""
        return (
            f"Measurement(device_id={self.device_id!r}, "
            f"measured_at={self.measured_at!r}, port_key={self.port_key!r}, "
            f"read_id={self.read_id!r}, calibrated_value={self.calibrated_value!r})"
        )
