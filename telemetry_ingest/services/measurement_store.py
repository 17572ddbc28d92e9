"""
Measurement store adapter: append-only persistence and read-side queries.

``MeasurementStore`` is the contract the views depend on:

- ``insert_many``: bulk append of transformer output (no dedup).
- ``latest_per_channel``: newest record per (port_key, read_id).
- ``query``: windowed range, optional port/read filter, limit, ordering.
- ``aggregate``: count/min/max/avg/last of ``calibrated_value``.
- ``purge_before``: retention-window delete.

``SqlMeasurementStore`` implements it on the TimescaleDB ``measurements``
hypertable; ``InMemoryMeasurementStore`` keeps records in a list with the same
semantics for tests and local development.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from telemetry_ingest.db.models import Measurement
from telemetry_ingest.models import (
    ChannelRef,
    ChannelStats,
    MeasurementRecord,
    ModbusDecode,
    PortType,
    Quality,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MeasurementQuery:
    """Filter for a windowed measurement query.

    Attributes:
        device_id: Device whose records are returned.
        start: Inclusive lower bound on ``measured_at``.
        end: Inclusive upper bound on ``measured_at``.
        port_key: Restrict to one port.
        read_id: Restrict to one Modbus read.
        limit: Maximum number of records.
        newest_first: Sort by ``measured_at`` descending when true.
    """

    device_id: str
    start: datetime | None = None
    end: datetime | None = None
    port_key: str | None = None
    read_id: str | None = None
    limit: int = 1000
    newest_first: bool = True


class MeasurementStore(Protocol):
    """Storage contract consumed by ingestion and the view builders."""

    async def insert_many(self, records: Sequence[MeasurementRecord]) -> int:
        """Append *records*; return the number stored."""
        ...

    async def latest_per_channel(self, device_id: str) -> list[MeasurementRecord]:
        """Return the newest record per (port_key, read_id) of a device."""
        ...

    async def query(self, query: MeasurementQuery) -> list[MeasurementRecord]:
        """Return records matching *query*."""
        ...

    async def aggregate(
        self,
        device_id: str,
        *,
        port_key: str | None = None,
        read_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ChannelStats | None:
        """Return calibrated-value statistics, or ``None`` when no rows match."""
        ...

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete records measured before *cutoff*; return the count deleted."""
        ...


# ---------------------------------------------------------------------------
# Row <-> record conversion
# ---------------------------------------------------------------------------


def _to_numeric(value: bool | int | float) -> Decimal:
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(value))


def _from_numeric(value: Decimal | int | float) -> int | float:
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    return value


def record_to_row(record: MeasurementRecord) -> dict[str, Any]:
    """Flatten a record into ``measurements`` column values."""
    decode = record.modbus_decode
    return {
        "measured_at": record.measured_at,
        "ingested_at": record.ingested_at,
        "device_id": record.device_id,
        "organization_id": record.organization_id,
        "port_key": record.channel.port_key,
        "port_type": record.channel.port_type.value,
        "read_id": record.channel.read_id,
        "slave_id": record.channel.slave_id,
        "read_name": record.channel.name,
        "read_tag": record.channel.tag,
        "raw_value": _to_numeric(record.raw_value),
        "calibrated_value": float(record.calibrated_value),
        "unit": record.unit,
        "quality": record.quality.value,
        "raw_registers": decode.raw_registers_hex if decode else None,
        "bits_to_read": decode.bits_to_read if decode else None,
        "endianness": decode.endianness.value if decode else None,
    }


def row_to_record(row: Measurement) -> MeasurementRecord:
    """Rebuild a ``MeasurementRecord`` from an ORM row."""
    decode = None
    if row.raw_registers is not None and row.bits_to_read is not None:
        decode = ModbusDecode(
            raw_registers_hex=list(row.raw_registers),
            bits_to_read=row.bits_to_read,
            endianness=row.endianness or "NONE",
        )
    return MeasurementRecord(
        measured_at=row.measured_at,
        ingested_at=row.ingested_at,
        device_id=row.device_id,
        organization_id=row.organization_id,
        channel=ChannelRef(
            port_key=row.port_key,
            port_type=PortType(row.port_type),
            read_id=row.read_id,
            slave_id=row.slave_id,
            name=row.read_name,
            tag=row.read_tag,
        ),
        raw_value=_from_numeric(row.raw_value),
        calibrated_value=row.calibrated_value,
        unit=row.unit,
        quality=Quality(row.quality),
        modbus_decode=decode,
    )


# ---------------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------------


def _filters(
    device_id: str,
    *,
    port_key: str | None = None,
    read_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = [Measurement.device_id == device_id]
    if port_key is not None:
        clauses.append(Measurement.port_key == port_key)
    if read_id is not None:
        clauses.append(Measurement.read_id == read_id)
    if start is not None:
        clauses.append(Measurement.measured_at >= start)
    if end is not None:
        clauses.append(Measurement.measured_at <= end)
    return clauses


class SqlMeasurementStore:
    """``MeasurementStore`` on the ``measurements`` hypertable.

    Attributes:
        db: Async SQLAlchemy session. ``insert_many`` and ``purge_before``
            commit; a failed insert is rolled back and re-raised.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def insert_many(self, records: Sequence[MeasurementRecord]) -> int:
        """Bulk-insert *records* in a single statement.

        Returns:
            int: Number of rows inserted.
        """
        if not records:
            return 0

        stmt = pg_insert(Measurement).values([record_to_row(r) for r in records])
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result.rowcount

    async def latest_per_channel(self, device_id: str) -> list[MeasurementRecord]:
        """Return the newest record per (port_key, read_id) via DISTINCT ON."""
        stmt = (
            select(Measurement)
            .where(Measurement.device_id == device_id)
            .distinct(Measurement.port_key, Measurement.read_id)
            .order_by(
                Measurement.port_key,
                Measurement.read_id,
                Measurement.measured_at.desc(),
                Measurement.id.desc(),
            )
        )
        result = await self.db.execute(stmt)
        return [row_to_record(row) for row in result.scalars().all()]

    async def query(self, query: MeasurementQuery) -> list[MeasurementRecord]:
        """Return records in the window, ordered by ``measured_at``."""
        if query.newest_first:
            order = (Measurement.measured_at.desc(), Measurement.id.desc())
        else:
            order = (Measurement.measured_at.asc(), Measurement.id.asc())
        stmt = (
            select(Measurement)
            .where(
                *_filters(
                    query.device_id,
                    port_key=query.port_key,
                    read_id=query.read_id,
                    start=query.start,
                    end=query.end,
                )
            )
            .order_by(*order)
            .limit(query.limit)
        )
        result = await self.db.execute(stmt)
        return [row_to_record(row) for row in result.scalars().all()]

    async def aggregate(
        self,
        device_id: str,
        *,
        port_key: str | None = None,
        read_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ChannelStats | None:
        """Return count/min/max/avg/last of ``calibrated_value``."""
        clauses = _filters(
            device_id, port_key=port_key, read_id=read_id, start=start, end=end
        )
        stats_stmt = select(
            func.count(Measurement.id),
            func.min(Measurement.calibrated_value),
            func.max(Measurement.calibrated_value),
            func.avg(Measurement.calibrated_value),
            func.min(Measurement.measured_at),
            func.max(Measurement.measured_at),
        ).where(*clauses)
        count, min_v, max_v, avg_v, first_ts, last_ts = (
            await self.db.execute(stats_stmt)
        ).one()
        if not count:
            return None

        last_stmt = (
            select(Measurement.calibrated_value)
            .where(*clauses)
            .order_by(Measurement.measured_at.desc(), Measurement.id.desc())
            .limit(1)
        )
        last = (await self.db.execute(last_stmt)).scalar_one_or_none()

        return ChannelStats(
            count=count,
            min=min_v,
            max=max_v,
            avg=float(avg_v) if avg_v is not None else None,
            last=last,
            first_timestamp=first_ts,
            last_timestamp=last_ts,
        )

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete every measurement older than *cutoff*."""
        result = await self.db.execute(
            delete(Measurement).where(Measurement.measured_at < cutoff)
        )
        await self.db.commit()
        deleted = result.rowcount
        logger.info("Purged %d measurement(s) measured before %s", deleted, cutoff)
        return deleted


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryMeasurementStore:
    """List-backed ``MeasurementStore`` with the same ordering semantics.

    Ties on ``measured_at`` are broken by insertion order, mirroring the
    surrogate id ordering of the SQL store.
    """

    def __init__(self, records: Iterable[MeasurementRecord] = ()) -> None:
        self._rows: list[tuple[int, MeasurementRecord]] = []
        self._seq = 0
        for record in records:
            self._append(record)

    def _append(self, record: MeasurementRecord) -> None:
        self._seq += 1
        self._rows.append((self._seq, record))

    @property
    def records(self) -> list[MeasurementRecord]:
        """All stored records in insertion order."""
        return [record for _, record in self._rows]

    def _matching(
        self,
        device_id: str,
        *,
        port_key: str | None = None,
        read_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[int, MeasurementRecord]]:
        rows = []
        for seq, record in self._rows:
            if record.device_id != device_id:
                continue
            if port_key is not None and record.channel.port_key != port_key:
                continue
            if read_id is not None and record.channel.read_id != read_id:
                continue
            if start is not None and record.measured_at < start:
                continue
            if end is not None and record.measured_at > end:
                continue
            rows.append((seq, record))
        rows.sort(key=lambda item: (item[1].measured_at, item[0]))
        return rows

    async def insert_many(self, records: Sequence[MeasurementRecord]) -> int:
        for record in records:
            self._append(record)
        return len(records)

    async def latest_per_channel(self, device_id: str) -> list[MeasurementRecord]:
        latest: dict[tuple[str, str | None], MeasurementRecord] = {}
        for _, record in self._matching(device_id):
            latest[record.channel_key] = record
        return [
            latest[key]
            for key in sorted(latest, key=lambda k: (k[0], k[1] is None, k[1] or ""))
        ]

    async def query(self, query: MeasurementQuery) -> list[MeasurementRecord]:
        rows = self._matching(
            query.device_id,
            port_key=query.port_key,
            read_id=query.read_id,
            start=query.start,
            end=query.end,
        )
        if query.newest_first:
            rows.reverse()
        return [record for _, record in rows[: query.limit]]

    async def aggregate(
        self,
        device_id: str,
        *,
        port_key: str | None = None,
        read_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ChannelStats | None:
        rows = self._matching(
            device_id, port_key=port_key, read_id=read_id, start=start, end=end
        )
        if not rows:
            return None
        values = [float(record.calibrated_value) for _, record in rows]
        return ChannelStats(
            count=len(values),
            min=min(values),
            max=max(values),
            avg=sum(values) / len(values),
            last=values[-1],
            first_timestamp=rows[0][1].measured_at,
            last_timestamp=rows[-1][1].measured_at,
        )

    async def purge_before(self, cutoff: datetime) -> int:
        kept = [(seq, r) for seq, r in self._rows if r.measured_at >= cutoff]
        deleted = len(self._rows) - len(kept)
        self._rows = kept
        return deleted
