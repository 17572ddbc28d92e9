"""
Tests for the measurement store adapters.

The in-memory store is exercised for query semantics; the SQL store is tested
against a mocked AsyncSession for statement shape, commit and rollback.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from telemetry_ingest.models import (
    ChannelRef,
    Endianness,
    MeasurementRecord,
    ModbusDecode,
    PortType,
)
from telemetry_ingest.services.measurement_store import (
    InMemoryMeasurementStore,
    MeasurementQuery,
    SqlMeasurementStore,
    record_to_row,
    row_to_record,
)

T0 = datetime(2026, 10, 16, 12, 0, tzinfo=UTC)


def _record(
    value: float,
    minutes: int = 0,
    port_key: str = "AI_1",
    read_id: str | None = None,
    device_id: str = "device-001",
) -> MeasurementRecord:
    port_type = PortType.MODBUS if read_id else PortType.ANALOG
    return MeasurementRecord(
        measured_at=T0 + timedelta(minutes=minutes),
        ingested_at=T0 + timedelta(minutes=minutes, seconds=1),
        device_id=device_id,
        organization_id="org-1",
        channel=ChannelRef(
            port_key=port_key,
            port_type=port_type,
            read_id=read_id,
            slave_id="1" if read_id else None,
        ),
        raw_value=value,
        calibrated_value=value,
        unit="V",
    )


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class TestInMemoryInsert:
    @pytest.mark.asyncio
    async def test_insert_returns_count(self) -> None:
        store = InMemoryMeasurementStore()
        assert await store.insert_many([_record(1), _record(2)]) == 2
        assert len(store.records) == 2

    @pytest.mark.asyncio
    async def test_empty_insert(self) -> None:
        store = InMemoryMeasurementStore()
        assert await store.insert_many([]) == 0

    @pytest.mark.asyncio
    async def test_identical_records_are_not_deduplicated(self) -> None:
        store = InMemoryMeasurementStore()
        record = _record(1)
        await store.insert_many([record])
        await store.insert_many([record])
        assert len(store.records) == 2


class TestInMemoryLatest:
    @pytest.mark.asyncio
    async def test_latest_per_channel(self) -> None:
        store = InMemoryMeasurementStore(
            [
                _record(1, minutes=0),
                _record(2, minutes=5),
                _record(10, minutes=1, port_key="MI_1", read_id="r-a"),
                _record(20, minutes=2, port_key="MI_1", read_id="r-b"),
                _record(99, minutes=9, device_id="other"),
            ]
        )
        latest = await store.latest_per_channel("device-001")

        assert {r.channel_key: r.calibrated_value for r in latest} == {
            ("AI_1", None): 2,
            ("MI_1", "r-a"): 10,
            ("MI_1", "r-b"): 20,
        }

    @pytest.mark.asyncio
    async def test_insertion_order_breaks_timestamp_ties(self) -> None:
        store = InMemoryMeasurementStore([_record(1), _record(2)])
        (latest,) = await store.latest_per_channel("device-001")
        assert latest.calibrated_value == 2

    @pytest.mark.asyncio
    async def test_unknown_device(self) -> None:
        assert await InMemoryMeasurementStore().latest_per_channel("nope") == []


class TestInMemoryQuery:
    @pytest.fixture()
    def store(self) -> InMemoryMeasurementStore:
        return InMemoryMeasurementStore(
            [_record(float(i), minutes=i) for i in range(5)]
            + [_record(7, minutes=2, port_key="MI_1", read_id="r-a")]
        )

    @pytest.mark.asyncio
    async def test_newest_first_by_default(self, store: InMemoryMeasurementStore) -> None:
        records = await store.query(MeasurementQuery(device_id="device-001", port_key="AI_1"))
        assert [r.calibrated_value for r in records] == [4, 3, 2, 1, 0]

    @pytest.mark.asyncio
    async def test_oldest_first(self, store: InMemoryMeasurementStore) -> None:
        records = await store.query(
            MeasurementQuery(device_id="device-001", port_key="AI_1", newest_first=False)
        )
        assert [r.calibrated_value for r in records] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_window_is_inclusive(self, store: InMemoryMeasurementStore) -> None:
        records = await store.query(
            MeasurementQuery(
                device_id="device-001",
                port_key="AI_1",
                start=T0 + timedelta(minutes=1),
                end=T0 + timedelta(minutes=3),
            )
        )
        assert [r.calibrated_value for r in records] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_limit(self, store: InMemoryMeasurementStore) -> None:
        records = await store.query(MeasurementQuery(device_id="device-001", limit=2))
        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_read_filter(self, store: InMemoryMeasurementStore) -> None:
        records = await store.query(MeasurementQuery(device_id="device-001", read_id="r-a"))
        assert [r.calibrated_value for r in records] == [7]


class TestInMemoryAggregate:
    @pytest.mark.asyncio
    async def test_stats(self) -> None:
        store = InMemoryMeasurementStore(
            [_record(4, minutes=0), _record(2, minutes=1), _record(6, minutes=2)]
        )
        stats = await store.aggregate("device-001", port_key="AI_1")

        assert stats is not None
        assert stats.count == 3
        assert stats.min == 2
        assert stats.max == 6
        assert stats.avg == pytest.approx(4)
        assert stats.last == 6
        assert stats.first_timestamp == T0
        assert stats.last_timestamp == T0 + timedelta(minutes=2)

    @pytest.mark.asyncio
    async def test_no_rows_returns_none(self) -> None:
        assert await InMemoryMeasurementStore().aggregate("device-001") is None


class TestInMemoryPurge:
    @pytest.mark.asyncio
    async def test_purge_before_cutoff(self) -> None:
        store = InMemoryMeasurementStore([_record(float(i), minutes=i) for i in range(4)])
        deleted = await store.purge_before(T0 + timedelta(minutes=2))

        assert deleted == 2
        assert [r.calibrated_value for r in store.records] == [2, 3]


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


class TestRowConversion:
    def test_modbus_record_to_row(self) -> None:
        record = _record(110.0, port_key="MI_1", read_id="r-a").model_copy(
            update={
                "raw_value": 2**64 - 1,
                "modbus_decode": ModbusDecode(
                    raw_registers_hex=["0xFFFF"] * 4,
                    bits_to_read=64,
                    endianness=Endianness.ABCD,
                ),
            }
        )
        row = record_to_row(record)

        assert row["raw_value"] == Decimal(2**64 - 1)
        assert row["calibrated_value"] == 110.0
        assert row["port_type"] == "MODBUS"
        assert row["raw_registers"] == ["0xFFFF"] * 4
        assert row["endianness"] == "ABCD"
        assert row["quality"] == "good"

    def test_bool_raw_value_stored_as_number(self) -> None:
        record = _record(1).model_copy(update={"raw_value": True})
        assert record_to_row(record)["raw_value"] == Decimal(1)

    def test_row_to_record(self) -> None:
        row = SimpleNamespace(
            **{
                **record_to_row(_record(3.5, port_key="MI_1", read_id="r-a")),
                "raw_value": Decimal("18446744073709551615"),
                "raw_registers": ["0xFFFF"] * 4,
                "bits_to_read": 64,
                "endianness": "DCBA",
            }
        )
        record = row_to_record(row)  # type: ignore[arg-type]

        assert record.raw_value == 2**64 - 1
        assert isinstance(record.raw_value, int)
        assert record.channel.read_id == "r-a"
        assert record.modbus_decode is not None
        assert record.modbus_decode.endianness is Endianness.DCBA

    def test_fractional_numeric_becomes_float(self) -> None:
        row = SimpleNamespace(**{**record_to_row(_record(1)), "raw_value": Decimal("1.25")})
        assert row_to_record(row).raw_value == 1.25  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# SQL store (mocked session)
# ---------------------------------------------------------------------------


def _execute_result(rowcount: int = 0) -> MagicMock:
    result = MagicMock()
    result.rowcount = rowcount
    return result


class TestSqlMeasurementStore:
    @pytest.mark.asyncio
    async def test_insert_many_executes_one_statement_and_commits(
        self, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute = AsyncMock(return_value=_execute_result(2))
        store = SqlMeasurementStore(mock_db_session)

        inserted = await store.insert_many([_record(1), _record(2)])

        assert inserted == 2
        mock_db_session.execute.assert_awaited_once()
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_insert_statement_targets_measurements(
        self, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute = AsyncMock(return_value=_execute_result(1))
        await SqlMeasurementStore(mock_db_session).insert_many([_record(1)])

        stmt = mock_db_session.execute.call_args[0][0]
        assert "INSERT INTO measurements" in str(stmt)

    @pytest.mark.asyncio
    async def test_insert_empty_skips_database(self, mock_db_session: AsyncMock) -> None:
        assert await SqlMeasurementStore(mock_db_session).insert_many([]) == 0
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insert_failure_rolls_back_and_propagates(
        self, mock_db_session: AsyncMock
    ) -> None:
        mock_db_session.execute = AsyncMock(side_effect=RuntimeError("db down"))
        store = SqlMeasurementStore(mock_db_session)

        with pytest.raises(RuntimeError, match="db down"):
            await store.insert_many([_record(1)])
        mock_db_session.rollback.assert_awaited_once()
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_latest_per_channel_uses_distinct_on(
        self, mock_db_session: AsyncMock
    ) -> None:
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db_session.execute = AsyncMock(return_value=result)

        assert await SqlMeasurementStore(mock_db_session).latest_per_channel("d") == []

        from sqlalchemy.dialects import postgresql

        stmt = mock_db_session.execute.call_args[0][0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "DISTINCT ON" in sql

    @pytest.mark.asyncio
    async def test_aggregate_no_rows_returns_none(self, mock_db_session: AsyncMock) -> None:
        result = MagicMock()
        result.one.return_value = (0, None, None, None, None, None)
        mock_db_session.execute = AsyncMock(return_value=result)

        assert await SqlMeasurementStore(mock_db_session).aggregate("d") is None
        assert mock_db_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_aggregate_with_rows(self, mock_db_session: AsyncMock) -> None:
        stats_result = MagicMock()
        stats_result.one.return_value = (
            3, 2.0, 6.0, Decimal("4.0"), T0, T0 + timedelta(minutes=2)
        )
        last_result = MagicMock()
        last_result.scalar_one_or_none.return_value = 6.0
        mock_db_session.execute = AsyncMock(side_effect=[stats_result, last_result])

        stats = await SqlMeasurementStore(mock_db_session).aggregate("d", port_key="AI_1")

        assert stats is not None
        assert stats.count == 3
        assert stats.avg == pytest.approx(4.0)
        assert stats.last == 6.0

    @pytest.mark.asyncio
    async def test_purge_before_commits(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute = AsyncMock(return_value=_execute_result(12))

        deleted = await SqlMeasurementStore(mock_db_session).purge_before(T0)

        assert deleted == 12
        mock_db_session.commit.assert_awaited_once()
