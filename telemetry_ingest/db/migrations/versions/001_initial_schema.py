"""
Initial schema: devices table and measurements hypertable.

Enables the TimescaleDB extension, creates the ``devices`` configuration
table and the append-only ``measurements`` table, then converts
``measurements`` to a hypertable partitioned on ``measured_at`` with a
7-day chunk interval.

Revision ID: 001
Revises: None
Create Date: 2026-10-16

CHANGELOG:
- 2026-10-16: Initial creation
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the devices table and the measurements hypertable."""
    op.execute("CREATE EXTENSION IF NOT EXISTS timescaledb")

    op.create_table(
        "devices",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("config_id", sa.Text(), nullable=True, unique=True),
        sa.Column("name", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("organization_id", sa.Text(), nullable=True),
        sa.Column(
            "status", sa.Text(), nullable=False, server_default=sa.text("'offline'")
        ),
        sa.Column(
            "ports",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
    )

    op.create_table(
        "measurements",
        sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("measured_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ingested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("port_key", sa.Text(), nullable=False),
        sa.Column("port_type", sa.Text(), nullable=False),
        sa.Column("read_id", sa.Text(), nullable=True),
        sa.Column("slave_id", sa.Text(), nullable=True),
        sa.Column("read_name", sa.Text(), nullable=True),
        sa.Column("read_tag", sa.Text(), nullable=True),
        sa.Column("raw_value", sa.Numeric(), nullable=False),
        sa.Column("calibrated_value", sa.Double(), nullable=False),
        sa.Column("unit", sa.Text(), nullable=True),
        sa.Column(
            "quality", sa.Text(), nullable=False, server_default=sa.text("'good'")
        ),
        sa.Column("raw_registers", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("bits_to_read", sa.SmallInteger(), nullable=True),
        sa.Column("endianness", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", "measured_at"),
    )

    op.execute(
        "SELECT create_hypertable("
        "'measurements', 'measured_at', "
        "chunk_time_interval => INTERVAL '7 days', "
        "if_not_exists => TRUE"
        ")"
    )

    op.create_index(
        "ix_measurements_device_measured_at",
        "measurements",
        ["device_id", sa.text("measured_at DESC")],
    )
    op.create_index(
        "ix_measurements_device_channel",
        "measurements",
        ["device_id", "port_key", "read_id", sa.text("measured_at DESC")],
    )


def downgrade() -> None:
    """Drop measurements and devices.

    Does not drop the timescaledb extension as other tables may use it.
    """
    op.drop_table("measurements")
    op.drop_table("devices")
