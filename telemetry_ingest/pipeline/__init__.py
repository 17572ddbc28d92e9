"""
Device telemetry transformation pipeline.

Register codec, read configuration index and value transformer. Pure
in-memory logic; the only I/O is the device configuration fetch performed by
``ValueTransformer.transform``.

CHANGELOG:
- 2026-10-16: Initial creation
"""

from telemetry_ingest.pipeline.codec import decode_registers, encode_registers
from telemetry_ingest.pipeline.read_index import ReadConfig, build_read_index
from telemetry_ingest.pipeline.transformer import (
    DeviceConfigSource,
    ValueTransformer,
    transform_values,
)

__all__ = [
    "DeviceConfigSource",
    "ReadConfig",
    "ValueTransformer",
    "build_read_index",
    "decode_registers",
    "encode_registers",
    "transform_values",
]
