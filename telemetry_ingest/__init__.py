"""
Device telemetry ingestion service.

Turns raw device payloads (digital/analog scalars and Modbus register reads)
into calibrated, unit-tagged measurement records and serves them back to
dashboards.

CHANGELOG:
- 2026-10-16: Initial creation
"""

__version__ = "0.1.0"
