"""
Health check endpoint.

Unauthenticated ``GET /health`` for container health checks and internal
monitoring. Does not touch the database or Redis.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from fastapi import APIRouter

from telemetry_ingest import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Return ``{"status": "ok"}`` with the service version."""
    return {"status": "ok", "version": __version__}
