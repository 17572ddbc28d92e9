"""
POST /v1/ingest: accept one device payload and store its measurements.

The request body is the raw device payload (``deviceIdentifier``,
``measuredAt``, ``values``). The body size and channel count are bounded by
settings; the payload's device must be the one the bearer token
authenticates, named by either its id or its configuration id.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from telemetry_ingest.api.deps import AppSettings, AuthIdentifier, ConfigSource, Store
from telemetry_ingest.auth.bearer import ensure_device_access
from telemetry_ingest.errors import DeviceNotFoundError, OrganizationMissingError
from telemetry_ingest.models import DevicePayload
from telemetry_ingest.services.ingestion import ingest_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["ingest"])


class IngestResponse(BaseModel):
    """Response of the ingest endpoint.

    Attributes:
        stored: Number of measurement records persisted.
        received: Number of channel entries in the payload.
    """

    stored: int
    received: int


def _check_content_length(request: Request, limit: int) -> None:
    """Reject oversized bodies from the Content-Length header before reading."""
    content_length = request.headers.get("content-length")
    if content_length is None:
        return
    try:
        length = int(content_length)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Content-Length header.") from None
    if length > limit:
        raise HTTPException(
            status_code=413,
            detail=f"Request body exceeds limit of {limit} bytes.",
        )


@router.post("/ingest", response_model=IngestResponse)
async def ingest(
    request: Request,
    auth_identifier: AuthIdentifier,
    settings: AppSettings,
    config_source: ConfigSource,
    store: Store,
) -> IngestResponse | JSONResponse:
    """Transform and store one device payload.

    Returns:
        IngestResponse: Stored record count and received channel count.

    Raises:
        HTTPException: 413 if the body or channel count exceeds its limit.
        HTTPException: 403 if the payload names another device.
        HTTPException: 404 if the device does not exist.
        HTTPException: 422 if the device has no organization.
    """
    _check_content_length(request, settings.max_request_bytes)
    body = await request.body()
    if len(body) > settings.max_request_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Request body exceeds limit of {settings.max_request_bytes} bytes.",
        )

    try:
        payload = DevicePayload.model_validate_json(body)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})

    if len(payload.values) > settings.max_channels_per_payload:
        raise HTTPException(
            status_code=413,
            detail=f"Payload has {len(payload.values)} channels, limit is "
            f"{settings.max_channels_per_payload}.",
        )

    if payload.device_identifier != auth_identifier:
        device = await config_source.get_device(payload.device_identifier)
        if device is None:
            raise HTTPException(
                status_code=404,
                detail=f"Device '{payload.device_identifier}' not found.",
            )
        ensure_device_access(auth_identifier, device)

    try:
        result = await ingest_payload(payload, config_source, store)
    except DeviceNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OrganizationMissingError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return IngestResponse(stored=result.stored, received=result.received)
