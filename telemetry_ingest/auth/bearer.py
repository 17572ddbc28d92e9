"""
Device bearer-token authentication.

``DEVICE_TOKENS`` maps each bearer token to the device it authenticates
(``token:device,token:device``). The device may be named by its primary id or
by its configuration id; ``ensure_device_access`` accepts either.

Tokens are compared with ``secrets.compare_digest`` against every configured
token so lookup time does not depend on where a match occurs.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import logging
import secrets

from fastapi import HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from telemetry_ingest.models import DeviceConfig

logger = logging.getLogger(__name__)


def parse_device_tokens(raw: str) -> dict[str, str]:
    """Parse ``DEVICE_TOKENS`` into a token -> device identifier mapping.

    Entries without a colon are skipped with a warning. Whitespace around
    tokens and identifiers is stripped.

    Args:
        raw: Comma-separated ``token:device`` pairs.

    Returns:
        dict[str, str]: Mapping of token to device identifier.
    """
    if not raw or not raw.strip():
        return {}

    token_map: dict[str, str] = {}
    for position, entry in enumerate(raw.split(",")):
        entry = entry.strip()
        if ":" not in entry:
            logger.warning(
                "Skipping malformed DEVICE_TOKENS entry at position %d (no colon)",
                position,
            )
            continue
        token, identifier = (part.strip() for part in entry.split(":", maxsplit=1))
        if token and identifier:
            token_map[token] = identifier
    return token_map


def verify_bearer_token(token: str, token_map: dict[str, str]) -> str | None:
    """Return the device identifier of *token*, or ``None`` when unknown."""
    if not token:
        return None

    matched: str | None = None
    candidate = token.encode("utf-8")
    for registered, identifier in token_map.items():
        if secrets.compare_digest(candidate, registered.encode("utf-8")):
            matched = identifier
    return matched


def device_matches(identifier: str, device: DeviceConfig) -> bool:
    """Return True when *identifier* names *device* by id or config id."""
    return identifier == device.id or (
        device.config_id is not None and identifier == device.config_id
    )


def ensure_device_access(identifier: str, device: DeviceConfig) -> None:
    """Reject access to a device other than the authenticated one.

    Raises:
        HTTPException: 403 if *identifier* names a different device.
    """
    if not device_matches(identifier, device):
        logger.warning(
            "Token for %s attempted to access device %s", identifier, device.id
        )
        raise HTTPException(
            status_code=403,
            detail="Device does not match authenticated device.",
        )


class BearerAuth:
    """FastAPI dependency validating ``Authorization: Bearer`` headers.

    Attributes:
        token_map: Mapping of valid token -> device identifier.
        scheme: HTTPBearer scheme, also used for the OpenAPI docs.
    """

    def __init__(self, token_map: dict[str, str]) -> None:
        self.token_map = token_map
        self.scheme = HTTPBearer(auto_error=False)

    async def verify(self, request: Request) -> str:
        """Return the device identifier the request's token authenticates.

        Raises:
            HTTPException: 401 if the token is missing or unknown.
        """
        credentials: HTTPAuthorizationCredentials | None = await self.scheme(request)
        if credentials is None:
            raise HTTPException(
                status_code=401,
                detail="Missing authorization credentials.",
                headers={"WWW-Authenticate": "Bearer"},
            )

        identifier = verify_bearer_token(credentials.credentials, self.token_map)
        if identifier is None:
            raise HTTPException(
                status_code=401,
                detail="Invalid or expired token.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return identifier
