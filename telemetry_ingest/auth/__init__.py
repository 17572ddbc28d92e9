"""Device bearer-token authentication."""

from telemetry_ingest.auth.bearer import (
    BearerAuth,
    device_matches,
    ensure_device_access,
    parse_device_tokens,
    verify_bearer_token,
)

__all__ = [
    "BearerAuth",
    "device_matches",
    "ensure_device_access",
    "parse_device_tokens",
    "verify_bearer_token",
]
