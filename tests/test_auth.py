"""
Tests for device bearer-token authentication.

Validates parsing of DEVICE_TOKENS, constant-time token lookup, the
BearerAuth FastAPI dependency, and device ownership by id or config id.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

from unittest.mock import patch

import pytest
from conftest import CONFIG_ID, DEVICE_ID
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from telemetry_ingest.auth import (
    BearerAuth,
    device_matches,
    ensure_device_access,
    parse_device_tokens,
    verify_bearer_token,
)
from telemetry_ingest.models import DeviceConfig

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _make_test_app(token_map: dict[str, str]) -> FastAPI:
    """Create a minimal FastAPI app with a protected test endpoint.

    Args:
        token_map: Mapping of token -> device identifier.

    Returns:
        FastAPI: Application with a single protected GET /protected endpoint.
    """
    test_app = FastAPI()
    auth = BearerAuth(token_map)

    @test_app.get("/protected")
    async def protected(identifier: str = Depends(auth.verify)) -> dict:
        return {"identifier": identifier}

    return test_app


# ---------------------------------------------------------------------------
# Tests for parse_device_tokens()
# ---------------------------------------------------------------------------


class TestParseDeviceTokens:
    """Tests for the token string parser."""

    def test_multiple_tokens(self) -> None:
        result = parse_device_tokens("tokenA:device-1,tokenB:cfg-2")
        assert result == {"tokenA": "device-1", "tokenB": "cfg-2"}

    def test_empty_string_returns_empty_dict(self) -> None:
        assert parse_device_tokens("") == {}
        assert parse_device_tokens("   ") == {}

    def test_whitespace_is_stripped(self) -> None:
        result = parse_device_tokens(" tokenA : device-1 , tokenB : device-2 ")
        assert result == {"tokenA": "device-1", "tokenB": "device-2"}

    def test_malformed_entry_is_skipped_with_warning(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level("WARNING"):
            result = parse_device_tokens("tokenA:device-1,badentry,tokenB:device-2")

        assert result == {"tokenA": "device-1", "tokenB": "device-2"}
        assert "position 1" in caplog.text
        assert "badentry" not in caplog.text

    def test_empty_token_or_identifier_skipped(self) -> None:
        assert parse_device_tokens(":device-1,tokenA:") == {}

    def test_colon_in_identifier_preserved(self) -> None:
        assert parse_device_tokens("tokenA:device:with:colons") == {
            "tokenA": "device:with:colons"
        }


# ---------------------------------------------------------------------------
# Tests for verify_bearer_token()
# ---------------------------------------------------------------------------


class TestVerifyBearerToken:
    def test_valid_token_returns_identifier(self) -> None:
        token_map = {"tokenA": "device-1", "tokenB": "device-2"}
        assert verify_bearer_token("tokenB", token_map) == "device-2"

    def test_invalid_token_returns_none(self) -> None:
        assert verify_bearer_token("wrong-token", {"tokenA": "device-1"}) is None

    def test_empty_token_returns_none(self) -> None:
        assert verify_bearer_token("", {"tokenA": "device-1"}) is None

    def test_compares_against_every_token(self) -> None:
        token_map = {"tokenA": "device-1", "tokenB": "device-2", "tokenC": "device-3"}

        with patch(
            "telemetry_ingest.auth.bearer.secrets.compare_digest", return_value=False
        ) as mock_cmp:
            verify_bearer_token("tokenA", token_map)

        assert mock_cmp.call_count == 3


# ---------------------------------------------------------------------------
# Tests for BearerAuth.verify (the FastAPI dependency)
# ---------------------------------------------------------------------------


class TestBearerAuthVerify:
    def test_valid_token_returns_identifier(self) -> None:
        client = TestClient(_make_test_app({"tokenA": "device-1"}))

        response = client.get("/protected", headers={"Authorization": "Bearer tokenA"})

        assert response.status_code == 200
        assert response.json() == {"identifier": "device-1"}

    def test_invalid_token_returns_401(self) -> None:
        client = TestClient(_make_test_app({"tokenA": "device-1"}))

        response = client.get("/protected", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_missing_header_returns_401(self) -> None:
        client = TestClient(_make_test_app({"tokenA": "device-1"}))
        assert client.get("/protected").status_code == 401

    def test_non_bearer_scheme_returns_401(self) -> None:
        client = TestClient(_make_test_app({"tokenA": "device-1"}))

        response = client.get("/protected", headers={"Authorization": "Basic tokenA"})

        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Device ownership
# ---------------------------------------------------------------------------


class TestDeviceAccess:
    def test_matches_by_id_or_config_id(self, device: DeviceConfig) -> None:
        assert device_matches(DEVICE_ID, device)
        assert device_matches(CONFIG_ID, device)
        assert not device_matches("device-002", device)

    def test_no_config_id_only_matches_id(self, device: DeviceConfig) -> None:
        bare = device.model_copy(update={"config_id": None})
        assert device_matches(DEVICE_ID, bare)
        assert not device_matches(CONFIG_ID, bare)

    def test_ensure_access_allows_owner(self, device: DeviceConfig) -> None:
        ensure_device_access(CONFIG_ID, device)

    def test_ensure_access_rejects_other_device(self, device: DeviceConfig) -> None:
        with pytest.raises(HTTPException) as exc_info:
            ensure_device_access("device-002", device)
        assert exc_info.value.status_code == 403
