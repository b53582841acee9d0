"""Tests for authkeeper.tokens and authkeeper.errors."""

from datetime import datetime, timezone

import pytest

from authkeeper.errors import (
    AuthErrorCode,
    ConfigurationError,
    InstallError,
    RefreshFailedError,
    RefreshTokenMissingError,
)
from authkeeper.events import EventType, LogoutEvent
from authkeeper.tokens import StoredTokenSet, TokenSet, ms_to_datetime


class TestTokenSet:
    """Tests for the TokenSet input type."""

    def test_from_snake_case(self):
        tokens = TokenSet.from_dict(
            {"access_token": "a", "refresh_token": "r", "expires_in": 60, "token_type": "bearer"}
        )
        assert tokens.access_token == "a"
        assert tokens.refresh_token == "r"
        assert tokens.expires_in == 60
        assert tokens.token_type == "bearer"

    def test_from_camel_case(self):
        tokens = TokenSet.from_dict({"accessToken": "a", "refreshToken": "r", "expiresAt": 1000})
        assert tokens.refresh_token == "r"
        assert tokens.expires_at == 1000
        assert tokens.token_type == "Bearer"

    def test_missing_access_token_rejected(self):
        with pytest.raises(ValueError):
            TokenSet.from_dict({"refresh_token": "r"})


class TestStoredTokenSet:
    """Tests for the stored slot."""

    def test_to_token_set_uses_seconds(self):
        stored = StoredTokenSet(
            access_token="a",
            refresh_token=None,
            token_type="Bearer",
            expires_at=1_700_000_000_000,
            set_at=1_699_999_000_000,
        )
        assert stored.to_token_set().expires_at == 1_700_000_000

    def test_dict_round_trip(self):
        stored = StoredTokenSet("a", "r", "Bearer", None, 5, refresh_count=3)
        assert StoredTokenSet.from_dict(stored.to_dict()) == stored

    def test_ms_to_datetime(self):
        assert ms_to_datetime(None) is None
        assert ms_to_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)


class TestErrors:
    """Tests for the error taxonomy."""

    def test_codes(self):
        assert RefreshTokenMissingError().code is AuthErrorCode.REFRESH_TOKEN_MISSING
        assert RefreshFailedError("x").code is AuthErrorCode.REFRESH_FAILED
        assert ConfigurationError("x").code is AuthErrorCode.CONFIG_ERROR

    def test_install_error_chains_cause(self):
        cause = RuntimeError("boom")
        error = InstallError("plugin-x", cause)

        assert isinstance(error, ConfigurationError)
        assert error.__cause__ is cause
        assert error.to_dict()["context"] == {"plugin_name": "plugin-x"}


class TestEvents:
    """Tests for event payloads."""

    def test_event_to_dict(self):
        data = LogoutEvent().to_dict()
        assert data["type"] == "logout"
        assert data["reason"] == "manual"
        assert isinstance(data["timestamp"], int)
        assert LogoutEvent.type is EventType.LOGOUT
