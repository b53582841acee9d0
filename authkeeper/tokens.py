"""Token value objects and wall-clock helpers."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

DEFAULT_TOKEN_TYPE = "Bearer"


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value: float | None) -> datetime | None:
    """Convert epoch milliseconds to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


@dataclass
class TokenSet:
    """Tokens returned from a login or refresh operation.

    Attributes:
        access_token: The access token (usually a JWT).
        refresh_token: Token used to obtain new access tokens.
        expires_in: Lifetime in seconds from now.
        expires_at: Absolute expiry as a Unix timestamp in seconds.
            Takes precedence over expires_in.
        token_type: Token type (default "Bearer").
    """

    access_token: str
    refresh_token: str | None = None
    expires_in: float | None = None
    expires_at: float | None = None
    token_type: str = DEFAULT_TOKEN_TYPE

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("access_token cannot be empty")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TokenSet:
        """Create a token set from an OAuth2-style response body.

        Accepts both snake_case (``access_token``) and camelCase
        (``accessToken``) keys.
        """
        return cls(
            access_token=_first(data, "access_token", "accessToken"),
            refresh_token=_first(data, "refresh_token", "refreshToken"),
            expires_in=_first(data, "expires_in", "expiresIn"),
            expires_at=_first(data, "expires_at", "expiresAt"),
            token_type=_first(data, "token_type", "tokenType") or DEFAULT_TOKEN_TYPE,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
        }


@dataclass
class StoredTokenSet:
    """The token slot held by the token store.

    Attributes:
        access_token: Access token.
        refresh_token: Refresh token, None if not available.
        token_type: Token type (e.g. "Bearer").
        expires_at: Absolute expiry in epoch milliseconds, None if the
            token does not expire.
        set_at: When the tokens were set, in epoch milliseconds.
        refresh_count: Number of sets since the slot was last cleared.
    """

    access_token: str
    refresh_token: str | None
    token_type: str
    expires_at: int | None
    set_at: int
    refresh_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at,
            "set_at": self.set_at,
            "refresh_count": self.refresh_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoredTokenSet:
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            expires_at=data.get("expires_at"),
            set_at=data["set_at"],
            refresh_count=int(data.get("refresh_count", 1)),
        )

    def to_token_set(self) -> TokenSet:
        """Convert back to a TokenSet with an absolute expiry."""
        return TokenSet(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=self.expires_at / 1000 if self.expires_at is not None else None,
            token_type=self.token_type,
        )
