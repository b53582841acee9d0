"""
Token decoder plugin.

Decodes JWTs without verifying their signature. Client code only reads
claims for display and scheduling; validation is the server's job.
Every public method defaults to the kernel's current access token and
degrades to None (or an empty dict) when the token is missing or
malformed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import jwt

from authkeeper.errors import TokenDecodeError
from authkeeper.plugins.sdk import TOKEN_DECODER, PluginBase, PluginMetadata
from authkeeper.tokens import now_ms

if TYPE_CHECKING:
    from authkeeper.kernel.kernel import AuthKeeperKernel

logger = logging.getLogger(__name__)

_UNVERIFIED = {"verify_signature": False}


@dataclass
class TokenInfo:
    """Everything the decoder knows about a token.

    Attributes:
        raw: The encoded token.
        header: Decoded JOSE header.
        payload: Decoded claims.
        expires_at: Expiry from the ``exp`` claim, None without one.
        is_expired: Whether ``exp`` has passed.
        expires_in: Milliseconds until expiry (clamped at 0), None
            without ``exp``.
    """

    raw: str
    header: dict[str, Any]
    payload: dict[str, Any]
    expires_at: datetime | None
    is_expired: bool
    expires_in: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw": self.raw,
            "header": dict(self.header),
            "payload": dict(self.payload),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_expired": self.is_expired,
            "expires_in": self.expires_in,
        }


def decode_jwt(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Decode a JWT into (header, payload) without verification.

    Raises:
        TokenDecodeError: If the token is not a decodable JWT.
    """
    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options=_UNVERIFIED)
    except jwt.PyJWTError as e:
        raise TokenDecodeError(f"Invalid JWT: {e}", cause=e) from e
    return header, payload


def expiry_of(payload: dict[str, Any]) -> datetime | None:
    exp = payload.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


class TokenDecoderPlugin(PluginBase):
    """Unverified JWT decoding of the current (or a given) token."""

    metadata = PluginMetadata(
        name=TOKEN_DECODER,
        version="1.0.0",
        kind="core",
        description="Unverified JWT decoding",
    )

    def install(self, kernel: AuthKeeperKernel) -> TokenDecoderPlugin:
        return super().install(kernel)

    def decode(self, token: str | None = None) -> dict[str, Any] | None:
        """Decoded payload, or None."""
        decoded = self._decode(token)
        return decoded[1] if decoded else None

    def get_header(self, token: str | None = None) -> dict[str, Any] | None:
        decoded = self._decode(token)
        return decoded[0] if decoded else None

    def get_claim(self, key: str, token: str | None = None) -> Any:
        payload = self.decode(token)
        return payload.get(key) if payload else None

    def get_claims(self, keys: list[str], token: str | None = None) -> dict[str, Any]:
        """Subset of the payload; keys absent from the token are omitted."""
        payload = self.decode(token)
        if not payload:
            return {}
        return {key: payload[key] for key in keys if key in payload}

    def get_expiry(self, token: str | None = None) -> datetime | None:
        payload = self.decode(token)
        return expiry_of(payload) if payload else None

    def is_expired(self, token: str | None = None) -> bool:
        """True without a token; False for tokens without ``exp``."""
        raw = self._resolve(token)
        if raw is None:
            return True
        expires_at = self.get_expiry(raw)
        if expires_at is None:
            return False
        return now_ms() >= int(expires_at.timestamp() * 1000)

    def get_token_info(self, token: str | None = None) -> TokenInfo | None:
        raw = self._resolve(token)
        if raw is None:
            return None

        decoded = self._decode(raw)
        if decoded is None:
            return None

        header, payload = decoded
        expires_at = expiry_of(payload)
        expires_in = None
        is_expired = False
        if expires_at is not None:
            remaining = int(expires_at.timestamp() * 1000) - now_ms()
            expires_in = max(0, remaining)
            is_expired = remaining <= 0

        return TokenInfo(
            raw=raw,
            header=header,
            payload=payload,
            expires_at=expires_at,
            is_expired=is_expired,
            expires_in=expires_in,
        )

    def _resolve(self, token: str | None) -> str | None:
        if token:
            return token
        if self._kernel is None:
            return None
        return self._kernel.get_access_token()

    def _decode(self, token: str | None) -> tuple[dict[str, Any], dict[str, Any]] | None:
        raw = self._resolve(token)
        if raw is None:
            return None
        try:
            return decode_jwt(raw)
        except TokenDecodeError as e:
            logger.debug(f"Token decode failed: {e}")
            return None
