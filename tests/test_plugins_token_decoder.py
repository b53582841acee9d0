"""Tests for authkeeper.plugins.token_decoder."""

import time
from datetime import datetime, timezone

import jwt
import pytest
from unittest.mock import MagicMock

from authkeeper.errors import TokenDecodeError
from authkeeper.plugins.sdk import TokenDecoderAPI
from authkeeper.plugins.token_decoder import TokenDecoderPlugin, decode_jwt

SIGNING_KEY = "decoder-tests-signing-key-0123456789abcdef"


def _token(**claims) -> str:
    payload = {"sub": "user-1", "email": "user@example.com", "roles": ["admin"]}
    payload.update(claims)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def _decoder(current_token=None) -> TokenDecoderPlugin:
    kernel = MagicMock()
    kernel.get_access_token.return_value = current_token
    decoder = TokenDecoderPlugin()
    decoder.install(kernel)
    return decoder


# ===========================================================================
# Decoding
# ===========================================================================

class TestDecode:
    """Tests for payload and header decoding."""

    def test_decode_given_token(self):
        payload = _decoder().decode(_token())
        assert payload["sub"] == "user-1"
        assert payload["roles"] == ["admin"]

    def test_decode_defaults_to_current_token(self):
        decoder = _decoder(_token(sub="current"))
        assert decoder.decode()["sub"] == "current"

    def test_signature_not_verified(self):
        token = jwt.encode({"sub": "x"}, SIGNING_KEY[::-1], algorithm="HS256")
        assert _decoder().decode(token) == {"sub": "x"}

    def test_expired_token_still_decodes(self):
        token = _token(exp=int(time.time()) - 3600)
        assert _decoder().decode(token)["sub"] == "user-1"

    def test_get_header(self):
        header = _decoder().get_header(_token())
        assert header["alg"] == "HS256"
        assert header["typ"] == "JWT"

    def test_no_token_returns_none(self):
        decoder = _decoder(None)
        assert decoder.decode() is None
        assert decoder.get_header() is None

    def test_malformed_token_returns_none(self):
        decoder = _decoder()
        assert decoder.decode("not-a-jwt") is None
        assert decoder.decode("a.b.c") is None
        assert decoder.get_token_info("not-a-jwt") is None

    def test_decode_jwt_raises_decode_error(self):
        with pytest.raises(TokenDecodeError):
            decode_jwt("garbage")

    def test_satisfies_capability_protocol(self):
        assert isinstance(_decoder(), TokenDecoderAPI)


# ===========================================================================
# Claims
# ===========================================================================

class TestClaims:
    """Tests for claim access."""

    def test_get_claim(self):
        decoder = _decoder(_token())
        assert decoder.get_claim("email") == "user@example.com"
        assert decoder.get_claim("missing") is None

    def test_get_claims_omits_absent_keys(self):
        decoder = _decoder(_token())
        assert decoder.get_claims(["sub", "email", "missing"]) == {
            "sub": "user-1",
            "email": "user@example.com",
        }

    def test_get_claims_without_token(self):
        assert _decoder(None).get_claims(["sub"]) == {}

    def test_get_claim_of_malformed_token(self):
        assert _decoder("broken").get_claim("sub") is None


# ===========================================================================
# Expiry
# ===========================================================================

class TestExpiry:
    """Tests for exp-derived queries."""

    def test_get_expiry(self):
        exp = int(time.time()) + 3600
        expiry = _decoder().get_expiry(_token(exp=exp))
        assert expiry == datetime.fromtimestamp(exp, tz=timezone.utc)

    def test_no_exp_claim(self):
        decoder = _decoder(_token())
        assert decoder.get_expiry() is None
        assert decoder.is_expired() is False

    def test_is_expired(self):
        decoder = _decoder()
        assert decoder.is_expired(_token(exp=int(time.time()) - 10)) is True
        assert decoder.is_expired(_token(exp=int(time.time()) + 600)) is False

    def test_no_token_counts_as_expired(self):
        assert _decoder(None).is_expired() is True

    def test_token_info(self):
        exp = int(time.time()) + 600
        token = _token(exp=exp)

        info = _decoder(token).get_token_info()

        assert info.raw == token
        assert info.header["alg"] == "HS256"
        assert info.payload["sub"] == "user-1"
        assert info.expires_at == datetime.fromtimestamp(exp, tz=timezone.utc)
        assert info.is_expired is False
        assert 0 < info.expires_in <= 600_000
        assert info.to_dict()["expires_at"] == info.expires_at.isoformat()

    def test_token_info_of_expired_token(self):
        info = _decoder().get_token_info(_token(exp=int(time.time()) - 10))
        assert info.is_expired is True
        assert info.expires_in == 0

    def test_token_info_without_exp(self):
        info = _decoder().get_token_info(_token())
        assert info.expires_at is None
        assert info.expires_in is None
        assert info.is_expired is False

    def test_token_info_without_token(self):
        assert _decoder(None).get_token_info() is None
