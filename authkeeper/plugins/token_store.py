"""
Token store plugin.

Holds the single authoritative token slot. Setting tokens replaces the
slot (never merges); clearing empties it. Expiry queries are computed
against the wall clock on every call.

When a storage adapter is given the slot is persisted as JSON under the
``tokens`` key and restored when the plugin is installed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from authkeeper.plugins.sdk import TOKEN_STORE, PluginBase, PluginMetadata
from authkeeper.storage import StorageAdapter
from authkeeper.tokens import (
    DEFAULT_TOKEN_TYPE,
    StoredTokenSet,
    TokenSet,
    ms_to_datetime,
    now_ms,
)

if TYPE_CHECKING:
    from authkeeper.kernel.kernel import AuthKeeperKernel

logger = logging.getLogger(__name__)

STORAGE_KEY = "tokens"


class TokenStorePlugin(PluginBase):
    """Single-slot token store.

    Args:
        storage: Optional adapter the slot is persisted to.
        on_set: Called with the new StoredTokenSet after every set().
        on_clear: Called after every clear().
    """

    metadata = PluginMetadata(
        name=TOKEN_STORE,
        version="1.0.0",
        kind="core",
        description="Single authoritative token slot with expiry queries",
    )

    def __init__(
        self,
        storage: StorageAdapter | None = None,
        on_set: Callable[[StoredTokenSet], None] | None = None,
        on_clear: Callable[[], None] | None = None,
    ):
        super().__init__()
        self._tokens: StoredTokenSet | None = None
        self._storage = storage
        self._on_set = on_set
        self._on_clear = on_clear

    def install(self, kernel: AuthKeeperKernel) -> TokenStorePlugin:
        super().install(kernel)
        self._restore()
        return self

    def uninstall(self) -> None:
        self._tokens = None
        super().uninstall()

    def set(self, tokens: TokenSet | Mapping[str, Any]) -> StoredTokenSet:
        """Replace the slot with a new token set.

        ``expires_at`` (absolute, seconds) wins over ``expires_in``
        (relative, seconds); with neither the token never expires.

        Returns:
            The stored token set.
        """
        if not isinstance(tokens, TokenSet):
            tokens = TokenSet.from_dict(tokens)

        now = now_ms()
        expires_at: int | None = None
        if tokens.expires_at is not None:
            expires_at = int(tokens.expires_at * 1000)
        elif tokens.expires_in is not None:
            expires_at = now + int(tokens.expires_in * 1000)

        refresh_count = self._tokens.refresh_count + 1 if self._tokens else 1

        self._tokens = StoredTokenSet(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or None,
            token_type=tokens.token_type or DEFAULT_TOKEN_TYPE,
            expires_at=expires_at,
            set_at=now,
            refresh_count=refresh_count,
        )
        self._persist()

        if self._on_set is not None:
            self._on_set(self._tokens)
        return self._tokens

    def get(self) -> StoredTokenSet | None:
        return self._tokens

    def clear(self) -> None:
        self._tokens = None
        if self._storage is not None:
            self._storage.remove(STORAGE_KEY)

        if self._on_clear is not None:
            self._on_clear()

    def get_access_token(self) -> str | None:
        return self._tokens.access_token if self._tokens else None

    def get_refresh_token(self) -> str | None:
        return self._tokens.refresh_token if self._tokens else None

    def get_token_type(self) -> str:
        return self._tokens.token_type if self._tokens else DEFAULT_TOKEN_TYPE

    def get_expires_at(self) -> datetime | None:
        if self._tokens is None:
            return None
        return ms_to_datetime(self._tokens.expires_at)

    def get_expires_in(self) -> int | None:
        """Milliseconds until expiry, 0 once expired, None without expiry."""
        if self._tokens is None or self._tokens.expires_at is None:
            return None
        return max(0, self._tokens.expires_at - now_ms())

    def is_expired(self) -> bool:
        """True at or after the expiry instant; never for non-expiring tokens."""
        if self._tokens is None or self._tokens.expires_at is None:
            return False
        return now_ms() >= self._tokens.expires_at

    def get_set_at(self) -> datetime | None:
        return ms_to_datetime(self._tokens.set_at) if self._tokens else None

    def get_refresh_count(self) -> int:
        return self._tokens.refresh_count if self._tokens else 0

    def _persist(self) -> None:
        if self._storage is None or self._tokens is None:
            return
        self._storage.set(STORAGE_KEY, json.dumps(self._tokens.to_dict()))

    def _restore(self) -> None:
        if self._storage is None or self._tokens is not None:
            return

        raw = self._storage.get(STORAGE_KEY)
        if not raw:
            return

        try:
            self._tokens = StoredTokenSet.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable persisted tokens: {e}")
            self._storage.remove(STORAGE_KEY)
            return

        logger.debug("Restored tokens from storage")
