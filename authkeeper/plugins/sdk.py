"""
Plugin SDK for AuthKeeper.

This module defines the plugin contract and the capability interfaces
the kernel relies on.

A plugin is any object with a ``metadata`` attribute and an
``install(kernel)`` method returning its capability object (the API the
kernel and host use). ``uninstall()`` is optional. Both may be plain or
async methods.

Capability Interfaces:
    1. TokenStoreAPI: The single token slot (plugin "token-store")
    2. TokenDecoderAPI: Unverified JWT decoding (plugin "token-decoder")
    3. RefreshEngineAPI: Single-flight refresh and scheduling
       (plugin "refresh-engine")
    4. FetchInterceptorAPI: Credential-injecting fetch functions
       (plugin "fetch-interceptor")

The kernel looks capabilities up by plugin name and checks them against
these protocols, so a replacement plugin only needs to register under
the same name and satisfy the same interface.

Example - A plugin that counts logins:
    from authkeeper.plugins.sdk import PluginBase, PluginMetadata
    from authkeeper.events import EventType

    class LoginCounterPlugin(PluginBase):
        metadata = PluginMetadata(
            name="login-counter",
            version="1.0.0",
            kind="optional",
            description="Counts logins",
        )

        def __init__(self):
            super().__init__()
            self.count = 0

        def install(self, kernel):
            self._unsubscribe = kernel.on(EventType.LOGIN, self._on_login)
            return self

        def uninstall(self):
            self._unsubscribe()

        def _on_login(self, event):
            self.count += 1
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from packaging import version as pkg_version

from authkeeper.tokens import StoredTokenSet, TokenSet
from authkeeper.transport import AuthFetch, Transport

if TYPE_CHECKING:
    from authkeeper.kernel.kernel import AuthKeeperKernel
    from authkeeper.plugins.fetch_interceptor import FetchInterceptorOptions
    from authkeeper.plugins.token_decoder import TokenInfo
    from authkeeper.retry import RetryPolicy

# Well-known plugin names the kernel routes to
TOKEN_STORE = "token-store"
TOKEN_DECODER = "token-decoder"
REFRESH_ENGINE = "refresh-engine"
FETCH_INTERCEPTOR = "fetch-interceptor"

PluginKind = Literal["core", "optional"]

_NAME_RE = re.compile(r"^[a-z][a-z0-9_-]*$")
_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+")


@dataclass
class PluginMetadata:
    """Metadata describing a plugin.

    Attributes:
        name: Unique plugin identifier (lowercase, digits, "-" or "_").
        version: Semantic version string (e.g., "1.0.0").
        kind: "core" for plugins the kernel routes to, "optional" for
            everything else.
        description: Human-readable description of the plugin.
        author: Plugin author name or organization.
        min_authkeeper_version: Minimum compatible AuthKeeper version.

    Example:
        metadata = PluginMetadata(
            name="token-store",
            version="1.0.0",
            kind="core",
            description="In-memory token slot",
        )
    """

    name: str
    version: str
    kind: PluginKind = "optional"
    description: str = ""
    author: str = "AuthKeeper"
    min_authkeeper_version: str = "0.1.0"

    def __post_init__(self) -> None:
        """Validate metadata fields."""
        if not self.name:
            raise ValueError("Plugin name cannot be empty")
        if not self.version:
            raise ValueError("Plugin version cannot be empty")

        if not _NAME_RE.match(self.name):
            raise ValueError(
                f"Plugin name must be lowercase alphanumeric with '-' or '_': {self.name}"
            )

        if not _SEMVER_RE.match(self.version):
            raise ValueError(f"Plugin version must be semver format: {self.version}")

        if self.kind not in ("core", "optional"):
            raise ValueError(f"Plugin kind must be 'core' or 'optional': {self.kind}")

    def is_compatible(self, authkeeper_version: str) -> bool:
        """Check if the plugin supports a given AuthKeeper version.

        Args:
            authkeeper_version: The AuthKeeper version to check against.

        Returns:
            True if compatible, False otherwise. Unparseable versions are
            treated as compatible.
        """
        try:
            return pkg_version.parse(authkeeper_version) >= pkg_version.parse(
                self.min_authkeeper_version
            )
        except pkg_version.InvalidVersion:
            return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "kind": self.kind,
            "description": self.description,
            "author": self.author,
            "min_authkeeper_version": self.min_authkeeper_version,
        }

    def __repr__(self) -> str:
        return f"<PluginMetadata {self.name}@{self.version} ({self.kind})>"


@runtime_checkable
class Plugin(Protocol):
    """The contract every plugin satisfies.

    Required Attributes:
        metadata: Plugin metadata; metadata.name is the registry key.

    Required Methods:
        install: Called once with the kernel; returns the capability
            object (or None to expose the plugin itself).

    Optional Methods:
        uninstall: Release timers, subscriptions and other resources.
    """

    metadata: PluginMetadata

    def install(self, kernel: AuthKeeperKernel) -> Any:
        ...


class PluginBase:
    """Optional base class for plugins.

    Provides a default install() that exposes the plugin itself as the
    capability, a no-op uninstall() and access to the installing kernel.
    """

    metadata: PluginMetadata

    def __init__(self) -> None:
        self._kernel: AuthKeeperKernel | None = None

    def install(self, kernel: AuthKeeperKernel) -> Any:
        self._kernel = kernel
        return self

    def uninstall(self) -> None:
        self._kernel = None

    @property
    def kernel(self) -> AuthKeeperKernel:
        if self._kernel is None:
            raise RuntimeError(f"Plugin '{self.metadata.name}' is not installed")
        return self._kernel

    @property
    def is_installed(self) -> bool:
        return self._kernel is not None

    def __repr__(self) -> str:
        status = "installed" if self.is_installed else "not installed"
        return f"<{self.__class__.__name__} {self.metadata.name}@{self.metadata.version} {status}>"


@runtime_checkable
class TokenStoreAPI(Protocol):
    """Capability of the "token-store" plugin."""

    def set(self, tokens: TokenSet) -> StoredTokenSet:
        ...

    def get(self) -> StoredTokenSet | None:
        ...

    def clear(self) -> None:
        ...

    def get_access_token(self) -> str | None:
        ...

    def get_refresh_token(self) -> str | None:
        ...

    def get_expires_at(self) -> datetime | None:
        ...

    def get_expires_in(self) -> int | None:
        ...

    def is_expired(self) -> bool:
        ...


@runtime_checkable
class TokenDecoderAPI(Protocol):
    """Capability of the "token-decoder" plugin."""

    def decode(self, token: str | None = None) -> dict[str, Any] | None:
        ...

    def get_claim(self, key: str, token: str | None = None) -> Any:
        ...

    def get_claims(self, keys: list[str], token: str | None = None) -> dict[str, Any]:
        ...

    def get_token_info(self, token: str | None = None) -> TokenInfo | None:
        ...


@runtime_checkable
class RefreshEngineAPI(Protocol):
    """Capability of the "refresh-engine" plugin."""

    async def refresh(self) -> TokenSet:
        ...

    def schedule_refresh(self) -> None:
        ...

    def cancel_scheduled_refresh(self) -> None:
        ...

    def is_refreshing(self) -> bool:
        ...

    def get_next_refresh_at(self) -> datetime | None:
        ...

    def set_refresh_fn(self, fn: Any) -> None:
        ...

    def set_threshold(self, seconds: float) -> None:
        ...

    def set_retry_policy(self, policy: RetryPolicy) -> None:
        ...


@runtime_checkable
class FetchInterceptorAPI(Protocol):
    """Capability of the "fetch-interceptor" plugin."""

    def create_fetch(
        self,
        options: FetchInterceptorOptions | None = None,
        *,
        transport: Transport | None = None,
    ) -> AuthFetch:
        ...

    def wrap_fetch(self, transport: Transport | None = None) -> None:
        ...

    def unwrap_fetch(self) -> None:
        ...

    def set_header(self, header_name: str, header_prefix: str) -> None:
        ...
