"""
AuthKeeper kernel.

The kernel is the composition root. It owns the plugin registry and the
event bus and exposes one facade for the host application. Almost every
call is routed to the plugin that provides the capability:

    token-store        -> tokens and expiry state
    token-decoder      -> claim access
    refresh-engine     -> refresh and scheduling
    fetch-interceptor  -> authenticated fetch functions

A missing plugin degrades the facade gracefully (None, False, an
unauthenticated fetch), except where the call cannot mean anything
without it: set_tokens() and refresh() raise ConfigurationError.

Example:
    async with AuthKeeperKernel(KernelOptions(refresh_token=refresh)) as kernel:
        await kernel.register(TokenStorePlugin())
        await kernel.register(RefreshEnginePlugin(refresh))
        kernel.set_tokens(TokenSet(access_token="...", expires_in=3600))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, TypeVar

from authkeeper.config.options import KernelOptions, check_option_names
from authkeeper.errors import ConfigurationError, InstallError
from authkeeper.events import (
    AuthEvent,
    ErrorEvent,
    EventHandler,
    EventType,
    LoginEvent,
    LogoutEvent,
    LogoutReason,
    Unsubscribe,
)
from authkeeper.kernel.event_bus import EventBus
from authkeeper.kernel.registry import PluginInfo, PluginRegistry
from authkeeper.plugins.fetch_interceptor import FetchInterceptorOptions
from authkeeper.plugins.sdk import (
    FETCH_INTERCEPTOR,
    REFRESH_ENGINE,
    TOKEN_DECODER,
    TOKEN_STORE,
    FetchInterceptorAPI,
    Plugin,
    RefreshEngineAPI,
    TokenDecoderAPI,
    TokenStoreAPI,
)
from authkeeper.tokens import TokenSet
from authkeeper.transport import AuthFetch, Transport, aclose_shared_client, create_plain_fetch

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRY_OPTIONS = frozenset({"refresh_max_retries", "refresh_retry_delay"})
_HEADER_OPTIONS = frozenset({"header_name", "header_prefix"})


class AuthKeeperKernel:
    """Micro-kernel orchestrating the auth plugins.

    Args:
        options: Kernel options. Defaults to KernelOptions().
        **overrides: Individual options applied on top of ``options``.

    Raises:
        ConfigurationError: If an override names an unknown option.
    """

    def __init__(self, options: KernelOptions | None = None, **overrides: Any):
        options = options or KernelOptions()
        self._options = options.copy(**overrides) if overrides else options
        self._registry = PluginRegistry()
        self._bus = EventBus()
        self._initialized = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> None:
        """Install the configured plugins and resume scheduling.

        Calling init() again does nothing.
        """
        if self._initialized:
            return

        for plugin in self._options.plugins:
            if not self._registry.has(plugin.metadata.name):
                await self.register(plugin)

        self._initialized = True
        logger.info(f"AuthKeeper kernel initialized with {len(self._registry)} plugin(s)")

        if self.is_authenticated():
            self.schedule_refresh()

    async def destroy(self) -> None:
        """Cancel timers, drop subscriptions and uninstall every plugin.

        Also closes the shared HTTP client; the default transport opens a
        new one on its next request.
        """
        self.cancel_scheduled_refresh()
        self._bus.clear()

        for name in reversed(self._registry.get_names()):
            await self._registry.uninstall(name)

        self._registry.clear()
        await aclose_shared_client()
        self._initialized = False
        logger.info("AuthKeeper kernel destroyed")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def __aenter__(self) -> AuthKeeperKernel:
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.destroy()

    # =========================================================================
    # Tokens
    # =========================================================================

    def set_tokens(self, tokens: TokenSet | Mapping[str, Any]) -> None:
        """Store new tokens.

        Emits a LoginEvent when no tokens were stored before and
        schedules the next refresh when auto-refresh is on.

        Raises:
            ConfigurationError: If no token store is installed.
        """
        store = self._token_store()
        if store is None:
            raise ConfigurationError("token-store plugin not installed")

        if not isinstance(tokens, TokenSet):
            tokens = TokenSet.from_dict(tokens)

        was_empty = store.get() is None
        store.set(tokens)

        if was_empty:
            self.emit(LoginEvent(tokens=tokens))

        if self._options.auto_refresh and not self.is_expired():
            self.schedule_refresh()

    def get_access_token(self) -> str | None:
        store = self._token_store()
        return store.get_access_token() if store else None

    def get_refresh_token(self) -> str | None:
        store = self._token_store()
        return store.get_refresh_token() if store else None

    def clear_tokens(self) -> None:
        store = self._token_store()
        if store is not None:
            store.clear()

    # =========================================================================
    # Auth state
    # =========================================================================

    def is_authenticated(self) -> bool:
        return self.get_access_token() is not None and not self.is_expired()

    def is_expired(self) -> bool:
        """True when expired, and also when there is no token store."""
        store = self._token_store()
        return store.is_expired() if store else True

    def get_expires_at(self) -> datetime | None:
        store = self._token_store()
        return store.get_expires_at() if store else None

    def get_time_until_expiry(self) -> int | None:
        """Milliseconds until expiry (0 once expired), None without expiry."""
        store = self._token_store()
        return store.get_expires_in() if store else None

    # =========================================================================
    # Decoding
    # =========================================================================

    def decode(self) -> dict[str, Any] | None:
        decoder = self._registry.get_api(TOKEN_DECODER, TokenDecoderAPI)
        return decoder.decode() if decoder else None

    def get_claim(self, key: str) -> Any:
        decoder = self._registry.get_api(TOKEN_DECODER, TokenDecoderAPI)
        return decoder.get_claim(key) if decoder else None

    def get_claims(self, keys: list[str]) -> dict[str, Any]:
        decoder = self._registry.get_api(TOKEN_DECODER, TokenDecoderAPI)
        return decoder.get_claims(keys) if decoder else {}

    # =========================================================================
    # Refresh
    # =========================================================================

    async def refresh(self) -> TokenSet:
        """Refresh the tokens now, joining an in-flight refresh.

        Raises:
            ConfigurationError: If no refresh engine is installed.
            RefreshTokenMissingError: If no refresh token is stored.
            RefreshFailedError: If every attempt failed.
        """
        engine = self._refresh_engine()
        if engine is None:
            raise ConfigurationError("refresh-engine plugin not installed")
        return await engine.refresh()

    def schedule_refresh(self) -> None:
        if not self._options.auto_refresh:
            return
        engine = self._refresh_engine()
        if engine is not None:
            engine.schedule_refresh()

    def cancel_scheduled_refresh(self) -> None:
        engine = self._refresh_engine()
        if engine is not None:
            engine.cancel_scheduled_refresh()

    # =========================================================================
    # Logout
    # =========================================================================

    def logout(self, reason: LogoutReason | str = LogoutReason.MANUAL) -> None:
        """Cancel the refresh timer, clear the tokens and emit a LogoutEvent."""
        reason = LogoutReason(reason)
        self.cancel_scheduled_refresh()
        self.clear_tokens()
        self.emit(LogoutEvent(reason=reason))
        logger.info(f"Logged out ({reason.value})")

    # =========================================================================
    # Interceptors
    # =========================================================================

    def create_fetch(
        self,
        options: FetchInterceptorOptions | None = None,
        *,
        transport: Transport | None = None,
    ) -> AuthFetch:
        """Create an authenticated fetch function.

        Without ``options`` the interceptor's own defaults apply. Without a
        fetch interceptor the returned function sends requests unmodified.
        """
        interceptor = self._registry.get_api(FETCH_INTERCEPTOR, FetchInterceptorAPI)
        if interceptor is None:
            return create_plain_fetch(transport)
        return interceptor.create_fetch(options, transport=transport)

    def wrap_fetch(self, transport: Transport | None = None) -> None:
        interceptor = self._registry.get_api(FETCH_INTERCEPTOR, FetchInterceptorAPI)
        if interceptor is not None:
            interceptor.wrap_fetch(transport)

    def unwrap_fetch(self) -> None:
        interceptor = self._registry.get_api(FETCH_INTERCEPTOR, FetchInterceptorAPI)
        if interceptor is not None:
            interceptor.unwrap_fetch()

    # =========================================================================
    # Plugins
    # =========================================================================

    async def register(self, plugin: Plugin) -> None:
        """Register and install a plugin.

        Raises:
            DuplicatePluginError: If the name is taken.
            InstallError: If the plugin's install() failed. The error is
                also emitted as an ErrorEvent.
        """
        self._registry.register(plugin)
        try:
            await self._registry.install(plugin.metadata.name, self)
        except InstallError as e:
            self.emit(ErrorEvent(error=e, context="plugin"))
            raise

    async def unregister(self, name: str) -> None:
        await self._registry.uninstall(name)

    def get_plugin(self, name: str) -> Plugin | None:
        return self._registry.get(name)

    def list_plugins(self) -> list[PluginInfo]:
        return self._registry.list()

    def get_capability(self, name: str, expected: type[T] | None = None) -> T | Any | None:
        """Capability object of an installed plugin, checked against ``expected``."""
        return self._registry.get_api(name, expected)

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    # =========================================================================
    # Events
    # =========================================================================

    def emit(self, event: AuthEvent) -> None:
        """Emit an event; ErrorEvents are also passed to ``on_error``."""
        self._bus.emit(event)

        if isinstance(event, ErrorEvent) and self._options.on_error is not None:
            try:
                self._options.on_error(event.error)
            except Exception as e:
                logger.error(f"Error in on_error hook: {e}", exc_info=True)

    def on(self, event_type: EventType | str, handler: EventHandler) -> Unsubscribe:
        return self._bus.on(EventType(event_type), handler)

    def off(self, event_type: EventType | str, handler: EventHandler) -> None:
        self._bus.off(EventType(event_type), handler)

    async def flush_events(self) -> None:
        """Wait until every emitted event has reached its handlers."""
        await self._bus.flush()

    @property
    def events(self) -> EventBus:
        return self._bus

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(self, **changes: Any) -> None:
        """Update options and push relevant changes to the refresh engine.

        Raises:
            ConfigurationError: If an option is unknown or invalid.
        """
        check_option_names(changes)
        self._options = self._options.copy(**changes)

        engine = self._refresh_engine()
        if engine is not None:
            if "refresh_threshold" in changes:
                engine.set_threshold(self._options.refresh_threshold)
            if "refresh_token" in changes and self._options.refresh_token is not None:
                engine.set_refresh_fn(self._options.refresh_token)
            if _RETRY_OPTIONS & changes.keys():
                engine.set_retry_policy(self._options.retry_policy())

        if _HEADER_OPTIONS & changes.keys():
            interceptor = self._registry.get_api(FETCH_INTERCEPTOR, FetchInterceptorAPI)
            if interceptor is not None:
                interceptor.set_header(self._options.header_name, self._options.header_prefix)

        if "auto_refresh" in changes:
            if self._options.auto_refresh:
                if self.is_authenticated():
                    self.schedule_refresh()
            else:
                self.cancel_scheduled_refresh()
        elif "refresh_threshold" in changes and self.is_authenticated():
            self.schedule_refresh()

    def get_options(self) -> KernelOptions:
        """A copy of the current options."""
        return self._options.copy()

    # =========================================================================
    # Capability lookup
    # =========================================================================

    def _token_store(self) -> TokenStoreAPI | None:
        return self._registry.get_api(TOKEN_STORE, TokenStoreAPI)

    def _refresh_engine(self) -> RefreshEngineAPI | None:
        return self._registry.get_api(REFRESH_ENGINE, RefreshEngineAPI)

    def __repr__(self) -> str:
        state = "initialized" if self._initialized else "not initialized"
        return f"<AuthKeeperKernel plugins={self._registry.get_names()} {state}>"


