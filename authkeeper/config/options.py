"""
Runtime kernel options.

KernelOptions carries everything the kernel is configured with,
including the callables that cannot come from the environment (the
refresh function, the error hook and extra plugins). Plain values
default to the environment settings through from_settings().
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Callable

from authkeeper.config.settings import AuthKeeperSettings
from authkeeper.errors import AuthError, ConfigurationError
from authkeeper.retry import RetryPolicy
from authkeeper.storage import StorageAdapter

if TYPE_CHECKING:
    from authkeeper.plugins.refresh_engine import RefreshTokenFn
    from authkeeper.plugins.sdk import Plugin


@dataclass
class KernelOptions:
    """Kernel configuration.

    Attributes:
        auto_refresh: Schedule a refresh before every expiry.
        refresh_threshold: Seconds before expiry at which to refresh.
        refresh_max_retries: Retries after a failed refresh attempt.
        refresh_retry_delay: Base backoff delay in seconds.
        sync_tabs: Accepted for compatibility; nothing here produces
            cross-tab traffic.
        storage: "memory", "none" or a StorageAdapter instance.
        storage_prefix: Key prefix of the memory storage adapter.
        header_name: Header the fetch interceptor writes.
        header_prefix: Prefix put before the access token.
        refresh_token: Coroutine function exchanging a refresh token for
            new tokens.
        on_error: Called with the error of every ErrorEvent.
        plugins: Extra plugins installed by init().
    """

    auto_refresh: bool = True
    refresh_threshold: float = 60.0
    refresh_max_retries: int = 3
    refresh_retry_delay: float = 1.0
    sync_tabs: bool = True
    storage: str | StorageAdapter = "memory"
    storage_prefix: str = "authkeeper:"
    header_name: str = "Authorization"
    header_prefix: str = "Bearer "
    refresh_token: RefreshTokenFn | None = None
    on_error: Callable[[AuthError], None] | None = None
    plugins: list[Plugin] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.refresh_threshold < 0:
            raise ConfigurationError("refresh_threshold must be >= 0")
        if self.refresh_max_retries < 0:
            raise ConfigurationError("refresh_max_retries must be >= 0")
        if self.refresh_retry_delay < 0:
            raise ConfigurationError("refresh_retry_delay must be >= 0")

    @classmethod
    def from_settings(
        cls, settings: AuthKeeperSettings | None = None, **overrides: Any
    ) -> KernelOptions:
        """Build options from environment settings plus keyword overrides.

        Raises:
            ConfigurationError: If an override names an unknown option.
        """
        settings = settings or AuthKeeperSettings()
        base = {
            "auto_refresh": settings.AUTO_REFRESH,
            "refresh_threshold": settings.REFRESH_THRESHOLD,
            "refresh_max_retries": settings.REFRESH_MAX_RETRIES,
            "refresh_retry_delay": settings.REFRESH_RETRY_DELAY,
            "sync_tabs": settings.SYNC_TABS,
            "storage": settings.STORAGE,
            "storage_prefix": settings.STORAGE_PREFIX,
            "header_name": settings.HEADER_NAME,
            "header_prefix": settings.HEADER_PREFIX,
        }
        check_option_names(overrides)
        base.update(overrides)
        return cls(**base)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.refresh_max_retries,
            retry_delay=self.refresh_retry_delay,
        )

    def copy(self, **changes: Any) -> KernelOptions:
        """Copy with changes applied; the plugin list is not shared."""
        check_option_names(changes)
        changes.setdefault("plugins", list(self.plugins))
        return replace(self, **changes)


OPTION_NAMES = frozenset(f.name for f in fields(KernelOptions))


def check_option_names(changes: dict[str, Any]) -> None:
    unknown = sorted(set(changes) - OPTION_NAMES)
    if unknown:
        raise ConfigurationError(
            f"Unknown kernel option(s): {', '.join(unknown)}",
            context={"options": unknown},
        )
