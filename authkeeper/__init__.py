"""
AuthKeeper: client-side authentication kernel.

Holds the current token state, coordinates token refresh under
concurrent demand and intercepts outgoing HTTP requests to add
credentials and recover from authorization failures.
"""

__version__ = "0.1.0"

from authkeeper.config import AuthKeeperSettings, KernelOptions
from authkeeper.errors import (
    AuthError,
    AuthErrorCode,
    ConfigurationError,
    DuplicatePluginError,
    InstallError,
    PluginNotFoundError,
    RefreshFailedError,
    RefreshTokenMissingError,
    RetryExhaustedError,
    TokenDecodeError,
)
from authkeeper.events import (
    AuthEvent,
    ErrorEvent,
    EventType,
    ExpiredEvent,
    LoginEvent,
    LogoutEvent,
    LogoutReason,
    RefreshEvent,
    StorageChangeEvent,
    TabSyncEvent,
)
from authkeeper.factory import create_auth_keeper
from authkeeper.kernel import AuthKeeperKernel, EventBus, PluginInfo, PluginRegistry
from authkeeper.plugins import (
    FetchInterceptorOptions,
    FetchInterceptorPlugin,
    PluginBase,
    PluginMetadata,
    RefreshEnginePlugin,
    TokenDecoderPlugin,
    TokenInfo,
    TokenStorePlugin,
)
from authkeeper.retry import RetryPolicy, retry_with_backoff
from authkeeper.storage import MemoryStorageAdapter, StorageAdapter
from authkeeper.tokens import StoredTokenSet, TokenSet
from authkeeper.transport import aclose_shared_client, get_transport, set_transport

__all__ = [
    "AuthError",
    "AuthErrorCode",
    "AuthEvent",
    "AuthKeeperKernel",
    "AuthKeeperSettings",
    "ConfigurationError",
    "DuplicatePluginError",
    "ErrorEvent",
    "EventBus",
    "EventType",
    "ExpiredEvent",
    "FetchInterceptorOptions",
    "FetchInterceptorPlugin",
    "InstallError",
    "KernelOptions",
    "LoginEvent",
    "LogoutEvent",
    "LogoutReason",
    "MemoryStorageAdapter",
    "PluginBase",
    "PluginInfo",
    "PluginMetadata",
    "PluginNotFoundError",
    "PluginRegistry",
    "RefreshEnginePlugin",
    "RefreshEvent",
    "RefreshFailedError",
    "RefreshTokenMissingError",
    "RetryExhaustedError",
    "RetryPolicy",
    "StorageAdapter",
    "StorageChangeEvent",
    "StoredTokenSet",
    "TabSyncEvent",
    "TokenDecodeError",
    "TokenDecoderPlugin",
    "TokenInfo",
    "TokenSet",
    "TokenStorePlugin",
    "__version__",
    "aclose_shared_client",
    "create_auth_keeper",
    "get_transport",
    "set_transport",
]
