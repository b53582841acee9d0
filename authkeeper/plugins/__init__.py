"""Core AuthKeeper plugins and the plugin SDK."""

from .fetch_interceptor import FetchInterceptorOptions, FetchInterceptorPlugin, should_authenticate
from .refresh_engine import RefreshEnginePlugin, RefreshTokenFn
from .sdk import (
    FETCH_INTERCEPTOR,
    REFRESH_ENGINE,
    TOKEN_DECODER,
    TOKEN_STORE,
    FetchInterceptorAPI,
    Plugin,
    PluginBase,
    PluginMetadata,
    RefreshEngineAPI,
    TokenDecoderAPI,
    TokenStoreAPI,
)
from .token_decoder import TokenDecoderPlugin, TokenInfo
from .token_store import TokenStorePlugin

__all__ = [
    "FETCH_INTERCEPTOR",
    "REFRESH_ENGINE",
    "TOKEN_DECODER",
    "TOKEN_STORE",
    "FetchInterceptorAPI",
    "FetchInterceptorOptions",
    "FetchInterceptorPlugin",
    "Plugin",
    "PluginBase",
    "PluginMetadata",
    "RefreshEngineAPI",
    "RefreshEnginePlugin",
    "RefreshTokenFn",
    "TokenDecoderAPI",
    "TokenDecoderPlugin",
    "TokenInfo",
    "TokenStoreAPI",
    "TokenStorePlugin",
    "should_authenticate",
]
