"""
Factory for a ready-to-use AuthKeeper kernel.

create_auth_keeper() builds the kernel, installs the core plugins and
initializes it:

    1. token-store (persisting through the configured storage)
    2. token-decoder
    3. refresh-engine (only when a refresh function is configured)
    4. fetch-interceptor

Example:
    async def refresh(refresh_token: str) -> dict:
        response = await client.post("/auth/refresh", json={"refresh_token": refresh_token})
        return response.json()

    auth = await create_auth_keeper(refresh_token=refresh, refresh_threshold=30)
    auth.set_tokens({"access_token": "...", "refresh_token": "...", "expires_in": 3600})
"""

from __future__ import annotations

import logging
from typing import Any

from authkeeper.config.options import KernelOptions
from authkeeper.config.settings import AuthKeeperSettings
from authkeeper.errors import ConfigurationError
from authkeeper.kernel.kernel import AuthKeeperKernel
from authkeeper.plugins.fetch_interceptor import FetchInterceptorOptions, FetchInterceptorPlugin
from authkeeper.plugins.refresh_engine import RefreshEnginePlugin
from authkeeper.plugins.token_decoder import TokenDecoderPlugin
from authkeeper.plugins.token_store import TokenStorePlugin
from authkeeper.storage import MemoryStorageAdapter, StorageAdapter

logger = logging.getLogger(__name__)


def create_storage(storage: str | StorageAdapter, prefix: str) -> StorageAdapter | None:
    """Resolve the ``storage`` option to an adapter.

    Raises:
        ConfigurationError: For an unknown storage name.
    """
    if isinstance(storage, str):
        if storage == "memory":
            return MemoryStorageAdapter(prefix=prefix)
        if storage == "none":
            return None
        raise ConfigurationError(
            f"Unknown storage type: {storage}", context={"storage": storage}
        )

    if not isinstance(storage, StorageAdapter):
        raise ConfigurationError(f"Object {storage!r} is not a storage adapter")
    return storage


async def create_auth_keeper(
    options: KernelOptions | None = None,
    *,
    settings: AuthKeeperSettings | None = None,
    **overrides: Any,
) -> AuthKeeperKernel:
    """Create and initialize a kernel with the core plugins installed.

    Args:
        options: Kernel options. Built from ``settings`` (or the
            environment) when omitted.
        settings: Environment settings used when ``options`` is omitted.
        **overrides: Individual options applied on top.

    Returns:
        The initialized kernel.

    Raises:
        ConfigurationError: For unknown options or storage types.
    """
    if options is None:
        options = KernelOptions.from_settings(settings, **overrides)
    elif overrides:
        options = options.copy(**overrides)

    storage = create_storage(options.storage, options.storage_prefix)
    kernel = AuthKeeperKernel(options)

    await kernel.register(TokenStorePlugin(storage=storage))
    await kernel.register(TokenDecoderPlugin())

    if options.refresh_token is not None:
        await kernel.register(
            RefreshEnginePlugin(
                options.refresh_token,
                threshold=options.refresh_threshold,
                retry_policy=options.retry_policy(),
            )
        )
    else:
        logger.debug("No refresh function configured; refresh-engine not installed")

    await kernel.register(
        FetchInterceptorPlugin(
            FetchInterceptorOptions(
                header_name=options.header_name,
                header_prefix=options.header_prefix,
            )
        )
    )

    await kernel.init()
    return kernel
