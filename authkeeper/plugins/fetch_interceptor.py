"""
Fetch interceptor plugin.

Builds fetch functions that add the current access token to outgoing
requests and recover from a 401 by refreshing once and resending.

Fetch functions take fetch-style arguments, a URL plus httpx.Request
keyword arguments or a ready httpx.Request, and send through a
transport: the one given to create_fetch(), else the ambient transport
at call time.

Example:
    fetch = kernel.create_fetch(
        FetchInterceptorOptions(include_urls=["api.example.com"])
    )
    response = await fetch("https://api.example.com/me")
"""

from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

import httpx

from authkeeper.plugins.sdk import FETCH_INTERCEPTOR, PluginBase, PluginMetadata
from authkeeper.transport import (
    AuthFetch,
    RequestInput,
    Transport,
    build_request,
    get_transport,
    set_transport,
)

if TYPE_CHECKING:
    from authkeeper.kernel.kernel import AuthKeeperKernel

logger = logging.getLogger(__name__)

UrlPattern = Union[str, re.Pattern]


@dataclass
class FetchInterceptorOptions:
    """How a fetch function authenticates requests.

    Attributes:
        header_name: Header carrying the credential.
        header_prefix: Prepended to the access token.
        include_urls: Only matching URLs are authenticated; empty means all.
        exclude_urls: Matching URLs are never authenticated. Wins over
            include_urls.
        on_unauthorized: Called with the 401 response before refreshing.
        retry_401: Refresh and resend once on a 401.
        max_retries: Resends allowed after a 401; 0 disables them.
    """

    header_name: str = "Authorization"
    header_prefix: str = "Bearer "
    include_urls: list[UrlPattern] = field(default_factory=list)
    exclude_urls: list[UrlPattern] = field(default_factory=list)
    on_unauthorized: Callable[[httpx.Response], Awaitable[None] | None] | None = None
    retry_401: bool = True
    max_retries: int = 1


def _matches(url: str, pattern: UrlPattern) -> bool:
    if isinstance(pattern, re.Pattern):
        return pattern.search(url) is not None
    return pattern in url


def should_authenticate(url: str, options: FetchInterceptorOptions) -> bool:
    """Apply the include/exclude filters to a URL."""
    if any(_matches(url, p) for p in options.exclude_urls):
        return False
    if not options.include_urls:
        return True
    return any(_matches(url, p) for p in options.include_urls)


class FetchInterceptorPlugin(PluginBase):
    """Credential-injecting fetch functions with 401 recovery."""

    metadata = PluginMetadata(
        name=FETCH_INTERCEPTOR,
        version="1.0.0",
        kind="core",
        description="Adds credentials to requests and retries once after a 401",
    )

    def __init__(self, default_options: FetchInterceptorOptions | None = None):
        super().__init__()
        self._default_options = default_options or FetchInterceptorOptions()
        self._original_transport: Transport | None = None

    def install(self, kernel: AuthKeeperKernel) -> FetchInterceptorPlugin:
        return super().install(kernel)

    def uninstall(self) -> None:
        self.unwrap_fetch()
        super().uninstall()

    @property
    def default_options(self) -> FetchInterceptorOptions:
        return self._default_options

    def set_header(self, header_name: str, header_prefix: str) -> None:
        """Change the default header; URL filters and 401 settings are kept."""
        self._default_options = replace(
            self._default_options, header_name=header_name, header_prefix=header_prefix
        )

    def create_fetch(
        self,
        options: FetchInterceptorOptions | None = None,
        *,
        transport: Transport | None = None,
    ) -> AuthFetch:
        """Create an authenticated fetch function.

        Args:
            options: Header and filter settings; defaults to the plugin's.
            transport: Transport to send through. Defaults to the ambient
                transport at call time.

        Returns:
            Coroutine function ``fetch(input, **init) -> httpx.Response``.
        """
        opts = options or self._default_options

        async def fetch(input: RequestInput, **init: Any) -> httpx.Response:
            request = build_request(input, **init)
            send = transport or get_transport()

            if not should_authenticate(str(request.url), opts):
                return await send(request)

            kernel = self.kernel
            access_token = kernel.get_access_token()
            if access_token:
                request.headers[opts.header_name] = opts.header_prefix + access_token

            response = await send(request)

            if response.status_code != 401 or not opts.retry_401 or opts.max_retries <= 0:
                return response

            if opts.on_unauthorized is not None:
                try:
                    result = opts.on_unauthorized(response)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Error in on_unauthorized hook: {e}", exc_info=True)

            try:
                await kernel.refresh()
            except Exception as e:
                logger.error(f"Token refresh failed during 401 retry: {e}")
                return response

            new_token = kernel.get_access_token()
            if not new_token:
                return response

            request.headers[opts.header_name] = opts.header_prefix + new_token
            return await send(request)

        return fetch

    def wrap_fetch(self, transport: Transport | None = None) -> None:
        """Authenticate every request sent through the ambient transport.

        The transport replaced by the first wrap is kept and restored by
        unwrap_fetch(), however many times wrap_fetch() is called.

        Args:
            transport: Transport the override sends through. Defaults to
                the transport that was ambient before the first wrap.
        """
        if self._original_transport is None:
            self._original_transport = get_transport()

        base = transport or self._original_transport
        set_transport(self.create_fetch(transport=base))
        logger.debug("Ambient transport wrapped")

    def unwrap_fetch(self) -> None:
        """Restore the ambient transport replaced by wrap_fetch()."""
        if self._original_transport is None:
            return
        set_transport(self._original_transport)
        self._original_transport = None
        logger.debug("Ambient transport restored")

    @property
    def is_wrapped(self) -> bool:
        return self._original_transport is not None
