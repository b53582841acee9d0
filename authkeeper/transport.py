"""
HTTP transport plumbing.

A transport is any coroutine function that sends an ``httpx.Request``
and returns an ``httpx.Response``. Fetch functions created by the kernel
accept either a ready request or a URL plus ``httpx.Request`` keyword
arguments, mirroring ``httpx.AsyncClient.request``.

The ambient transport is what a fetch function uses when no transport
was injected. By default it sends through a lazily created shared
``httpx.AsyncClient``.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

Transport = Callable[[httpx.Request], Awaitable[httpx.Response]]
AuthFetch = Callable[..., Awaitable[httpx.Response]]
RequestInput = str | httpx.URL | httpx.Request

_shared_client: httpx.AsyncClient | None = None


async def httpx_transport(request: httpx.Request) -> httpx.Response:
    """Send a request through the shared AsyncClient."""
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(timeout=30.0)
    return await _shared_client.send(request)


async def aclose_shared_client() -> None:
    """Close the shared AsyncClient if one was created."""
    global _shared_client
    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None


_ambient_transport: Transport = httpx_transport


def get_transport() -> Transport:
    """Get the current ambient transport."""
    return _ambient_transport


def set_transport(transport: Transport) -> Transport:
    """Replace the ambient transport.

    Returns:
        The transport that was installed before.
    """
    global _ambient_transport
    previous = _ambient_transport
    _ambient_transport = transport
    return previous


def build_request(input: RequestInput, **init: Any) -> httpx.Request:
    """Build an httpx.Request from fetch-style arguments.

    Args:
        input: A URL or an already built request. A request is used as
            is; init must then be empty.
        **init: ``method`` (default GET) plus any ``httpx.Request`` keyword
            argument (headers, params, json, content, ...).
    """
    if isinstance(input, httpx.Request):
        if init:
            raise TypeError("Request options cannot be combined with an httpx.Request")
        return input
    method = init.pop("method", "GET")
    return httpx.Request(method, input, **init)


def create_plain_fetch(transport: Transport | None = None) -> AuthFetch:
    """Create a fetch function that adds no credentials.

    Args:
        transport: Transport to send through. Defaults to the ambient
            transport at call time.
    """

    async def fetch(input: RequestInput, **init: Any) -> httpx.Response:
        request = build_request(input, **init)
        send = transport or get_transport()
        return await send(request)

    return fetch
