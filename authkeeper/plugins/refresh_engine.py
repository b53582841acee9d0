"""
Refresh engine plugin.

Coordinates token refresh:

    - Single-flight: concurrent refresh() calls share one in-flight
      refresh and observe the same outcome.
    - Retries: transient failures are retried with exponential backoff
      according to a RetryPolicy.
    - Scheduling: one timer fires ``threshold`` seconds before expiry;
      every successful refresh re-arms it.

The engine never touches the token store directly; it reads and writes
tokens through the kernel.

Example:
    async def refresh_tokens(refresh_token: str) -> dict:
        response = await client.post("/oauth/token", data={...})
        return response.json()

    kernel = AuthKeeperKernel()
    await kernel.register(TokenStorePlugin())
    await kernel.register(RefreshEnginePlugin(refresh_tokens, threshold=60))
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from authkeeper.errors import (
    AuthError,
    ConfigurationError,
    RefreshFailedError,
    RefreshTokenMissingError,
    RetryExhaustedError,
)
from authkeeper.events import ErrorEvent, ExpiredEvent, RefreshEvent
from authkeeper.plugins.sdk import REFRESH_ENGINE, PluginBase, PluginMetadata
from authkeeper.retry import RetryPolicy, Sleep, retry_with_backoff
from authkeeper.tokens import TokenSet

if TYPE_CHECKING:
    from authkeeper.kernel.kernel import AuthKeeperKernel

logger = logging.getLogger(__name__)

RefreshTokenFn = Callable[[str], Awaitable[TokenSet | Mapping[str, Any]]]

DEFAULT_THRESHOLD = 60.0


class RefreshEnginePlugin(PluginBase):
    """Single-flight, retrying, self-scheduling refresh coordinator.

    Args:
        refresh_fn: Coroutine function exchanging a refresh token for a
            new TokenSet (or an OAuth2-style mapping).
        threshold: Seconds before expiry at which to refresh.
        retry_policy: Retry budget and backoff for transient failures.
        on_refresh_start: Called when a new refresh flight starts.
        on_refresh_success: Called with the new TokenSet.
        on_refresh_error: Called with the error that ended a refresh.
        sleep: Awaitable used for backoff waits.
    """

    metadata = PluginMetadata(
        name=REFRESH_ENGINE,
        version="1.0.0",
        kind="core",
        description="Single-flight token refresh with retries and scheduling",
    )

    def __init__(
        self,
        refresh_fn: RefreshTokenFn | None = None,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        retry_policy: RetryPolicy | None = None,
        on_refresh_start: Callable[[], None] | None = None,
        on_refresh_success: Callable[[TokenSet], None] | None = None,
        on_refresh_error: Callable[[AuthError], None] | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__()
        if threshold < 0:
            raise ValueError("threshold must be non-negative")

        self._refresh_fn = refresh_fn
        self._threshold = float(threshold)
        self._retry_policy = retry_policy or RetryPolicy()
        self._on_refresh_start = on_refresh_start
        self._on_refresh_success = on_refresh_success
        self._on_refresh_error = on_refresh_error
        self._sleep = sleep

        self._inflight: asyncio.Future[TokenSet] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task] = set()

    def install(self, kernel: AuthKeeperKernel) -> RefreshEnginePlugin:
        return super().install(kernel)

    def uninstall(self) -> None:
        self.cancel_scheduled_refresh()
        for task in list(self._background):
            task.cancel()
        self._background.clear()
        super().uninstall()

    # =========================================================================
    # Refresh
    # =========================================================================

    async def refresh(self) -> TokenSet:
        """Refresh the tokens, joining the in-flight refresh if there is one.

        Returns:
            The new token set.

        Raises:
            RefreshTokenMissingError: If no refresh token is stored.
            RefreshFailedError: If every attempt failed.
        """
        if self._inflight is None:
            if self._refresh_fn is None:
                raise ConfigurationError("No refresh function configured")
            self._inflight = asyncio.ensure_future(self._run_refresh(self._refresh_fn))
            self._inflight.add_done_callback(_consume_result)
        else:
            logger.debug("Joining in-flight refresh")

        return await asyncio.shield(self._inflight)

    async def _run_refresh(self, refresh_fn: RefreshTokenFn) -> TokenSet:
        kernel = self.kernel
        try:
            self._call_hook("on_refresh_start", self._on_refresh_start)

            refresh_token = kernel.get_refresh_token()
            if not refresh_token:
                error = RefreshTokenMissingError()
                self._report(error)
                raise error

            previous_expires_at = kernel.get_expires_at()

            async def attempt() -> TokenSet:
                result = refresh_fn(refresh_token)
                if inspect.isawaitable(result):
                    result = await result
                if not isinstance(result, TokenSet):
                    result = TokenSet.from_dict(result)
                return result

            try:
                tokens = await retry_with_backoff(
                    attempt, self._retry_policy, sleep=self._sleep
                )
            except RetryExhaustedError as e:
                error = RefreshFailedError(
                    f"Token refresh failed: {e.last_error}",
                    context={"attempts": e.attempts},
                    cause=e.last_error,
                )
                logger.error(f"Token refresh failed after {e.attempts} attempt(s): {e.last_error}")
                self._report(error)
                if kernel.is_expired():
                    expired_at = kernel.get_expires_at()
                    if expired_at is not None:
                        kernel.emit(ExpiredEvent(expired_at=expired_at))
                raise error from e.last_error

            kernel.set_tokens(tokens)
            kernel.emit(
                RefreshEvent(
                    tokens=tokens,
                    previous_expires_at=previous_expires_at,
                    new_expires_at=kernel.get_expires_at(),
                )
            )
            logger.info("Tokens refreshed")

            self._call_hook("on_refresh_success", self._on_refresh_success, tokens)

            kernel.schedule_refresh()
            return tokens
        finally:
            self._inflight = None

    def _report(self, error: AuthError) -> None:
        self.kernel.emit(ErrorEvent(error=error, context="refresh"))
        self._call_hook("on_refresh_error", self._on_refresh_error, error)

    @staticmethod
    def _call_hook(name: str, hook: Callable[..., Any] | None, *args: Any) -> None:
        """Run a host hook; its failures are logged and never reach callers."""
        if hook is None:
            return
        try:
            hook(*args)
        except Exception as e:
            logger.error(f"Error in {name} hook: {e}", exc_info=True)

    def is_refreshing(self) -> bool:
        return self._inflight is not None

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_refresh(self) -> None:
        """Arm the single refresh timer for ``threshold`` seconds before expiry.

        Replaces any pending timer. Does nothing for tokens without an
        expiry. When the refresh point has already passed the refresh
        starts in the background right away.
        """
        self.cancel_scheduled_refresh()

        time_until_expiry = self.kernel.get_time_until_expiry()
        if time_until_expiry is None:
            return

        delay = time_until_expiry / 1000 - self._threshold

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; refresh not scheduled")
            return

        if delay <= 0:
            if self.is_refreshing():
                logger.debug("Refresh due now but one is already in flight")
                return
            logger.debug("Refresh due now; refreshing in the background")
            self._spawn_refresh(loop)
            return

        logger.debug(f"Refresh scheduled in {delay:.3f}s")
        self._timer = loop.call_later(delay, self._on_timer, loop)

    def cancel_scheduled_refresh(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def has_scheduled_refresh(self) -> bool:
        return self._timer is not None

    def get_next_refresh_at(self) -> datetime | None:
        if self._kernel is None:
            return None
        expires_at = self._kernel.get_expires_at()
        if expires_at is None:
            return None
        return expires_at - timedelta(seconds=self._threshold)

    def _on_timer(self, loop: asyncio.AbstractEventLoop) -> None:
        self._timer = None
        self._spawn_refresh(loop)

    def _spawn_refresh(self, loop: asyncio.AbstractEventLoop) -> None:
        task = loop.create_task(self._refresh_in_background())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_in_background(self) -> None:
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {e}")

    # =========================================================================
    # Hot-swappable settings
    # =========================================================================

    def set_refresh_fn(self, fn: RefreshTokenFn) -> None:
        """Replace the refresh function; an in-flight refresh keeps the old one."""
        self._refresh_fn = fn

    def set_threshold(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("threshold must be non-negative")
        self._threshold = float(seconds)

    def set_retry_policy(self, policy: RetryPolicy) -> None:
        self._retry_policy = policy

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy


def _consume_result(future: asyncio.Future) -> None:
    # Joined callers see the error; this keeps an unjoined failure quiet
    if not future.cancelled():
        future.exception()
