"""
Event bus for the kernel and its plugins.

Handlers are registered per event type and dispatched on a later
event-loop turn, never inside emit(). Dispatches are queued and drained
by a single task so that:

    - handlers of one emit run in subscription order;
    - emits are dispatched first-in first-out;
    - a handler that raises is logged and does not stop its siblings;
    - a handler removed before its turn is not called.

flush() is the explicit synchronisation point: it returns once every
queued dispatch has run.

Example:
    bus = EventBus()
    unsubscribe = bus.on(EventType.LOGIN, lambda event: print(event))
    bus.emit(LoginEvent(tokens=tokens))
    await bus.flush()
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque

from authkeeper.events import AuthEvent, EventHandler, EventType, Unsubscribe

logger = logging.getLogger(__name__)


class EventBus:
    """Publish/subscribe with deferred, isolated dispatch.

    Attributes:
        _handlers: Insertion-ordered handler sets keyed by event type.
        _pending: Queued (event, handler snapshot) dispatches.
        _drain_task: Task currently draining the queue, if any.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, dict[EventHandler, None]] = {}
        self._pending: deque[tuple[AuthEvent, tuple[EventHandler, ...]]] = deque()
        self._drain_task: asyncio.Task | None = None

    def on(self, event_type: EventType, handler: EventHandler) -> Unsubscribe:
        """Subscribe to an event type.

        Subscribing the same handler twice is a no-op.

        Args:
            event_type: Type of event to listen for.
            handler: Function or coroutine function taking the event.

        Returns:
            A function that removes this subscription.
        """
        event_type = EventType(event_type)
        self._handlers.setdefault(event_type, {})[handler] = None

        def unsubscribe() -> None:
            self.off(event_type, handler)

        return unsubscribe

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe a handler; unknown handlers are ignored."""
        event_type = EventType(event_type)
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        handlers.pop(handler, None)
        if not handlers:
            del self._handlers[event_type]

    def emit(self, event: AuthEvent) -> None:
        """Queue an event for dispatch to its current subscribers.

        Returns before any handler runs.
        """
        handlers = self._handlers.get(event.type)
        if not handlers:
            return

        self._pending.append((event, tuple(handlers)))
        self._schedule_drain()

    def clear(self) -> None:
        """Remove all subscriptions and drop queued dispatches."""
        self._handlers.clear()
        self._pending.clear()

    async def flush(self) -> None:
        """Wait until every queued dispatch has completed.

        Called from inside a handler it returns immediately, since the
        caller is itself part of the drain.
        """
        current = asyncio.current_task()
        if current is not None and current is self._drain_task:
            return

        while self._pending or self._is_draining():
            if not self._is_draining():
                self._schedule_drain()
            await self._drain_task

    def get_handler_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(EventType(event_type), ()))

    def get_active_event_types(self) -> list[EventType]:
        return list(self._handlers)

    @property
    def pending_count(self) -> int:
        """Number of queued dispatches not yet started."""
        return len(self._pending)

    def _is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def _schedule_drain(self) -> None:
        if self._is_draining():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(
                f"No running event loop; {len(self._pending)} dispatch(es) held until flush()"
            )
            return
        self._drain_task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending:
            event, handlers = self._pending.popleft()
            await self._dispatch(event, handlers)

    async def _dispatch(self, event: AuthEvent, handlers: tuple[EventHandler, ...]) -> None:
        for handler in handlers:
            # Skip handlers removed after the emit
            if handler not in self._handlers.get(event.type, ()):
                continue
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in event handler for {event.type.value}: {e}", exc_info=True)

    def __repr__(self) -> str:
        counts = {t.value: len(h) for t, h in self._handlers.items()}
        return f"<EventBus handlers={counts} pending={len(self._pending)}>"
