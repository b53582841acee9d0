"""Tests for authkeeper.kernel.event_bus."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from authkeeper.events import (
    EventType,
    LoginEvent,
    LogoutEvent,
    LogoutReason,
    RefreshEvent,
)
from authkeeper.kernel.event_bus import EventBus
from authkeeper.tokens import TokenSet


def _login() -> LoginEvent:
    return LoginEvent(tokens=TokenSet(access_token="a"))


# ===========================================================================
# Subscription
# ===========================================================================

class TestSubscription:
    """Tests for on/off bookkeeping."""

    def test_on_registers_handler(self):
        bus = EventBus()
        bus.on(EventType.LOGIN, MagicMock())
        assert bus.get_handler_count(EventType.LOGIN) == 1
        assert bus.get_active_event_types() == [EventType.LOGIN]

    def test_duplicate_subscription_is_noop(self):
        bus = EventBus()
        handler = MagicMock()
        bus.on(EventType.LOGIN, handler)
        bus.on(EventType.LOGIN, handler)
        assert bus.get_handler_count(EventType.LOGIN) == 1

    def test_unsubscribe_closure_removes_handler(self):
        bus = EventBus()
        unsubscribe = bus.on(EventType.LOGIN, MagicMock())
        unsubscribe()
        assert bus.get_handler_count(EventType.LOGIN) == 0

    def test_off_deletes_empty_type_entry(self):
        bus = EventBus()
        handler = MagicMock()
        bus.on(EventType.LOGOUT, handler)
        bus.off(EventType.LOGOUT, handler)
        assert bus.get_active_event_types() == []

    def test_off_unknown_handler_is_ignored(self):
        bus = EventBus()
        bus.off(EventType.LOGIN, MagicMock())
        assert bus.get_handler_count(EventType.LOGIN) == 0

    def test_string_event_type_accepted(self):
        bus = EventBus()
        bus.on("refresh", MagicMock())
        assert bus.get_handler_count(EventType.REFRESH) == 1

    def test_clear_removes_everything(self):
        bus = EventBus()
        bus.on(EventType.LOGIN, MagicMock())
        bus.on(EventType.LOGOUT, MagicMock())
        bus.clear()
        assert bus.get_active_event_types() == []


# ===========================================================================
# Dispatch
# ===========================================================================

class TestDispatch:
    """Tests for deferred, ordered and isolated dispatch."""

    @pytest.mark.asyncio
    async def test_emit_does_not_call_handlers_synchronously(self):
        bus = EventBus()
        handler = MagicMock()
        bus.on(EventType.LOGIN, handler)

        bus.emit(_login())
        handler.assert_not_called()

        await bus.flush()
        handler.assert_called_once()

    @pytest.mark.asyncio
    async def test_emit_without_handlers_queues_nothing(self):
        bus = EventBus()
        bus.emit(_login())
        assert bus.pending_count == 0

    @pytest.mark.asyncio
    async def test_handlers_receive_the_event(self):
        bus = EventBus()
        handler = MagicMock()
        bus.on(EventType.LOGOUT, handler)

        event = LogoutEvent(reason=LogoutReason.EXPIRED)
        bus.emit(event)
        await bus.flush()

        handler.assert_called_once_with(event)

    @pytest.mark.asyncio
    async def test_subscription_order_within_emit(self):
        bus = EventBus()
        calls = []
        bus.on(EventType.LOGIN, lambda e: calls.append("first"))
        bus.on(EventType.LOGIN, lambda e: calls.append("second"))
        bus.on(EventType.LOGIN, lambda e: calls.append("third"))

        bus.emit(_login())
        await bus.flush()

        assert calls == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_emits_dispatched_fifo(self):
        bus = EventBus()
        seen = []

        async def slow(event):
            await asyncio.sleep(0.01)
            seen.append(("slow", event.type))

        bus.on(EventType.LOGIN, slow)
        bus.on(EventType.LOGOUT, lambda e: seen.append(("fast", e.type)))

        bus.emit(_login())
        bus.emit(LogoutEvent())
        await bus.flush()

        assert seen == [("slow", EventType.LOGIN), ("fast", EventType.LOGOUT)]

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.on(EventType.LOGIN, handler)

        bus.emit(_login())
        await bus.flush()

        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_siblings(self, caplog):
        bus = EventBus()
        after = MagicMock()

        def broken(event):
            raise RuntimeError("boom")

        bus.on(EventType.LOGIN, broken)
        bus.on(EventType.LOGIN, after)

        bus.emit(_login())
        await bus.flush()

        after.assert_called_once()
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_handler_removed_before_turn_not_called(self):
        bus = EventBus()
        handler = MagicMock()
        unsubscribe = bus.on(EventType.LOGIN, handler)

        bus.emit(_login())
        unsubscribe()
        await bus.flush()

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_clear_drops_queued_dispatches(self):
        bus = EventBus()
        handler = MagicMock()
        bus.on(EventType.LOGIN, handler)

        bus.emit(_login())
        bus.clear()
        await bus.flush()

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_handler_subscribed_after_emit_not_called(self):
        bus = EventBus()
        first = MagicMock()
        late = MagicMock()
        bus.on(EventType.LOGIN, first)

        bus.emit(_login())
        bus.on(EventType.LOGIN, late)
        await bus.flush()

        first.assert_called_once()
        late.assert_not_called()

    @pytest.mark.asyncio
    async def test_emit_from_handler_is_dispatched(self):
        bus = EventBus()
        refreshed = MagicMock()
        bus.on(EventType.REFRESH, refreshed)
        bus.on(
            EventType.LOGIN,
            lambda e: bus.emit(RefreshEvent(tokens=e.tokens)),
        )

        bus.emit(_login())
        await bus.flush()

        refreshed.assert_called_once()

    @pytest.mark.asyncio
    async def test_flush_inside_handler_returns(self):
        bus = EventBus()
        done = MagicMock()

        async def handler(event):
            await bus.flush()
            done()

        bus.on(EventType.LOGIN, handler)
        bus.emit(_login())
        await asyncio.wait_for(bus.flush(), timeout=1.0)

        done.assert_called_once()


class TestNoRunningLoop:
    """Emits outside a running loop are held until flush()."""

    def test_emit_without_loop_is_held(self):
        bus = EventBus()
        handler = MagicMock()
        bus.on(EventType.LOGIN, handler)

        bus.emit(_login())
        assert bus.pending_count == 1
        handler.assert_not_called()

        asyncio.run(bus.flush())
        handler.assert_called_once()
        assert bus.pending_count == 0
