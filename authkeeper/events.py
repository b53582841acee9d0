"""
Authentication events.

Events are created where a transition is detected (login, refresh,
logout, ...), dispatched once to every subscribed handler by the
EventBus and never persisted.

Example:
    from authkeeper.events import EventType, RefreshEvent

    def on_refresh(event: RefreshEvent) -> None:
        print(f"refreshed, now valid until {event.new_expires_at}")

    kernel.on(EventType.REFRESH, on_refresh)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar

from authkeeper.errors import AuthError
from authkeeper.tokens import TokenSet, now_ms


class EventType(str, Enum):
    """All event types a kernel can emit."""

    LOGIN = "login"
    LOGOUT = "logout"
    REFRESH = "refresh"
    EXPIRED = "expired"
    ERROR = "error"
    STORAGE_CHANGE = "storage-change"
    TAB_SYNC = "tab-sync"


class LogoutReason(str, Enum):
    MANUAL = "manual"
    EXPIRED = "expired"
    ERROR = "error"
    TAB_SYNC = "tab-sync"


class AuthEvent:
    """Base class of the closed event union."""

    type: ClassVar[EventType]
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in self.__dict__.items()}
        data["type"] = self.type.value
        return data


@dataclass
class LoginEvent(AuthEvent):
    """Fired when tokens are set into an empty slot."""

    type: ClassVar[EventType] = EventType.LOGIN

    tokens: TokenSet
    timestamp: int = field(default_factory=now_ms)


@dataclass
class LogoutEvent(AuthEvent):
    """Fired when the user logs out."""

    type: ClassVar[EventType] = EventType.LOGOUT

    reason: LogoutReason = LogoutReason.MANUAL
    timestamp: int = field(default_factory=now_ms)


@dataclass
class RefreshEvent(AuthEvent):
    """Fired after tokens were refreshed."""

    type: ClassVar[EventType] = EventType.REFRESH

    tokens: TokenSet
    previous_expires_at: datetime | None = None
    new_expires_at: datetime | None = None
    timestamp: int = field(default_factory=now_ms)


@dataclass
class ExpiredEvent(AuthEvent):
    """Fired when the access token is found to be past its expiry."""

    type: ClassVar[EventType] = EventType.EXPIRED

    expired_at: datetime
    timestamp: int = field(default_factory=now_ms)


@dataclass
class ErrorEvent(AuthEvent):
    """Fired when an error occurs in the kernel or a plugin.

    Attributes:
        error: The error.
        context: Where it happened: "refresh", "plugin", "storage",
            "decode" or "network".
    """

    type: ClassVar[EventType] = EventType.ERROR

    error: AuthError
    context: str = "refresh"
    timestamp: int = field(default_factory=now_ms)


@dataclass
class StorageChangeEvent(AuthEvent):
    """Fired when a persisted value changes underneath the kernel."""

    type: ClassVar[EventType] = EventType.STORAGE_CHANGE

    key: str
    old_value: str | None = None
    new_value: str | None = None
    timestamp: int = field(default_factory=now_ms)


@dataclass
class TabSyncEvent(AuthEvent):
    """Broadcast of a login/logout/refresh performed by another tab."""

    type: ClassVar[EventType] = EventType.TAB_SYNC

    action: str
    source_tab_id: str
    timestamp: int = field(default_factory=now_ms)


EventHandler = Callable[[AuthEvent], Awaitable[None] | None]
Unsubscribe = Callable[[], None]
