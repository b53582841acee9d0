"""AuthKeeper micro-kernel: event bus, plugin registry and the kernel facade."""

from .event_bus import EventBus
from .kernel import AuthKeeperKernel
from .registry import PluginInfo, PluginRecord, PluginRegistry

__all__ = [
    "AuthKeeperKernel",
    "EventBus",
    "PluginInfo",
    "PluginRecord",
    "PluginRegistry",
]
