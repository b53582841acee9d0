"""
Plugin registry for AuthKeeper.

The registry owns the lifecycle of every plugin: registration,
installation (which produces the plugin's capability object) and
uninstallation. It is keyed by plugin name.

Registry Features:
    - Registration with duplicate-name and version checks
    - Idempotent installation with install errors wrapped in InstallError
    - Best-effort uninstallation (errors logged, record always removed)
    - Typed capability lookup by plugin name

Example:
    registry = PluginRegistry()
    registry.register(TokenStorePlugin())
    await registry.install("token-store", kernel)

    store = registry.get_api("token-store", TokenStoreAPI)
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar

from authkeeper import __version__
from authkeeper.errors import (
    ConfigurationError,
    DuplicatePluginError,
    InstallError,
    PluginNotFoundError,
)
from authkeeper.plugins.sdk import Plugin, PluginMetadata

if TYPE_CHECKING:
    from authkeeper.kernel.kernel import AuthKeeperKernel

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PluginRecord:
    """A plugin registered in the registry.

    Attributes:
        plugin: The plugin object.
        installed: Whether install() completed successfully.
        capability: The object returned by install(); None until
            installed.
        registered_at: When the plugin was registered.
        installed_at: When the plugin was installed.
    """

    plugin: Plugin
    installed: bool = False
    capability: Any = None
    registered_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    installed_at: datetime | None = None

    @property
    def name(self) -> str:
        return self.plugin.metadata.name

    @property
    def metadata(self) -> PluginMetadata:
        return self.plugin.metadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "metadata": self.metadata.to_dict(),
            "installed": self.installed,
            "registered_at": self.registered_at.isoformat(),
            "installed_at": self.installed_at.isoformat() if self.installed_at else None,
        }


@dataclass(frozen=True)
class PluginInfo:
    """Public summary of a registered plugin."""

    name: str
    version: str
    kind: str
    enabled: bool


class PluginRegistry:
    """Name-keyed lifecycle manager for plugins.

    Attributes:
        _records: Registered plugins by name, in registration order.
    """

    def __init__(self, authkeeper_version: str = __version__):
        self._records: dict[str, PluginRecord] = {}
        self._authkeeper_version = authkeeper_version

    def register(self, plugin: Plugin) -> None:
        """Register a plugin without installing it.

        Args:
            plugin: The plugin to register.

        Raises:
            DuplicatePluginError: If a plugin with the same name exists.
            ConfigurationError: If the plugin is not a valid plugin or
                requires a newer AuthKeeper.
        """
        metadata = getattr(plugin, "metadata", None)
        if not isinstance(metadata, PluginMetadata) or not callable(getattr(plugin, "install", None)):
            raise ConfigurationError(
                f"Object {plugin!r} is not a plugin (needs metadata and install())"
            )

        name = metadata.name
        if name in self._records:
            raise DuplicatePluginError(name)

        if not metadata.is_compatible(self._authkeeper_version):
            raise ConfigurationError(
                f"Plugin '{name}' requires AuthKeeper >= {metadata.min_authkeeper_version} "
                f"(running {self._authkeeper_version})",
                context={"plugin_name": name},
            )

        self._records[name] = PluginRecord(plugin=plugin)
        logger.info(f"Registered plugin: {name}@{metadata.version} ({metadata.kind})")

    async def install(self, name: str, kernel: AuthKeeperKernel) -> None:
        """Install a registered plugin.

        Calls the plugin's install() and stores the returned capability.
        Installing an installed plugin does nothing.

        Args:
            name: Plugin name.
            kernel: Kernel passed to the plugin.

        Raises:
            PluginNotFoundError: If no plugin with this name is registered.
            InstallError: If install() raised; the plugin stays
                uninstalled.
        """
        record = self._records.get(name)
        if record is None:
            raise PluginNotFoundError(name)

        if record.installed:
            return

        try:
            capability = record.plugin.install(kernel)
            if inspect.isawaitable(capability):
                capability = await capability
        except Exception as e:
            logger.error(f"Failed to install plugin {name}: {e}")
            raise InstallError(name, e) from e

        record.capability = capability if capability is not None else record.plugin
        record.installed = True
        record.installed_at = datetime.now(timezone.utc)
        logger.info(f"Installed plugin: {name}")

    async def uninstall(self, name: str) -> None:
        """Uninstall and remove a plugin.

        Errors raised by the plugin's uninstall() are logged, never
        raised. The record is removed in every case.

        Args:
            name: Plugin name; unknown names are ignored.
        """
        record = self._records.get(name)
        if record is None:
            return

        uninstall = getattr(record.plugin, "uninstall", None)
        if record.installed and callable(uninstall):
            try:
                result = uninstall()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error uninstalling plugin {name}: {e}", exc_info=True)

        self._records.pop(name, None)
        logger.info(f"Uninstalled plugin: {name}")

    def get(self, name: str) -> Plugin | None:
        """Get a registered plugin by name."""
        record = self._records.get(name)
        return record.plugin if record else None

    def get_record(self, name: str) -> PluginRecord | None:
        return self._records.get(name)

    def get_api(self, name: str, expected: type[T] | None = None) -> T | Any | None:
        """Get the capability object of an installed plugin.

        Args:
            name: Plugin name.
            expected: Runtime-checkable protocol (or class) the capability
                must satisfy.

        Returns:
            The capability, or None if the plugin is missing, not
            installed, or does not satisfy ``expected``.
        """
        record = self._records.get(name)
        if record is None or not record.installed:
            return None

        capability = record.capability
        if expected is not None and not isinstance(capability, expected):
            logger.warning(
                f"Plugin {name} does not provide {getattr(expected, '__name__', expected)}"
            )
            return None
        return capability

    def has(self, name: str) -> bool:
        return name in self._records

    def is_installed(self, name: str) -> bool:
        record = self._records.get(name)
        return record is not None and record.installed

    def list(self) -> list[PluginInfo]:
        """Summaries of all registered plugins, in registration order."""
        return [
            PluginInfo(
                name=name,
                version=record.metadata.version,
                kind=record.metadata.kind,
                enabled=record.installed,
            )
            for name, record in self._records.items()
        ]

    def get_names(self) -> list[str]:
        return list(self._records)

    def clear(self) -> None:
        """Forget every record without calling uninstall()."""
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __repr__(self) -> str:
        installed = sum(1 for r in self._records.values() if r.installed)
        return f"<PluginRegistry plugins={len(self._records)} installed={installed}>"
