"""AuthKeeper configuration: environment settings and runtime kernel options."""

from .options import KernelOptions, check_option_names
from .settings import AuthKeeperSettings, settings

__all__ = [
    "AuthKeeperSettings",
    "KernelOptions",
    "check_option_names",
    "settings",
]
