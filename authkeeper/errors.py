"""
Error taxonomy for AuthKeeper.

Every error raised by the kernel or its core plugins derives from
AuthError and carries a machine-readable code, optional context and
the original exception (also chained through ``__cause__``).

Hierarchy:
    AuthError
    ├── ConfigurationError
    │   ├── DuplicatePluginError
    │   ├── PluginNotFoundError
    │   └── InstallError
    ├── RefreshTokenMissingError
    ├── RefreshFailedError
    └── TokenDecodeError

RetryExhaustedError is raised by the retry combinator and is not an
AuthError; the refresh engine wraps it in RefreshFailedError.
"""

from enum import Enum
from typing import Any


class AuthErrorCode(str, Enum):
    """Codes identifying the type of an AuthError."""

    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_DECODE_FAILED = "TOKEN_DECODE_FAILED"
    REFRESH_FAILED = "REFRESH_FAILED"
    REFRESH_TOKEN_MISSING = "REFRESH_TOKEN_MISSING"
    STORAGE_ERROR = "STORAGE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFIG_ERROR = "CONFIG_ERROR"


class AuthError(Exception):
    """Base class for authentication errors.

    Attributes:
        code: Error code identifying the type of error.
        message: Human-readable description.
        context: Additional context about the error.
        cause: Original exception that caused this error, if any.
    """

    default_code = AuthErrorCode.TOKEN_INVALID

    def __init__(
        self,
        message: str,
        *,
        code: AuthErrorCode | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.context = context or {}
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Dictionary representation.
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "context": dict(self.context),
            "cause": repr(self.cause) if self.cause else None,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.code.value}: {self.message}>"


class ConfigurationError(AuthError):
    """Raised synchronously for misconfiguration of the kernel or registry."""

    default_code = AuthErrorCode.CONFIG_ERROR


class DuplicatePluginError(ConfigurationError):
    """Raised when a plugin name is registered twice."""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Plugin '{plugin_name}' is already registered",
            context={"plugin_name": plugin_name},
        )


class PluginNotFoundError(ConfigurationError):
    """Raised when an operation names a plugin that is not registered."""

    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(
            f"Plugin '{plugin_name}' not found",
            context={"plugin_name": plugin_name},
        )


class InstallError(ConfigurationError):
    """Raised when a plugin's install() fails.

    The plugin stays registered but not installed.

    Attributes:
        plugin_name: Name of the plugin that failed.
    """

    def __init__(self, plugin_name: str, cause: BaseException):
        self.plugin_name = plugin_name
        super().__init__(
            f"Failed to install plugin '{plugin_name}': {cause}",
            context={"plugin_name": plugin_name},
            cause=cause,
        )


class RefreshTokenMissingError(AuthError):
    """Raised when a refresh is requested but no refresh token is stored.

    Fatal for the current refresh; never retried.
    """

    default_code = AuthErrorCode.REFRESH_TOKEN_MISSING

    def __init__(self, message: str = "No refresh token available"):
        super().__init__(message)


class RefreshFailedError(AuthError):
    """Raised when the refresh function keeps failing after all retries."""

    default_code = AuthErrorCode.REFRESH_FAILED


class TokenDecodeError(AuthError):
    """Raised internally when a token cannot be decoded."""

    default_code = AuthErrorCode.TOKEN_DECODE_FAILED


class RetryExhaustedError(Exception):
    """Raised by retry_with_backoff once the retry budget is spent.

    Attributes:
        attempts: Total number of attempts made.
        last_error: The exception raised by the final attempt.
    """

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Operation failed after {attempts} attempt(s): {last_error}")
