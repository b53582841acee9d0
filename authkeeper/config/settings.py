"""AuthKeeper configuration via environment / .env file."""

from __future__ import annotations

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthKeeperSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUTHKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Refresh ---
    AUTO_REFRESH: bool = True
    REFRESH_THRESHOLD: float = 60.0
    REFRESH_MAX_RETRIES: int = 3
    REFRESH_RETRY_DELAY: float = 1.0

    # --- Cross-tab ---
    SYNC_TABS: bool = True

    # --- Storage ---
    STORAGE: str = "memory"
    STORAGE_PREFIX: str = "authkeeper:"

    # --- Fetch interceptor ---
    HEADER_NAME: str = "Authorization"
    HEADER_PREFIX: str = "Bearer "

    @field_validator("REFRESH_THRESHOLD", "REFRESH_RETRY_DELAY")
    @classmethod
    def _non_negative_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0 seconds")
        return v

    @field_validator("REFRESH_MAX_RETRIES")
    @classmethod
    def _non_negative_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("STORAGE", mode="before")
    @classmethod
    def _normalise_storage(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _storage_supported(self) -> "AuthKeeperSettings":
        if self.STORAGE not in ("memory", "none"):
            raise ValueError(f"Unsupported STORAGE backend: {self.STORAGE}")
        return self


settings = AuthKeeperSettings()
