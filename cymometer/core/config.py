"""Cymometer configuration using Pydantic Settings.

Settings come from ``CYMOMETER_*`` environment variables, with a ``.env``
file in the working directory as a fallback. Values already present in the
environment always win, and the environment itself is never modified.

Besides the settings objects, this module owns the process-wide default
window store slot (``config``). Counters read it at construction time;
nothing in the library writes to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cymometer.core.errors import StoreNotConfigured

if TYPE_CHECKING:
    from cymometer.adapters.window_store.base import AbstractWindowStore


def _build_cymometer_settings() -> "CymometerSettings":
    return CymometerSettings()


class CymometerSettings(BaseSettings):
    """Counter defaults and backing store connection."""

    redis_url: str | None = Field(
        None,
        description="Redis URL used to build the default window store",
    )
    namespace: str = Field(
        "cymometer",
        description="Fallback key namespace when neither counter nor owner sets one",
    )
    default_limit: int = Field(
        1,
        description="Events admitted per window when a counter declares no limit",
        ge=1,
    )
    default_window_seconds: int = Field(
        3600,
        description="Window size in seconds when a counter declares no window",
        ge=1,
    )
    unique_members: bool = Field(
        False,
        description=(
            "Suffix each stored member with a random token so admissions in "
            "the same microsecond are stored as separate entries"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="CYMOMETER_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container."""

    cymometer: CymometerSettings = Field(default_factory=_build_cymometer_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()


class CymometerConfig:
    """Holder for the default window store shared by counters.

    Set it once during process bootstrap::

        import redis
        from cymometer import config

        config.store = redis.Redis.from_url("redis://localhost:6379/0")

    Assigning a raw ``redis.Redis`` client wraps it in a ``RedisWindowStore``.
    """

    def __init__(self) -> None:
        self._store: AbstractWindowStore | None = None

    @property
    def store(self) -> "AbstractWindowStore":
        """Return the default store.

        Raises:
            StoreNotConfigured: If no store was assigned.
        """
        if self._store is None:
            raise StoreNotConfigured(
                code="store_not_configured",
                message=(
                    "Assign a window store or Redis client to cymometer.config.store "
                    "before using counters"
                ),
                details={"hint": "set CYMOMETER_REDIS_URL and call configure_from_settings()"},
            )
        return self._store

    @store.setter
    def store(self, value: Any) -> None:
        self._store = as_window_store(value)

    @property
    def is_configured(self) -> bool:
        return self._store is not None

    def configure_from_settings(self, cymometer_settings: CymometerSettings | None = None) -> None:
        """Build the default store from ``CYMOMETER_REDIS_URL``.

        Raises:
            StoreNotConfigured: If no Redis URL is configured.
        """
        cfg = cymometer_settings or settings.cymometer
        if not cfg.redis_url:
            raise StoreNotConfigured(
                code="store_not_configured",
                message="CYMOMETER_REDIS_URL is not set",
            )

        import redis

        self.store = redis.Redis.from_url(cfg.redis_url)

    def reset(self) -> None:
        """Forget the default store."""
        self._store = None


def as_window_store(value: Any) -> "AbstractWindowStore":
    """Accept a window store or a Redis client and return a window store."""
    from cymometer.adapters.window_store.base import AbstractWindowStore
    from cymometer.adapters.window_store.redis_lua import RedisWindowStore

    if isinstance(value, AbstractWindowStore):
        return value
    if value is None:
        raise ValueError("store must not be None; use reset() to clear it")
    return RedisWindowStore(value)


config = CymometerConfig()


def configure(store: Any) -> None:
    """Shortcut for ``config.store = store``."""
    config.store = store
