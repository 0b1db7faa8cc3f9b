"""Cymometer: distributed sliding-window rate limit counters on Redis."""

from cymometer.adapters.window_store.base import AbstractWindowStore, IncrementResult
from cymometer.adapters.window_store.in_memory import InMemoryWindowStore
from cymometer.adapters.window_store.redis_lua import RedisWindowStore
from cymometer.core.config import CymometerConfig, config, configure, settings
from cymometer.core.errors import (
    BackingStoreCommunicationError,
    CymometerError,
    LimitExceeded,
    StoreNotConfigured,
    UnknownCounter,
)
from cymometer.counter import Counter
from cymometer.registry import (
    CounterHostMixin,
    CounterRegistry,
    CounterSpec,
    DeferredKey,
    LiteralKey,
)

__version__ = "0.1.0"

__all__ = [
    "AbstractWindowStore",
    "BackingStoreCommunicationError",
    "Counter",
    "CounterHostMixin",
    "CounterRegistry",
    "CounterSpec",
    "CymometerConfig",
    "CymometerError",
    "DeferredKey",
    "IncrementResult",
    "InMemoryWindowStore",
    "LimitExceeded",
    "LiteralKey",
    "RedisWindowStore",
    "StoreNotConfigured",
    "UnknownCounter",
    "config",
    "configure",
    "settings",
]
