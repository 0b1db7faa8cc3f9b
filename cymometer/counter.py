"""Sliding-window counter bound to one key, limit and window.

A ``Counter`` holds no durable state: every call reads the clock and runs
one atomic operation against its window store. Usage::

    counter = Counter(key_namespace="emails", key=f"user:{user_id}", limit=5, window=60)

    counter.transaction(send_email, user_id)   # rolled back if send_email raises

Two separate store calls are never atomic together: if the process dies
between ``transaction``'s increment and its compensating decrement, the
entry stays until the window decays it.
"""

from __future__ import annotations

import secrets
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from cymometer.adapters.window_store.base import AbstractWindowStore
from cymometer.core.config import as_window_store, config, settings
from cymometer.core.errors import LimitExceeded
from cymometer.core.logging import get_logger, hash_key

logger = get_logger(__name__)

T = TypeVar("T")

MICROSECONDS = 1_000_000


class Counter:
    """Rate limit counter over a rolling window.

    Args:
        key_namespace: Key prefix; defaults to ``CYMOMETER_NAMESPACE``.
        key: Identifier within the namespace; a random UUID when omitted,
            which makes the counter effectively private to this instance.
        limit: Events admitted per window; defaults to ``CYMOMETER_DEFAULT_LIMIT``.
        window: Window size in seconds; defaults to ``CYMOMETER_DEFAULT_WINDOW_SECONDS``.
        store: Window store or Redis client; defaults to ``cymometer.config.store``.
        clock: Time source returning UNIX time in seconds.
        unique_members: Store each entry under a random-suffixed member so
            admissions within the same microsecond do not coalesce.

    Raises:
        ValueError: If limit or window are invalid.
        StoreNotConfigured: If no store is given and no default is set.
    """

    def __init__(
        self,
        key_namespace: str | None = None,
        key: str | None = None,
        limit: int | None = None,
        window: int | None = None,
        store: Any = None,
        *,
        clock: Callable[[], float] = time.time,
        unique_members: bool | None = None,
    ) -> None:
        defaults = settings.cymometer

        limit = defaults.default_limit if limit is None else limit
        window = defaults.default_window_seconds if window is None else window
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window < 1:
            raise ValueError("window must be >= 1")

        self._store = config.store if store is None else as_window_store(store)
        namespace = defaults.namespace if key_namespace is None else key_namespace
        identifier = uuid.uuid4() if key is None else key
        self._key = f"{namespace}:{identifier}"
        self._limit = int(limit)
        self._window = window
        self._clock = clock
        self._unique_members = (
            defaults.unique_members if unique_members is None else unique_members
        )

    def __repr__(self) -> str:
        return f"Counter(key={self._key!r}, limit={self._limit}, window={self._window})"

    @property
    def key(self) -> str:
        return self._key

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window(self) -> int:
        return self._window

    @property
    def store(self) -> AbstractWindowStore:
        return self._store

    def _now_us(self) -> int:
        return int(round(self._clock() * MICROSECONDS))

    def _window_us(self) -> int:
        return int(self._window * MICROSECONDS)

    def _member(self, now_us: int) -> str | None:
        if not self._unique_members:
            return None
        return f"{now_us}-{secrets.token_hex(4)}"

    def increment(self) -> int:
        """Atomically record one event if the limit allows it.

        Returns:
            In-window count including the new event.

        Raises:
            LimitExceeded: If the window already holds ``limit`` events.
            BackingStoreCommunicationError: If the store call fails.
        """
        now_us = self._now_us()
        result = self._store.try_increment(
            self._key, now_us, self._window_us(), self._limit, self._member(now_us)
        )

        if not result.admitted:
            logger.info(
                "counter.limit_exceeded",
                extra={
                    "key_hash": hash_key(self._key),
                    "limit": self._limit,
                    "count": result.count,
                    "window_s": self._window,
                },
            )
            raise LimitExceeded(self._limit, result.count)

        logger.debug(
            "counter.incremented",
            extra={"key_hash": hash_key(self._key), "count": result.count, "limit": self._limit},
        )
        return result.count

    def decrement(self) -> int:
        """Remove the oldest in-window event; a no-op on an empty counter.

        Returns:
            In-window count after the removal.
        """
        count = self._store.decrement(self._key, self._now_us(), self._window_us())
        logger.debug(
            "counter.decremented",
            extra={"key_hash": hash_key(self._key), "count": count},
        )
        return count

    def count(self) -> int:
        """Return the number of events in the current window."""
        return self._store.count(self._key, self._now_us(), self._window_us())

    @contextmanager
    def slot(self, *, rollback: bool = True) -> Iterator[int]:
        """Hold one slot for the duration of a ``with`` block.

        The slot is taken before the block runs. If the block raises and
        ``rollback`` is true the slot is given back before the error
        propagates; on success it stays used until the window decays it.

        Yields:
            In-window count including the taken slot.
        """
        count = self.increment()
        try:
            yield count
        except Exception:
            if rollback:
                self._rollback()
            raise

    def transaction(
        self,
        work: Callable[..., T],
        /,
        *args: Any,
        rollback: bool = True,
        **kwargs: Any,
    ) -> T:
        """Run ``work(*args, **kwargs)`` if the counter can be incremented.

        ``rollback`` is consumed here and never forwarded; to hand ``work`` a
        keyword argument of that name, bind it with ``functools.partial``.

        Raises:
            LimitExceeded: Before ``work`` is called, if the limit is reached.
            Exception: Whatever ``work`` raised, after the rollback.
        """
        with self.slot(rollback=rollback):
            return work(*args, **kwargs)

    def _rollback(self) -> None:
        # The caller's exception is the one that propagates; a failing
        # compensation is only logged.
        try:
            count = self.decrement()
        except Exception:
            logger.exception(
                "counter.rollback_failed",
                extra={"key_hash": hash_key(self._key)},
            )
            return

        logger.info(
            "counter.rollback",
            extra={"key_hash": hash_key(self._key), "count": count},
        )

