"""Window store interface.

A window store keeps, per key, an ordered set of event entries scored by
their occurrence time in microseconds. Each operation below must be
indivisible as observed by every other caller of the same store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of a try-increment.

    Attributes:
        admitted: Whether a new entry was recorded.
        count: In-window count after the call (unchanged when rejected).
    """

    admitted: bool
    count: int


def ttl_seconds(window_us: int) -> int:
    """Key expiry applied on admission: whole seconds of the window."""
    return window_us // 1_000_000


class AbstractWindowStore(ABC):
    """Interface for sliding-window event stores."""

    @abstractmethod
    def try_increment(
        self,
        key: str,
        now_us: int,
        window_us: int,
        limit: int,
        member: str | None = None,
    ) -> IncrementResult:
        """Evict expired entries, then admit one entry if under ``limit``.

        Args:
            key: Full counter key (``namespace:identifier``).
            now_us: Caller's current time in microseconds.
            window_us: Window size in microseconds.
            limit: Maximum entries admitted per window.
            member: Stored member; defaults to the decimal ``now_us``.

        Returns:
            IncrementResult with the admission decision and count.
        """
        raise NotImplementedError

    @abstractmethod
    def decrement(self, key: str, now_us: int, window_us: int) -> int:
        """Evict expired entries, then remove the oldest in-window entry.

        Returns:
            In-window count after removal; 0 when nothing was there.
        """
        raise NotImplementedError

    @abstractmethod
    def count(self, key: str, now_us: int, window_us: int) -> int:
        """Evict expired entries and return the in-window count."""
        raise NotImplementedError
