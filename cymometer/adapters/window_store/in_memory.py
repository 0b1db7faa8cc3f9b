"""In-memory sliding-window store.

Notes:
- Per-process only: separate processes never see each other's entries.
- Thread-safe: uses a lock around shared state, which gives the same
  per-call atomicity the Redis scripts give across processes.
- Key expiry deadlines are measured on the callers' clock (``now_us``).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from cymometer.adapters.window_store.base import (
    AbstractWindowStore,
    IncrementResult,
    ttl_seconds,
)


@dataclass
class _KeyState:
    # member -> score, mirroring sorted-set semantics (re-adding a member
    # overwrites its score instead of adding an entry)
    members: dict[str, int] = field(default_factory=dict)
    expires_at_us: int | None = None


class InMemoryWindowStore(AbstractWindowStore):
    """Window store keeping entries in a process-local dict."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _KeyState] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryWindowStore(keys={len(self._state_by_key)})"

    def _get_state_locked(self, key: str, now_us: int) -> _KeyState | None:
        state = self._state_by_key.get(key)
        if state is None:
            return None
        if state.expires_at_us is not None and now_us >= state.expires_at_us:
            del self._state_by_key[key]
            return None
        return state

    def _evict_locked(self, key: str, now_us: int, window_us: int) -> _KeyState | None:
        state = self._get_state_locked(key, now_us)
        if state is None:
            return None

        cutoff = now_us - window_us
        expired = [m for m, score in state.members.items() if score <= cutoff]
        for member in expired:
            del state.members[member]

        if not state.members:
            del self._state_by_key[key]
            return None
        return state

    @staticmethod
    def _in_window(state: _KeyState | None, now_us: int, window_us: int) -> int:
        if state is None:
            return 0
        cutoff = now_us - window_us
        return sum(1 for score in state.members.values() if score >= cutoff)

    def try_increment(
        self,
        key: str,
        now_us: int,
        window_us: int,
        limit: int,
        member: str | None = None,
    ) -> IncrementResult:
        with self._lock:
            state = self._evict_locked(key, now_us, window_us)
            count = self._in_window(state, now_us, window_us)

            if count >= limit:
                return IncrementResult(admitted=False, count=count)

            if state is None:
                state = self._state_by_key.setdefault(key, _KeyState())
            state.members[member or str(now_us)] = now_us

            ttl = ttl_seconds(window_us)
            if ttl <= 0:
                # EXPIRE with a non-positive TTL deletes the key
                del self._state_by_key[key]
            else:
                state.expires_at_us = now_us + ttl * 1_000_000

            return IncrementResult(admitted=True, count=count + 1)

    def decrement(self, key: str, now_us: int, window_us: int) -> int:
        with self._lock:
            state = self._evict_locked(key, now_us, window_us)
            if state is None:
                return 0

            cutoff = now_us - window_us
            candidates = [
                (score, member) for member, score in state.members.items() if score >= cutoff
            ]
            if not candidates:
                return 0

            _, oldest = min(candidates)
            del state.members[oldest]
            count = self._in_window(state, now_us, window_us)
            if not state.members:
                del self._state_by_key[key]
            return count

    def count(self, key: str, now_us: int, window_us: int) -> int:
        with self._lock:
            state = self._evict_locked(key, now_us, window_us)
            return self._in_window(state, now_us, window_us)

    def clear(self) -> None:
        """Drop every key."""
        with self._lock:
            self._state_by_key.clear()
