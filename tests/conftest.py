"""Pytest configuration and fixtures shared across all test modules.

Counters never sleep in these tests: every counter gets a ``FakeClock``
that ticks one microsecond per reading, like a real clock would between
calls, and tests advance it explicitly to move through windows.
"""

import fakeredis
import pytest

from cymometer.adapters.window_store.in_memory import InMemoryWindowStore
from cymometer.adapters.window_store.redis_lua import RedisWindowStore
from cymometer.core.config import config


class FakeClock:
    """Deterministic clock with microsecond bookkeeping."""

    def __init__(self, start: float = 1_700_000_000.0, step_us: int = 1) -> None:
        self.current_us = int(start * 1_000_000)
        self.step_us = step_us

    def time(self) -> float:
        now = self.current_us / 1_000_000
        self.current_us += self.step_us
        return now

    def advance(self, seconds: float) -> None:
        self.current_us += int(seconds * 1_000_000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def memory_store() -> InMemoryWindowStore:
    return InMemoryWindowStore()


@pytest.fixture
def redis_store(redis_client: fakeredis.FakeRedis) -> RedisWindowStore:
    return RedisWindowStore(redis_client)


@pytest.fixture(params=["memory", "redis"])
def store(request: pytest.FixtureRequest):
    """Every window store implementation, for behavior both must share."""
    if request.param == "memory":
        return InMemoryWindowStore()
    return RedisWindowStore(fakeredis.FakeRedis(server=fakeredis.FakeServer()))


@pytest.fixture(autouse=True)
def _reset_default_store():
    config.reset()
    yield
    config.reset()
