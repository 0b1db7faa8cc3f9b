"""Tests for declarative counters on host classes."""

from unittest.mock import Mock

import pytest

from cymometer.adapters.window_store.in_memory import InMemoryWindowStore
from cymometer.core.config import config, settings
from cymometer.core.errors import LimitExceeded, StoreNotConfigured, UnknownCounter
from cymometer.counter import Counter
from cymometer.registry import (
    CounterHostMixin,
    CounterRegistry,
    CounterSpec,
    DeferredKey,
    LiteralKey,
)


class HelperJob(CounterHostMixin):
    counter_registry = (
        CounterRegistry(namespace="my_app")
        .counter("fast_calls", limit=10, window=30)
        .counter("slow_calls", limit=3, window=300, key=lambda job: job.method_for_counter_key())
    )

    def __init__(self, account_id: int = 1) -> None:
        self.account_id = account_id
        self.slow_work_done = 0

    def perform(self) -> None:
        self.counter("fast_calls").increment()
        self.counter("slow_calls").transaction(self.do_something_slow)

    def do_something_slow(self) -> None:
        self.slow_work_done += 1

    def method_for_counter_key(self) -> str:
        return "some_static_string"


class AccountJob(CounterHostMixin):
    counter_registry = (
        CounterRegistry()
        .counter("shared", limit=2, window=60, key="global")
        .counter("per_account", limit=2, window=60, key=lambda job: f"account:{job.account_id}")
        .counter("defaults")
    )

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id


@pytest.fixture(autouse=True)
def _distinct_members(monkeypatch: pytest.MonkeyPatch) -> None:
    # counters here read the real clock; keep back-to-back admissions apart
    monkeypatch.setattr(settings.cymometer, "unique_members", True)


@pytest.fixture
def default_store() -> InMemoryWindowStore:
    store = InMemoryWindowStore()
    config.store = store
    return store


def test_stores_counters_in_class_config() -> None:
    assert "fast_calls" in HelperJob.counter_registry
    assert "slow_calls" in HelperJob.counter_registry
    assert HelperJob.counter_registry.names() == ["fast_calls", "slow_calls"]

    spec = HelperJob.counter_config("fast_calls")
    assert spec == CounterSpec(name="fast_calls", limit=10, window=30)


def test_counter_returns_configured_counter(default_store) -> None:
    job = HelperJob()

    fast = job.counter("fast_calls")
    assert isinstance(fast, Counter)
    assert fast.key == "my_app:fast_calls"
    assert fast.limit == 10
    assert fast.window == 30
    assert fast.store is default_store

    slow = job.counter("slow_calls")
    assert slow.key == "my_app:some_static_string"
    assert slow.limit == 3
    assert slow.window == 300


def test_perform_uses_counters(default_store) -> None:
    job = HelperJob()

    for _ in range(3):
        job.perform()

    assert job.slow_work_done == 3
    assert job.counter("fast_calls").count() == 3
    assert job.counter("slow_calls").count() == 3

    with pytest.raises(LimitExceeded):
        job.perform()

    assert job.slow_work_done == 3
    assert job.counter("fast_calls").count() == 4


def test_counter_is_cached_per_instance(default_store) -> None:
    job = HelperJob()

    assert job.counter("fast_calls") is job.counter("fast_calls")
    assert HelperJob().counter("fast_calls") is not job.counter("fast_calls")


def test_deferred_key_is_computed_once_per_instance(default_store) -> None:
    compute = Mock(return_value="computed")

    class Job(CounterHostMixin):
        counter_registry = CounterRegistry().counter("c", key=compute)

    job = Job()
    job.counter("c")
    job.counter("c")

    compute.assert_called_once_with(job)
    assert job.counter("c").key == "cymometer:computed"


def test_static_key_is_shared_and_dynamic_key_is_not(default_store) -> None:
    first, second = AccountJob(1), AccountJob(2)

    assert first.counter("shared").key == second.counter("shared").key == "cymometer:global"
    assert first.counter("per_account").key == "cymometer:account:1"
    assert second.counter("per_account").key == "cymometer:account:2"

    first.counter("shared").increment()
    second.counter("shared").increment()
    with pytest.raises(LimitExceeded):
        first.counter("shared").increment()

    first.counter("per_account").increment()
    first.counter("per_account").increment()
    assert second.counter("per_account").increment() == 1


def test_undeclared_values_use_defaults(default_store) -> None:
    counter = AccountJob(1).counter("defaults")

    assert counter.key == "cymometer:defaults"
    assert counter.limit == 1
    assert counter.window == 3600


def test_unknown_counter() -> None:
    with pytest.raises(UnknownCounter) as exc_info:
        HelperJob().counter("nope")

    assert exc_info.value.name == "nope"
    assert exc_info.value.owner == "HelperJob"
    assert "HelperJob" in str(exc_info.value)


def test_store_not_configured() -> None:
    with pytest.raises(StoreNotConfigured):
        HelperJob().counter("fast_calls")


class TestPrecedence:
    """Counter overrides beat registry settings, which beat process defaults."""

    def test_registry_store_beats_default(self, default_store) -> None:
        registry_store = InMemoryWindowStore()

        class Job(CounterHostMixin):
            counter_registry = CounterRegistry(store=registry_store).counter("c")

        assert Job().counter("c").store is registry_store

    def test_counter_overrides_beat_registry(self, default_store) -> None:
        registry_store = InMemoryWindowStore()
        counter_store = InMemoryWindowStore()

        class Job(CounterHostMixin):
            counter_registry = (
                CounterRegistry(namespace="outer", store=registry_store)
                .counter("c", namespace="inner", store=counter_store)
                .counter("d")
            )

        job = Job()
        assert job.counter("c").key == "inner:c"
        assert job.counter("c").store is counter_store
        assert job.counter("d").key == "outer:d"
        assert job.counter("d").store is registry_store

    def test_registry_store_needs_no_default(self) -> None:
        class Job(CounterHostMixin):
            counter_registry = CounterRegistry(store=InMemoryWindowStore()).counter("c")

        assert Job().counter("c").increment() == 1


class TestCounterRegistry:
    """Builder semantics."""

    def test_builder_returns_new_registry(self) -> None:
        base = CounterRegistry(namespace="ns")
        extended = base.counter("a")

        assert len(base) == 0
        assert len(extended) == 1
        assert extended.namespace == "ns"

    def test_redeclaring_replaces_previous(self) -> None:
        registry = CounterRegistry().counter("a", limit=1).counter("a", limit=5)

        assert len(registry) == 1
        assert registry.get("a").limit == 5

    @pytest.mark.parametrize(
        "key, expected",
        [
            ("static", LiteralKey("static")),
            (42, LiteralKey("42")),
            (LiteralKey("x"), LiteralKey("x")),
            (None, None),
        ],
    )
    def test_key_sources(self, key, expected) -> None:
        assert CounterRegistry().counter("a", key=key).get("a").key == expected

    def test_callable_becomes_deferred_key(self) -> None:
        compute = Mock(return_value=7)
        spec = CounterRegistry().counter("a", key=compute).get("a")

        assert isinstance(spec.key, DeferredKey)
        assert spec.resolve_key(object()) == "7"

    def test_specs_are_read_only(self) -> None:
        registry = CounterRegistry().counter("a")

        with pytest.raises(TypeError):
            registry.specs["b"] = CounterSpec(name="b")  # type: ignore[index]


class TestDeferredKeyValues:
    """Values a deferred key computation can produce."""

    def test_none_is_rejected(self, default_store) -> None:
        class Job(CounterHostMixin):
            counter_registry = CounterRegistry().counter("c", key=lambda job: None)

        with pytest.raises(ValueError, match="resolved to None"):
            Job().counter("c")

    def test_empty_string_is_a_shared_key(self, default_store) -> None:
        class Job(CounterHostMixin):
            counter_registry = CounterRegistry(namespace="ns").counter("c", key=lambda job: "")

        assert Job().counter("c").key == "ns:"
        assert Job().counter("c").key == Job().counter("c").key


def test_slotted_host_still_caches_counters(default_store) -> None:
    class SlottedJob(CounterHostMixin):
        __slots__ = ("account_id",)
        counter_registry = CounterRegistry().counter("c", key=lambda job: job.account_id)

        def __init__(self, account_id: int) -> None:
            self.account_id = account_id

    job = SlottedJob(5)

    assert job.counter("c") is job.counter("c")
    assert job.counter("c").key.endswith(":5")
