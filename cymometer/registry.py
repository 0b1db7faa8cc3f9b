"""Declarative named counters for classes that need rate limit accounting.

A class lists its counters once, in a ``CounterRegistry``; each instance
then builds and caches one ``Counter`` per name on first access::

    class SyncJob(CounterHostMixin):
        counter_registry = (
            CounterRegistry(namespace="my_app")
            .counter("fast_calls", limit=10, window=30)
            .counter("per_account", limit=3, window=300, key=lambda job: job.account_id)
        )

        def perform(self):
            with self.counter("per_account").slot():
                ...

Key resolution per counter: a literal key, a deferred key computed from
the owning instance, or (when neither is declared) the counter's name.
Namespace and store resolve counter -> registry -> process defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Iterator, Mapping, Union

from cymometer.core.config import config, settings
from cymometer.core.errors import UnknownCounter
from cymometer.counter import Counter


@dataclass(frozen=True)
class LiteralKey:
    """A key fixed at declaration time, shared by every instance."""

    value: str


@dataclass(frozen=True)
class DeferredKey:
    """A key computed from the owning instance on first access."""

    compute: Callable[[Any], Any]

    def resolve(self, owner: Any) -> str:
        value = self.compute(owner)
        if value is None:
            raise ValueError("deferred counter key resolved to None")
        return str(value)


KeySource = Union[LiteralKey, DeferredKey]


def _as_key_source(key: Any) -> KeySource | None:
    if key is None or isinstance(key, (LiteralKey, DeferredKey)):
        return key
    if callable(key):
        return DeferredKey(key)
    return LiteralKey(str(key))


@dataclass(frozen=True)
class CounterSpec:
    """Declared configuration of one named counter.

    Unset fields fall back to the registry and then to process defaults.
    """

    name: str
    limit: int | None = None
    window: int | None = None
    key: KeySource | None = None
    namespace: str | None = None
    store: Any = None

    def resolve_key(self, owner: Any) -> str:
        if isinstance(self.key, DeferredKey):
            return self.key.resolve(owner)
        if isinstance(self.key, LiteralKey):
            return self.key.value
        return self.name


@dataclass(frozen=True)
class CounterRegistry:
    """Immutable table of counter declarations.

    ``counter()`` returns a new registry, so declarations chain and a
    repeated name replaces the earlier declaration.
    """

    namespace: str | None = None
    store: Any = None
    specs: Mapping[str, CounterSpec] = field(default_factory=lambda: MappingProxyType({}))

    def counter(
        self,
        name: str,
        *,
        limit: int | None = None,
        window: int | None = None,
        key: Any = None,
        namespace: str | None = None,
        store: Any = None,
    ) -> "CounterRegistry":
        """Declare (or redeclare) a counter.

        Args:
            name: Counter name used with ``counter(name)``.
            limit: Events per window.
            window: Window size in seconds.
            key: A string, a callable taking the owning instance, or a key source.
            namespace: Overrides the registry namespace for this counter.
            store: Overrides the registry store for this counter.
        """
        spec = CounterSpec(
            name=str(name),
            limit=limit,
            window=window,
            key=_as_key_source(key),
            namespace=namespace,
            store=store,
        )
        specs = dict(self.specs)
        specs[spec.name] = spec
        return replace(self, specs=MappingProxyType(specs))

    def get(self, name: str) -> CounterSpec | None:
        return self.specs.get(str(name))

    def names(self) -> list[str]:
        return list(self.specs)

    def __contains__(self, name: object) -> bool:
        return str(name) in self.specs

    def __iter__(self) -> Iterator[CounterSpec]:
        return iter(self.specs.values())

    def __len__(self) -> int:
        return len(self.specs)


def build_counter(owner: Any, spec: CounterSpec, registry: CounterRegistry) -> Counter:
    """Materialize the counter declared by ``spec`` for ``owner``."""
    defaults = settings.cymometer
    store = _first(spec.store, registry.store)
    if store is None:
        store = config.store

    return Counter(
        key_namespace=_first(spec.namespace, registry.namespace, defaults.namespace),
        key=spec.resolve_key(owner),
        limit=_first(spec.limit, defaults.default_limit),
        window=_first(spec.window, defaults.default_window_seconds),
        store=store,
    )


def _first(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


class CounterHostMixin:
    """Gives instances a ``counter(name)`` accessor over ``counter_registry``.

    Built counters are cached in the instance ``__dict__``. The mixin
    declares no ``__slots__``, so hosts keep a ``__dict__`` even when they
    define ``__slots__`` of their own.
    """

    counter_registry: ClassVar[CounterRegistry] = CounterRegistry()

    @classmethod
    def counter_config(cls, name: str) -> CounterSpec | None:
        return cls.counter_registry.get(name)

    def counter(self, name: str) -> Counter:
        """Return this instance's counter for ``name``, building it once.

        Raises:
            UnknownCounter: If the class declares no such counter.
        """
        cache: dict[str, Counter] = self.__dict__.setdefault("_cymometer_counters", {})
        name = str(name)

        cached = cache.get(name)
        if cached is not None:
            return cached

        spec = type(self).counter_config(name)
        if spec is None:
            raise UnknownCounter(name, type(self).__name__)

        cached = cache[name] = build_counter(self, spec, type(self).counter_registry)
        return cached
