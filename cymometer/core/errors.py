"""Cymometer exception types.

Every error raised by counters, stores and the registry derives from
``CymometerError`` so callers can catch the whole family at once, while
``LimitExceeded`` stays the one condition callers are expected to handle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for logs and callers."""

    code: str
    message: str
    hint: str
    limit: int
    count: int
    counter_name: str
    owner: str
    script: str
    context: NotRequired[dict[str, Any]]


@dataclass
class CymometerError(Exception):
    """Base error for counter failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)

    def __reduce__(self) -> tuple[Any, ...]:
        # Exception pickling replays args, which holds only the message
        return (type(self), (self.code, self.message, self.details))

    __hash__ = Exception.__hash__


class LimitExceeded(CymometerError):
    """Raised when an increment would take a counter past its limit.

    Attributes:
        limit: Configured events per window.
        count: In-window count observed by the rejected increment.
    """

    def __init__(self, limit: int, count: int) -> None:
        super().__init__(
            code="limit_exceeded",
            message=f"Limit of {limit} exceeded with count {count}",
            details={"limit": limit, "count": count},
        )
        self.limit = limit
        self.count = count

    def __reduce__(self) -> tuple[Any, ...]:
        return (type(self), (self.limit, self.count))


class StoreNotConfigured(CymometerError):
    """Raised when no window store can be resolved for a counter."""


class UnknownCounter(CymometerError):
    """Raised when a registry is asked for a counter it never declared."""

    def __init__(self, name: str, owner: str | None = None) -> None:
        where = f" in {owner}" if owner else ""
        super().__init__(
            code="unknown_counter",
            message=f"No counter named {name!r}{where}",
            details={"counter_name": name, "owner": owner or ""},
        )
        self.name = name
        self.owner = owner

    def __reduce__(self) -> tuple[Any, ...]:
        return (type(self), (self.name, self.owner))


class BackingStoreCommunicationError(CymometerError):
    """Raised when the backing store fails to execute an operation."""
