"""Logging helpers for cymometer modules.

The library never installs handlers on the root logger. Modules obtain
their logger through ``get_logger(__name__)``, log dotted event names
(``counter.limit_exceeded``) and attach context through ``extra=``.
Counter keys often embed user or account identifiers, so they are logged
as ``key_hash`` only, and the redaction filter on every library logger
blanks key and connection fields that slip into ``extra``.
"""

from __future__ import annotations

import hashlib
import logging
from logging import LogRecord
from typing import Any, Iterable, Mapping

PACKAGE_LOGGER = "cymometer"

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "key",
        "counter_key",
        "member",
        "redis_url",
        "password",
    }
)

# Attributes every LogRecord carries; only caller-supplied extras are inspected
_RECORD_ATTRS = frozenset(LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}

# Let the host application decide where records go
logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


def hash_key(key: str) -> str:
    """Short, stable digest of a counter key for log correlation."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def _redact_value(value: Any, sensitive_keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            k: "[REDACTED]" if str(k).lower() in sensitive_keys else _redact_value(v, sensitive_keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(v, sensitive_keys) for v in value)
    return value


class SensitiveDataFilter(logging.Filter):
    """Redact counter keys and connection details carried in ``extra``."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(k.lower() for k in (sensitive_keys or SENSITIVE_KEYS_DEFAULT))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for name, value in list(record.__dict__.items()):
            if name in _RECORD_ATTRS or name.startswith("_"):
                continue
            if name.lower() in self.sensitive_keys:
                setattr(record, name, "[REDACTED]")
            elif isinstance(value, (Mapping, list, tuple)):
                setattr(record, name, _redact_value(value, self.sensitive_keys))
        return True


def get_logger(name: str) -> logging.Logger:
    """Return the module logger with the redaction filter attached once."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, SensitiveDataFilter) for f in logger.filters):
        logger.addFilter(SensitiveDataFilter())
    return logger
