"""Tests for error types."""

import pickle

import pytest

from cymometer.core.errors import (
    BackingStoreCommunicationError,
    CymometerError,
    LimitExceeded,
    StoreNotConfigured,
    UnknownCounter,
)


def test_limit_exceeded_survives_pickling() -> None:
    restored = pickle.loads(pickle.dumps(LimitExceeded(3, 3)))

    assert isinstance(restored, LimitExceeded)
    assert restored.limit == 3
    assert restored.count == 3
    assert str(restored) == "Limit of 3 exceeded with count 3"
    assert restored.details == {"limit": 3, "count": 3}


def test_unknown_counter_survives_pickling() -> None:
    restored = pickle.loads(pickle.dumps(UnknownCounter("nope", "SyncJob")))

    assert restored.name == "nope"
    assert restored.owner == "SyncJob"
    assert str(restored) == "No counter named 'nope' in SyncJob"


@pytest.mark.parametrize("error_cls", [StoreNotConfigured, BackingStoreCommunicationError])
def test_base_errors_survive_pickling(error_cls: type[CymometerError]) -> None:
    error = error_cls(code="some_code", message="went wrong", details={"script": "count"})

    restored = pickle.loads(pickle.dumps(error))

    assert type(restored) is error_cls
    assert restored.code == "some_code"
    assert restored.message == "went wrong"
    assert restored.details == {"script": "count"}
    assert str(restored) == "went wrong"
