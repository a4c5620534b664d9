"""
Pytest configuration and shared fixtures for idempotent_executor tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from idempotent_executor.models import IdempotencyRecord
from idempotent_executor.storage.memory import MemoryRecordStore


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class ScriptedRecordStore:
    """Record store fake whose every answer is set up by the test.

    Each call is appended to ``calls`` as ``(method, *args)``. Errors set on
    the ``*_error`` attributes are raised by the matching method.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.claim_error: Exception | None = None
        self.complete_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.release_error: Exception | None = None
        self.fetch_record: IdempotencyRecord | None = None

    async def claim_in_progress(self, key: str, ttl_ms: int) -> None:
        self.calls.append(("claim_in_progress", key, ttl_ms))
        if self.claim_error is not None:
            raise self.claim_error

    async def mark_completed(self, key: str, result: Any) -> None:
        self.calls.append(("mark_completed", key, result))
        if self.complete_error is not None:
            raise self.complete_error

    async def fetch(self, key: str) -> IdempotencyRecord:
        self.calls.append(("fetch", key))
        if self.fetch_error is not None:
            raise self.fetch_error
        assert self.fetch_record is not None, "fetch_record not scripted"
        return self.fetch_record

    async def release(self, key: str) -> None:
        self.calls.append(("release", key))
        if self.release_error is not None:
            raise self.release_error

    def methods_called(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def clock() -> ManualClock:
    """Provide a manually advanced clock."""
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> MemoryRecordStore:
    """Create a fresh memory store driven by the manual clock."""
    return MemoryRecordStore(clock=clock)


@pytest.fixture
def scripted_store() -> ScriptedRecordStore:
    """Create a scripted store with no errors configured."""
    return ScriptedRecordStore()


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a sample idempotency key for tests."""
    return "thisWillBeSaved"
