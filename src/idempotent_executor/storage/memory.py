"""In-memory record store with asyncio concurrency control.

This module provides an in-process implementation of the RecordStore
protocol. It is suitable for:
    - Single-process applications
    - Development and testing
    - Demos

Concurrency:
    - A single asyncio.Lock serializes every mutation, which makes
      claim_in_progress() atomic for coroutines sharing an event loop
    - The store is not shared between processes
    - A claim remembers the asyncio task that made it. release() leaves a
      live claim in place unless called from that task, so a holder whose
      claim expired and was taken over cannot remove its successor's claim

Serialization:
    - Results are stored as their JSON round-trip, so a replay returns what
      a persistent store would return (tuples come back as lists)
    - A result that cannot be encoded raises TypeError or ValueError

Examples:
    Claiming and completing a key::

        from idempotent_executor.storage.memory import MemoryRecordStore

        store = MemoryRecordStore()

        await store.claim_in_progress("payment-123", ttl_ms=30_000)
        await store.mark_completed("payment-123", {"id": "pay_1"})

        record = await store.fetch("payment-123")
        assert record.result == {"id": "pay_1"}
"""

import asyncio
import json
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from idempotent_executor.exceptions import RecordAlreadyExistsError, RecordNotFoundError
from idempotent_executor.models import IdempotencyRecord, RecordStatus, utc_now
from idempotent_executor.observability.logging import get_logger
from idempotent_executor.observability.metrics import record_cleanup
from idempotent_executor.storage.base import RecordStore

logger = get_logger(__name__)


class MemoryRecordStore(RecordStore):
    """In-memory record store.

    Attributes:
        completed_ttl_seconds: How long COMPLETED records are kept for replay.
            None keeps them forever.
        _records: Dictionary mapping keys to IdempotencyRecord objects.
        _holders: Task that made the current claim for each key.
        _lock: Lock serializing all mutations.
        _clock: Source of the current time.
    """

    def __init__(
        self,
        completed_ttl_seconds: int | None = 3600,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if completed_ttl_seconds is not None and completed_ttl_seconds < 1:
            raise ValueError(
                f"completed_ttl_seconds must be at least 1 or None, got {completed_ttl_seconds}"
            )
        self.completed_ttl_seconds = completed_ttl_seconds
        self._records: dict[str, IdempotencyRecord] = {}
        self._holders: dict[str, asyncio.Task[Any] | None] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def claim_in_progress(self, key: str, ttl_ms: int) -> None:
        """Atomically create an INPROGRESS record, reclaiming an expired one.

        Raises:
            RecordAlreadyExistsError: If a live record exists for ``key``.
        """
        async with self._lock:
            now = self._clock()
            existing = self._records.get(key)
            if existing is not None and not existing.is_expired(now):
                raise RecordAlreadyExistsError(f"A record already exists for key {key}", key=key)

            if existing is not None:
                logger.info("store.reclaimed", key=key, previous_status=existing.status.value)

            self._records[key] = IdempotencyRecord(
                key=key,
                status=RecordStatus.INPROGRESS,
                created_at=now,
                expires_at=now + timedelta(milliseconds=ttl_ms),
            )
            self._holders[key] = asyncio.current_task()

    async def mark_completed(self, key: str, result: Any) -> None:
        """Store the result and move the record to COMPLETED.

        Raises:
            RecordNotFoundError: If the claim no longer exists.
            TypeError: If ``result`` is not JSON-serializable.
        """
        stored_result = json.loads(json.dumps(result))

        async with self._lock:
            now = self._clock()
            claim = self._records.get(key)
            if claim is None:
                raise RecordNotFoundError(f"No record to complete for key {key}", key=key)

            expires_at = None
            if self.completed_ttl_seconds is not None:
                expires_at = now + timedelta(seconds=self.completed_ttl_seconds)

            self._records[key] = IdempotencyRecord(
                key=key,
                status=RecordStatus.COMPLETED,
                result=stored_result,
                created_at=claim.created_at,
                expires_at=expires_at,
            )
            self._holders.pop(key, None)

    async def fetch(self, key: str) -> IdempotencyRecord:
        """Read the record for ``key``.

        A stale INPROGRESS claim is reported as EXPIRED; a COMPLETED record
        past its retention is treated as absent.

        Raises:
            RecordNotFoundError: If no live record exists.
        """
        now = self._clock()
        record = self._records.get(key)
        if record is None:
            raise RecordNotFoundError(f"No record for key {key}", key=key)

        if record.is_expired(now):
            if record.status == RecordStatus.INPROGRESS:
                return record.model_copy(update={"status": RecordStatus.EXPIRED})
            raise RecordNotFoundError(f"Record for key {key} has expired", key=key)

        return record

    async def release(self, key: str) -> None:
        """Remove the claim for ``key``. Missing keys are ignored.

        An INPROGRESS claim made by another task is left in place.
        """
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return
            if (
                record.status == RecordStatus.INPROGRESS
                and self._holders.get(key) is not asyncio.current_task()
            ):
                logger.warning("store.release_skipped", key=key, reason="claim held by another task")
                return
            del self._records[key]
            self._holders.pop(key, None)

    async def cleanup_expired(self) -> int:
        """Remove all records whose expiry has passed.

        Returns:
            The number of records removed.
        """
        async with self._lock:
            now = self._clock()
            expired_keys = [key for key, record in self._records.items() if record.is_expired(now)]
            for key in expired_keys:
                del self._records[key]
                self._holders.pop(key, None)

        record_cleanup(len(expired_keys))
        if expired_keys:
            logger.info("store.cleanup", records_removed=len(expired_keys))
        else:
            logger.debug("store.cleanup", records_removed=0)
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._records)
