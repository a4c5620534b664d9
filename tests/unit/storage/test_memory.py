"""Unit tests for MemoryRecordStore.

Covers conditional claims, completion, expiry reporting, reclaiming,
release and cleanup.
"""

import asyncio
from datetime import timedelta

import pytest

from idempotent_executor.exceptions import RecordAlreadyExistsError, RecordNotFoundError
from idempotent_executor.models import RecordStatus
from idempotent_executor.storage.base import RecordStore
from idempotent_executor.storage.memory import MemoryRecordStore


class TestProtocol:
    def test_implements_record_store(self, store: MemoryRecordStore) -> None:
        assert isinstance(store, RecordStore)

    def test_invalid_completed_ttl(self) -> None:
        with pytest.raises(ValueError):
            MemoryRecordStore(completed_ttl_seconds=0)


class TestClaimInProgress:
    @pytest.mark.asyncio
    async def test_claim_creates_in_progress_record(self, store, clock) -> None:
        await store.claim_in_progress("key-1", 1234)

        record = await store.fetch("key-1")
        assert record.key == "key-1"
        assert record.status == RecordStatus.INPROGRESS
        assert record.result is None
        assert record.created_at == clock.now
        assert (record.expires_at - clock.now).total_seconds() == pytest.approx(1.234)

    @pytest.mark.asyncio
    async def test_second_claim_conflicts(self, store) -> None:
        await store.claim_in_progress("key-1", 1000)

        with pytest.raises(RecordAlreadyExistsError) as exc_info:
            await store.claim_in_progress("key-1", 1000)
        assert exc_info.value.key == "key-1"

    @pytest.mark.asyncio
    async def test_claim_conflicts_with_completed_record(self, store) -> None:
        await store.claim_in_progress("key-1", 1000)
        await store.mark_completed("key-1", "Hi")

        with pytest.raises(RecordAlreadyExistsError):
            await store.claim_in_progress("key-1", 1000)

    @pytest.mark.asyncio
    async def test_expired_claim_is_reclaimed(self, store, clock) -> None:
        await store.claim_in_progress("key-1", 1000)
        clock.advance(milliseconds=1000)

        await store.claim_in_progress("key-1", 5000)

        record = await store.fetch("key-1")
        assert record.status == RecordStatus.INPROGRESS
        assert record.created_at == clock.now

    @pytest.mark.asyncio
    async def test_different_keys_do_not_conflict(self, store) -> None:
        await store.claim_in_progress("key-1", 1000)
        await store.claim_in_progress("key-2", 1000)
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_concurrent_claims_exactly_one_wins(self, store) -> None:
        results = await asyncio.gather(
            *(store.claim_in_progress("key-1", 1000) for _ in range(20)),
            return_exceptions=True,
        )

        successes = [r for r in results if r is None]
        conflicts = [r for r in results if isinstance(r, RecordAlreadyExistsError)]
        assert len(successes) == 1
        assert len(conflicts) == 19


class TestMarkCompleted:
    @pytest.mark.asyncio
    async def test_stores_result(self, store) -> None:
        await store.claim_in_progress("key-1", 1000)
        await store.mark_completed("key-1", {"invoice_id": 123})

        record = await store.fetch("key-1")
        assert record.status == RecordStatus.COMPLETED
        assert record.result == {"invoice_id": 123}

    @pytest.mark.asyncio
    async def test_result_is_json_round_tripped(self, store) -> None:
        await store.claim_in_progress("key-1", 1000)
        await store.mark_completed("key-1", {"items": (1, 2)})

        record = await store.fetch("key-1")
        assert record.result == {"items": [1, 2]}

    @pytest.mark.asyncio
    async def test_unserializable_result_raises(self, store) -> None:
        await store.claim_in_progress("key-1", 1000)

        with pytest.raises(TypeError):
            await store.mark_completed("key-1", {1, 2, 3})

        record = await store.fetch("key-1")
        assert record.status == RecordStatus.INPROGRESS

    @pytest.mark.asyncio
    async def test_missing_claim_raises(self, store) -> None:
        with pytest.raises(RecordNotFoundError):
            await store.mark_completed("key-1", "Hi")

    @pytest.mark.asyncio
    async def test_completed_record_outlives_claim_ttl(self, store, clock) -> None:
        await store.claim_in_progress("key-1", 1000)
        await store.mark_completed("key-1", "Hi")
        clock.advance(seconds=10)

        record = await store.fetch("key-1")
        assert record.status == RecordStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_completed_record_retention(self, clock) -> None:
        store = MemoryRecordStore(completed_ttl_seconds=60, clock=clock)
        await store.claim_in_progress("key-1", 1000)
        await store.mark_completed("key-1", "Hi")
        clock.advance(seconds=60)

        with pytest.raises(RecordNotFoundError):
            await store.fetch("key-1")

        await store.claim_in_progress("key-1", 1000)

    @pytest.mark.asyncio
    async def test_completed_record_kept_forever(self, clock) -> None:
        store = MemoryRecordStore(completed_ttl_seconds=None, clock=clock)
        await store.claim_in_progress("key-1", 1000)
        await store.mark_completed("key-1", "Hi")
        clock.advance(days=365)

        record = await store.fetch("key-1")
        assert record.expires_at is None
        assert record.result == "Hi"


class TestFetch:
    @pytest.mark.asyncio
    async def test_missing_key(self, store) -> None:
        with pytest.raises(RecordNotFoundError) as exc_info:
            await store.fetch("missing")
        assert exc_info.value.key == "missing"

    @pytest.mark.asyncio
    async def test_stale_claim_reported_expired(self, store, clock) -> None:
        await store.claim_in_progress("key-1", 1000)
        clock.advance(milliseconds=1000)

        record = await store.fetch("key-1")
        assert record.status == RecordStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_expired_status_is_not_persisted(self, store, clock) -> None:
        await store.claim_in_progress("key-1", 1000)
        clock.advance(milliseconds=1000)
        await store.fetch("key-1")

        clock.advance(milliseconds=-1)
        record = await store.fetch("key-1")
        assert record.status == RecordStatus.INPROGRESS


class TestRelease:
    @pytest.mark.asyncio
    async def test_release_allows_new_claim(self, store) -> None:
        await store.claim_in_progress("key-1", 60_000)
        await store.release("key-1")

        await store.claim_in_progress("key-1", 60_000)
        record = await store.fetch("key-1")
        assert record.status == RecordStatus.INPROGRESS

    @pytest.mark.asyncio
    async def test_release_missing_key_is_noop(self, store) -> None:
        await store.release("missing")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_late_release_keeps_successor_claim(self, store, clock) -> None:
        await store.claim_in_progress("key-1", 1000)
        clock.advance(milliseconds=1000)
        await asyncio.create_task(store.claim_in_progress("key-1", 60_000))

        await store.release("key-1")

        record = await store.fetch("key-1")
        assert record.status == RecordStatus.INPROGRESS
        assert record.expires_at == clock.now + timedelta(milliseconds=60_000)

    @pytest.mark.asyncio
    async def test_release_of_other_task_claim_ignored(self, store) -> None:
        await asyncio.create_task(store.claim_in_progress("key-1", 60_000))

        await store.release("key-1")

        with pytest.raises(RecordAlreadyExistsError):
            await store.claim_in_progress("key-1", 60_000)

    @pytest.mark.asyncio
    async def test_holder_released_from_own_task(self, store) -> None:
        async def claim_then_release() -> None:
            await store.claim_in_progress("key-1", 60_000)
            await store.release("key-1")

        await asyncio.create_task(claim_then_release())
        assert len(store) == 0


class TestCleanupExpired:
    @pytest.mark.asyncio
    async def test_removes_only_expired(self, clock) -> None:
        store = MemoryRecordStore(completed_ttl_seconds=10, clock=clock)
        await store.claim_in_progress("stale", 1000)
        await store.claim_in_progress("live", 60_000)
        await store.claim_in_progress("done", 1000)
        await store.mark_completed("done", "Hi")
        clock.advance(seconds=5)

        removed = await store.cleanup_expired()

        assert removed == 1
        assert len(store) == 2
        with pytest.raises(RecordNotFoundError):
            await store.fetch("stale")

    @pytest.mark.asyncio
    async def test_nothing_to_remove(self, store) -> None:
        assert await store.cleanup_expired() == 0
