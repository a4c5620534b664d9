"""Scenario 6: Failure and Crash Recovery Conformance Tests

1. A failing operation releases its claim: an immediate retry runs again
2. With release disabled, the retry is refused until the claim expires
3. A crashed holder (claim never settled) strands the key only until expiry
"""

import pytest

from idempotent_executor import (
    AlreadyInProgressError,
    IdempotencyConfig,
    RecordNotFoundError,
    run,
)


class PaymentDeclined(Exception):
    pass


class FlakyCharge:
    """Fails the first ``failures`` times, then succeeds."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise PaymentDeclined(f"attempt {self.calls}")
        return {"charge": "ch_1"}


class TestFailureReleasesClaim:
    @pytest.mark.asyncio
    async def test_immediate_retry_reexecutes(self, store) -> None:
        charge = FlakyCharge(failures=1)

        with pytest.raises(PaymentDeclined):
            await run("order-1", 60_000, charge, store)

        with pytest.raises(RecordNotFoundError):
            await store.fetch("order-1")

        assert await run("order-1", 60_000, charge, store) == {"charge": "ch_1"}
        assert charge.calls == 2

    @pytest.mark.asyncio
    async def test_completed_after_retry_is_replayed(self, store) -> None:
        charge = FlakyCharge(failures=2)

        for _ in range(2):
            with pytest.raises(PaymentDeclined):
                await run("order-1", 60_000, charge, store)

        await run("order-1", 60_000, charge, store)
        assert await run("order-1", 60_000, charge, store) == {"charge": "ch_1"}
        assert charge.calls == 3


class TestFailureWithoutRelease:
    @pytest.mark.asyncio
    async def test_retry_blocked_until_expiry(self, store, clock) -> None:
        config = IdempotencyConfig(release_on_failure=False)
        charge = FlakyCharge(failures=1)

        with pytest.raises(PaymentDeclined):
            await run("order-1", 5_000, charge, store, config)

        with pytest.raises(AlreadyInProgressError):
            await run("order-1", 5_000, charge, store, config)

        clock.advance(seconds=5)
        assert await run("order-1", 5_000, charge, store, config) == {"charge": "ch_1"}
        assert charge.calls == 2


class TestCrashRecovery:
    @pytest.mark.asyncio
    async def test_abandoned_claim_reclaimed_after_expiry(self, store, clock) -> None:
        # A holder that crashed after claiming never settles its record
        await store.claim_in_progress("order-1", 1234)
        charge = FlakyCharge(failures=0)

        with pytest.raises(AlreadyInProgressError):
            await run("order-1", 1234, charge, store)

        clock.advance(milliseconds=1234)

        assert await run("order-1", 1234, charge, store) == {"charge": "ch_1"}
        assert charge.calls == 1
