"""Execution wrapper state machine.

This module implements the claim -> execute -> settle flow that makes a
side-effecting operation run at most once per idempotency key:

    claim INPROGRESS -> operation -> COMPLETED   (success)
                                  -> released    (failure)

When the claim is refused because a record already exists, the existing
record decides the outcome:

- INPROGRESS: AlreadyInProgressError, the operation is not invoked
- COMPLETED: the stored result is replayed, the operation is not invoked
- EXPIRED (or vanished): InconsistentStateError

Mutual exclusion is delegated entirely to the store's conditional create.
The wrapper holds no lock, spawns no background work and never retries.

Examples:
    Protecting one call::

        from idempotent_executor.core.executor import run
        from idempotent_executor.storage.memory import MemoryRecordStore

        store = MemoryRecordStore()

        async def charge():
            return await payments.charge(card, amount)

        receipt = await run("charge#order-42", 30_000, charge, store)
"""

import inspect
import time
from collections.abc import Callable
from typing import Any

from idempotent_executor.config import IdempotencyConfig
from idempotent_executor.exceptions import (
    AlreadyInProgressError,
    InconsistentStateError,
    PersistenceLayerError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
)
from idempotent_executor.models import RecordStatus
from idempotent_executor.observability.logging import get_logger
from idempotent_executor.observability.metrics import (
    decrement_active_claims,
    increment_active_claims,
    record_execution_time,
    record_invocation,
)
from idempotent_executor.storage.base import RecordStore

logger = get_logger(__name__)

Operation = Callable[[], Any]


class ExecutionResult:
    """Result of one pass through the state machine.

    Attributes:
        value: The operation's result (new or replayed)
        was_replayed: True if the value came from a COMPLETED record
        execution_time_ms: Operation execution time (None for replays)
    """

    def __init__(
        self,
        value: Any,
        was_replayed: bool,
        execution_time_ms: int | None = None,
    ) -> None:
        self.value = value
        self.was_replayed = was_replayed
        self.execution_time_ms = execution_time_ms


async def run(
    key: str,
    time_budget_ms: int,
    operation: Operation,
    store: RecordStore,
    config: IdempotencyConfig | None = None,
) -> Any:
    """Execute ``operation`` at most once for ``key`` and return its result.

    Args:
        key: Idempotency key of the invocation.
        time_budget_ms: Claim TTL in milliseconds.
        operation: Zero-argument callable; awaited if it returns an awaitable.
        store: Record store providing the conditional create.
        config: Configuration (failure policy). Defaults apply when None.

    Returns:
        The operation's result, or the result stored by a prior execution.

    Raises:
        AlreadyInProgressError: If another execution holds the claim.
        InconsistentStateError: If the existing record is expired or vanished.
        PersistenceLayerError: If the store fails for a reason other than
            a key conflict.
        Exception: Whatever the operation raised, unchanged.
    """
    result = await process_invocation(key, time_budget_ms, operation, store, config)
    return result.value


async def process_invocation(
    key: str,
    time_budget_ms: int,
    operation: Operation,
    store: RecordStore,
    config: IdempotencyConfig | None = None,
) -> ExecutionResult:
    """Run the state machine for one invocation.

    Same contract as run(), returning an ExecutionResult that also tells
    whether the value was replayed.
    """
    if time_budget_ms < 1:
        raise ValueError(f"time budget must be at least 1 millisecond, got {time_budget_ms}")
    if config is None:
        config = IdempotencyConfig()

    log = logger.bind(key=key)

    try:
        await store.claim_in_progress(key, time_budget_ms)
    except RecordAlreadyExistsError:
        log.debug("invocation.claim_refused")
        return await handle_existing_record(store, key)
    except Exception as e:
        record_invocation("persistence_error")
        log.error("invocation.persistence_failed", step="claim", error=str(e))
        raise PersistenceLayerError(
            f"Failed to claim idempotency key {key}: {e}",
            cause=e,
        ) from e

    log.info("invocation.claimed", ttl_ms=time_budget_ms)
    return await handle_claimed(store, key, operation, config)


async def handle_claimed(
    store: RecordStore,
    key: str,
    operation: Operation,
    config: IdempotencyConfig,
) -> ExecutionResult:
    """Invoke the operation under a held claim and settle the record.

    On success the record becomes COMPLETED. On failure the claim is
    released (unless ``config.release_on_failure`` is off) and the
    operation's exception is re-raised unchanged.
    """
    log = logger.bind(key=key)
    increment_active_claims()
    start_time = time.monotonic()
    try:
        try:
            value = operation()
            if inspect.isawaitable(value):
                value = await value
        except Exception as operation_error:
            execution_time_ms = int((time.monotonic() - start_time) * 1000)
            record_invocation("operation_error")
            log.warning(
                "invocation.operation_failed",
                error_type=type(operation_error).__name__,
                execution_time_ms=execution_time_ms,
                released=config.release_on_failure,
            )
            if config.release_on_failure:
                await _release(store, key, operation_error)
            raise

        execution_time_ms = int((time.monotonic() - start_time) * 1000)
        record_execution_time(execution_time_ms)

        try:
            await store.mark_completed(key, value)
        except Exception as e:
            # The side effects happened; the claim stays until it expires.
            record_invocation("persistence_error")
            log.error("invocation.persistence_failed", step="complete", error=str(e))
            raise PersistenceLayerError(
                f"Failed to store the result for idempotency key {key}: {e}",
                cause=e,
            ) from e
    finally:
        decrement_active_claims()

    record_invocation("executed")
    log.info("invocation.completed", execution_time_ms=execution_time_ms)
    return ExecutionResult(
        value=value,
        was_replayed=False,
        execution_time_ms=execution_time_ms,
    )


async def handle_existing_record(store: RecordStore, key: str) -> ExecutionResult:
    """Resolve a refused claim by reading the existing record.

    Raises:
        AlreadyInProgressError: If the record is INPROGRESS.
        InconsistentStateError: If the record is EXPIRED or missing.
        PersistenceLayerError: If the read fails.
    """
    log = logger.bind(key=key)
    try:
        record = await store.fetch(key)
    except RecordNotFoundError as e:
        record_invocation("inconsistent")
        log.error("invocation.inconsistent", status=None)
        raise InconsistentStateError(
            f"Claim for idempotency key {key} was refused but no record exists",
            key=key,
        ) from e
    except Exception as e:
        record_invocation("persistence_error")
        log.error("invocation.persistence_failed", step="fetch", error=str(e))
        raise PersistenceLayerError(
            f"Failed to read the record for idempotency key {key}: {e}",
            cause=e,
        ) from e

    if record.status == RecordStatus.COMPLETED:
        record_invocation("replayed")
        log.info("invocation.replayed")
        return ExecutionResult(value=record.result, was_replayed=True)

    if record.status == RecordStatus.INPROGRESS:
        record_invocation("in_progress")
        log.info("invocation.in_progress", expires_at=record.expires_at)
        raise AlreadyInProgressError(
            f"Execution already in progress for idempotency key {key}",
            key=key,
        )

    record_invocation("inconsistent")
    log.error("invocation.inconsistent", status=record.status.value)
    raise InconsistentStateError(
        f"Claim for idempotency key {key} was refused but the record is {record.status.value}",
        key=key,
    )


async def _release(store: RecordStore, key: str, operation_error: Exception) -> None:
    try:
        await store.release(key)
    except Exception as e:
        record_invocation("persistence_error")
        logger.error("invocation.persistence_failed", key=key, step="release", error=str(e))
        raise PersistenceLayerError(
            f"Failed to release idempotency key {key}: {e}",
            cause=e,
            operation_error=operation_error,
        ) from e
