"""Record store protocol for idempotent execution.

This module defines the contract the execution wrapper consumes. A record
store persists one idempotency record per key and offers a conditional
create that is atomic with respect to concurrent callers: among simultaneous
``claim_in_progress`` calls on the same key, exactly one succeeds and all
others raise RecordAlreadyExistsError.

Implementations can target any backend with conditional writes (DynamoDB,
Redis ``SET NX``, a SQL unique constraint, ...). Serialization of results is
the store's concern.

Examples:
    Implementing a custom store::

        from idempotent_executor.exceptions import (
            RecordAlreadyExistsError,
            RecordNotFoundError,
        )
        from idempotent_executor.models import IdempotencyRecord

        class RedisRecordStore:
            async def claim_in_progress(self, key: str, ttl_ms: int) -> None:
                created = await self.redis.set(key, encode_in_progress(), nx=True, px=ttl_ms)
                if not created:
                    raise RecordAlreadyExistsError(f"Record exists for key {key}", key=key)

            async def fetch(self, key: str) -> IdempotencyRecord:
                data = await self.redis.get(key)
                if data is None:
                    raise RecordNotFoundError(f"No record for key {key}", key=key)
                return IdempotencyRecord.model_validate_json(data)

            ...

Store Requirements:
    All RecordStore implementations MUST guarantee:

    1. **Atomic claims**: claim_in_progress() checks for a live record and
       creates the INPROGRESS record in one atomic step. A record whose
       expiry has passed is reclaimed by the same step.

    2. **Expiry at read time**: fetch() reports an INPROGRESS record whose
       expiry has passed with status EXPIRED.

    3. **Distinct conflict signal**: a key conflict raises
       RecordAlreadyExistsError; any other failure raises something else.
       The wrapper reports the latter as PersistenceLayerError.
"""

from typing import Any, Protocol, runtime_checkable

from idempotent_executor.models import IdempotencyRecord


@runtime_checkable
class RecordStore(Protocol):
    """Protocol defining the interface for idempotency record stores.

    All methods are async and must be safe to call concurrently from
    multiple tasks, threads and processes.
    """

    async def claim_in_progress(self, key: str, ttl_ms: int) -> None:
        """Conditionally create an INPROGRESS record for ``key``.

        Args:
            key: The idempotency key.
            ttl_ms: Milliseconds until the claim is considered abandoned.

        Raises:
            RecordAlreadyExistsError: If a live or unreclaimed record exists.
        """
        ...

    async def mark_completed(self, key: str, result: Any) -> None:
        """Store ``result`` and move the record to COMPLETED.

        Args:
            key: The idempotency key.
            result: The protected operation's return value.
        """
        ...

    async def fetch(self, key: str) -> IdempotencyRecord:
        """Read the record for ``key``.

        Returns:
            The record, with status EXPIRED if it is a stale INPROGRESS claim.

        Raises:
            RecordNotFoundError: If no record exists.
        """
        ...

    async def release(self, key: str) -> None:
        """Remove the claim for ``key`` so that it can be claimed again."""
        ...
