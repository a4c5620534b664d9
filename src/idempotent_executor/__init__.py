"""
At-most-once execution of side-effecting operations.

This package wraps an operation so that calls sharing an idempotency key
execute it at most once, coordinating through a record store with a
conditional create. Duplicates either fail fast while the first call is in
flight or receive the stored result once it has completed.
"""

from idempotent_executor.config import IdempotencyConfig
from idempotent_executor.core.executor import run
from idempotent_executor.core.wrapper import IdempotentFunction, make_idempotent
from idempotent_executor.exceptions import (
    AlreadyInProgressError,
    IdempotencyError,
    InconsistentStateError,
    MissingIdempotencyKeyError,
    PersistenceLayerError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
)
from idempotent_executor.models import IdempotencyRecord, RecordStatus
from idempotent_executor.storage import MemoryRecordStore, RecordStore
from idempotent_executor.timing import fixed_time_budget, remaining_time_until

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AlreadyInProgressError",
    "IdempotencyConfig",
    "IdempotencyError",
    "IdempotencyRecord",
    "IdempotentFunction",
    "InconsistentStateError",
    "MemoryRecordStore",
    "MissingIdempotencyKeyError",
    "PersistenceLayerError",
    "RecordAlreadyExistsError",
    "RecordNotFoundError",
    "RecordStatus",
    "RecordStore",
    "fixed_time_budget",
    "make_idempotent",
    "remaining_time_until",
    "run",
]
