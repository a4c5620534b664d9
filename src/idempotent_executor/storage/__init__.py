"""Record stores for idempotent execution.

All stores implement the RecordStore protocol defined in base.py.

Available Stores:
    - MemoryRecordStore: In-memory store with asyncio concurrency control
"""

from idempotent_executor.storage.base import RecordStore
from idempotent_executor.storage.memory import MemoryRecordStore

__all__ = [
    "RecordStore",
    "MemoryRecordStore",
]
