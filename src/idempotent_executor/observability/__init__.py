"""Observability utilities for idempotent execution.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for invocation outcomes and execution time
- Structured logging with contextual information
"""

from idempotent_executor.observability.logging import configure_logging, get_logger
from idempotent_executor.observability.metrics import (
    record_cleanup,
    record_execution_time,
    record_invocation,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_invocation",
    "record_execution_time",
    "record_cleanup",
]
