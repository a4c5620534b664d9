"""Prometheus metrics for idempotent execution.

Metrics include:

- Invocation counter by outcome (executed, replayed, in_progress, ...)
- Execution time histogram for operations that actually ran
- Active claims gauge
- Store cleanup tracking

Examples:
    Recording a replayed invocation::

        from idempotent_executor.observability.metrics import record_invocation

        record_invocation(outcome="replayed")
"""

from prometheus_client import Counter, Gauge, Histogram

# Outcomes reported by the execution wrapper
OUTCOMES = (
    "executed",
    "replayed",
    "in_progress",
    "inconsistent",
    "persistence_error",
    "operation_error",
    "unkeyed",
)

invocations_total = Counter(
    "idempotency_invocations_total",
    "Total number of idempotent invocations by outcome",
    ["outcome"],
)

# Only tracks operations that ran, not replays
execution_time_ms = Histogram(
    "idempotency_execution_time_ms",
    "Protected operation execution time in milliseconds",
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

# Claims currently held by this process
active_claims = Gauge(
    "idempotency_active_claims",
    "Number of idempotency claims currently held by this process",
)

cleanup_operations = Counter(
    "idempotency_cleanup_operations_total",
    "Total number of store cleanup operations performed",
)

cleanup_records_removed = Counter(
    "idempotency_cleanup_records_removed_total",
    "Total number of expired records removed by cleanup",
)


def record_invocation(outcome: str) -> None:
    """Record the outcome of one wrapped invocation.

    Args:
        outcome: One of OUTCOMES.

    Raises:
        ValueError: If ``outcome`` is unknown.
    """
    if outcome not in OUTCOMES:
        raise ValueError(f"Unknown invocation outcome: {outcome}")
    invocations_total.labels(outcome=outcome).inc()


def record_execution_time(exec_time_ms: int) -> None:
    """Record how long a protected operation ran, in milliseconds."""
    execution_time_ms.observe(exec_time_ms)


def increment_active_claims() -> None:
    active_claims.inc()


def decrement_active_claims() -> None:
    active_claims.dec()


def record_cleanup(records_removed: int) -> None:
    """Record a cleanup operation.

    Args:
        records_removed: Number of expired records removed
    """
    cleanup_operations.inc()
    cleanup_records_removed.inc(records_removed)
