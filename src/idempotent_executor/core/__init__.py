"""Core logic for idempotent execution.

This package contains:
- Executor: the claim -> execute -> settle state machine
- Wrapper: attachment of the state machine to a callable
"""

from idempotent_executor.core.executor import ExecutionResult, process_invocation, run
from idempotent_executor.core.wrapper import IdempotentFunction, make_idempotent

__all__ = [
    "ExecutionResult",
    "IdempotentFunction",
    "make_idempotent",
    "process_invocation",
    "run",
]
