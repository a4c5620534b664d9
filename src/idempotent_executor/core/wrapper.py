"""Attach idempotent execution to a callable.

make_idempotent() takes an operation as a value and returns an
IdempotentFunction that, on each call:

1. Picks the payload (the configured keyword argument, which must be
   present, or the first positional argument)
2. Derives the idempotency key from it
3. Computes the time budget (remaining-time provider or configured TTL)
4. Runs the operation through the execution state machine

Examples:
    Protecting a handler with its whole event as the payload::

        from idempotent_executor import MemoryRecordStore, make_idempotent

        store = MemoryRecordStore()

        async def handle(event, context):
            return await create_invoice(event["customer"], event["amount"])

        handle = make_idempotent(handle, store=store)

    Selecting the payload by keyword and deriving the TTL from a deadline::

        config = IdempotencyConfig(data_keyword_argument="order", event_key_path="id")
        process = make_idempotent(
            process_order,
            store=store,
            config=config,
            remaining_time=remaining_time_until(deadline),
        )
        await process(order={"id": "ord_1", "items": [...]})
"""

import functools
import inspect
from collections.abc import Callable
from typing import Any

from idempotent_executor.config import IdempotencyConfig
from idempotent_executor.core.executor import process_invocation
from idempotent_executor.key import derive_idempotency_key
from idempotent_executor.observability.logging import get_logger
from idempotent_executor.observability.metrics import record_invocation
from idempotent_executor.storage.base import RecordStore
from idempotent_executor.timing import RemainingTimeProvider

logger = get_logger(__name__)


class IdempotentFunction:
    """An operation whose calls run at most once per idempotency key.

    Calling an IdempotentFunction always returns a coroutine, whether the
    wrapped operation is synchronous or asynchronous. Assigned as a class
    attribute it binds like a method: the instance is passed to the
    operation but takes no part in payload selection.

    Attributes:
        operation: The wrapped callable
        store: Record store for idempotency records
        config: Configuration object
        remaining_time: Optional time-budget provider
        function_name: Qualified name used as the default key prefix
    """

    def __init__(
        self,
        operation: Callable[..., Any],
        store: RecordStore,
        config: IdempotencyConfig | None = None,
        remaining_time: RemainingTimeProvider | None = None,
    ) -> None:
        if not callable(operation):
            raise TypeError(f"operation must be callable, got {type(operation).__name__}")
        functools.update_wrapper(self, operation)
        self.operation = operation
        self.store = store
        self.config = config or IdempotencyConfig()
        self.remaining_time = remaining_time
        self.function_name = getattr(operation, "__qualname__", type(operation).__name__)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        bound = functools.partial(self._invoke, (instance,))
        functools.update_wrapper(bound, self.operation)
        return bound

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return await self._invoke((), *args, **kwargs)

    async def _invoke(self, bound: tuple[Any, ...], /, *args: Any, **kwargs: Any) -> Any:
        # ``bound`` holds the instance of a wrapped method; it never feeds the key
        payload = self._select_payload(args, kwargs)
        key = derive_idempotency_key(
            payload,
            function_name=self.function_name,
            config=self.config,
        )

        if key is None:
            record_invocation("unkeyed")
            logger.warning("invocation.unprotected", function_name=self.function_name)
            value = self.operation(*bound, *args, **kwargs)
            if inspect.isawaitable(value):
                value = await value
            return value

        result = await process_invocation(
            key,
            self.time_budget_ms(),
            functools.partial(self.operation, *bound, *args, **kwargs),
            self.store,
            self.config,
        )
        return result.value

    def time_budget_ms(self) -> int:
        """Return the claim TTL for the next call, in milliseconds."""
        if self.remaining_time is not None:
            return self.remaining_time()
        return self.config.expires_after_seconds * 1000

    def _select_payload(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        name = self.config.data_keyword_argument
        if name is not None:
            if name not in kwargs:
                raise TypeError(
                    f"{self.function_name}() must be called with the keyword argument {name!r}"
                )
            return kwargs[name]
        if args:
            return args[0]
        return None


def make_idempotent(
    operation: Callable[..., Any],
    *,
    store: RecordStore,
    config: IdempotencyConfig | None = None,
    remaining_time: RemainingTimeProvider | None = None,
) -> IdempotentFunction:
    """Wrap ``operation`` so that each logical invocation runs at most once.

    Args:
        operation: Sync or async callable to protect.
        store: Record store providing the conditional create.
        config: Key selection, hashing and failure policy.
        remaining_time: Provider of the claim TTL in milliseconds. Falls back
            to ``config.expires_after_seconds`` when omitted.

    Returns:
        An async callable with the operation's name and docstring.
    """
    return IdempotentFunction(operation, store, config=config, remaining_time=remaining_time)
