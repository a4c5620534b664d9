"""Custom exceptions for idempotent execution.

This module defines the exception hierarchy raised by the execution wrapper,
the record stores and the key deriver.

Errors raised by the protected operation itself are never wrapped: they
propagate to the caller unchanged.

Examples:
    Handling a duplicate in flight::

        from idempotent_executor.exceptions import AlreadyInProgressError

        try:
            result = await run(key, 1234, charge_card, store)
        except AlreadyInProgressError as e:
            logger.info("duplicate.in_flight", key=e.key)
            return Response(status_code=409)

    Handling a store outage::

        from idempotent_executor.exceptions import PersistenceLayerError

        try:
            result = await run(key, 1234, charge_card, store)
        except PersistenceLayerError as e:
            logger.error("store.unavailable", error=str(e.cause))
            return Response(status_code=503)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class AlreadyInProgressError(IdempotencyError):
    """Another execution currently holds the claim for this key.

    The caller should retry later or treat the call as a duplicate in flight.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key that is claimed.
    """

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key


class InconsistentStateError(IdempotencyError):
    """The store and the claim path disagree about the state of a key.

    Raised when a conditional create reported an existing record but the
    subsequent read finds it expired or missing. Surfaced rather than
    auto-resolved: whether to reclaim or alert depends on the deployment.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key in an inconsistent state.
    """

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key


class PersistenceLayerError(IdempotencyError):
    """A record store operation failed for a reason other than a key conflict.

    Covers timeouts, connectivity problems and serialization faults. Always
    fatal to the current attempt.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception raised by the store.
        operation_error: The protected operation's exception, when the store
            failed while releasing the claim after that operation failed.
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        operation_error: BaseException | None = None,
    ) -> None:
        """Initialize the persistence error with details.

        Args:
            message: Human-readable error description.
            cause: The underlying exception raised by the store.
            operation_error: The protected operation's exception, if any.
        """
        super().__init__(message)
        self.cause = cause
        self.operation_error = operation_error


class RecordAlreadyExistsError(IdempotencyError):
    """A conditional create found a live record for the key.

    Raised by record stores from ``claim_in_progress``.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key that already has a record.
    """

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key


class RecordNotFoundError(IdempotencyError):
    """No record exists for the key.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key that was looked up.
    """

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key


class MissingIdempotencyKeyError(IdempotencyError):
    """The invocation payload yielded no idempotency key.

    Only raised when ``raise_on_no_idempotency_key`` is enabled; otherwise
    the operation runs without idempotency protection.
    """
