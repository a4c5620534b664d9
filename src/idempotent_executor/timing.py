"""Time-budget providers.

A time-budget provider is a zero-argument callable returning the number of
milliseconds left before a caller-imposed deadline. The execution wrapper
uses the value verbatim as the TTL of its claim, so that a crashed or hung
invocation does not strand its key past the deadline.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from idempotent_executor.models import utc_now

RemainingTimeProvider = Callable[[], int]


def remaining_time_until(
    deadline: datetime,
    clock: Callable[[], datetime] = utc_now,
) -> RemainingTimeProvider:
    """Build a provider counting down to ``deadline``.

    Args:
        deadline: Timezone-aware instant by which the work must finish.
        clock: Source of the current time.

    Returns:
        A callable returning the whole milliseconds left, never negative.

    Raises:
        ValueError: If ``deadline`` is naive.

    Examples:
        >>> provider = remaining_time_until(utc_now() + timedelta(seconds=2))
        >>> 0 < provider() <= 2000
        True
    """
    if deadline.tzinfo is None:
        raise ValueError("deadline must be timezone-aware")

    def remaining() -> int:
        return max(0, (deadline - clock()) // timedelta(milliseconds=1))

    return remaining


def fixed_time_budget(milliseconds: int) -> RemainingTimeProvider:
    """Build a provider that always returns ``milliseconds``."""
    if milliseconds < 1:
        raise ValueError(f"time budget must be at least 1 millisecond, got {milliseconds}")
    return lambda: milliseconds
