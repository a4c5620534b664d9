"""Idempotency key derivation.

A key is derived from the idempotency-relevant part of an invocation's
payload:

1. Select: follow ``event_key_path`` into the payload (whole payload if unset)
2. Canonicalize: JSON with sorted keys and compact separators
3. Hash: digest of the canonical JSON with the configured hash function
4. Prefix: ``<prefix>#<digest>``, prefix defaulting to the function name

Equal selections always produce equal keys.
"""

import dataclasses
import hashlib
import json
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from idempotent_executor.config import IdempotencyConfig
from idempotent_executor.exceptions import MissingIdempotencyKeyError
from idempotent_executor.observability.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


def derive_idempotency_key(
    payload: Any,
    *,
    function_name: str,
    config: IdempotencyConfig,
) -> str | None:
    """Derive the idempotency key of an invocation.

    Args:
        payload: The invocation's input (mapping, sequence, object or scalar).
        function_name: Qualified name of the protected function, used as the
            key prefix unless ``config.key_prefix`` is set.
        config: Configuration selecting the path and hash function.

    Returns:
        The key, or None when the payload yields no key and
        ``raise_on_no_idempotency_key`` is disabled.

    Raises:
        MissingIdempotencyKeyError: If the payload yields no key and
            ``raise_on_no_idempotency_key`` is enabled.

    Examples:
        >>> derive_idempotency_key(
        ...     {"order_id": 42, "note": "ignored"},
        ...     function_name="create_order",
        ...     config=IdempotencyConfig(event_key_path="order_id"),
        ... )
        'create_order#a1d0c6e83f027327d8461063f4ac58a6'
    """
    selected = payload
    if config.event_key_path is not None:
        selected = select_path(payload, config.event_key_path)

    if _is_empty(selected):
        if config.raise_on_no_idempotency_key:
            raise MissingIdempotencyKeyError(
                f"No idempotency key found for {function_name} "
                f"(path: {config.event_key_path or '<payload>'})"
            )
        logger.warning(
            "key.missing",
            function_name=function_name,
            event_key_path=config.event_key_path,
        )
        return None

    digest = hashlib.new(config.hash_function, canonicalize(selected).encode("utf-8")).hexdigest()
    prefix = config.key_prefix or function_name
    return f"{prefix}#{digest}"


def canonicalize(value: Any) -> str:
    """Return the canonical JSON text of ``value``.

    Keys are sorted and separators are compact so that equal values always
    produce identical text. Sets are encoded as lists ordered by the
    canonical text of their members, pydantic models and dataclasses as
    their fields. Anything else JSON cannot encode is rendered with
    ``str()``.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_encode_default)


def _encode_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=canonicalize)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return str(value)


def select_path(payload: Any, path: str) -> Any:
    """Follow a dotted path into ``payload``.

    Each segment is looked up as a mapping key, then as an integer index
    into a sequence, then as an attribute. A segment that cannot be resolved
    yields None.

    Args:
        payload: The value to descend into.
        path: Dotted path such as ``"body.items.0.sku"``.

    Returns:
        The selected value, or None if any segment is missing.
    """
    current = payload
    for segment in path.split("."):
        current = _step(current, segment)
        if current is _MISSING:
            return None
    return current


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)

    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        try:
            return current[int(segment)]
        except (ValueError, IndexError):
            return _MISSING

    return getattr(current, segment, _MISSING)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, Mapping, Sequence)) and len(value) == 0:
        return True
    return False
