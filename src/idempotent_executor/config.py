"""Configuration module for idempotent execution.

This module provides the IdempotencyConfig class, an immutable value passed
explicitly to each idempotent wrapper. There is no process-wide mutable
configuration.

Example:
    Basic usage with defaults:

        >>> config = IdempotencyConfig()
        >>> config.expires_after_seconds
        3600

    Selecting the key from a keyword argument:

        >>> config = IdempotencyConfig(
        ...     data_keyword_argument="order",
        ...     event_key_path="customer.id",
        ...     hash_function="sha256",
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_EXPIRES_AFTER_SECONDS'] = '600'
        >>> os.environ['IDEMPOTENCY_RAISE_ON_NO_IDEMPOTENCY_KEY'] = 'true'
        >>> config = IdempotencyConfig.from_env()
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Accepted spellings for boolean environment variables
TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class IdempotencyConfig(BaseModel):
    """Configuration for idempotent execution.

    Attributes:
        expires_after_seconds: Claim TTL used when the caller supplies no
            remaining-time provider. Must be between 1 and 604800 (7 days).
            Default is 3600 (1 hour).
        event_key_path: Dotted path selecting the fields of the payload that
            identify the invocation (e.g. "body.order_id" or "items.0.sku").
            The whole payload is used when unset.
        data_keyword_argument: Name of the keyword argument holding the
            payload. When unset, the first positional argument is used.
        raise_on_no_idempotency_key: Raise MissingIdempotencyKeyError when the
            payload yields no key. When False (default), the operation runs
            without idempotency protection and a warning is logged.
        hash_function: Digest used to derive keys: "md5" (default) or "sha256".
        key_prefix: Prefix of derived keys. Defaults to the qualified name of
            the wrapped function.
        release_on_failure: Delete the claim when the operation raises so an
            immediate retry is possible (default). When False, the claim is
            left INPROGRESS until it expires.

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    expires_after_seconds: int = Field(
        default=3600,
        description="Fallback claim TTL in seconds (1-604800)",
    )
    event_key_path: str | None = Field(
        default=None,
        description="Dotted path selecting the idempotency-relevant part of the payload",
    )
    data_keyword_argument: str | None = Field(
        default=None,
        description="Keyword argument holding the payload",
    )
    raise_on_no_idempotency_key: bool = Field(
        default=False,
        description="Raise when the payload yields no idempotency key",
    )
    hash_function: Literal["md5", "sha256"] = Field(
        default="md5",
        description="Digest used to derive idempotency keys",
    )
    key_prefix: str | None = Field(
        default=None,
        description="Prefix of derived keys (defaults to the function's qualified name)",
    )
    release_on_failure: bool = Field(
        default=True,
        description="Delete the claim when the protected operation fails",
    )

    model_config = {"frozen": True}

    @field_validator("expires_after_seconds")
    @classmethod
    def validate_expires_after_seconds(cls, v: int) -> int:
        """Validate TTL is within acceptable range.

        Raises:
            ValueError: If TTL is not between 1 and 604800 (7 days).
        """
        if not (1 <= v <= 604800):
            raise ValueError(
                f"expires_after_seconds must be between 1 and 604800 (7 days), got {v}"
            )
        return v

    @field_validator("event_key_path")
    @classmethod
    def validate_event_key_path(cls, v: str | None) -> str | None:
        """Validate that the key path has no empty segments.

        Example:
            >>> IdempotencyConfig(event_key_path="body.order_id").event_key_path
            'body.order_id'
        """
        if v is None:
            return v
        v = v.strip()
        if not v or any(not segment for segment in v.split(".")):
            raise ValueError(f"event_key_path must be a dotted path without empty segments, got {v!r}")
        return v

    @field_validator("data_keyword_argument", "key_prefix")
    @classmethod
    def validate_not_blank(cls, v: str | None) -> str | None:
        """Reject blank strings for optional name fields."""
        if v is not None and not v.strip():
            raise ValueError("value must not be blank")
        return v

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencyConfig":
        """Create configuration from environment variables.

        Variable names are uppercase field names with the prefix, for example
        ``IDEMPOTENCY_EXPIRES_AFTER_SECONDS``.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            IdempotencyConfig instance populated from environment variables.

        Raises:
            ValueError: If a boolean variable has an unrecognized value.
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "expires_after_seconds": int,
            "event_key_path": str,
            "data_keyword_argument": str,
            "raise_on_no_idempotency_key": bool,
            "hash_function": str,
            "key_prefix": str,
            "release_on_failure": bool,
        }

        for field_name, field_type in field_types.items():
            env_var = f"{prefix}{field_name.upper()}"
            env_value = os.environ.get(env_var)

            if env_value is not None:
                if field_type is int:
                    config_dict[field_name] = int(env_value)
                elif field_type is bool:
                    config_dict[field_name] = _parse_bool(env_var, env_value)
                else:
                    config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")
