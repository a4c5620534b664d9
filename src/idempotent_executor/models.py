"""Core type definitions for idempotent execution.

This module provides the value objects shared by the execution wrapper and
the record stores: the record status enum and the idempotency record itself.

Examples:
    Creating a claim record::

        from datetime import UTC, datetime, timedelta
        from idempotent_executor.models import IdempotencyRecord, RecordStatus

        now = datetime.now(UTC)
        record = IdempotencyRecord(
            key="create_invoice#5d41402abc4b2a76b9719d911017c592",
            status=RecordStatus.INPROGRESS,
            created_at=now,
            expires_at=now + timedelta(milliseconds=1234),
        )

    Completing it::

        completed = record.model_copy(
            update={"status": RecordStatus.COMPLETED, "result": {"invoice_id": 123}}
        )
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class RecordStatus(str, Enum):
    """State of one claim on an idempotency key.

    Attributes:
        INPROGRESS: A caller holds the claim and is executing the operation.
        COMPLETED: The operation finished and its result is stored.
        EXPIRED: Computed by the store at read time for an INPROGRESS claim
            whose expiry has passed. Never written by the wrapper.
    """

    INPROGRESS = "INPROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class IdempotencyRecord(BaseModel):
    """State of one logical invocation identified by an idempotency key.

    Attributes:
        key: Identifier of the logical invocation.
        status: Current status of the claim.
        result: Return value of the protected operation (COMPLETED only).
        created_at: When the claim was created.
        expires_at: When an unsettled claim becomes reclaimable.
    """

    key: str = Field(
        ...,
        description="Idempotency key of the invocation",
        min_length=1,
        examples=["create_invoice#5d41402abc4b2a76b9719d911017c592"],
    )
    status: RecordStatus = Field(
        ...,
        description="Current status of the claim",
        examples=[RecordStatus.INPROGRESS, RecordStatus.COMPLETED],
    )
    result: Any = Field(
        default=None,
        description="Return value of the protected operation (set when COMPLETED)",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Timestamp when the claim was created",
    )
    expires_at: datetime | None = Field(
        default=None,
        description="Timestamp after which an INPROGRESS claim is abandoned",
    )

    model_config = {"frozen": True}

    @field_validator("expires_at")
    @classmethod
    def validate_expires_after_created(cls, v: datetime | None, info: Any) -> datetime | None:
        """Validate that expires_at is after created_at.

        Raises:
            ValueError: If expires_at is not after created_at.
        """
        if v is not None and "created_at" in info.data and v <= info.data["created_at"]:
            raise ValueError("expires_at must be after created_at")
        return v

    @model_validator(mode="after")
    def validate_result_only_when_completed(self) -> "IdempotencyRecord":
        """Reject a stored result on a record that is not COMPLETED."""
        if self.status != RecordStatus.COMPLETED and self.result is not None:
            raise ValueError(f"result may only be set on COMPLETED records, got {self.status.value}")
        return self

    def is_expired(self, now: datetime) -> bool:
        """Return True if the record's expiry has passed at ``now``."""
        return self.expires_at is not None and now >= self.expires_at
