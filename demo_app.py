"""Demo FastAPI application with idempotent payment processing.

The payment endpoint charges a (simulated) card at most once per
Idempotency-Key header value. Repeating a request replays the first
receipt; a duplicate arriving while the first is still running is refused.

Run with: python demo_app.py
"""

import asyncio
import itertools
from datetime import UTC, datetime
from typing import Optional

import uvicorn
from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from idempotent_executor import (
    AlreadyInProgressError,
    IdempotencyConfig,
    InconsistentStateError,
    MemoryRecordStore,
    PersistenceLayerError,
    run,
)
from idempotent_executor.observability.logging import configure_logging, get_logger

app = FastAPI(
    title="Idempotent Execution Demo",
    description="Demo API charging a card at most once per idempotency key",
    version="0.1.0",
)

store = MemoryRecordStore(completed_ttl_seconds=86400)
config = IdempotencyConfig(expires_after_seconds=30)
logger = get_logger("demo_app")

# Simulated processor: one receipt number per actual charge
_receipt_numbers = itertools.count(1)
charges: list[str] = []


class PaymentRequest(BaseModel):
    amount: int
    currency: str = "USD"
    description: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    status: str
    amount: int
    currency: str
    created_at: str


async def charge_card(payment: PaymentRequest) -> dict:
    """Simulate a slow call to a payment processor."""
    await asyncio.sleep(0.1)
    payment_id = f"pay_{next(_receipt_numbers)}"
    charges.append(payment_id)
    return PaymentResponse(
        id=payment_id,
        status="success",
        amount=payment.amount,
        currency=payment.currency,
        created_at=datetime.now(UTC).isoformat(),
    ).model_dump()


@app.get("/")
async def root():
    """Root endpoint - returns API info."""
    return {
        "name": "Idempotent Execution Demo",
        "version": "0.1.0",
        "endpoints": {
            "POST /api/payments": "Charge a card at most once per Idempotency-Key",
            "GET /api/status": "Health check",
        },
    }


@app.get("/api/status")
async def get_status():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "charges": len(charges),
    }


@app.post("/api/payments", response_model=PaymentResponse)
async def create_payment(
    payment: PaymentRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """Create a payment (idempotent).

    Requires an Idempotency-Key header. The key's claim expires after
    30 seconds if the process dies mid-charge.
    """
    if not idempotency_key:
        raise HTTPException(status_code=400, detail="Idempotency-Key header is required")

    try:
        return await run(
            f"payments#{idempotency_key}",
            config.expires_after_seconds * 1000,
            lambda: charge_card(payment),
            store,
            config,
        )
    except AlreadyInProgressError:
        raise HTTPException(
            status_code=409,
            detail="A payment with this Idempotency-Key is being processed",
            headers={"Retry-After": "1"},
        )
    except InconsistentStateError:
        logger.error("payment.inconsistent", idempotency_key=idempotency_key)
        raise HTTPException(status_code=500, detail="Idempotency record is in an inconsistent state")
    except PersistenceLayerError:
        raise HTTPException(status_code=503, detail="Idempotency store unavailable")


if __name__ == "__main__":
    configure_logging(level="INFO", json_output=False)
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
