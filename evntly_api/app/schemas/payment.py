"""
Pydantic models for payment verification and reconciliation results.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class PaymentVerify(BaseModel):
    """Body posted by the client after the gateway checkout succeeds."""

    order_id: str = Field(..., min_length=1, examples=["order_Nq3ZP5mYkT9aQx"])
    payment_id: str = Field(..., min_length=1, examples=["pay_Nq3ZXx1V4wZ0aB"])
    signature: str = Field(..., min_length=1)


class VerificationResult(BaseModel):
    status: Literal["verified", "already_verified", "capacity_exhausted", "registration_canceled"]
    message: str
    payment_id: int
    registration_id: int


class WebhookAck(BaseModel):
    status: Literal["ok"] = "ok"
    result: Optional[str] = Field(
        None,
        description=(
            "What the event did: completed, failed, already_processed, "
            "capacity_exhausted, registration_canceled or ignored"
        ),
    )


class ManualSettlement(BaseModel):
    payment_id: int
    status: Literal["completed", "failed"]
    changed: bool
