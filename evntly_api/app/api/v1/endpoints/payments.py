"""
Payment endpoints for API v1.

Gateway webhooks and the client verify call settle gateway payments;
organizers settle manual payments themselves.  All of them share the
payment state machine in ``PaymentService``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Request

from evntly_api.app.api.v1.deps import get_payment_service
from evntly_api.app.core.exceptions import ServiceError
from evntly_api.app.core.security import get_current_organizer
from evntly_api.app.schemas.payment import ManualSettlement, PaymentVerify, VerificationResult, WebhookAck
from evntly_api.app.services.payment_service import PaymentService

router = APIRouter()


@router.post("/webhooks/{provider}", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    provider: str = Path(..., description="Payment provider, e.g. razorpay"),
    x_razorpay_signature: Optional[str] = Header(default=None),
    service: PaymentService = Depends(get_payment_service),
) -> WebhookAck:
    """Receive a signed payment event from the gateway.

    The signature is checked against the raw body, so the body is read
    as bytes and parsed by the service.  Any event with a valid
    signature is acknowledged with 200.
    """
    raw_body = await request.body()
    try:
        return await service.handle_webhook(provider, raw_body, x_razorpay_signature)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.post("/verify-payment", response_model=VerificationResult)
async def verify_payment(
    body: PaymentVerify,
    service: PaymentService = Depends(get_payment_service),
) -> VerificationResult:
    """Confirm a gateway payment from the browser after checkout."""
    try:
        return await service.verify_payment(body.order_id, body.payment_id, body.signature)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.post("/organizer/payments/{payment_id}/confirm", response_model=ManualSettlement)
async def confirm_manual_payment(
    payment_id: int = Path(..., description="Payment ID"),
    organizer: dict = Depends(get_current_organizer),
    service: PaymentService = Depends(get_payment_service),
) -> ManualSettlement:
    """Mark an offline payment as received."""
    try:
        return await service.confirm_manual(payment_id, organizer)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


@router.post("/organizer/payments/{payment_id}/reject", response_model=ManualSettlement)
async def reject_manual_payment(
    payment_id: int = Path(..., description="Payment ID"),
    organizer: dict = Depends(get_current_organizer),
    service: PaymentService = Depends(get_payment_service),
) -> ManualSettlement:
    """Mark an offline payment as failed and cancel its registration."""
    try:
        return await service.reject_manual(payment_id, organizer)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
