"""
Pydantic models for activity registrations.

``RegistrationCreate`` is the public booking request.  The booking
result is a tagged union: ``RegistrationCompleted`` when no payment is
required and ``PaymentRequired`` when the caller still has to pay,
distinguished by the ``outcome`` field.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .activity import ActivityRead

RegistrationStatus = Literal["registered", "canceled", "attended"]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def check_email(value: Optional[str]) -> Optional[str]:
    """Shared email check for request schemas; blank becomes ``None``."""
    if value is None or not value.strip():
        return None
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value


class RegistrationCreate(BaseModel):
    first_name: str = Field(..., min_length=1, alias="firstName", examples=["Asha"])
    last_name: str = Field(..., min_length=1, alias="lastName", examples=["Rao"])
    email: Optional[str] = Field(None, examples=["asha@example.com"])
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    ticket_count: int = Field(1, alias="ticketCount", ge=1)

    model_config = {"populate_by_name": True}

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: Optional[str]) -> Optional[str]:
        return check_email(value)

    @model_validator(mode="after")
    def _require_contact(self) -> "RegistrationCreate":
        if not self.email and not self.phone:
            raise ValueError("either email or phone is required")
        return self


class UserRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class RegistrationRead(BaseModel):
    id: int
    activity_id: int
    user_id: int
    status: RegistrationStatus
    ticket_count: int
    registered_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentRead(BaseModel):
    id: int
    registration_id: int
    amount: Decimal
    currency: str
    ticket_count: int
    status: Literal["pending", "completed", "failed"]
    payment_method: Literal["manual", "razorpay"]
    provider_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RazorpayCheckout(BaseModel):
    """Everything the browser needs to open the gateway checkout."""

    type: Literal["razorpay"] = "razorpay"
    key_id: str
    order_id: str
    amount: int = Field(..., description="Amount in minor currency units")
    currency: str


class ManualPaymentInfo(BaseModel):
    """Links to the organizer's own payment page for offline payment."""

    type: Literal["manual"] = "manual"
    payment_page: Optional[str] = None
    qr_code_url: Optional[str] = None


PaymentInfo = Annotated[Union[RazorpayCheckout, ManualPaymentInfo], Field(discriminator="type")]


class RegistrationCompleted(BaseModel):
    outcome: Literal["completed"] = "completed"
    message: str = "Registration successful"
    user: UserRead
    registration: RegistrationRead
    activity: ActivityRead


class PaymentRequired(BaseModel):
    outcome: Literal["payment_required"] = "payment_required"
    message: str = "Payment initiated. Confirm to finalize registration."
    user: UserRead
    registration: RegistrationRead
    payment: PaymentRead
    payment_info: PaymentInfo


RegistrationOutcome = Annotated[
    Union[RegistrationCompleted, PaymentRequired],
    Field(discriminator="outcome"),
]


class OrganizerRegistrationEntry(BaseModel):
    registration_id: int
    status: RegistrationStatus
    ticket_count: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class ActivityRegistrations(BaseModel):
    activity_slug: str
    activity_name: str
    registrations: List[OrganizerRegistrationEntry]
