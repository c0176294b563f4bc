"""
Pydantic models for organizer onboarding and settings.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .registration import check_email


class OrganizerCreate(BaseModel):
    organization_name: str = Field(..., min_length=1, alias="organizationName")
    organizer_email: str = Field(..., alias="organizerEmail", examples=["hello@yoga.example.com"])
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    phone: Optional[str] = None
    website_domain: str = Field(..., min_length=1, alias="websiteDomain", examples=["yoga.example.com"])

    model_config = {"populate_by_name": True}

    @field_validator("organizer_email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        checked = check_email(value)
        if checked is None:
            raise ValueError("organizerEmail is required")
        return checked


class OrganizerRead(BaseModel):
    id: int
    organization_name: str
    organizer_email: str
    website_domain: Optional[str] = None
    system_email: Optional[str] = None
    # Whether credentials are configured; the secrets themselves are never returned.
    payment_gateway_configured: bool = False
    webhook_secret_configured: bool = False
    email_configured: bool = False


class OrganizerRegistered(BaseModel):
    message: str = "Organizer registered successfully"
    organizer: OrganizerRead
    secret_key: str = Field(..., description="Shown once; store it securely")


class OrganizerSettingsUpdate(BaseModel):
    """Credentials for the payment gateway and mail provider.

    Fields left out keep their current value; an empty string clears
    the stored value.
    """

    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_webhook_secret: Optional[str] = None
    resend_api_key: Optional[str] = None
    system_email: Optional[str] = None

    @field_validator("system_email")
    @classmethod
    def _valid_email(cls, value: Optional[str]) -> Optional[str]:
        if value == "":
            return value
        return check_email(value)


class TokenRequest(BaseModel):
    secret_key: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
