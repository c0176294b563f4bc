"""
Pydantic models for clubs and club memberships.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .registration import UserRead, check_email


class ClubCreate(BaseModel):
    name: str = Field(..., min_length=1, examples=["Riverside Runners"])
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)


class ClubUpdate(BaseModel):
    """All fields optional; only provided fields are updated."""

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_urls: Optional[List[str]] = None
    video_urls: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ClubRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClubMemberCreate(BaseModel):
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=5, max_length=20)
    role: str = "member"

    model_config = {"populate_by_name": True}

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: Optional[str]) -> Optional[str]:
        return check_email(value)

    @model_validator(mode="after")
    def _require_contact(self) -> "ClubMemberCreate":
        if not self.email and not self.phone:
            raise ValueError("either email or phone is required")
        return self


class MembershipRead(BaseModel):
    id: int
    club_id: int
    user_id: int
    role: str
    is_active: bool
    joined_at: Optional[datetime] = None


class ClubMembershipResult(BaseModel):
    message: str
    user: UserRead
    membership: MembershipRead


class ClubList(BaseModel):
    clubs: List[ClubRead]


class ClubDetail(BaseModel):
    club: ClubRead


class ClubSaved(BaseModel):
    message: str
    club: ClubRead
