"""
Pydantic models for activities and their weekly schedules.

An activity is either ``one-time`` (bounded by ``start_date_time`` and
``end_date_time``) or ``recurring`` (described by weekly schedule
entries).  ``current_status`` on read models is always the derived
status, never the stored column.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

ActivityType = Literal["one-time", "recurring"]
ActivityStatus = Literal["upcoming", "live", "completed", "canceled"]

WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class ScheduleBase(BaseModel):
    day_of_week: str = Field(..., examples=["Monday"])
    # Only the time of day is meaningful; the date part is ignored.
    start_time: datetime = Field(..., examples=["1970-01-01T10:00:00"])
    end_time: datetime = Field(..., examples=["1970-01-01T12:00:00"])

    @field_validator("day_of_week")
    @classmethod
    def _known_day(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in WEEKDAYS:
            raise ValueError(f"day_of_week must be one of {', '.join(WEEKDAYS)}")
        return normalized


class ScheduleCreate(ScheduleBase):
    """Schedule entry supplied when creating a recurring activity."""


class ScheduleRead(ScheduleBase):
    model_config = {"from_attributes": True}


class ActivityCreate(BaseModel):
    """Schema for creating an activity."""

    name: str = Field(..., min_length=1, examples=["Sunrise Yoga"])
    slug: Optional[str] = Field(None, description="URL slug; derived from the name when omitted")
    club_id: Optional[int] = None
    description: Optional[str] = None
    additional_info: Optional[Any] = None
    venue_name: Optional[str] = None
    map_url: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)
    type: ActivityType = "one-time"
    available_slots: int = Field(0, ge=0)
    registration_fee: int = Field(0, ge=0, description="Fee per ticket in minor currency units")
    is_registration_open: bool = True
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    schedules: List[ScheduleCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_temporal_descriptor(self) -> "ActivityCreate":
        if self.type == "one-time":
            if self.start_date_time is None or self.end_date_time is None:
                raise ValueError("one-time activities require start_date_time and end_date_time")
            if self.end_date_time < self.start_date_time:
                raise ValueError("end_date_time must not be before start_date_time")
        elif not self.schedules:
            raise ValueError("recurring activities require at least one schedule entry")
        return self


class ActivityStatusUpdate(BaseModel):
    status: ActivityStatus


class ClubSummary(BaseModel):
    name: str
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)


class ActivityRead(BaseModel):
    """Schema for reading an activity from the API."""

    slug: str
    name: str
    description: Optional[str] = None
    additional_info: Optional[Any] = None
    venue_name: Optional[str] = None
    map_url: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)
    type: ActivityType
    available_slots: int
    booked_slots: int
    registration_fee: int
    is_registration_open: bool
    status: str
    current_status: ActivityStatus
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    schedules: Optional[List[ScheduleRead]] = None
    club: Optional[ClubSummary] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ActivityList(BaseModel):
    activities: List[ActivityRead]


class ActivityDetail(BaseModel):
    activity: ActivityRead


class ActivityStatusUpdated(BaseModel):
    message: str = "Status updated successfully"
    activity: ActivityRead