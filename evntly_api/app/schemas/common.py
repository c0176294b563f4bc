"""
Small response models shared by several routers.
"""

from datetime import datetime
from typing import Dict

from pydantic import BaseModel


class Message(BaseModel):
    message: str


class HealthStatus(BaseModel):
    message: str
    version: str
    timestamp: datetime


class StatusSweepResult(BaseModel):
    """Rows changed per transition by one status sweep."""

    message: str = "Activity statuses updated"
    updated: Dict[str, int]
    timestamp: datetime
