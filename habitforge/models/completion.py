"""Habit completion model"""
from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from habitforge.utils.datetime_helpers import local_date, now_utc


class Completion(BaseModel):
    """
    One completion of a habit on one local calendar day

    `completed_at` is the UTC instant; `completion_date` is the day it falls
    on in the timezone the user completed it in. A habit has at most one
    completion per completion_date.
    """
    id: UUID = Field(default_factory=uuid4)
    habit_id: UUID
    user_id: UUID
    completed_at: datetime = Field(default_factory=now_utc)
    completion_date: date
    device_timezone: str = "UTC"
    xp_earned: int = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    mood: Optional[int] = Field(default=None, ge=1, le=5)
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)
    duration: Optional[int] = Field(default=None, ge=0)
    forgiveness_used: bool = False
    edited_flag: bool = False
    created_at: datetime = Field(default_factory=now_utc)

    @classmethod
    def at(cls, habit_id: UUID, user_id: UUID, completed_at: datetime, timezone: str, **fields) -> "Completion":
        """Build a completion, deriving completion_date from the instant and timezone"""
        return cls(
            habit_id=habit_id,
            user_id=user_id,
            completed_at=completed_at,
            completion_date=local_date(completed_at, timezone),
            device_timezone=timezone,
            **fields,
        )
