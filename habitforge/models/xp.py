"""XP ledger model"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from habitforge.utils.datetime_helpers import now_utc


class XPSource(str, Enum):
    HABIT_COMPLETION = "habit_completion"
    LEVEL_BONUS = "level_bonus"
    FORGIVENESS = "forgiveness"
    CHALLENGE = "challenge"
    MANUAL = "manual"


class XPTransaction(BaseModel):
    """Append-only ledger entry; a user's total_xp is the sum of their entries"""
    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    habit_id: Optional[UUID] = None
    amount: int
    source: XPSource
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=now_utc)


class AddXPRequest(BaseModel):
    """Request body for a manual or challenge XP credit"""
    amount: int = Field(ge=1, le=1000)
    source: XPSource = XPSource.MANUAL
    description: str = Field(default="Manual XP award", max_length=200)

    @field_validator('source')
    @classmethod
    def validate_source(cls, v: XPSource) -> XPSource:
        """Only manual and challenge credits can be requested directly"""
        if v not in (XPSource.MANUAL, XPSource.CHALLENGE):
            raise ValueError("source must be 'manual' or 'challenge'")
        return v
