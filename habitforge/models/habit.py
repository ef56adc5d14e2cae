"""Habit models"""
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator

from habitforge.gamification.streak_system import calculate_consistency_rate, calculate_streaks
from habitforge.utils.datetime_helpers import now_utc, parse_user_time

HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

# Fields an update request can never write
PROTECTED_FIELDS = frozenset({
    "id",
    "user_id",
    "created_at",
    "total_completions",
    "current_streak",
    "longest_streak",
    "consistency_rate",
})

# Habit columns an update may set to NULL
NULLABLE_FIELDS = frozenset({"reminder_time"})


class HabitCategory(str, Enum):
    HEALTH = "health"
    FITNESS = "fitness"
    PRODUCTIVITY = "productivity"
    LEARNING = "learning"
    MINDFULNESS = "mindfulness"
    SOCIAL = "social"
    CREATIVITY = "creativity"
    FINANCE = "finance"
    OTHER = "other"


class HabitFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


def _validate_reminder_time(v: Optional[str]) -> Optional[str]:
    """HH:MM, stored zero-padded ('7:05' -> '07:05')"""
    if v is None:
        return v
    return parse_user_time(v).strftime("%H:%M")


def _validate_color(v: Optional[str]) -> Optional[str]:
    if v is not None and not HEX_COLOR.match(v):
        raise ValueError(f"Invalid color: '{v}'. Must be a hex color like '#3B82F6'")
    return v


def _validate_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    trimmed = v.strip()
    if not trimmed:
        raise ValueError("Habit name cannot be empty or only whitespace")
    return trimmed


class Habit(BaseModel):
    """A habit with its cached completion statistics"""
    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    category: HabitCategory = HabitCategory.OTHER
    frequency: HabitFrequency = HabitFrequency.DAILY
    reminder_time: Optional[str] = None
    reminder_enabled: bool = False
    color: str = "#3B82F6"
    icon: str = "check"
    active: bool = True
    archived: bool = False
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_completions: int = Field(default=0, ge=0)
    consistency_rate: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator('reminder_time')
    @classmethod
    def validate_reminder_time(cls, v: Optional[str]) -> Optional[str]:
        return _validate_reminder_time(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v: str) -> str:
        return _validate_color(v)

    def calculate_streak(self, completion_dates: Iterable[date], today: date) -> int:
        """
        Recompute current and longest streak from local completion dates

        Returns:
            The new current streak
        """
        streaks = calculate_streaks(completion_dates, today)
        self.current_streak = streaks["current_streak"]
        self.longest_streak = max(self.longest_streak, streaks["longest_streak"])
        return self.current_streak

    def apply_stats(self, completion_dates: Iterable[date], today: date) -> None:
        """Refresh streaks, total completions and consistency from all completion dates"""
        dates = list(completion_dates)
        self.calculate_streak(dates, today)
        self.total_completions = len(dates)
        self.consistency_rate = calculate_consistency_rate(dates, today)
        self.updated_at = now_utc()

    def archive(self) -> None:
        self.archived = True
        self.active = False
        self.updated_at = now_utc()


class HabitCreate(BaseModel):
    """Request body for creating a habit"""
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    category: HabitCategory = HabitCategory.OTHER
    frequency: HabitFrequency = HabitFrequency.DAILY
    reminder_time: Optional[str] = None
    reminder_enabled: bool = False
    color: str = "#3B82F6"
    icon: str = "check"

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator('reminder_time')
    @classmethod
    def validate_reminder_time(cls, v: Optional[str]) -> Optional[str]:
        return _validate_reminder_time(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v: str) -> str:
        return _validate_color(v)


class HabitUpdate(BaseModel):
    """
    Request body for updating a habit

    Unknown keys are accepted and dropped, so clients sending back a full
    habit (stats included) do not fail; protected fields are never written.
    """
    model_config = {"extra": "ignore"}

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Optional[HabitCategory] = None
    frequency: Optional[HabitFrequency] = None
    reminder_time: Optional[str] = None
    reminder_enabled: Optional[bool] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    active: Optional[bool] = None
    archived: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _validate_name(v)

    @field_validator('reminder_time')
    @classmethod
    def validate_reminder_time(cls, v: Optional[str]) -> Optional[str]:
        return _validate_reminder_time(v)

    @field_validator('color')
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _validate_color(v)

    def changes(self) -> dict[str, Any]:
        """
        Fields explicitly set by the client, minus protected ones

        An explicit null only clears a nullable column (reminder_time); for
        any other field it means "leave unchanged".
        """
        data = self.model_dump(exclude_unset=True, mode="json")
        return {
            k: v for k, v in data.items()
            if k not in PROTECTED_FIELDS and (v is not None or k in NULLABLE_FIELDS)
        }


class CompletionRequest(BaseModel):
    """Request body for marking a habit complete"""
    date: Optional[str] = None
    timezone: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    mood: Optional[int] = Field(default=None, ge=1, le=5)
    difficulty: Optional[int] = Field(default=None, ge=1, le=5)
    duration: Optional[int] = Field(default=None, ge=0)


class ForgivenessRequest(BaseModel):
    """Request body for spending a forgiveness token on a missed day"""
    date: str
    timezone: Optional[str] = None
