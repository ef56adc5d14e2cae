"""User-related Pydantic models"""
import re
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator
import pytz

from habitforge.config import MAX_FORGIVENESS_TOKENS
from habitforge.utils.datetime_helpers import now_utc, parse_user_time

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
THEMES = ("light", "dark", "system")


def _validate_timezone(v: str) -> str:
    try:
        pytz.timezone(v)
    except pytz.exceptions.UnknownTimeZoneError:
        raise ValueError(
            f"Invalid timezone: '{v}'. "
            f"Use IANA timezone (e.g., 'Europe/Stockholm', 'America/New_York')"
        )
    return v


def _validate_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Please provide a valid email")
    return v


def _validate_name(v: str) -> str:
    trimmed = v.strip()
    if not trimmed:
        raise ValueError("Name cannot be empty or only whitespace")
    return trimmed


class NotificationPreferences(BaseModel):
    """Notification channels and daily reminder time"""
    push: bool = True
    email: bool = True
    in_app: bool = True
    reminder_time: str = "09:00"

    @field_validator('reminder_time')
    @classmethod
    def validate_reminder_time(cls, v: str) -> str:
        return parse_user_time(v).strftime("%H:%M")


class PrivacySettings(BaseModel):
    """What the user shares with circles and the AI coach"""
    share_with_community: bool = True
    allow_ai_personalization: bool = True
    show_on_leaderboard: bool = True


class User(BaseModel):
    """User account with gamification progress and settings"""
    id: UUID = Field(default_factory=uuid4)
    name: str = Field(min_length=1, max_length=100)
    email: str
    timezone: str = "UTC"
    level: int = Field(default=1, ge=1)
    total_xp: int = Field(default=0, ge=0)
    forgiveness_tokens: int = Field(default=MAX_FORGIVENESS_TOKENS, ge=0, le=MAX_FORGIVENESS_TOKENS)
    ai_opt_out: bool = False
    theme: str = "system"
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    privacy_settings: PrivacySettings = Field(default_factory=PrivacySettings)
    is_active: bool = True
    soft_deleted: bool = False
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _validate_timezone(v)

    @field_validator('theme')
    @classmethod
    def validate_theme(cls, v: str) -> str:
        if v not in THEMES:
            raise ValueError(f"Invalid theme: '{v}'. Must be one of: {', '.join(THEMES)}")
        return v

    def soft_delete(self) -> None:
        """Deactivate the account without removing its history"""
        self.soft_deleted = True
        self.is_active = False
        self.updated_at = now_utc()

    def allows_ai(self) -> bool:
        """Whether AI coaching may use this user's data"""
        return not self.ai_opt_out and self.privacy_settings.allow_ai_personalization


class UserCreate(BaseModel):
    """Request body for creating a user"""
    name: str = Field(min_length=1, max_length=100)
    email: str
    timezone: str = "UTC"

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _validate_timezone(v)


class UserSettingsUpdate(BaseModel):
    """Request body for updating user settings (all fields optional)"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    timezone: Optional[str] = None
    theme: Optional[str] = None
    ai_opt_out: Optional[bool] = None
    notification_preferences: Optional[NotificationPreferences] = None
    privacy_settings: Optional[PrivacySettings] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _validate_name(v) if v is not None else v

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        return _validate_timezone(v) if v is not None else v

    @field_validator('theme')
    @classmethod
    def validate_theme(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in THEMES:
            raise ValueError(f"Invalid theme: '{v}'. Must be one of: {', '.join(THEMES)}")
        return v
