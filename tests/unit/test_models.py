"""Unit tests for user, habit, completion and XP models"""
import pytest
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from pydantic import ValidationError

from habitforge.models.completion import Completion
from habitforge.models.habit import (
    CompletionRequest,
    Habit,
    HabitCategory,
    HabitCreate,
    HabitFrequency,
    HabitUpdate,
)
from habitforge.models.user import (
    NotificationPreferences,
    PrivacySettings,
    User,
    UserCreate,
    UserSettingsUpdate,
)
from habitforge.models.xp import AddXPRequest, XPSource


# ============================================================================
# User Models
# ============================================================================

class TestUser:

    def test_defaults(self):
        user = User(name="Ada", email="ada@example.com")

        assert user.level == 1
        assert user.total_xp == 0
        assert user.forgiveness_tokens == 2
        assert user.timezone == "UTC"
        assert user.theme == "system"
        assert user.notification_preferences.reminder_time == "09:00"
        assert user.privacy_settings.allow_ai_personalization is True

    def test_email_normalized(self):
        user = User(name="Ada", email="  Ada@Example.COM ")
        assert user.email == "ada@example.com"

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            User(name="Ada", email="not-an-email")

    def test_invalid_timezone_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            UserCreate(name="Ada", email="ada@example.com", timezone="Mars/Base")
        assert "Invalid timezone" in str(exc_info.value)

    def test_whitespace_name_rejected(self):
        with pytest.raises(ValidationError):
            UserCreate(name="   ", email="ada@example.com")

    def test_tokens_capped(self):
        with pytest.raises(ValidationError):
            User(name="Ada", email="ada@example.com", forgiveness_tokens=3)

    def test_allows_ai(self):
        user = User(name="Ada", email="ada@example.com")
        assert user.allows_ai() is True

        user.ai_opt_out = True
        assert user.allows_ai() is False

        user = User(
            name="Ada",
            email="ada@example.com",
            privacy_settings=PrivacySettings(allow_ai_personalization=False),
        )
        assert user.allows_ai() is False

    def test_soft_delete(self):
        user = User(name="Ada", email="ada@example.com")
        user.soft_delete()

        assert user.soft_deleted is True
        assert user.is_active is False

    def test_reminder_time_format(self):
        with pytest.raises(ValidationError):
            NotificationPreferences(reminder_time="9 o'clock")

    def test_reminder_time_zero_padded(self):
        assert NotificationPreferences(reminder_time="7:05").reminder_time == "07:05"

    def test_settings_update_only_set_fields(self):
        update = UserSettingsUpdate(theme="dark")
        assert update.model_dump(exclude_unset=True) == {"theme": "dark"}

    def test_settings_update_invalid_theme(self):
        with pytest.raises(ValidationError):
            UserSettingsUpdate(theme="neon")


# ============================================================================
# Habit Models
# ============================================================================

class TestHabit:

    def test_create_defaults(self):
        habit = HabitCreate(name="  Read  ")

        assert habit.name == "Read"
        assert habit.category == HabitCategory.OTHER
        assert habit.frequency == HabitFrequency.DAILY
        assert habit.color == "#3B82F6"

    def test_name_length(self):
        with pytest.raises(ValidationError):
            HabitCreate(name="x" * 101)

    def test_invalid_color(self):
        with pytest.raises(ValidationError):
            HabitCreate(name="Read", color="blue")

    def test_invalid_reminder_time(self):
        with pytest.raises(ValidationError):
            HabitCreate(name="Read", reminder_time="25:99")

    @pytest.mark.parametrize("value", ["7:30pm", "07:30:00", "24:00"])
    def test_reminder_time_must_be_hh_mm(self, value):
        with pytest.raises(ValidationError):
            HabitCreate(name="Read", reminder_time=value)

    def test_reminder_time_zero_padded(self):
        assert HabitCreate(name="Read", reminder_time="6:45").reminder_time == "06:45"

    def test_update_null_only_clears_reminder_time(self):
        update = HabitUpdate.model_validate({"name": None, "archived": None, "reminder_time": None})
        assert update.changes() == {"reminder_time": None}

    def test_invalid_category(self):
        with pytest.raises(ValidationError):
            HabitCreate(name="Read", category="sleeping")

    def test_update_drops_protected_and_unknown_fields(self):
        update = HabitUpdate.model_validate({
            "name": "Read more",
            "current_streak": 99,
            "total_completions": 500,
            "user_id": str(uuid4()),
            "unknown": "ignored",
        })

        assert update.changes() == {"name": "Read more"}

    def test_update_serializes_enums(self):
        update = HabitUpdate(category=HabitCategory.LEARNING)
        assert update.changes() == {"category": "learning"}

    def test_calculate_streak_keeps_longest(self):
        today = date(2024, 3, 15)
        habit = Habit(user_id=uuid4(), name="Read", longest_streak=10)

        current = habit.calculate_streak([today, today - timedelta(days=1)], today)

        assert current == 2
        assert habit.current_streak == 2
        assert habit.longest_streak == 10

    def test_apply_stats(self):
        today = date(2024, 3, 15)
        habit = Habit(user_id=uuid4(), name="Read")
        dates = [today - timedelta(days=i) for i in range(3)]

        habit.apply_stats(dates, today)

        assert habit.total_completions == 3
        assert habit.current_streak == 3
        assert habit.longest_streak == 3
        assert habit.consistency_rate == 10

    def test_archive(self):
        habit = Habit(user_id=uuid4(), name="Read")
        habit.archive()

        assert habit.archived is True
        assert habit.active is False


class TestCompletion:

    def test_completion_request_ranges(self):
        with pytest.raises(ValidationError):
            CompletionRequest(mood=6)
        with pytest.raises(ValidationError):
            CompletionRequest(difficulty=0)
        with pytest.raises(ValidationError):
            CompletionRequest(notes="x" * 501)

    def test_at_derives_local_date(self):
        instant = datetime(2024, 1, 15, 23, 30, tzinfo=timezone.utc)

        completion = Completion.at(
            habit_id=uuid4(),
            user_id=uuid4(),
            completed_at=instant,
            timezone="Europe/Stockholm",
        )

        assert completion.completion_date == date(2024, 1, 16)
        assert completion.device_timezone == "Europe/Stockholm"
        assert completion.forgiveness_used is False


# ============================================================================
# XP Models
# ============================================================================

class TestAddXPRequest:

    def test_defaults(self):
        request = AddXPRequest(amount=50)
        assert request.source == XPSource.MANUAL

    @pytest.mark.parametrize("amount", [0, 1001, -5])
    def test_amount_range(self, amount):
        with pytest.raises(ValidationError):
            AddXPRequest(amount=amount)

    def test_challenge_source_allowed(self):
        assert AddXPRequest(amount=10, source="challenge").source == XPSource.CHALLENGE

    @pytest.mark.parametrize("source", ["level_bonus", "habit_completion", "forgiveness"])
    def test_system_sources_rejected(self, source):
        with pytest.raises(ValidationError):
            AddXPRequest(amount=10, source=source)
