"""Community circle models"""
import secrets
import string
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from habitforge.exceptions import AuthorizationError, CommunityError, RecordNotFoundError
from habitforge.utils.datetime_helpers import now_utc

INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
WEEKDAYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def generate_invite_code() -> str:
    """Random 8-character invite code for private circles"""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class ChallengeType(str, Enum):
    STREAK = "streak"
    COMPLETION = "completion"
    CONSISTENCY = "consistency"


class CircleMember(BaseModel):
    user_id: UUID
    role: MemberRole = MemberRole.MEMBER
    joined_at: datetime = Field(default_factory=now_utc)
    opt_out_of_leaderboard: bool = False
    community_points: int = Field(default=0, ge=0)


class CircleMessage(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    circle_id: Optional[UUID] = None
    user_id: UUID
    content: str = Field(min_length=1, max_length=500)
    created_at: datetime = Field(default_factory=now_utc)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Message cannot be empty or only whitespace")
        return trimmed


class _DateRange(BaseModel):
    start_date: datetime
    end_date: datetime

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CircleEvent(_DateRange):
    id: UUID = Field(default_factory=uuid4)
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=500)
    created_by: UUID
    created_at: datetime = Field(default_factory=now_utc)


class ChallengeParticipant(BaseModel):
    user_id: UUID
    progress: int = Field(default=0, ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None


class CircleChallenge(_DateRange):
    id: UUID = Field(default_factory=uuid4)
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=500)
    type: ChallengeType
    target: int = Field(ge=1)
    points_reward: int = Field(default=50, ge=1)
    participants: list[ChallengeParticipant] = Field(default_factory=list)
    created_by: UUID
    created_at: datetime = Field(default_factory=now_utc)

    def get_participant(self, user_id: UUID) -> Optional[ChallengeParticipant]:
        return next((p for p in self.participants if p.user_id == user_id), None)


class ModerationSettings(BaseModel):
    max_messages_per_day: int = Field(default=10, ge=1)


class CommunityCircle(BaseModel):
    """
    A small accountability group

    The circle enforces its own membership rules; the service layer loads
    the aggregate, asks it whether an action is allowed, then persists the
    change. Rule violations raise CommunityError (400), missing children
    RecordNotFoundError (404) and admin-only actions AuthorizationError (403).
    """
    id: UUID = Field(default_factory=uuid4)
    name: str = Field(min_length=3, max_length=50)
    description: str = Field(default="", max_length=200)
    created_by: UUID
    members: list[CircleMember] = Field(default_factory=list)
    max_members: int = Field(default=10, ge=2, le=50)
    is_private: bool = False
    invite_code: Optional[str] = None
    moderation_settings: ModerationSettings = Field(default_factory=ModerationSettings)
    messages: list[CircleMessage] = Field(default_factory=list)
    events: list[CircleEvent] = Field(default_factory=list)
    challenges: list[CircleChallenge] = Field(default_factory=list)
    leaderboard_update_day: str = "Sunday"
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)

    @field_validator('name', 'description')
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator('leaderboard_update_day')
    @classmethod
    def validate_update_day(cls, v: str) -> str:
        if v not in WEEKDAYS:
            raise ValueError(f"Invalid day: '{v}'. Must be one of: {', '.join(WEEKDAYS)}")
        return v

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def available_spots(self) -> int:
        return max(self.max_members - len(self.members), 0)

    def get_member(self, user_id: UUID) -> Optional[CircleMember]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def is_member(self, user_id: UUID) -> bool:
        return self.get_member(user_id) is not None

    def is_admin(self, user_id: UUID) -> bool:
        member = self.get_member(user_id)
        return member is not None and member.role == MemberRole.ADMIN

    def _reject(self, message: str, user_id: UUID) -> CommunityError:
        return CommunityError(message, circle_id=str(self.id), user_id=str(user_id))

    def ensure_member(self, user_id: UUID) -> CircleMember:
        member = self.get_member(user_id)
        if member is None:
            raise self._reject("User is not a member", user_id)
        return member

    def ensure_admin(self, user_id: UUID, action: str) -> None:
        """Raise AuthorizationError unless user_id administers this circle"""
        if not self.is_admin(user_id):
            raise AuthorizationError(
                message=f"Only admins can {action}",
                resource=f"circle {self.id}",
                user_id=str(user_id),
            )

    def ensure_can_join(self, user_id: UUID, invite_code: Optional[str] = None) -> None:
        if self.is_member(user_id):
            raise self._reject("User is already a member", user_id)
        if self.available_spots <= 0:
            raise self._reject("Circle is full", user_id)
        if self.is_private and (not invite_code or invite_code != self.invite_code):
            raise self._reject("Invalid invite code", user_id)

    def ensure_can_leave(self, user_id: UUID) -> None:
        self.ensure_member(user_id)
        if user_id == self.created_by and len(self.members) > 1:
            raise self._reject("Circle creator cannot leave while other members remain", user_id)

    def messages_since(self, user_id: UUID, since: datetime) -> int:
        """Messages posted by user_id at or after `since`"""
        return sum(1 for m in self.messages if m.user_id == user_id and m.created_at >= since)

    def ensure_can_post(self, user_id: UUID, today_start: datetime) -> None:
        """
        Members only, at most max_messages_per_day messages per day

        Args:
            user_id: Poster
            today_start: Start of the poster's current day (UTC instant);
                self.messages must contain at least every message since then
        """
        if not self.is_member(user_id):
            raise self._reject("Only members can post messages", user_id)
        if self.messages_since(user_id, today_start) >= self.moderation_settings.max_messages_per_day:
            raise self._reject("Daily message limit reached", user_id)

    def get_challenge(self, challenge_id: UUID) -> CircleChallenge:
        challenge = next((c for c in self.challenges if c.id == challenge_id), None)
        if challenge is None:
            raise RecordNotFoundError(
                message=f"Challenge {challenge_id} not found in circle {self.id}",
                record_type="Challenge",
                record_id=str(challenge_id),
            )
        return challenge

    def ensure_can_join_challenge(self, user_id: UUID, challenge_id: UUID) -> CircleChallenge:
        if not self.is_member(user_id):
            raise self._reject("Only members can join challenges", user_id)
        challenge = self.get_challenge(challenge_id)
        if challenge.get_participant(user_id) is not None:
            raise self._reject("Already joined this challenge", user_id)
        return challenge

    def apply_challenge_progress(self, user_id: UUID, challenge_id: UUID, progress: int) -> int:
        """
        Record a participant's progress

        Completing the challenge (progress reaching target for the first time)
        credits points_reward community points to the member.

        Returns:
            Community points awarded by this update (0 if none)
        """
        challenge = self.get_challenge(challenge_id)
        participant = challenge.get_participant(user_id)
        if participant is None:
            raise self._reject("Not participating in this challenge", user_id)

        participant.progress = progress
        if progress >= challenge.target and not participant.completed:
            participant.completed = True
            participant.completed_at = now_utc()
            member = self.ensure_member(user_id)
            member.community_points += challenge.points_reward
            return challenge.points_reward

        return 0


class CircleCreate(BaseModel):
    name: str = Field(min_length=3, max_length=50)
    description: str = Field(default="", max_length=200)
    max_members: int = Field(default=10, ge=2, le=50)
    is_private: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        trimmed = v.strip()
        if len(trimmed) < 3:
            raise ValueError("Circle name must be at least 3 characters")
        return trimmed


class JoinCircleRequest(BaseModel):
    invite_code: Optional[str] = None


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=500)

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Message cannot be empty or only whitespace")
        return trimmed


class EventCreate(_DateRange):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=500)


class ChallengeCreate(_DateRange):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(default="", max_length=500)
    type: ChallengeType
    target: int = Field(ge=1)
    points_reward: int = Field(default=50, ge=1)


class ChallengeProgressUpdate(BaseModel):
    progress: int = Field(ge=0)
