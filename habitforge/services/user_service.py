"""
UserService - User Management Business Logic

Minimal account management: create, read, settings, soft delete.
"""

import logging
from typing import Any, Dict

import psycopg

from habitforge.db import queries
from habitforge.exceptions import ConflictError, RecordNotFoundError
from habitforge.models.user import User, UserCreate, UserSettingsUpdate

logger = logging.getLogger(__name__)


class UserService:
    """
    Service for user accounts and settings.

    Responsibilities:
    - User creation with unique email
    - Settings updates (profile, theme, notifications, privacy, AI opt-out)
    - Soft deletion
    """

    def __init__(self, db_connection):
        """
        Initialize UserService.

        Args:
            db_connection: Database connection instance
        """
        self.db = db_connection

    async def create_user(self, request: UserCreate) -> Dict[str, Any]:
        """
        Create a new user with default settings.

        Raises:
            ConflictError: If the email is already registered
        """
        try:
            row = await queries.create_user(request.name, request.email, request.timezone)
        except psycopg.errors.UniqueViolation as e:
            raise ConflictError(
                message="Email is already registered",
                operation="create_user",
                context={"email": request.email},
                cause=e,
            )

        logger.info(f"Created new user: {row['id']}")
        return User.model_validate(row).model_dump(mode="json")

    async def get_user_record(self, user_id: str) -> User:
        """
        Load a user as a model.

        Raises:
            RecordNotFoundError: If the user does not exist or was deleted
        """
        row = await queries.get_user(user_id)
        if not row:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        return User.model_validate(row)

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        user = await self.get_user_record(user_id)
        return user.model_dump(mode="json")

    async def update_settings(self, user_id: str, update: UserSettingsUpdate) -> Dict[str, Any]:
        """
        Apply a partial settings update.

        Nested preference objects replace the stored ones as a whole.
        """
        # exclude_unset would also truncate the nested models, so filter top-level keys only
        changes = {
            key: value
            for key, value in update.model_dump(exclude_none=True, mode="json").items()
            if key in update.model_fields_set
        }
        row = await queries.update_user_settings(user_id, changes)
        if not row:
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )

        logger.info(f"Updated settings for user {user_id}: {sorted(changes)}")
        return User.model_validate(row).model_dump(mode="json")

    async def delete_user(self, user_id: str) -> None:
        """Soft-delete a user; history is kept"""
        user = await self.get_user_record(user_id)
        user.soft_delete()

        if not await queries.update_user_status(user_id, is_active=user.is_active, soft_deleted=user.soft_deleted):
            raise RecordNotFoundError(
                message=f"User {user_id} not found",
                record_type="User",
                record_id=user_id,
            )
        logger.info(f"Soft-deleted user {user_id}")
