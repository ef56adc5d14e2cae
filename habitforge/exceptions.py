"""
HabitForge exception hierarchy

Every error raised on purpose by the service layer is a HabitForgeError.
Each class carries the HTTP status the API answers with (see
habitforge.api.errors) and a user_message that is safe to show to clients;
`message` is for logs only.

Errors log themselves when constructed, at the class's log_level, with
request_id / user_id / operation / context attached as structured extras.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


def _with_context(kwargs: Dict[str, Any], **items: Any) -> Dict[str, Any]:
    """Merge subclass fields into a caller-supplied context dict"""
    return {**(kwargs.pop("context", None) or {}), **items}


class HabitForgeError(Exception):
    """
    Base exception for all HabitForge errors

    Example:
        raise HabitForgeError(
            message="Failed to save completion",
            user_id=user_id,
            operation="complete_habit",
            context={"habit_id": habit_id},
        )
    """

    status_code: int = 500
    log_level: int = logging.ERROR
    default_user_message: str = "An error occurred. Please try again."

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or self.default_user_message
        self.timestamp = datetime.now(timezone.utc)

        self._log()

    def _log(self) -> None:
        extra = {
            "error_type": type(self).__name__,
            # 'message' is reserved on LogRecord
            "error_message": self.message,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
        }
        if self.cause is not None:
            extra["cause"] = repr(self.cause)

        logger.log(
            self.log_level,
            f"{type(self).__name__}: {self.message}",
            extra=extra,
            exc_info=self.cause,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
        }


# ==========================================
# 4xx: the request cannot be honoured
# ==========================================

class ValidationError(HabitForgeError):
    """
    Input that passed schema validation but breaks a business rule

    Examples: completion date in the future, analytics range outside 1-365,
    malformed month, no forgiveness tokens left.

    `errors` feeds the {field, message} list of the failure envelope.
    """

    status_code = 400
    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        if errors is None:
            errors = [{"field": field, "message": message}] if field else []
        self.errors = errors
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context=_with_context(kwargs, field=field, value=value),
            **kwargs
        )


class ConflictError(HabitForgeError):
    """The change collides with existing state (duplicate completion, taken email)"""

    status_code = 409
    log_level = logging.WARNING

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, user_message=message, **kwargs)


class CommunityError(HabitForgeError):
    """A circle rule rejected the action (full circle, message limit, ...)"""

    status_code = 400
    log_level = logging.WARNING

    def __init__(self, message: str, circle_id: Optional[str] = None, **kwargs):
        self.circle_id = circle_id
        super().__init__(
            message=message,
            user_message=message,
            context=_with_context(kwargs, circle_id=circle_id),
            **kwargs
        )


class AuthenticationError(HabitForgeError):
    status_code = 401
    log_level = logging.WARNING
    default_user_message = "Authentication failed. Please check your credentials."

    def __init__(self, message: str = "Authentication failed", **kwargs):
        super().__init__(message=message, **kwargs)


class AuthorizationError(HabitForgeError):
    """Caller may not act on the resource (private circle, AI opt-out, admin-only action)"""

    status_code = 403
    log_level = logging.WARNING

    def __init__(self, message: str = "Insufficient permissions", resource: Optional[str] = None, **kwargs):
        self.resource = resource
        super().__init__(
            message=message,
            user_message=f"You don't have permission to access {resource or 'this resource'}.",
            context=_with_context(kwargs, resource=resource),
            **kwargs
        )


# ==========================================
# Database
# ==========================================

class DatabaseError(HabitForgeError):
    pass


class ConnectionError(DatabaseError):
    default_user_message = "We're having trouble reaching our database. Please try again in a moment."

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(message=message, **kwargs)


class QueryError(DatabaseError):
    default_user_message = "We couldn't save your changes. Please try again."

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        self.query = query
        super().__init__(message=message, context=_with_context(kwargs, query=query), **kwargs)


class RecordNotFoundError(DatabaseError):
    """User, habit, circle or challenge does not exist (or is not the caller's)"""

    status_code = 404
    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context=_with_context(kwargs, record_type=record_type, record_id=record_id),
            **kwargs
        )


# ==========================================
# Upstream services and configuration
# ==========================================

class ExternalAPIError(HabitForgeError):
    """
    An upstream service failed; answered with 502

    `upstream_status` keeps the provider's own HTTP status, if any.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
        **kwargs
    ):
        self.service = service
        self.upstream_status = status_code
        super().__init__(
            message=message,
            user_message=user_message or (
                f"{service or 'An external service'} is unavailable right now. Please try again later."
            ),
            context=_with_context(kwargs, service=service, status_code=status_code),
            **kwargs
        )


class AIServiceError(ExternalAPIError):
    """AI coaching provider failed, returned unusable output, or its circuit is open"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, service="AI coaching", **kwargs)


class ConfigurationError(HabitForgeError):
    """A feature was used without the settings it needs (e.g. OPENAI_API_KEY)"""

    status_code = 503
    default_user_message = "This feature is not configured on the server."

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        self.config_key = config_key
        super().__init__(message=message, context=_with_context(kwargs, config_key=config_key), **kwargs)


def wrap_external_exception(
    error: BaseException,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> HabitForgeError:
    """
    Translate a psycopg / openai / httpx exception into the hierarchy

    HabitForgeErrors pass through unchanged; anything unrecognised becomes
    a plain HabitForgeError (500).

    Example:
        except openai.OpenAIError as e:
            raise wrap_external_exception(e, operation="ai_insights", user_id=user_id)
    """
    import httpx
    import openai
    import psycopg

    if isinstance(error, HabitForgeError):
        return error

    common = {"user_id": user_id, "operation": operation, "context": context, "cause": error}

    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(f"Database connection failed: {error}", **common)
    if isinstance(error, psycopg.Error):
        return QueryError(f"Database query failed: {error}", **common)

    if isinstance(error, openai.APIStatusError):
        return AIServiceError(
            f"AI provider returned HTTP {error.status_code}", status_code=error.status_code, **common
        )
    if isinstance(error, openai.OpenAIError):
        return AIServiceError(f"AI provider request failed: {error}", **common)

    if isinstance(error, httpx.TimeoutException):
        return ExternalAPIError(f"Upstream request timed out: {error}", **common)
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return ExternalAPIError(f"Upstream returned HTTP {status}", status_code=status, **common)

    return HabitForgeError(f"{operation} failed: {error}", **common)
