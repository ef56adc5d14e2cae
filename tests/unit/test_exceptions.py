"""Unit tests for custom exception hierarchy"""
import pytest
from datetime import datetime

import httpx
import psycopg

from habitforge.exceptions import (
    AIServiceError,
    AuthenticationError,
    AuthorizationError,
    CommunityError,
    ConfigurationError,
    ConflictError,
    ConnectionError,
    DatabaseError,
    ExternalAPIError,
    HabitForgeError,
    QueryError,
    RecordNotFoundError,
    ValidationError,
    wrap_external_exception,
)


class TestHabitForgeError:
    """Test base exception class"""

    def test_basic_exception(self):
        error = HabitForgeError("Test error")

        assert error.message == "Test error"
        assert error.user_message == "An error occurred. Please try again."
        assert error.status_code == 500
        assert error.request_id is not None
        assert isinstance(error.timestamp, datetime)

    def test_exception_with_context(self):
        error = HabitForgeError(
            message="Completion insert failed",
            user_id="user-1",
            operation="complete_habit",
            context={"habit_id": "abc-123"},
            user_message="Could not save your completion"
        )

        assert error.user_id == "user-1"
        assert error.operation == "complete_habit"
        assert error.context["habit_id"] == "abc-123"
        assert error.user_message == "Could not save your completion"

    def test_to_dict(self):
        data = HabitForgeError("Boom", user_message="Try later").to_dict()

        assert data["error"] == "HabitForgeError"
        assert data["message"] == "Boom"
        assert data["user_message"] == "Try later"
        assert "request_id" in data
        assert "timestamp" in data


class TestClientErrors:
    """Errors mapped onto 4xx responses"""

    def test_validation_error_with_field(self):
        error = ValidationError("must be between 1 and 365", field="days", value=400)

        assert error.status_code == 400
        assert error.field == "days"
        assert error.value == 400
        assert error.errors == [{"field": "days", "message": "must be between 1 and 365"}]
        assert error.user_message == "Invalid days: must be between 1 and 365"
        assert error.context["value"] == 400

    def test_validation_error_keeps_extra_context(self):
        error = ValidationError("bad", field="date", context={"habit_id": "h1"})

        assert error.context == {"habit_id": "h1", "field": "date", "value": None}

    def test_validation_error_without_field(self):
        error = ValidationError("No forgiveness tokens remaining")

        assert error.errors == []
        assert error.user_message == "No forgiveness tokens remaining"

    def test_conflict_error(self):
        error = ConflictError("Habit already completed for this date")

        assert error.status_code == 409
        assert error.user_message == "Habit already completed for this date"

    def test_community_error(self):
        error = CommunityError("Circle is full", circle_id="c1")

        assert error.status_code == 400
        assert error.circle_id == "c1"
        assert error.context["circle_id"] == "c1"

    def test_record_not_found(self):
        error = RecordNotFoundError("Habit h1 missing", record_type="Habit", record_id="h1")

        assert isinstance(error, DatabaseError)
        assert error.status_code == 404
        assert error.user_message == "Habit not found."

    def test_authentication_and_authorization(self):
        assert AuthenticationError().status_code == 401

        error = AuthorizationError(resource="AI coaching")
        assert error.status_code == 403
        assert "AI coaching" in error.user_message


class TestServerErrors:
    """Errors mapped onto 5xx responses"""

    def test_external_api_error_keeps_upstream_status(self):
        error = ExternalAPIError("Upstream failed", service="openai", status_code=503)

        assert error.status_code == 502
        assert error.upstream_status == 503
        assert error.context["service"] == "openai"

    def test_ai_service_error(self):
        error = AIServiceError("Bad JSON")

        assert isinstance(error, ExternalAPIError)
        assert error.service == "AI coaching"
        assert error.status_code == 502

    def test_configuration_error(self):
        error = ConfigurationError("OPENAI_API_KEY is not set", config_key="OPENAI_API_KEY")

        assert error.status_code == 503
        assert error.config_key == "OPENAI_API_KEY"


class TestWrapExternalException:
    """wrap_external_exception maps library errors onto the hierarchy"""

    def test_passthrough(self):
        original = ConflictError("dup")
        assert wrap_external_exception(original, operation="x") is original

    def test_psycopg_operational_error(self):
        wrapped = wrap_external_exception(psycopg.OperationalError("down"), operation="get_user")

        assert isinstance(wrapped, ConnectionError)
        assert wrapped.operation == "get_user"

    def test_psycopg_query_error(self):
        wrapped = wrap_external_exception(psycopg.ProgrammingError("syntax"), operation="list_habits")
        assert isinstance(wrapped, QueryError)

    def test_httpx_timeout(self):
        wrapped = wrap_external_exception(httpx.ReadTimeout("slow"), operation="ai_insights")

        assert isinstance(wrapped, ExternalAPIError)
        assert "timed out" in wrapped.message

    def test_httpx_status_error(self):
        request = httpx.Request("POST", "https://api.example.com")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("Service unavailable", request=request, response=response)

        wrapped = wrap_external_exception(error, operation="ai_insights")

        assert isinstance(wrapped, ExternalAPIError)
        assert wrapped.upstream_status == 503

    def test_generic_fallback(self):
        wrapped = wrap_external_exception(ValueError("odd"), operation="export", user_id="u1")

        assert type(wrapped) is HabitForgeError
        assert wrapped.user_id == "u1"
        assert isinstance(wrapped.cause, ValueError)

    @pytest.mark.parametrize("error_class", [ValidationError, ConflictError, CommunityError])
    def test_client_errors_are_habitforge_errors(self, error_class):
        assert issubclass(error_class, HabitForgeError)
