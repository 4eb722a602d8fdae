"""
Unit tests for error module.

Tests the exception hierarchy, error codes and status code mapping.
"""

import pytest
from worksync.errors import (
    WorkSyncError,
    ConfigurationError,
    PatNotConfiguredError,
    OrganizationNotConfiguredError,
    AdoNotInitializedError,
    AdoConnectionFailedError,
    TaskNotFoundError,
    UserNotFoundError,
    ProjectNotFoundError,
    AdoRequestError,
    AuthenticationError,
    PermissionDeniedError,
    WorkItemNotFoundError,
    BadRequestError,
    RateLimitError,
    TransientError,
    AdoTimeoutError,
    map_status_code_to_error,
)
from worksync.validation import ValidationError


class TestWorkSyncError:
    """Test base WorkSyncError class."""

    def test_base_error_defaults(self):
        """Test default code and status."""
        error = WorkSyncError("Something broke")
        assert str(error) == "Something broke"
        assert error.code == "INTERNAL_ERROR"
        assert error.http_status == 500

    def test_to_dict_without_details(self):
        """Test envelope error member without details."""
        assert WorkSyncError("Oops").to_dict() == {'code': 'INTERNAL_ERROR', 'message': 'Oops'}

    def test_to_dict_with_details(self):
        """Test envelope error member includes details."""
        error = WorkSyncError("Oops", details={'a': 1})
        assert error.to_dict()['details'] == {'a': 1}

    def test_code_override(self):
        """Test that code can be overridden per instance."""
        error = WorkSyncError("Missing title", code="MISSING_TITLE")
        assert error.code == "MISSING_TITLE"
        assert WorkSyncError.code == "INTERNAL_ERROR"


class TestConfigurationErrors:
    """Test configuration errors."""

    def test_pat_not_configured(self):
        """Test PAT_NOT_CONFIGURED code, status and hint."""
        error = PatNotConfiguredError()
        assert isinstance(error, ConfigurationError)
        assert error.code == "PAT_NOT_CONFIGURED"
        assert error.http_status == 500
        assert "ADO_PERSONAL_ACCESS_TOKEN" in error.message

    def test_pat_not_configured_custom_variable(self):
        """Test that the missing variable is named."""
        assert "ADO_ACCESS_TOKEN" in PatNotConfiguredError("ADO_ACCESS_TOKEN").message

    def test_organization_not_configured(self):
        """Test ORGANIZATION_NOT_CONFIGURED code."""
        error = OrganizationNotConfiguredError()
        assert error.code == "ORGANIZATION_NOT_CONFIGURED"
        assert error.http_status == 500
        assert "ADO_DEFAULT_ORGANIZATION" in error.message

    def test_ado_not_initialized(self):
        """Test ADO_NOT_INITIALIZED is a client error."""
        error = AdoNotInitializedError()
        assert error.code == "ADO_NOT_INITIALIZED"
        assert error.http_status == 400

    def test_connection_failed(self):
        """Test ADO_CONNECTION_FAILED is a 401."""
        error = AdoConnectionFailedError("Connection failed: bad token")
        assert error.code == "ADO_CONNECTION_FAILED"
        assert error.http_status == 401
        assert error.message == "Connection failed: bad token"


class TestNotFoundErrors:
    """Test local lookup errors."""

    def test_task_not_found(self):
        """Test TASK_NOT_FOUND carries the task id."""
        error = TaskNotFoundError(42)
        assert error.code == "TASK_NOT_FOUND"
        assert error.http_status == 404
        assert error.details == {'task_id': 42}

    def test_user_not_found(self):
        """Test USER_NOT_FOUND."""
        error = UserNotFoundError(7)
        assert error.code == "USER_NOT_FOUND"
        assert error.http_status == 404

    def test_project_not_found(self):
        """Test PROJECT_NOT_FOUND names the project."""
        error = ProjectNotFoundError("abc")
        assert error.code == "PROJECT_NOT_FOUND"
        assert "abc" in error.message


class TestAdoRequestError:
    """Test upstream error base class."""

    def test_status_code_in_str(self):
        """Test that the status code prefixes the string form."""
        error = AdoRequestError(status_code=500, message="Boom")
        assert str(error) == "[500] Boom"

    def test_without_status_code(self):
        """Test string form without status code."""
        error = AdoRequestError(message="Network down")
        assert str(error) == "Network down"
        assert error.http_status == 502
        assert error.code == "ADO_REQUEST_FAILED"

    def test_add_context(self):
        """Test that context prefixes the message."""
        error = AdoRequestError(message="timeout").add_context("fetch ADO projects")
        assert error.message == "Failed to fetch ADO projects: timeout"

    def test_to_dict_includes_status_code(self):
        """Test that the upstream status is exposed."""
        error = AdoRequestError(status_code=503, message="Unavailable")
        assert error.to_dict()['statusCode'] == 503


class TestUpstreamSubclasses:
    """Test specific upstream errors."""

    def test_authentication_error(self):
        """Test 401 default message mentions the token."""
        error = AuthenticationError()
        assert error.status_code == 401
        assert error.http_status == 401
        assert "token" in error.message.lower()

    def test_permission_denied(self):
        """Test 403."""
        error = PermissionDeniedError()
        assert error.status_code == 403
        assert "permission denied" in error.message.lower()

    def test_work_item_not_found_with_id(self):
        """Test that the work item id is in the message."""
        error = WorkItemNotFoundError(work_item_id=123)
        assert error.http_status == 404
        assert "123" in error.message
        assert error.details == {'work_item_id': 123}

    def test_rate_limit_with_retry_after(self):
        """Test retry_after is exposed."""
        error = RateLimitError(retry_after=60)
        assert error.retry_after == 60
        assert "60" in error.message

    def test_rate_limit_without_retry_after(self):
        """Test retry_after defaults to None."""
        assert RateLimitError().retry_after is None

    def test_transient_error_status(self):
        """Test transient error message names the status."""
        error = TransientError(status_code=503)
        assert "503" in error.message

    def test_timeout_error(self):
        """Test timeout maps to 504 for API callers."""
        error = AdoTimeoutError(timeout_seconds=30)
        assert error.code == "ADO_TIMEOUT"
        assert error.http_status == 504
        assert "30 seconds" in error.message


class TestMapStatusCodeToError:
    """Test map_status_code_to_error function."""

    @pytest.mark.parametrize("status,cls", [
        (400, BadRequestError),
        (401, AuthenticationError),
        (403, PermissionDeniedError),
        (404, WorkItemNotFoundError),
        (429, RateLimitError),
        (500, TransientError),
        (503, TransientError),
    ])
    def test_mapping(self, status, cls):
        """Test each status maps to its class."""
        assert isinstance(map_status_code_to_error(status), cls)

    def test_upstream_message_passes_through(self):
        """Test that the upstream message is kept."""
        error = map_status_code_to_error(401, message="TF400813: not authorized")
        assert error.message == "TF400813: not authorized"

    def test_unknown_status(self):
        """Test unknown status returns generic error."""
        error = map_status_code_to_error(418)
        assert type(error) is AdoRequestError
        assert error.status_code == 418
        assert "418" in error.message

    def test_kwargs_forwarded(self):
        """Test that error-specific kwargs are forwarded."""
        error = map_status_code_to_error(429, retry_after=30)
        assert error.retry_after == 30

        error = map_status_code_to_error(404, work_item_id=9)
        assert "9" in error.message


class TestValidationError:
    """Test ValidationError."""

    def test_field_produces_details(self):
        """Test that a field name fills details."""
        error = ValidationError("top must be at most 50", field="top")
        assert error.code == "VALIDATION_ERROR"
        assert error.http_status == 400
        assert error.details == [{'field': 'top', 'message': 'top must be at most 50'}]

    def test_without_field(self):
        """Test validation error without field name."""
        error = ValidationError("Invalid input")
        assert error.details is None
        assert str(error) == "Invalid input"
