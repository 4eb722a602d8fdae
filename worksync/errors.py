"""
Custom exception classes for the WorkSync backend.

Every error carries a stable machine-readable ``code`` and the HTTP status
the API layer answers with, so handlers can render the error envelope
without knowing the concrete type.
"""

from typing import Optional, Any


class WorkSyncError(Exception):
    """
    Base exception for all WorkSync errors.

    Attributes:
        code: Machine-readable error code used in API responses
        http_status: HTTP status returned to API callers
        message: Human-readable error message
        details: Additional error details
    """

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(
        self,
        message: str = "Unexpected error",
        details: Optional[Any] = None,
        code: Optional[str] = None
    ):
        self.message = message
        self.details = details
        if code:
            self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        """Convert error to the ``error`` member of the API envelope."""
        error = {
            'code': self.code,
            'message': self.message
        }
        if self.details is not None:
            error['details'] = self.details
        return error


# ============================================================================
# Configuration
# ============================================================================

class ConfigurationError(WorkSyncError):
    """Raised when required credentials or settings are missing."""

    code = "CONFIGURATION_ERROR"
    http_status = 500


class PatNotConfiguredError(ConfigurationError):
    """Raised when no ADO token is available in the environment."""

    code = "PAT_NOT_CONFIGURED"

    def __init__(self, variable: str = "ADO_PERSONAL_ACCESS_TOKEN"):
        super().__init__(
            f"Personal Access Token not configured. Please set {variable} in environment."
        )


class OrganizationNotConfiguredError(ConfigurationError):
    """Raised when no ADO organization is available in the environment."""

    code = "ORGANIZATION_NOT_CONFIGURED"

    def __init__(self):
        super().__init__(
            "ADO organization not configured. Please set ADO_DEFAULT_ORGANIZATION in environment."
        )


class AdoNotInitializedError(WorkSyncError):
    """Raised when an ADO operation is attempted without a token."""

    code = "ADO_NOT_INITIALIZED"
    http_status = 400

    def __init__(self, message: str = "ADO service not initialized with authentication"):
        super().__init__(message)


class AdoConnectionFailedError(WorkSyncError):
    """Raised when supplied ADO credentials fail the connection test."""

    code = "ADO_CONNECTION_FAILED"
    http_status = 401

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, details=details)


# ============================================================================
# Local lookups
# ============================================================================

class NotFoundError(WorkSyncError):
    """Raised when a requested resource does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class TaskNotFoundError(NotFoundError):
    """
    Raised when a task does not exist or belongs to another user.

    Both cases produce the same error so task ids of other users are not
    disclosed.
    """

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: Optional[int] = None):
        super().__init__(
            "Task not found",
            details={'task_id': task_id} if task_id is not None else None
        )


class UserNotFoundError(NotFoundError):
    """Raised when a user id does not exist."""

    code = "USER_NOT_FOUND"

    def __init__(self, user_id: Optional[int] = None):
        super().__init__(
            "User not found",
            details={'user_id': user_id} if user_id is not None else None
        )


class ProjectNotFoundError(NotFoundError):
    """Raised when a project GUID does not match any accessible project."""

    code = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        super().__init__(
            f"Project with ID {project_id} not found",
            details={'project_id': project_id}
        )


# ============================================================================
# Upstream (Azure DevOps) errors
# ============================================================================

class AdoRequestError(WorkSyncError):
    """
    Base exception for Azure DevOps API failures.

    Attributes:
        status_code: HTTP status code from the upstream response, if any
        message: Upstream message, prefixed with the failing action
        original_error: The original exception that was caught
    """

    code = "ADO_REQUEST_FAILED"
    http_status = 502

    def __init__(
        self,
        status_code: Optional[int] = None,
        message: str = "Azure DevOps API error",
        original_error: Optional[Exception] = None,
        details: Optional[Any] = None
    ):
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message, details=details)

    def __str__(self) -> str:
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message

    def add_context(self, action: str) -> "AdoRequestError":
        """Prefix the message with the action that failed."""
        self.message = f"Failed to {action}: {self.message}"
        self.args = (self.message,)
        return self

    def to_dict(self) -> dict:
        error = super().to_dict()
        if self.status_code:
            error['statusCode'] = self.status_code
        return error


class AuthenticationError(AdoRequestError):
    """
    Raised when Azure DevOps rejects the token (HTTP 401).

    This can occur when:
    - The PAT has expired or was revoked
    - The bearer token is invalid
    - The token is missing required scopes
    """

    code = "ADO_AUTHENTICATION_FAILED"
    http_status = 401

    def __init__(
        self,
        message: str = "Authentication failed. Your token may have expired. Please refresh credentials.",
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            status_code=401,
            message=message,
            original_error=original_error
        )


class PermissionDeniedError(AdoRequestError):
    """Raised when the token lacks permission for an operation (HTTP 403)."""

    code = "ADO_PERMISSION_DENIED"
    http_status = 403

    def __init__(
        self,
        message: str = "Permission denied. Please check your token scopes and project permissions.",
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            status_code=403,
            message=message,
            original_error=original_error
        )


class WorkItemNotFoundError(AdoRequestError):
    """
    Raised when a work item or other ADO resource is not found (HTTP 404).

    This can occur when:
    - The work item ID doesn't exist
    - The work item was deleted
    - The token doesn't have permission to view the work item
    """

    code = "WORK_ITEM_NOT_FOUND"
    http_status = 404

    def __init__(
        self,
        message: Optional[str] = None,
        work_item_id: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        if not message:
            message = "Work item not found. Please verify the ID exists and you have access."
            if work_item_id:
                message = f"Work item {work_item_id} not found. Please verify it exists and you have access."

        super().__init__(
            status_code=404,
            message=message,
            original_error=original_error,
            details={'work_item_id': work_item_id} if work_item_id else None
        )


class BadRequestError(AdoRequestError):
    """Raised when ADO rejects a request as malformed (HTTP 400), e.g. invalid WIQL."""

    code = "ADO_BAD_REQUEST"
    http_status = 400

    def __init__(
        self,
        message: str = "Bad request. Please check your input values.",
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            status_code=400,
            message=message,
            original_error=original_error
        )


class RateLimitError(AdoRequestError):
    """Raised when the Azure DevOps rate limit is exceeded (HTTP 429)."""

    code = "ADO_RATE_LIMITED"
    http_status = 429

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        if not message:
            if retry_after:
                message = f"Rate limit exceeded. Please retry after {retry_after} seconds."
            else:
                message = "Rate limit exceeded. Please retry after a brief delay."

        super().__init__(
            status_code=429,
            message=message,
            original_error=original_error,
            details={'retry_after': retry_after} if retry_after else None
        )
        self.retry_after = retry_after


class TransientError(AdoRequestError):
    """Raised for upstream service errors (HTTP 500, 502, 503, 504)."""

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            status_code=status_code,
            message=message or f"Azure DevOps service temporarily unavailable (HTTP {status_code}).",
            original_error=original_error
        )


class AdoTimeoutError(AdoRequestError):
    """Raised when a request to Azure DevOps exceeds the configured timeout."""

    code = "ADO_TIMEOUT"
    http_status = 504

    def __init__(
        self,
        timeout_seconds: float = 30,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            status_code=408,
            message=f"Request timeout after {timeout_seconds:g} seconds.",
            original_error=original_error,
            details={'timeout_seconds': timeout_seconds}
        )


def map_status_code_to_error(
    status_code: int,
    message: Optional[str] = None,
    original_error: Optional[Exception] = None,
    **kwargs
) -> AdoRequestError:
    """
    Map an upstream HTTP status code to the matching error class.

    Args:
        status_code: HTTP status code from the Azure DevOps API
        message: Upstream error message, passed through when present
        original_error: The original exception
        **kwargs: Additional error-specific parameters

    Returns:
        Appropriate AdoRequestError subclass instance
    """
    if status_code == 400:
        return BadRequestError(message=message or BadRequestError().message, original_error=original_error)
    elif status_code == 401:
        if message:
            return AuthenticationError(message=message, original_error=original_error)
        return AuthenticationError(original_error=original_error)
    elif status_code == 403:
        if message:
            return PermissionDeniedError(message=message, original_error=original_error)
        return PermissionDeniedError(original_error=original_error)
    elif status_code == 404:
        return WorkItemNotFoundError(message=message, original_error=original_error, **kwargs)
    elif status_code == 429:
        return RateLimitError(message=message, original_error=original_error, **kwargs)
    elif status_code in [500, 502, 503, 504]:
        return TransientError(status_code=status_code, message=message, original_error=original_error)
    else:
        return AdoRequestError(
            status_code=status_code,
            message=message or f"Azure DevOps API error: HTTP {status_code}",
            original_error=original_error
        )
