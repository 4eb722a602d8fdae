"""
Decorators for error handling, timeouts, and request logging.

Azure DevOps operations fail fast: upstream errors are mapped to the
WorkSync error hierarchy and surfaced immediately, without retries.
"""

import asyncio
import logging
import re
from functools import wraps
from typing import Callable, TypeVar, Optional

from msrest.exceptions import AuthenticationError as SdkAuthenticationError
from msrest.exceptions import ClientException

from .errors import (
    AdoRequestError,
    AdoTimeoutError,
    WorkSyncError,
    map_status_code_to_error,
)
from .log_sanitizer import safe_log_error
from .validation import ValidationError

# Type variable for generic function signatures
T = TypeVar('T')

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30

# azure-devops reports unhandled statuses only in the message text
STATUS_IN_MESSAGE = re.compile(r'returned a (\d{3}) status code')


def _status_code_of(error: Exception) -> Optional[int]:
    """Extract an HTTP status code from an exception or its response."""
    status_code = getattr(error, 'status_code', None)
    if not status_code:
        response = getattr(error, 'response', None)
        if response is not None:
            status_code = getattr(response, 'status_code', None)
    if not status_code and isinstance(error, SdkAuthenticationError):
        status_code = 401
    if not status_code:
        match = STATUS_IN_MESSAGE.search(str(error))
        if match:
            status_code = int(match.group(1))
    return status_code


def ado_error_from_exception(error: Exception) -> AdoRequestError:
    """
    Map an SDK, transport or unknown exception onto AdoRequestError.

    A recoverable status code picks the matching subclass; SDK errors
    without one keep their message; anything else is an unexpected error.
    """
    status_code = _status_code_of(error)
    if status_code:
        return map_status_code_to_error(status_code, message=str(error), original_error=error)
    if isinstance(error, ClientException):
        return AdoRequestError(message=str(error), original_error=error)
    return AdoRequestError(message=f"Unexpected error: {error}", original_error=error)


def handle_ado_error(action: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to map Azure DevOps failures onto WorkSync errors.

    Upstream errors get the failed action prefixed to their message
    (``Failed to fetch ADO projects: ...``). Local errors such as
    validation or missing authentication pass through unchanged.

    Args:
        action: Description of the operation, used in error messages

    Returns:
        Decorator function

    Example:
        @handle_ado_error("fetch ADO projects")
        async def get_projects(self):
            return await asyncio.to_thread(self._fetch_projects)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except AdoRequestError as e:
                logger.error(f"Azure DevOps API error in {func.__name__}: {e}")
                raise e.add_context(action)
            except WorkSyncError:
                raise
            except Exception as e:
                if _status_code_of(e) or isinstance(e, ClientException):
                    error = ado_error_from_exception(e)
                    logger.error(f"Azure DevOps API error in {func.__name__}: {error}")
                    raise error.add_context(action)

                logger.error(
                    f"Unexpected error in {func.__name__}: {safe_log_error(e)}",
                    exc_info=True
                )
                raise ado_error_from_exception(e).add_context(action)

        return wrapper
    return decorator


def with_timeout(timeout_seconds: Optional[float] = None) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to add timeout to async operations.

    Args:
        timeout_seconds: Timeout in seconds. When None, the bound instance's
            ``timeout_seconds`` attribute is used (default: 30)

    Returns:
        Decorator function

    Example:
        @with_timeout(timeout_seconds=30)
        async def get_work_item(self, work_item_id: int):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            timeout = timeout_seconds
            if timeout is None:
                timeout = getattr(args[0], 'timeout_seconds', None) if args else None
                timeout = timeout or DEFAULT_TIMEOUT_SECONDS

            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError as e:
                logger.error(f"Timeout after {timeout}s in {func.__name__}")
                raise AdoTimeoutError(timeout_seconds=timeout, original_error=e)

        return wrapper
    return decorator


def log_execution(
    level: int = logging.DEBUG,
    log_args: bool = False,
    log_result: bool = False
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to log function execution.

    Args:
        level: Logging level (default: DEBUG)
        log_args: Whether to log function arguments (default: False)
        log_result: Whether to log function result (default: False)

    Returns:
        Decorator function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            func_name = func.__name__

            if log_args:
                logger.log(level, f"Calling {func_name} with args={args[1:]}, kwargs={kwargs}")
            else:
                logger.log(level, f"Calling {func_name}")

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.log(level, f"{func_name} failed with error: {e}")
                raise

            if log_result:
                logger.log(level, f"{func_name} completed with result: {result}")
            else:
                logger.log(level, f"{func_name} completed successfully")
            return result

        return wrapper
    return decorator


def validate_work_item_id(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator to validate the work item ID parameter.

    Ensures work_item_id is a positive integer before any request is made.

    Example:
        @validate_work_item_id
        async def get_work_item(self, work_item_id: int):
            ...
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        if 'work_item_id' in kwargs:
            work_item_id = kwargs['work_item_id']
        elif len(args) > 1:
            # First arg is self
            work_item_id = args[1]
        else:
            work_item_id = None

        if isinstance(work_item_id, bool) or not isinstance(work_item_id, int) or work_item_id <= 0:
            raise ValidationError(
                f"Invalid work item ID: {work_item_id}. Must be a positive integer.",
                field="workItemId"
            )

        return await func(*args, **kwargs)

    return wrapper


def ado_operation(
    action: str,
    timeout_seconds: Optional[float] = None
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Convenience decorator combining timeout, error handling and logging.

    Applies decorators in this order:
    1. Timeout wrapper (outermost)
    2. Error handling
    3. Execution logging (innermost)

    Args:
        action: Description of the operation, used in error messages
        timeout_seconds: Request timeout in seconds (default: the client's)

    Returns:
        Decorator function

    Example:
        @ado_operation("fetch work item")
        async def get_work_item(self, work_item_id: int):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        decorated = func
        decorated = log_execution()(decorated)
        decorated = handle_ado_error(action)(decorated)
        decorated = with_timeout(timeout_seconds)(decorated)
        return decorated

    return decorator
