"""
Input validation and WIQL query sanitization.

Request bodies and query strings are checked here before any database or
network call so the API can answer with a structured 400 response.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .constants import (
    ORDERABLE_FIELDS,
    QueryLimits,
    TaskComplexity,
    TaskPriority,
    TaskStatus,
)
from .errors import WorkSyncError


class ValidationError(WorkSyncError):
    """Raised when input validation fails."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Any] = None):
        self.field = field
        if details is None and field:
            details = [{'field': field, 'message': message}]
        super().__init__(message, details=details)


GUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)

# States and work item types are process-template specific, so instead of a
# fixed whitelist they are restricted to a character set that cannot break
# out of a quoted WIQL literal.
WIQL_LITERAL_PATTERN = re.compile(r"^[A-Za-z0-9 _\-.'&/()]+$")

MAX_LITERAL_LENGTH = 128
MAX_TITLE_LENGTH = 500


class WiqlValidator:
    """Validator for WIQL (Work Item Query Language) queries."""

    MAX_QUERY_LENGTH = 32000  # 32KB limit per Azure DevOps documentation

    @staticmethod
    def validate(query: str) -> str:
        """
        Validate WIQL query syntax and structure.

        Args:
            query: The WIQL query to validate

        Returns:
            The validated query (unchanged)

        Raises:
            ValidationError: If query is invalid
        """
        if not query:
            raise ValidationError("WIQL query cannot be empty")

        if len(query) > WiqlValidator.MAX_QUERY_LENGTH:
            raise ValidationError(
                f"WIQL query exceeds maximum length of {WiqlValidator.MAX_QUERY_LENGTH} characters "
                f"(current length: {len(query)})"
            )

        query_upper = query.upper()

        if 'SELECT' not in query_upper:
            raise ValidationError("WIQL query must contain SELECT clause")

        if 'FROM WORKITEMS' not in query_upper:
            raise ValidationError("WIQL query FROM clause must specify 'WorkItems'")

        if not WiqlValidator._check_balanced_brackets(query):
            raise ValidationError("WIQL query has unbalanced square brackets")

        return query

    @staticmethod
    def _check_balanced_brackets(query: str) -> bool:
        count = 0
        for char in query:
            if char == '[':
                count += 1
            elif char == ']':
                count -= 1
            if count < 0:
                return False
        return count == 0

    @staticmethod
    def sanitize_string_literal(value: str) -> str:
        """
        Escape a string value for use inside a single-quoted WIQL literal.

        Args:
            value: The string value to sanitize

        Returns:
            The value with single quotes doubled
        """
        if value is None:
            return None

        return value.replace("'", "''")


def validate_wiql(query: str) -> str:
    """Validate WIQL query."""
    return WiqlValidator.validate(query)


def sanitize_wiql_string(value: str) -> str:
    """Sanitize a string value for use in WIQL queries."""
    return WiqlValidator.sanitize_string_literal(value)


def validate_wiql_literal(value: str, field: str) -> str:
    """
    Validate a state or work item type name used in a WIQL IN (...) list.

    Raises:
        ValidationError: If the value is empty, too long, or contains
            characters outside the allowed set
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} values cannot be empty", field=field)

    value = value.strip()
    if len(value) > MAX_LITERAL_LENGTH:
        raise ValidationError(f"{field} value too long: '{value[:20]}...'", field=field)

    if not WIQL_LITERAL_PATTERN.match(value):
        raise ValidationError(f"Invalid {field} value: '{value}'", field=field)

    return value


def validate_order_by(order_by) -> List[tuple]:
    """
    Validate WIQL ordering as a list of (field, direction) pairs.

    Raises:
        ValidationError: If a field isn't orderable or a direction isn't ASC/DESC
    """
    validated = []
    for field_name, direction in order_by:
        if field_name not in ORDERABLE_FIELDS:
            raise ValidationError(f"Field cannot be used for ordering: '{field_name}'", field="orderBy")
        direction = (direction or "ASC").upper()
        if direction not in ("ASC", "DESC"):
            raise ValidationError(f"Invalid sort direction: '{direction}'", field="orderBy")
        validated.append((field_name, direction))
    return validated


def is_guid(value: Optional[str]) -> bool:
    """Return True if the value is a canonical GUID string."""
    return bool(value) and bool(GUID_PATTERN.match(value))


# ============================================================================
# Scalar parsers for request values
# ============================================================================

def parse_bool(value: Any, field: str) -> Optional[bool]:
    """Parse an optional boolean query/body value."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('true', '1', 'yes'):
        return True
    if text in ('false', '0', 'no'):
        return False
    raise ValidationError(f"{field} must be boolean", field=field)


def parse_int(
    value: Any,
    field: str,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
    default: Optional[int] = None
) -> Optional[int]:
    """Parse an optional integer and enforce bounds."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)

    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field=field)
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}", field=field)
    return number


def parse_number(value: Any, field: str) -> Optional[float]:
    """Parse an optional non-negative number."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number", field=field)
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number", field=field)
    if number < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return number


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime into a naive UTC datetime.

    Aware values are converted to UTC; naive values are taken as UTC.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date", field=field)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_csv(value: Optional[str], field: str) -> Optional[List[str]]:
    """Split a comma-separated query value into validated WIQL literals."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be comma-separated string", field=field)
    return [validate_wiql_literal(part, field) for part in value.split(',') if part.strip()]


def validate_work_item_id(value: Any) -> int:
    """Validate a work item id path/tool parameter."""
    return parse_int(value, "workItemId", minimum=1)


def validate_backlog_top(value: Any) -> int:
    """Validate the ``top`` backlog parameter (1-50)."""
    return parse_int(
        value,
        "top",
        minimum=QueryLimits.MIN_BACKLOG_TOP,
        maximum=QueryLimits.MAX_BACKLOG_TOP,
        default=QueryLimits.DEFAULT_BACKLOG_TOP
    )


# ============================================================================
# Task payloads
# ============================================================================

def _validate_choice(value: Any, field: str, allowed) -> str:
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}: '{value}'. Allowed values: {', '.join(allowed)}",
            field=field
        )
    return value


def validate_task_payload(body: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Validate a task create/update body.

    Accepts the camelCase keys the API exposes and returns a dictionary
    keyed by Task column names.

    Args:
        body: Decoded JSON body
        partial: True for updates (title optional, unknown keys ignored)

    Returns:
        Column name -> validated value

    Raises:
        ValidationError: On any invalid field; ``details`` lists every problem
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    problems = []
    data: Dict[str, Any] = {}

    def collect(field, func):
        try:
            func()
        except ValidationError as e:
            problems.append({'field': field, 'message': e.message})

    def check_title():
        title = body.get('title')
        if title is None:
            if not partial:
                raise ValidationError("Title is required")
            return
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        data['title'] = title.strip()

    def check_description():
        if 'description' in body:
            description = body['description']
            if description is not None and not isinstance(description, str):
                raise ValidationError("Description must be a string")
            data['description'] = description

    def choice(key, allowed):
        def check():
            if key in body and body[key] is not None:
                data[key] = _validate_choice(body[key], key, allowed)
        return check

    def number(key, column):
        def check():
            if key in body:
                data[column] = parse_number(body[key], key)
        return check

    def date(key, column):
        def check():
            if key in body:
                data[column] = parse_datetime(body[key], key)
        return check

    collect('title', check_title)
    collect('description', check_description)
    collect('status', choice('status', TaskStatus.ALL))
    collect('priority', choice('priority', TaskPriority.ALL))
    collect('complexity', choice('complexity', TaskComplexity.ALL))
    collect('estimatedHours', number('estimatedHours', 'estimated_hours'))
    collect('actualHours', number('actualHours', 'actual_hours'))
    collect('dueDate', date('dueDate', 'due_date'))

    if problems:
        raise ValidationError("Invalid input data", details=problems)

    return data


def validate_profile_payload(body: Any) -> Dict[str, Any]:
    """Validate a user profile update body."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    data = {}
    name = body.get('name')
    if name:
        if not isinstance(name, str):
            raise ValidationError("name must be a string", field="name")
        data['name'] = name.strip()

    preferences = body.get('preferences')
    if preferences:
        if not isinstance(preferences, dict):
            raise ValidationError("preferences must be an object", field="preferences")
        data['preferences'] = preferences

    return data
