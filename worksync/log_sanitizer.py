"""
Log sanitization and logging setup.

ADO credentials travel in Authorization headers and in request bodies of
the initialize endpoint; these helpers make sure they never reach a log
line verbatim.
"""

import logging
import re
import sys
from typing import Optional


# Patterns that might indicate sensitive data
SENSITIVE_PATTERNS = [
    (re.compile(r'(authorization["\']?\s*[:=]\s*["\']?(?:basic|bearer)\s+)([a-zA-Z0-9\-._~+/]+=*)', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'\b(basic|bearer)(\s+)([a-zA-Z0-9\-._~+/]{8,}=*)', re.IGNORECASE), r'\1\2***REDACTED***'),
    (re.compile(r'((?:access_?token|accesstoken)["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'((?:personal_access_token|pat)["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'(client_secret["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
    (re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)', re.IGNORECASE), r'\1***REDACTED***'),
]

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def sanitize_log_message(message: str) -> str:
    """
    Redact tokens, Authorization header values and secrets from a message.

    Args:
        message: The log message to sanitize

    Returns:
        Sanitized log message with sensitive data redacted
    """
    if not message:
        return message

    sanitized = message
    for pattern, replacement in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)

    return sanitized


def safe_log_error(error: Exception, context: str = "") -> str:
    """
    Create a safe error message for logging.

    Args:
        error: The exception
        context: Additional context (e.g., "Authentication failed")

    Returns:
        Safe error message for logging
    """
    sanitized_error = sanitize_log_message(str(error))
    error_type = type(error).__name__

    if context:
        return f"{context}: {error_type}: {sanitized_error}"
    return f"{error_type}: {sanitized_error}"


class SanitizingFilter(logging.Filter):
    """Logging filter that redacts credentials from every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        sanitized = sanitize_log_message(message)
        if sanitized != message:
            record.msg = sanitized
            record.args = None
        return True


def configure_logging(level: str = "INFO", stream: Optional[object] = None) -> logging.Handler:
    """
    Install a sanitizing stderr handler on the root logger.

    Logs go to stderr so the MCP stdio transport keeps stdout to itself.
    Calling this again replaces the previously installed handler.

    Args:
        level: Log level name
        stream: Target stream (default: sys.stderr)

    Returns:
        The installed handler
    """
    root = logging.getLogger()

    for existing in list(root.handlers):
        if getattr(existing, '_worksync_handler', False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SanitizingFilter())
    handler._worksync_handler = True

    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
