"""Error sanitization utilities to prevent credential leakage."""

import re


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"(https://hooks\.slack\.com/services/)[A-Za-z0-9/_\-]+",
    r"(Bearer\s+)[A-Za-z0-9._\-]+",
    r"(api[_\s]?key[=:\s]+)[A-Za-z0-9._\-]+",
    r"(http_password[\"']?\s*[:=]\s*[\"']?)[^\s\"',;]+",
]


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove credentials.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message
    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, r"\1[REDACTED]", sanitized, flags=re.IGNORECASE)
    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message."""
    return sanitize_error_message(str(error))
