"""Input sanitizers for values that arrive from requests.

Prepared statements remain the actual defense against SQL injection; these
helpers normalize and reject obviously bad input before it gets that far.
"""

import re
from typing import Any, Optional

from fileshare_api.errors import ValidationError

MAX_FILE_NAME_LENGTH = 255

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def sanitize_file_name(file_name: Any) -> str:
    """Reduce a user supplied file name to a safe `[A-Za-z0-9._-]` name of at most 255 chars."""
    if not isinstance(file_name, str):
        raise ValidationError("File name must be a string")

    sanitized = file_name.replace("..", "")
    sanitized = re.sub(r"[/\\]", "", sanitized).strip()
    sanitized = re.sub(r"[^a-zA-Z0-9._-]", "_", sanitized)

    if not sanitized:
        raise ValidationError("File name cannot be empty after sanitization")

    if len(sanitized) > MAX_FILE_NAME_LENGTH:
        dot = sanitized.rfind(".")
        extension = sanitized[dot:] if dot > 0 else ""
        sanitized = sanitized[: MAX_FILE_NAME_LENGTH - len(extension)] + extension

    return sanitized


def sanitize_email(email: Any) -> str:
    if not isinstance(email, str):
        raise ValidationError("Email must be a string")
    sanitized = email.strip().lower()
    if not EMAIL_PATTERN.match(sanitized):
        raise ValidationError("Invalid email format")
    return sanitized


def is_uuid(value: Optional[str]) -> bool:
    return bool(value) and bool(UUID_PATTERN.match(value))


def sanitize_integer(value: Any, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid integer value")

    if minimum is not None and number < minimum:
        raise ValidationError(f"Value must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"Value must be at most {maximum}")
    return number
