"""Sensitive-data sanitization helpers for logs and user-visible errors."""

import re


def sanitize_error_message(error_msg: str) -> str:
    """Sanitize error messages to remove bearer tokens and JWTs."""
    sanitized = re.sub(
        r"Bearer\s+[A-Za-z0-9_\-\.=+/]{8,}",
        "Bearer [REDACTED_TOKEN]",
        error_msg,
    )
    sanitized = re.sub(
        r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+",
        "[REDACTED_JWT]",
        sanitized,
    )
    sanitized = re.sub(
        r"(\"?token\"?\s*[:=]\s*\"?)[^\s\",}]+",
        r"\1[REDACTED_TOKEN]",
        sanitized,
    )
    return sanitized
