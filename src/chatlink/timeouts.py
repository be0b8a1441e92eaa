"""Centralized timeout and retry policy helpers."""

from __future__ import annotations

import math
from typing import Any

import httpx


# Per-attempt deadline default; 0 means wait forever.
DEFAULT_REQUEST_TIMEOUT_SEC = 30

# Shared HTTP timeout buckets for connection setup and uploads.
HTTP_CONNECT_TIMEOUT_SEC = 10.0
HTTP_WRITE_TIMEOUT_SEC = 15.0
HTTP_POOL_TIMEOUT_SEC = 5.0

# Retry/backoff timing defaults.
STANDARD_RETRY_ATTEMPTS = 3
RETRY_BACKOFF_INITIAL_SEC = 1.0
RETRY_BACKOFF_EXP_BASE = 2.0


def normalize_timeout(value: Any) -> int | float:
    """Normalize timeout to int/float and reject invalid values."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("Timeout must be a non-negative finite number")
    numeric = float(value)
    if not math.isfinite(numeric) or numeric < 0:
        raise ValueError("Timeout must be a non-negative finite number")
    if numeric.is_integer():
        return int(numeric)
    return numeric


def format_timeout(timeout: int | float) -> str:
    """Format timeout value for user-facing messages."""
    if timeout == 0:
        return "0 (wait forever)"
    return f"{timeout} seconds"


def build_httpx_timeout(read_timeout_sec: int | float) -> httpx.Timeout:
    """Build httpx timeout config for one request attempt.

    The read bucket follows the configured deadline; connect/write/pool stay
    bounded even when the deadline is disabled.
    """
    timeout_sec = normalize_timeout(read_timeout_sec)
    read = float(timeout_sec) if timeout_sec > 0 else None
    return httpx.Timeout(
        connect=HTTP_CONNECT_TIMEOUT_SEC,
        read=read,
        write=HTTP_WRITE_TIMEOUT_SEC,
        pool=HTTP_POOL_TIMEOUT_SEC,
    )


def deadline_seconds(timeout_sec: int | float) -> float | None:
    """Return the overall per-attempt deadline, or None when disabled."""
    timeout = normalize_timeout(timeout_sec)
    if timeout <= 0:
        return None
    return float(timeout)


def backoff_delay(retry_delay_sec: float, attempt: int) -> float:
    """Delay before the attempt after ``attempt`` (1-based) failed.

    ``retry_delay * 2 ** (attempt - 1)``, uncapped.
    """
    if attempt < 1:
        return 0.0
    return float(retry_delay_sec) * RETRY_BACKOFF_EXP_BASE ** (attempt - 1)
