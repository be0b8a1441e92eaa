"""Expiry expression parsing for issued credentials."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional

from .errors import CredentialError
from .time_utils import parse_iso_utc, utc_now

_DURATION_RE = re.compile(r"^(\d+)([smhd]?)$")

UNIT_SECONDS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def _looks_absolute(expression: str) -> bool:
    return "T" in expression or "-" in expression


def parse_expiry(expression: str, now: Optional[datetime] = None) -> datetime:
    """Convert a server expiry expression into an absolute UTC instant.

    Accepted forms:
        ``"3600"``                 bare seconds
        ``"60s"``/``"5m"``/``"1h"``/``"1d"``  suffixed durations
        ``"2026-01-15T12:00:00Z"``  absolute ISO-8601 timestamp

    Args:
        expression: Value of the ``expiresIn`` field
        now: Reference instant for relative forms (default: current UTC time)

    Returns:
        Aware UTC datetime of expiry

    Raises:
        CredentialError: If the expression matches none of the forms or
            names an instant outside the representable date range
    """
    if not isinstance(expression, str):
        raise CredentialError(f"Invalid expiration format: {expression!r}")

    value = expression.strip()

    if _looks_absolute(value):
        try:
            return parse_iso_utc(value)
        except (ValueError, OverflowError) as e:
            raise CredentialError(
                f"Invalid expiration format: {expression}", cause=e
            ) from e

    match = _DURATION_RE.match(value)
    if not match:
        raise CredentialError(f"Invalid expiration format: {expression}")

    amount, unit = match.groups()
    reference = now if now is not None else utc_now()
    try:
        return reference + timedelta(seconds=int(amount) * UNIT_SECONDS[unit])
    except OverflowError as e:
        raise CredentialError(
            f"Invalid expiration format: {expression}", cause=e
        ) from e
