"""Immutable client configuration shared by the credential manager and client."""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any, Optional

from .constants import (
    DEFAULT_BASE_URL,
    DEFAULT_REFRESH_BUFFER_SEC,
    DEFAULT_USER_ID,
    ENV_PREFIX,
)
from .timeouts import (
    DEFAULT_REQUEST_TIMEOUT_SEC,
    RETRY_BACKOFF_INITIAL_SEC,
    STANDARD_RETRY_ATTEMPTS,
    normalize_timeout,
)

# Environment variable suffix -> (field name, converter)
_ENV_FIELDS: dict[str, tuple[str, Any]] = {
    "BASE_URL": ("base_url", str),
    "USER_ID": ("user_id", str),
    "TIMEOUT": ("timeout_sec", float),
    "MAX_ATTEMPTS": ("max_attempts", int),
    "RETRY_DELAY": ("retry_delay_sec", float),
    "REFRESH_BUFFER": ("refresh_buffer_sec", float),
}


def _non_negative(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a non-negative finite number")
    numeric = float(value)
    if not math.isfinite(numeric) or numeric < 0:
        raise ValueError(f"{name} must be a non-negative finite number")
    return numeric


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Endpoint, identity, deadline and retry settings.

    Attributes:
        base_url: Server base address, without trailing slash
        user_id: Subject requested from the issuance endpoint
        timeout_sec: Per-attempt deadline in seconds (0 = no deadline)
        max_attempts: Attempts per credential refresh and per chat call
        retry_delay_sec: Base backoff delay, doubled after each failed attempt
        refresh_buffer_sec: Lead time before expiry at which a credential is refreshed
    """

    base_url: str = DEFAULT_BASE_URL
    user_id: str = DEFAULT_USER_ID
    timeout_sec: int | float = DEFAULT_REQUEST_TIMEOUT_SEC
    max_attempts: int = STANDARD_RETRY_ATTEMPTS
    retry_delay_sec: float = RETRY_BACKOFF_INITIAL_SEC
    refresh_buffer_sec: float = DEFAULT_REFRESH_BUFFER_SEC

    def __post_init__(self) -> None:
        if not isinstance(self.base_url, str) or not self.base_url.strip():
            raise ValueError("base_url must be a non-empty string")
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise ValueError("user_id must be a non-empty string")
        if (
            isinstance(self.max_attempts, bool)
            or not isinstance(self.max_attempts, int)
            or self.max_attempts < 1
        ):
            raise ValueError("max_attempts must be an integer >= 1")

        # Frozen dataclass: normalized values are written through object.__setattr__.
        object.__setattr__(self, "base_url", self.base_url.strip().rstrip("/"))
        object.__setattr__(self, "timeout_sec", normalize_timeout(self.timeout_sec))
        object.__setattr__(
            self, "retry_delay_sec", _non_negative(self.retry_delay_sec, "retry_delay_sec")
        )
        object.__setattr__(
            self,
            "refresh_buffer_sec",
            _non_negative(self.refresh_buffer_sec, "refresh_buffer_sec"),
        )

    def url(self, path: str) -> str:
        """Join an endpoint path onto the base address."""
        return f"{self.base_url}{path}"

    def with_overrides(self, **changes: Any) -> ClientConfig:
        """Return a copy with the given fields replaced (None values ignored)."""
        effective = {key: value for key, value in changes.items() if value is not None}
        if not effective:
            return self
        return replace(self, **effective)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> ClientConfig:
        """Build configuration from ``CHATLINK_*`` environment variables.

        Explicit keyword overrides win over the environment.

        Raises:
            ValueError: If a variable cannot be converted
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for suffix, (field_name, convert) in _ENV_FIELDS.items():
            var_name = f"{ENV_PREFIX}{suffix}"
            raw = env.get(var_name)
            if raw is None or not raw.strip():
                continue
            try:
                values[field_name] = convert(raw.strip())
            except ValueError:
                raise ValueError(
                    f"Environment variable '{var_name}' has an invalid value: {raw!r}"
                )
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
