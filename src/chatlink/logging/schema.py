"""Structured log event schema: preferred key order per event."""

from __future__ import annotations

DEFAULT_EVENT_KEY_ORDER: list[str] = ["ts_utc", "level", "logger"]

_HTTP_KEYS = [
    "http_method",
    "http_url",
    "http_version",
    "http_status",
    "http_reason",
]

EVENT_KEY_ORDER: dict[str, list[str]] = {
    # CLI lifecycle events
    "app_start": [
        "ts_utc",
        "level",
        "mode",
        "base_url",
        "user_id",
        "timeout",
        "max_attempts",
        "log_file",
    ],
    "app_stop": [
        "ts_utc",
        "level",
        "reason",
        "uptime_ms",
        "error_type",
        "error",
    ],
    # Credential lifecycle events
    "credential_refresh": [
        "ts_utc",
        "level",
        "base_url",
        "user_id",
        "attempt",
        "max_attempts",
    ],
    "credential_issued": [
        "ts_utc",
        "level",
        "base_url",
        "token_type",
        "expires_at",
        "attempt",
        "latency_ms",
    ],
    "credential_error": [
        "ts_utc",
        "level",
        "base_url",
        "attempt",
        "terminal",
        *_HTTP_KEYS,
        "error_type",
        "error",
    ],
    "credential_invalidate": [
        "ts_utc",
        "level",
        "reason",
        "had_credential",
        "superseded",
    ],
    # Chat call events
    "chat_request": [
        "ts_utc",
        "level",
        "base_url",
        "attempt",
        "max_attempts",
        "message_count",
        "input_chars",
        "has_system_prompt",
    ],
    "chat_response": [
        "ts_utc",
        "level",
        "base_url",
        "attempt",
        "latency_ms",
        "output_chars",
        "total_tokens",
    ],
    "chat_error": [
        "ts_utc",
        "level",
        "base_url",
        "attempt",
        "latency_ms",
        "reason",
        "terminal",
        *_HTTP_KEYS,
        "error_type",
        "error",
    ],
    # Retry scheduling
    "request_retry": [
        "ts_utc",
        "level",
        "operation",
        "attempt",
        "sleep_sec",
        "http_status",
        "reason",
        "error_type",
        "error",
    ],
    # Conversation wrapper
    "conversation_rollback": [
        "ts_utc",
        "level",
        "reason",
        "message_count",
        "error_type",
        "error",
    ],
    "httpx_request": [
        "ts_utc",
        "level",
        "logger",
        *_HTTP_KEYS,
    ],
}
