"""Structured event emission and logging helpers."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..constants import APP_NAME
from ..time_utils import to_utc_iso, utc_now_iso
from .formatter import StructuredTextFormatter
from .sanitization import sanitize_error_message

logger = logging.getLogger(APP_NAME)

# Free-text fields that may echo server bodies or headers.
_REDACTED_FIELDS = {"error", "message"}


def _to_log_safe(value: Any) -> Any:
    """Convert values to JSON-serializable, log-safe representations."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return to_utc_iso(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _to_log_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_log_safe(v) for v in value]
    return str(value)


def _safe_attr(obj: Any, name: str) -> Any:
    """Read an attribute, tolerating httpx properties that raise when unset."""
    try:
        return getattr(obj, name, None)
    except RuntimeError:
        return None


def extract_http_error_context(
    error: Optional[BaseException] = None,
    *,
    response: Optional[Any] = None,
) -> dict[str, Any]:
    """Collect request line and status fields for an error log entry.

    Reads ``request``/``response`` from an httpx exception (or a chatlink error
    carrying one as ``cause``). An explicit *response* wins over anything found
    on the error. A bare ``status_code`` is used when no response is known.
    """
    context: dict[str, Any] = {}
    source = error
    if source is not None and _safe_attr(source, "request") is None:
        cause = getattr(source, "cause", None)
        if cause is not None:
            source = cause

    if response is None and source is not None:
        response = _safe_attr(source, "response")
    request = _safe_attr(source, "request") if source is not None else None
    if request is None and response is not None:
        request = _safe_attr(response, "request")

    if request is not None:
        context["http_method"] = str(request.method)
        context["http_url"] = str(request.url)

    if response is not None:
        context["http_version"] = _safe_attr(response, "http_version")
        context["http_status"] = response.status_code
        context["http_reason"] = _safe_attr(response, "reason_phrase") or None
    elif error is not None and getattr(error, "status_code", None) is not None:
        context["http_status"] = error.status_code

    return {key: value for key, value in context.items() if value is not None}


def summarize_text(text: Any) -> str:
    """Return normalized summary text for logs."""
    if text is None:
        return ""
    return " ".join(str(text).split())


def estimate_message_chars(messages: Iterable[Any]) -> int:
    """Estimate total character length across chat messages."""
    total = 0
    for msg in messages:
        content = msg.get("content", "") if isinstance(msg, dict) else getattr(msg, "content", "")
        total += len(str(content))
    return total


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a structured log event."""
    payload: dict[str, Any] = {
        "ts_utc": utc_now_iso(),
        "event": event,
    }
    for key, value in fields.items():
        if key in _REDACTED_FIELDS and isinstance(value, str):
            value = sanitize_error_message(value)
        payload[key] = _to_log_safe(value)
    logger.log(level, json.dumps(payload, ensure_ascii=False, separators=(",", ":")))


def before_sleep_log_event(
    *,
    operation: str,
    level: int = logging.WARNING,
):
    """Build a tenacity ``before_sleep`` hook that logs the scheduled retry.

    Only failed attempts are retried here, so the hook records the failure
    that caused the wait together with its status and reason tags.
    """

    def _callback(retry_state: Any) -> None:
        outcome = retry_state.outcome
        next_action = retry_state.next_action
        if outcome is None or next_action is None or not outcome.failed:
            return

        error = outcome.exception()
        log_event(
            "request_retry",
            level=level,
            operation=operation,
            attempt=retry_state.attempt_number,
            sleep_sec=round(next_action.sleep, 3),
            http_status=getattr(error, "status_code", None),
            reason=getattr(error, "reason", None),
            error_type=type(error).__name__,
            error=str(error),
        )

    return _callback


def setup_logging(log_file: Optional[str] = None) -> None:
    """Set up logging configuration.

    With a file, every record (chatlink events and httpx request lines) is
    written as structured text. Without one, logging is disabled.
    """
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(str(log_path), encoding="utf-8")
        handler.setFormatter(StructuredTextFormatter())
        logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
    else:
        logging.disable(logging.CRITICAL)
