"""HTTP helpers shared by the credential manager and the chat client."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Optional

import httpx

from .constants import APP_NAME
from .errors import ValidationError
from .timeouts import build_httpx_timeout, deadline_seconds

USER_AGENT = f"{APP_NAME}/0.1"


async def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    timeout_sec: int | float,
    headers: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """POST a JSON body and return the fully read response.

    The whole exchange runs under a deadline of ``timeout_sec`` (0 = none).
    Expiry cancels the in-flight request, which closes its connection, and
    surfaces as ``TimeoutError``. httpx's own per-phase timeouts raise
    ``httpx.TimeoutException``.
    """
    request_headers = {
        "User-Agent": USER_AGENT,
        "Accept": "application/json",
    }
    if headers:
        request_headers.update(headers)

    async with httpx.AsyncClient(
        timeout=build_httpx_timeout(timeout_sec),
        transport=transport,
        headers=request_headers,
    ) as client:
        return await asyncio.wait_for(
            client.post(url, json=dict(payload)),
            timeout=deadline_seconds(timeout_sec),
        )


def decode_json(response: httpx.Response) -> Any:
    """Decode a JSON response body.

    Raises:
        ValidationError: If the body is not valid JSON
    """
    try:
        return response.json()
    except ValueError as e:
        raise ValidationError(
            f"Invalid JSON in response body (HTTP {response.status_code})", cause=e
        ) from e


def error_message(response: httpx.Response, fallback: str) -> str:
    """Return the ``message`` field of an error body, or *fallback*."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, Mapping):
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return fallback
