"""Authenticated chat client with retry, backoff and 401 recovery."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, RetryError, retry_if_exception, stop_after_attempt

from .config import ClientConfig
from .constants import CHAT_PATH
from .credentials import HTTP_UNAUTHORIZED, CredentialManager, Sleep
from .errors import RequestError, ValidationError
from .logging import (
    before_sleep_log_event,
    estimate_message_chars,
    extract_http_error_context,
    log_event,
    summarize_text,
)
from .models import ChatRequest, ChatResponse, CredentialInfo, parse_chat_response
from .timeouts import backoff_delay
from .transport import decode_json, error_message, post_json


def is_transient_request_failure(error: BaseException) -> bool:
    """Return True when a failed chat attempt may be retried.

    Timeouts, transport failures, 401 and 5xx are transient; everything else
    (other 4xx, malformed replies, credential failures) is terminal.
    """
    if not isinstance(error, RequestError):
        return False
    if error.reason in ("timeout", "network"):
        return True
    status = error.status_code
    return status is not None and (status == HTTP_UNAUTHORIZED or status >= 500)


class ChatClient:
    """Sends validated chat envelopes using a managed bearer credential.

    Every attempt fetches the current credential, so a credential dropped
    after a 401 is re-issued before the retry.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        credentials: Optional[CredentialManager] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._transport = transport
        self._sleep: Sleep = sleep or asyncio.sleep
        self.credentials = credentials or CredentialManager(
            self.config,
            transport=transport,
            sleep=self._sleep,
        )

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def send(self, request: ChatRequest | Mapping[str, Any]) -> ChatResponse:
        """Send a chat request and return the validated reply.

        The envelope is validated before any network activity. The caller's
        request is never modified.

        Raises:
            ValidationError: Invalid envelope, or malformed server reply
            CredentialError: No credential could be obtained
            RequestError: Terminal HTTP status, or retries exhausted
        """
        envelope = ChatRequest.from_raw(request)
        max_attempts = self.config.max_attempts

        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient_request_failure),
            wait=self._wait,
            stop=stop_after_attempt(max_attempts),
            sleep=self._sleep,
            before_sleep=before_sleep_log_event(
                operation="chat_request",
                level=logging.WARNING,
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._attempt(
                        envelope, attempt.retry_state.attempt_number
                    )
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise RequestError(
                f"Chat request failed after {max_attempts} attempts: {last_error}",
                status_code=getattr(last_error, "status_code", None),
                reason=getattr(last_error, "reason", "http"),
                cause=last_error,
            ) from last_error
        return response

    def _wait(self, retry_state: Any) -> float:
        # A rejected credential was already dropped; retry at once with a new one.
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            error = outcome.exception()
            if isinstance(error, RequestError) and error.status_code == HTTP_UNAUTHORIZED:
                return 0.0
        return backoff_delay(self.config.retry_delay_sec, retry_state.attempt_number)

    async def _attempt(self, envelope: ChatRequest, attempt: int) -> ChatResponse:
        credential = await self.credentials.get_credential()

        log_event(
            "chat_request",
            base_url=self.config.base_url,
            attempt=attempt,
            max_attempts=self.config.max_attempts,
            message_count=len(envelope.messages),
            input_chars=estimate_message_chars(envelope.messages),
            has_system_prompt=envelope.system is not None,
        )
        started = time.perf_counter()

        try:
            response = await post_json(
                self.config.url(CHAT_PATH),
                envelope.to_payload(),
                timeout_sec=self.config.timeout_sec,
                headers={"Authorization": credential.authorization},
                transport=self._transport,
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            error = RequestError("Request timed out", reason="timeout", cause=e)
            self._log_failure(attempt, error, started)
            raise error from e
        except httpx.HTTPError as e:
            error = RequestError(f"Network error: {e}", reason="network", cause=e)
            self._log_failure(attempt, error, started)
            raise error from e

        if response.status_code == HTTP_UNAUTHORIZED:
            self.credentials.invalidate(reason="rejected", credential=credential)

        if not response.is_success:
            error = RequestError(
                error_message(response, f"Request failed: {response.status_code}"),
                status_code=response.status_code,
            )
            self._log_failure(attempt, error, started, response=response)
            raise error

        try:
            result = parse_chat_response(decode_json(response))
        except ValidationError as e:
            self._log_failure(attempt, e, started, response=response)
            raise

        log_event(
            "chat_response",
            base_url=self.config.base_url,
            attempt=attempt,
            latency_ms=round((time.perf_counter() - started) * 1000),
            output_chars=len(result.content),
            total_tokens=result.total_tokens,
            summary=summarize_text(result.content)[:80],
        )
        return result

    def _log_failure(
        self,
        attempt: int,
        error: Exception,
        started: float,
        *,
        response: Optional[httpx.Response] = None,
    ) -> None:
        context = extract_http_error_context(error, response=response)
        terminal = not is_transient_request_failure(error)
        log_event(
            "chat_error",
            level=logging.ERROR if terminal else logging.WARNING,
            base_url=self.config.base_url,
            attempt=attempt,
            latency_ms=round((time.perf_counter() - started) * 1000),
            reason=getattr(error, "reason", None),
            terminal=terminal,
            error_type=type(error).__name__,
            error=str(error),
            **context,
        )

    # ------------------------------------------------------------------
    # Credential diagnostics
    # ------------------------------------------------------------------

    def describe_credential(self) -> CredentialInfo:
        return self.credentials.describe_credential()

    def has_valid_credential(self) -> bool:
        return self.credentials.has_valid_credential()

    def invalidate_credential(self) -> None:
        self.credentials.invalidate(reason="manual")
