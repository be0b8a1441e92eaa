"""Bearer credential lifecycle: issuance, expiry tracking and deduplicated refresh."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, RetryError, retry_if_exception, stop_after_attempt

from .config import ClientConfig
from .constants import TOKENS_PATH
from .errors import CredentialError, ValidationError
from .expiry import parse_expiry
from .logging import before_sleep_log_event, extract_http_error_context, log_event
from .models import Credential, CredentialInfo, parse_token_grant
from .time_utils import Clock, utc_now
from .timeouts import backoff_delay
from .transport import decode_json, error_message, post_json

HTTP_UNAUTHORIZED = 401

Sleep = Callable[[float], Awaitable[None]]


class _RefreshAbandoned(Exception):
    """Settles a shared refresh whose owning task was cancelled."""


def _retrieve_outcome(future: asyncio.Future[Any]) -> None:
    # Marks a failure as seen when the waiter that wrapped it was cancelled.
    if not future.cancelled():
        future.exception()


def is_transient_issuance_failure(error: BaseException) -> bool:
    """Return True when a failed issuance attempt may be retried.

    Network failures, timeouts and non-2xx statuses other than 401 are
    transient. Decoding, validation, expiry-format failures and 401 are not.
    """
    if isinstance(error, (TimeoutError, httpx.TransportError)):
        return True
    if isinstance(error, CredentialError):
        return error.status_code is not None and error.status_code != HTTP_UNAUTHORIZED
    return False


class CredentialManager:
    """Keeps a single usable bearer credential alive.

    ``get_credential`` returns the held credential while it is outside the
    refresh buffer and otherwise refreshes it. Concurrent callers that find no
    usable credential share one refresh: the refresh slot is checked and set
    under a lock, so N callers produce exactly one issuance request whether
    they are tasks on one event loop or threads running their own loops.

    The held credential is only ever replaced, never mutated.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Endpoint, identity, retry and buffer settings
            transport: Optional httpx transport (tests, custom networking)
            sleep: Async sleep used between attempts (default: asyncio.sleep)
            clock: Returns the current aware UTC time (default: utc_now)
        """
        self.config = config or ClientConfig()
        self._transport = transport
        self._sleep: Sleep = sleep or asyncio.sleep
        self._clock: Clock = clock or utc_now
        self._credential: Credential | None = None
        self._refresh: concurrent.futures.Future[Credential] | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def get_credential(self) -> Credential:
        """Return a usable credential, refreshing it when needed.

        Raises:
            CredentialError: If issuance is rejected or retries are exhausted
        """
        while True:
            credential = self._credential
            if credential is not None and not self._is_expiring(credential):
                return credential

            with self._lock:
                handle = self._refresh
                owner = handle is None
                if handle is None:
                    handle = concurrent.futures.Future()
                    self._refresh = handle

            if owner:
                return await self._run_refresh(handle)

            shared = asyncio.wrap_future(handle)
            shared.add_done_callback(_retrieve_outcome)
            try:
                # Shielded so a cancelled waiter never cancels the shared refresh.
                return await asyncio.shield(shared)
            except _RefreshAbandoned:
                continue

    def invalidate(
        self, reason: str = "manual", *, credential: Optional[Credential] = None
    ) -> None:
        """Drop the held credential. Safe to call repeatedly.

        When *credential* is given, only that exact credential is dropped: a
        newer one installed meanwhile by another caller is kept. An in-flight
        refresh is not aborted.
        """
        held = self._credential
        superseded = credential is not None and held is not credential
        if not superseded:
            self._credential = None
        log_event(
            "credential_invalidate",
            reason=reason,
            had_credential=held is not None,
            superseded=superseded,
        )

    def has_valid_credential(self) -> bool:
        """Return True when a credential is held and outside the refresh buffer."""
        credential = self._credential
        return credential is not None and not self._is_expiring(credential)

    def describe_credential(self) -> CredentialInfo:
        """Diagnostic view of the held credential without the token value."""
        credential = self._credential
        if credential is None:
            return {"present": False}
        return credential.describe()

    @property
    def refresh_in_progress(self) -> bool:
        with self._lock:
            return self._refresh is not None

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _is_expiring(self, credential: Credential) -> bool:
        return credential.expires_within(self.config.refresh_buffer_sec, self._clock())

    def _release(self, handle: concurrent.futures.Future[Credential]) -> None:
        with self._lock:
            if self._refresh is handle:
                self._refresh = None

    async def _run_refresh(self, handle: concurrent.futures.Future[Credential]) -> Credential:
        """Perform the refresh owned by this caller and settle the shared handle."""
        try:
            credential = await self._issue_credential()
        except asyncio.CancelledError:
            self._release(handle)
            handle.set_exception(_RefreshAbandoned())
            raise
        except BaseException as exc:
            self._release(handle)
            handle.set_exception(exc)
            raise

        self._credential = credential
        self._release(handle)
        handle.set_result(credential)
        return credential

    def _backoff_wait(self, retry_state: Any) -> float:
        return backoff_delay(self.config.retry_delay_sec, retry_state.attempt_number)

    async def _issue_credential(self) -> Credential:
        """Request a credential with up to ``max_attempts`` attempts."""
        max_attempts = self.config.max_attempts
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient_issuance_failure),
            wait=self._backoff_wait,
            stop=stop_after_attempt(max_attempts),
            sleep=self._sleep,
            before_sleep=before_sleep_log_event(
                operation="credential_refresh",
                level=logging.WARNING,
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    credential = await self._request_credential(
                        attempt.retry_state.attempt_number
                    )
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise CredentialError(
                f"Failed to refresh credential after {max_attempts} attempts: {last_error}",
                status_code=getattr(last_error, "status_code", None),
                cause=last_error,
            ) from last_error
        return credential

    async def _request_credential(self, attempt: int) -> Credential:
        """One issuance round trip: POST, decode, validate, resolve expiry."""
        url = self.config.url(TOKENS_PATH)
        log_event(
            "credential_refresh",
            base_url=self.config.base_url,
            user_id=self.config.user_id,
            attempt=attempt,
            max_attempts=self.config.max_attempts,
        )
        started = time.perf_counter()

        try:
            response = await post_json(
                url,
                {"userId": self.config.user_id},
                timeout_sec=self.config.timeout_sec,
                transport=self._transport,
            )
        except (TimeoutError, httpx.TransportError) as e:
            self._log_failure(attempt, e, terminal=False)
            raise
        except httpx.HTTPError as e:
            error = CredentialError(f"Token request failed: {e}", cause=e)
            self._log_failure(attempt, error, terminal=True)
            raise error from e

        if not response.is_success:
            error = CredentialError(
                error_message(response, f"Token request failed: {response.status_code}"),
                status_code=response.status_code,
            )
            self._log_failure(
                attempt,
                error,
                terminal=not is_transient_issuance_failure(error),
                response=response,
            )
            raise error

        try:
            grant = parse_token_grant(decode_json(response))
            expires_at = parse_expiry(grant.expires_in, now=self._clock())
        except ValidationError as e:
            error = CredentialError(str(e), status_code=None, cause=e)
            self._log_failure(attempt, error, terminal=True, response=response)
            raise error from e
        except CredentialError as e:
            self._log_failure(attempt, e, terminal=True, response=response)
            raise

        credential = Credential(
            token=grant.token,
            expires_at=expires_at,
            token_type=grant.token_type,
        )
        log_event(
            "credential_issued",
            base_url=self.config.base_url,
            token_type=credential.token_type,
            expires_at=credential.expires_at,
            attempt=attempt,
            latency_ms=round((time.perf_counter() - started) * 1000),
        )
        return credential

    def _log_failure(
        self,
        attempt: int,
        error: BaseException,
        *,
        terminal: bool,
        response: Optional[httpx.Response] = None,
    ) -> None:
        context = extract_http_error_context(error, response=response)
        log_event(
            "credential_error",
            level=logging.ERROR if terminal else logging.WARNING,
            base_url=self.config.base_url,
            attempt=attempt,
            terminal=terminal,
            error_type=type(error).__name__,
            error=str(error),
            **context,
        )
