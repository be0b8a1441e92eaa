"""Typed exceptions for chatlink."""

from __future__ import annotations


class ChatLinkError(Exception):
    """Base exception for chatlink failures.

    ``status_code`` is the HTTP status when one was observed, ``cause`` the
    underlying exception that ended the operation (also chained as
    ``__cause__`` where the error is raised ``from`` it).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class ValidationError(ValueError, ChatLinkError):
    """Raised when a request or a server reply fails structural checks."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        # ValueError.__init__ takes no keywords; initialize the chatlink base directly.
        ChatLinkError.__init__(self, message, cause=cause)


class CredentialError(ChatLinkError):
    """Raised when a bearer credential cannot be obtained."""


class RequestError(ChatLinkError):
    """Raised when a chat call fails terminally.

    ``reason`` tags the failure class: ``"http"`` (non-success status),
    ``"timeout"`` (per-attempt deadline) or ``"network"`` (transport
    failure). When retries run out the error keeps the tag of its last cause.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str = "http",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, cause=cause)
        self.reason = reason

    @property
    def is_timeout(self) -> bool:
        return self.reason == "timeout"
