"""Typed credential and chat envelope models with wire decoding helpers."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Required, TypedDict

from .constants import DEFAULT_TOKEN_TYPE, MAX_MESSAGES, MESSAGE_ROLES, MIN_MESSAGES
from .errors import ValidationError


class TokenUsage(TypedDict, total=False):
    """Usage accounting returned with a chat reply."""

    total_tokens: int | float


class CredentialInfo(TypedDict, total=False):
    """Diagnostic view of the held credential (never includes the token)."""

    present: Required[bool]
    expires_at: datetime
    token_type: str


@dataclass(frozen=True, slots=True)
class Credential:
    """Issued bearer credential. Replaced, never mutated."""

    token: str = field(repr=False)
    expires_at: datetime
    token_type: str = DEFAULT_TOKEN_TYPE

    def expires_within(self, buffer_sec: float, now: datetime) -> bool:
        """Return True when *now* is inside the safety buffer before expiry."""
        try:
            return now + timedelta(seconds=buffer_sec) >= self.expires_at
        except OverflowError:
            return True

    @property
    def authorization(self) -> str:
        """Value for the ``Authorization`` header."""
        return f"{DEFAULT_TOKEN_TYPE} {self.token}"

    def describe(self) -> CredentialInfo:
        return {
            "present": True,
            "expires_at": self.expires_at,
            "token_type": self.token_type,
        }


@dataclass(frozen=True, slots=True)
class TokenGrant:
    """Decoded issuance reply before its expiry expression is resolved."""

    token: str = field(repr=False)
    expires_in: str
    token_type: str


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One role-tagged transcript entry."""

    role: str
    content: str

    @classmethod
    def from_raw(cls, raw_message: Any) -> ChatMessage:
        """Build a message from a mapping or pass an instance through."""
        if isinstance(raw_message, ChatMessage):
            return raw_message
        if not isinstance(raw_message, Mapping):
            raise ValidationError("Invalid message: expected object")
        return cls(role=raw_message.get("role"), content=raw_message.get("content"))

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class ChatRequest:
    """Request envelope for the conversational endpoint.

    Built freely; ``validate_chat_request`` enforces the envelope invariants
    before anything is transmitted.
    """

    messages: tuple[ChatMessage, ...]
    system: str | None = None

    @classmethod
    def create(
        cls,
        messages: Sequence[ChatMessage | Mapping[str, Any]],
        system: str | None = None,
    ) -> ChatRequest:
        """Build and validate an envelope from caller messages."""
        if isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
            raise ValidationError("Invalid messages: expected a list")
        request = cls(
            messages=tuple(ChatMessage.from_raw(m) for m in messages),
            system=system,
        )
        validate_chat_request(request)
        return request

    @classmethod
    def from_raw(cls, raw_request: Any) -> ChatRequest:
        """Build and validate an envelope from a ``{messages, system?}`` mapping."""
        if isinstance(raw_request, ChatRequest):
            validate_chat_request(raw_request)
            return raw_request
        if not isinstance(raw_request, Mapping):
            raise ValidationError("Invalid chat request: expected object")
        return cls.create(raw_request.get("messages"), raw_request.get("system"))

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the wire body of ``POST /api/chat``."""
        payload: dict[str, Any] = {
            "messages": [message.to_dict() for message in self.messages],
        }
        if self.system is not None:
            payload["system"] = self.system
        return payload


@dataclass(frozen=True, slots=True)
class ChatResponse:
    """Validated reply from the conversational endpoint."""

    content: str
    usage: TokenUsage | None = None

    @property
    def total_tokens(self) -> int | float | None:
        if self.usage is None:
            return None
        return self.usage.get("total_tokens")


def validate_chat_message(message: ChatMessage, index: int = 0) -> None:
    """Check one transcript entry.

    Raises:
        ValidationError: On unknown role or blank content
    """
    if message.role not in MESSAGE_ROLES:
        raise ValidationError(
            f"Invalid message at index {index}: role must be one of "
            f"{', '.join(MESSAGE_ROLES)}"
        )
    if not isinstance(message.content, str) or not message.content.strip():
        raise ValidationError(
            f"Invalid message at index {index}: content must be a non-empty string"
        )


def validate_chat_request(request: ChatRequest) -> None:
    """Enforce request envelope invariants.

    Raises:
        ValidationError: If the message count is outside [1, 50], any
            message is invalid, or the system override is not a string
    """
    count = len(request.messages)
    if count < MIN_MESSAGES:
        raise ValidationError("Invalid chat request: at least one message is required")
    if count > MAX_MESSAGES:
        raise ValidationError(
            f"Invalid chat request: at most {MAX_MESSAGES} messages allowed, got {count}"
        )
    for index, message in enumerate(request.messages):
        if not isinstance(message, ChatMessage):
            raise ValidationError(f"Invalid message at index {index}: expected ChatMessage")
        validate_chat_message(message, index)
    if request.system is not None and not isinstance(request.system, str):
        raise ValidationError("Invalid chat request: system must be a string")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def parse_chat_response(data: Any) -> ChatResponse:
    """Decode a ``200`` chat reply body.

    Raises:
        ValidationError: If the body does not match
            ``{"content": str, "usage"?: {"total_tokens": number}}``
    """
    if not isinstance(data, Mapping):
        raise ValidationError("Invalid chat response: expected object")

    content = data.get("content")
    if not isinstance(content, str):
        raise ValidationError("Invalid chat response: 'content' must be a string")

    raw_usage = data.get("usage")
    if raw_usage is None:
        return ChatResponse(content=content)
    if not isinstance(raw_usage, Mapping):
        raise ValidationError("Invalid chat response: 'usage' must be an object")
    total_tokens = raw_usage.get("total_tokens")
    if not _is_number(total_tokens):
        raise ValidationError(
            "Invalid chat response: 'usage.total_tokens' must be a number"
        )
    return ChatResponse(content=content, usage={"total_tokens": total_tokens})


def parse_token_grant(data: Any) -> TokenGrant:
    """Decode a ``200`` issuance reply body.

    Raises:
        ValidationError: If the body does not match
            ``{"token": non-empty str, "expiresIn": str, "tokenType": str}``
    """
    if not isinstance(data, Mapping):
        raise ValidationError("Invalid token response: expected object")

    token = data.get("token")
    if not isinstance(token, str) or not token:
        raise ValidationError("Invalid token response: 'token' must be a non-empty string")

    expires_in = data.get("expiresIn")
    if not isinstance(expires_in, str):
        raise ValidationError("Invalid token response: 'expiresIn' must be a string")

    token_type = data.get("tokenType")
    if not isinstance(token_type, str):
        raise ValidationError("Invalid token response: 'tokenType' must be a string")

    return TokenGrant(token=token, expires_in=expires_in, token_type=token_type)
