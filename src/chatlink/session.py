"""Convenience layers over ChatClient: one-shot chat and a stateful conversation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Optional

import httpx

from .client import ChatClient
from .config import ClientConfig
from .errors import ChatLinkError
from .logging import log_event
from .models import ChatMessage, ChatRequest, ChatResponse


async def chat(
    messages: Sequence[ChatMessage | Mapping[str, Any]],
    *,
    base_url: Optional[str] = None,
    system: Optional[str] = None,
    config: Optional[ClientConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Send one chat request with a fresh client and return the reply text."""
    effective = (config or ClientConfig()).with_overrides(base_url=base_url)
    client = ChatClient(effective, transport=transport)
    response = await client.send(ChatRequest.create(messages, system))
    return response.content


class Conversation:
    """Multi-turn transcript that forwards the full history on every send.

    The transcript is an immutable tuple replaced on each change, so readers
    never observe a partially updated history. A send appends the user entry
    right away and rolls it back if the call fails or is cancelled.
    """

    def __init__(
        self,
        client: Optional[ChatClient] = None,
        *,
        config: Optional[ClientConfig] = None,
        system: Optional[str] = None,
        initial_messages: Iterable[ChatMessage | Mapping[str, Any]] = (),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client = client or ChatClient(config, transport=transport)
        self.system = system
        self._messages: tuple[ChatMessage, ...] = tuple(
            ChatMessage.from_raw(m) for m in initial_messages
        )
        self.pending_input = ""
        self.error: ChatLinkError | None = None
        self._task: asyncio.Task[ChatResponse] | None = None
        self._snapshot: tuple[tuple[ChatMessage, ...], str] | None = None

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._messages

    @property
    def is_loading(self) -> bool:
        return self._task is not None

    async def send(self, text: Optional[str] = None) -> Optional[str]:
        """Send *text* (or the pending input) and return the assistant reply.

        Returns None without sending when the input is blank, when another
        send is in flight, or when the send is aborted by ``cancel()``.

        Raises:
            ChatLinkError: The call failed; the transcript was rolled back and
                the text restored to ``pending_input``
        """
        if self._task is not None:
            return None
        content = self.pending_input if text is None else text
        if not isinstance(content, str) or not content.strip():
            return None

        snapshot = (self._messages, content)
        self._messages = self._messages + (ChatMessage(role="user", content=content),)
        self.pending_input = ""
        self.error = None

        try:
            request = ChatRequest.create(self._messages, self.system)
        except ChatLinkError as e:
            self._rollback(snapshot, e)
            raise

        task = asyncio.create_task(self.client.send(request))
        self._task = task
        self._snapshot = snapshot

        try:
            response = await task
        except asyncio.CancelledError:
            if self._task is not task:
                # Aborted through cancel(), which already restored the snapshot.
                return None
            self._task = None
            self._restore(snapshot)
            log_event("conversation_rollback", reason="cancelled", message_count=len(snapshot[0]))
            raise
        except ChatLinkError as e:
            if self._task is not task:
                return None
            self._task = None
            self._rollback(snapshot, e)
            raise

        if self._task is not task:
            return None
        self._task = None
        self._snapshot = None
        self._messages = self._messages + (
            ChatMessage(role="assistant", content=response.content),
        )
        return response.content

    def cancel(self) -> bool:
        """Abort the in-flight send, restoring the transcript and pending input.

        Returns True when a send was running.
        """
        task = self._task
        if task is None:
            return False
        self._task = None
        if self._snapshot is not None:
            self._restore(self._snapshot)
            log_event(
                "conversation_rollback",
                reason="cancelled",
                message_count=len(self._messages),
            )
        task.cancel()
        return True

    def clear(self) -> None:
        """Cancel any in-flight send and empty the conversation."""
        self.cancel()
        self._messages = ()
        self.pending_input = ""
        self.error = None
        self._snapshot = None

    def _restore(self, snapshot: tuple[tuple[ChatMessage, ...], str]) -> None:
        self._messages, self.pending_input = snapshot
        self._snapshot = None

    def _rollback(
        self,
        snapshot: tuple[tuple[ChatMessage, ...], str],
        error: ChatLinkError,
    ) -> None:
        self._restore(snapshot)
        self.error = error
        log_event(
            "conversation_rollback",
            level=logging.WARNING,
            reason="error",
            message_count=len(self._messages),
            error_type=type(error).__name__,
            error=str(error),
        )
