"""Tests for the chat client retry, 401 recovery and validation behavior."""

from __future__ import annotations

import asyncio
import copy
import json
from unittest.mock import patch

import httpx
import pytest

from chatlink.client import ChatClient, is_transient_request_failure
from chatlink.credentials import CredentialManager
from chatlink.errors import CredentialError, RequestError, ValidationError
from chatlink.models import ChatRequest
from test_helpers import CHAT, TOKENS, token_reply

HI = {"messages": [{"role": "user", "content": "hi"}]}


def _client(config, api, sleeps) -> ChatClient:
    return ChatClient(config, transport=api.transport, sleep=sleeps)


@pytest.mark.asyncio
async def test_end_to_end_token_then_chat(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply("abc", "900", "Bearer"))
    api.queue(CHAT, (200, {"content": "hello"}))
    client = _client(config, api, sleeps)

    response = await client.send(HI)

    assert response.content == "hello"
    assert response.usage is None
    chat_request = api.requests_to(CHAT)[0]
    assert chat_request.method == "POST"
    assert chat_request.headers["Authorization"] == "Bearer abc"
    assert chat_request.headers["Content-Type"] == "application/json"
    assert json.loads(chat_request.content) == HI


@pytest.mark.asyncio
async def test_usage_and_system_prompt_round_trip(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (200, {"content": "ok", "usage": {"total_tokens": 42}}))
    client = _client(config, api, sleeps)

    response = await client.send(
        ChatRequest.create([{"role": "user", "content": "hi"}], system="be terse")
    )

    assert response.total_tokens == 42
    assert json.loads(api.requests_to(CHAT)[0].content)["system"] == "be terse"


@pytest.mark.asyncio
async def test_empty_messages_fail_without_network(config, api, sleeps) -> None:
    client = _client(config, api, sleeps)

    with pytest.raises(ValidationError):
        await client.send({"messages": []})

    assert api.requests == []


@pytest.mark.asyncio
async def test_too_many_messages_fail_without_network(config, api, sleeps) -> None:
    client = _client(config, api, sleeps)
    messages = [{"role": "user", "content": f"m{i}"} for i in range(51)]

    with pytest.raises(ValidationError):
        await client.send({"messages": messages})

    assert api.requests == []


@pytest.mark.asyncio
async def test_caller_request_is_not_modified(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (200, {"content": "hello"}))
    client = _client(config, api, sleeps)
    request = {"messages": [{"role": "user", "content": "hi"}], "system": "short"}
    original = copy.deepcopy(request)

    await client.send(request)

    assert request == original


@pytest.mark.asyncio
async def test_two_server_errors_then_success(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(
        CHAT,
        (500, {"message": "boom"}),
        (502, "bad gateway"),
        (200, {"content": "finally"}),
    )
    client = _client(config, api, sleeps)

    response = await client.send(HI)

    assert response.content == "finally"
    assert api.calls(CHAT) == 3
    assert api.calls(TOKENS) == 1
    assert sleeps.delays == pytest.approx([0.01, 0.02])
    assert sleeps.delays[0] < sleeps.delays[1]


@pytest.mark.asyncio
async def test_401_invalidates_once_and_retries_with_new_token(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply("old"), token_reply("new"))
    api.queue(CHAT, (401, {"message": "expired"}), (200, {"content": "hello"}))
    client = _client(config, api, sleeps)

    with patch.object(
        client.credentials, "invalidate", wraps=client.credentials.invalidate
    ) as invalidate:
        response = await client.send(HI)

    assert response.content == "hello"
    invalidate.assert_called_once()
    assert invalidate.call_args.kwargs["reason"] == "rejected"
    assert api.calls(CHAT) == 2
    assert api.calls(TOKENS) == 2
    auth_headers = [r.headers["Authorization"] for r in api.requests_to(CHAT)]
    assert auth_headers == ["Bearer old", "Bearer new"]
    assert sleeps.delays == [0.0]


@pytest.mark.asyncio
async def test_401_keeps_a_credential_installed_by_another_caller(config, api, sleeps) -> None:
    manager = CredentialManager(config, transport=api.transport, sleep=sleeps)

    async def rotate_then_reject(request: httpx.Request):
        manager.invalidate()
        await manager.get_credential()
        return (401, {"message": "expired"})

    api.queue(TOKENS, token_reply("old"), token_reply("new"))
    api.queue(CHAT, rotate_then_reject, (200, {"content": "hello"}))
    client = ChatClient(config, credentials=manager, transport=api.transport, sleep=sleeps)

    response = await client.send(HI)

    assert response.content == "hello"
    assert api.calls(TOKENS) == 2
    auth_headers = [r.headers["Authorization"] for r in api.requests_to(CHAT)]
    assert auth_headers == ["Bearer old", "Bearer new"]
    assert manager.has_valid_credential()


@pytest.mark.asyncio
async def test_persistent_401_exhausts_retries(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (401, {"message": "expired"}))
    client = _client(config, api, sleeps)

    with pytest.raises(RequestError) as exc_info:
        await client.send(HI)

    error = exc_info.value
    assert error.status_code == 401
    assert error.reason == "http"
    assert "after 3 attempts" in str(error)
    assert isinstance(error.cause, RequestError)
    assert api.calls(CHAT) == 3
    assert api.calls(TOKENS) == 3


@pytest.mark.asyncio
async def test_client_error_is_terminal(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (400, {"message": "bad input"}))
    client = _client(config, api, sleeps)

    with pytest.raises(RequestError) as exc_info:
        await client.send(HI)

    assert exc_info.value.status_code == 400
    assert str(exc_info.value) == "bad input"
    assert api.calls(CHAT) == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_rate_limit_is_terminal_with_status_text(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (429, ""))
    client = _client(config, api, sleeps)

    with pytest.raises(RequestError, match="Request failed: 429"):
        await client.send(HI)
    assert api.calls(CHAT) == 1


@pytest.mark.asyncio
async def test_server_errors_exhaust_into_request_error(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (503, {"message": "unavailable"}))
    client = _client(config, api, sleeps)

    with pytest.raises(RequestError) as exc_info:
        await client.send(HI)

    assert exc_info.value.status_code == 503
    assert api.calls(CHAT) == 3
    assert sleeps.delays == pytest.approx([0.01, 0.02])


@pytest.mark.asyncio
async def test_httpx_timeout_is_retried(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, httpx.ReadTimeout("slow"), (200, {"content": "late"}))
    client = _client(config, api, sleeps)

    response = await client.send(HI)

    assert response.content == "late"
    assert api.calls(CHAT) == 2


@pytest.mark.asyncio
async def test_deadline_expiry_becomes_timeout_error(config, api, sleeps) -> None:
    async def hang(request: httpx.Request):
        await asyncio.sleep(5)
        return (200, {"content": "too late"})

    config = config.with_overrides(timeout_sec=0.05, max_attempts=2)
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, hang)
    client = _client(config, api, sleeps)

    with pytest.raises(RequestError) as exc_info:
        await client.send(HI)

    error = exc_info.value
    assert error.reason == "timeout"
    assert error.is_timeout
    assert error.status_code is None
    assert api.calls(CHAT) == 2


@pytest.mark.asyncio
async def test_network_failure_is_retried_then_reported(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, httpx.ConnectError("connection refused"))
    client = _client(config, api, sleeps)

    with pytest.raises(RequestError) as exc_info:
        await client.send(HI)

    assert exc_info.value.reason == "network"
    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.cause, RequestError)
    assert api.calls(CHAT) == 3


@pytest.mark.asyncio
async def test_malformed_reply_is_not_retried(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply())
    api.queue(CHAT, (200, {"text": "wrong shape"}))
    client = _client(config, api, sleeps)

    with pytest.raises(ValidationError):
        await client.send(HI)
    assert api.calls(CHAT) == 1


@pytest.mark.asyncio
async def test_credential_failure_propagates(config, api, sleeps) -> None:
    api.queue(TOKENS, (401, {"message": "no such user"}))
    client = _client(config, api, sleeps)

    with pytest.raises(CredentialError) as exc_info:
        await client.send(HI)

    assert exc_info.value.status_code == 401
    assert api.calls(CHAT) == 0


@pytest.mark.asyncio
async def test_clients_can_share_a_credential_manager(config, api, sleeps) -> None:
    api.queue(TOKENS, token_reply("shared"))
    api.queue(CHAT, (200, {"content": "ok"}))
    manager = CredentialManager(config, transport=api.transport, sleep=sleeps)
    first = ChatClient(config, credentials=manager, transport=api.transport, sleep=sleeps)
    second = ChatClient(config, credentials=manager, transport=api.transport, sleep=sleeps)

    await first.send(HI)
    await second.send(HI)

    assert api.calls(TOKENS) == 1
    assert first.has_valid_credential()
    second.invalidate_credential()
    assert first.describe_credential() == {"present": False}


@pytest.mark.asyncio
async def test_cancelling_send_propagates_cancellation(config, api, sleeps) -> None:
    started = asyncio.Event()

    async def hang(request: httpx.Request):
        started.set()
        await asyncio.sleep(5)
        return (200, {"content": "never"})

    api.queue(TOKENS, token_reply())
    api.queue(CHAT, hang)
    client = _client(config, api, sleeps)

    task = asyncio.create_task(client.send(HI))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert api.calls(CHAT) == 1


def test_transient_classification() -> None:
    assert is_transient_request_failure(RequestError("t", reason="timeout"))
    assert is_transient_request_failure(RequestError("n", reason="network"))
    assert is_transient_request_failure(RequestError("a", status_code=401))
    assert is_transient_request_failure(RequestError("s", status_code=500))
    assert not is_transient_request_failure(RequestError("c", status_code=404))
    assert not is_transient_request_failure(ValidationError("v"))
    assert not is_transient_request_failure(CredentialError("c", status_code=500))
