from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from arcwire.core.adapters.base import CancelToken, PromptRequest
from arcwire.core.adapters.http import MISSING_API_KEY_MESSAGE
from arcwire.core.adapters.registry import create_adapter
from arcwire.core.adapters.toolbridge import ToolSpec
from arcwire.core.errors import AdapterError, ConfigurationError, PromptCancelled, ProviderHTTPError
from arcwire.core.message import Message
from tests.fixtures.sse import (
    RecordingTransport,
    anthropic_message_delta,
    anthropic_message_start,
    anthropic_text_events,
    anthropic_tool_events,
    json_transport,
    openai_finish_chunk,
    openai_text_chunk,
    openai_tool_chunks,
    openai_usage_chunk,
    split_every,
    sse_body,
    sse_transport,
    stalled_sse_transport,
    text_transport,
)

OPENAI_REPLY = {
    "id": "chatcmpl-1",
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "Two tables.",
                "tool_calls": [
                    {"id": "call_1", "type": "function", "function": {"name": "get_schema", "arguments": "{}"}}
                ],
            },
            "finish_reason": "tool_calls",
        }
    ],
    "usage": {"prompt_tokens": 11, "completion_tokens": 4},
}

ANTHROPIC_REPLY = {
    "id": "msg_1",
    "type": "message",
    "role": "assistant",
    "content": [{"type": "text", "text": "Hi there"}],
    "usage": {"input_tokens": 3, "output_tokens": 2},
}


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event, payload) -> None:
        self.events.append((event, dict(payload)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def test_openai_sync_prompt_posts_and_parses() -> None:
    transport = json_transport(OPENAI_REPLY)
    adapter = create_adapter("openai", "sk-test", streaming=False, transport=transport)
    adapter.set_system_prompt("Be helpful.")
    recorder = _Recorder()

    result = asyncio.run(adapter.prompt([Message.user("What tables exist?")], recorder))

    request = transport.requests[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    body = transport.last_json
    assert body["model"] == "gpt-4.1"
    assert body["max_tokens"] == 4096
    assert body["messages"][0] == {"role": "system", "content": "Be helpful."}
    assert "stream" not in body

    assert result.cancelled is False
    assert result.messages[0].text == "Two tables."
    assert (result.tokens_in, result.tokens_out) == (11, 4)
    assert recorder.events == [
        (
            "model_response",
            {
                "text": "Two tables.",
                "tool_calls": [{"id": "call_1", "tool_name": "get_schema", "input_args": {}}],
            },
        )
    ]


def test_openai_compatible_provider_uses_its_base_url() -> None:
    transport = json_transport(OPENAI_REPLY)
    adapter = create_adapter("gemini", "g-key", streaming=False, transport=transport)

    asyncio.run(adapter.prompt([Message.user("hi")]))

    assert str(transport.requests[0].url) == (
        "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions"
    )
    assert transport.last_json["model"] == "gemini-2.5-flash"


def test_openai_streaming_prompt_notifies_in_order() -> None:
    payloads = [
        openai_text_chunk("Hel"),
        openai_text_chunk("lo"),
        *openai_tool_chunks("call_7", "run_sql", ['{"sql": "select', ' 1"}']),
        openai_finish_chunk("tool_calls"),
        openai_usage_chunk(40, 12),
    ]
    transport = sse_transport(split_every(sse_body(payloads), 9))
    adapter = create_adapter("openrouter", "or-key", transport=transport)
    recorder = _Recorder()
    spec = ToolSpec(name="run_sql", parameters={"type": "object", "properties": {"sql": {"type": "string"}}})

    result = asyncio.run(
        adapter.prompt(PromptRequest(messages=(Message.user("count"),), tools=(spec,)), recorder)
    )

    body = transport.last_json
    assert body["stream"] is True
    assert body["stream_options"] == {"include_usage": True}
    assert body["tools"][0]["function"]["name"] == "run_sql"
    assert "system" not in [item["role"] for item in body["messages"]]

    assert recorder.names() == ["text_delta", "text_delta", "tool_use", "model_response_complete"]
    assert recorder.events[2][1] == {"id": "call_7", "name": "run_sql", "input": {"sql": "select 1"}}
    assert recorder.events[-1][1]["text"] == "Hello"

    message = result.messages[0]
    assert message.text == "Hello"
    assert message.tool_calls[0].id == "call_7"
    assert (result.tokens_in, result.tokens_out) == (40, 12)


def test_async_notify_is_awaited() -> None:
    transport = sse_transport([sse_body([openai_text_chunk("x")])])
    adapter = create_adapter("openai", "k", transport=transport)
    seen: list[str] = []

    async def notify(event, payload) -> None:
        await asyncio.sleep(0)
        seen.append(event)

    asyncio.run(adapter.prompt([Message.user("hi")], notify))

    assert seen == ["text_delta", "model_response_complete"]


def test_anthropic_sync_prompt_uses_native_headers() -> None:
    transport = json_transport(ANTHROPIC_REPLY)
    adapter = create_adapter("anthropic", "ak-test", streaming=False, transport=transport)
    adapter.set_system_prompt("System text")

    result = asyncio.run(adapter.prompt([Message.user("hello")]))

    request = transport.requests[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "ak-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert request.headers["anthropic-dangerous-direct-browser-access"] == "true"
    assert "authorization" not in request.headers
    assert transport.last_json["system"] == "System text"
    assert transport.last_json["model"] == "claude-sonnet-4-20250514"
    assert result.messages[0].text == "Hi there"


def test_anthropic_streaming_prompt() -> None:
    payloads = [
        anthropic_message_start(17),
        *anthropic_text_events(["Let me ", "check"]),
        *anthropic_tool_events("toolu_1", "get_schema", ['{"table":', ' "users"}']),
        anthropic_message_delta(6, stop_reason="tool_use"),
        {"type": "message_stop"},
    ]
    transport = sse_transport(split_every(sse_body(payloads, done=False, event_names=True), 13))
    adapter = create_adapter("anthropic", "ak", transport=transport)
    recorder = _Recorder()

    result = asyncio.run(adapter.prompt([Message.user("schema?")], recorder))

    assert recorder.names() == ["text_delta", "text_delta", "tool_use", "model_response_complete"]
    assert recorder.events[2][1] == {"id": "toolu_1", "name": "get_schema", "input": {"table": "users"}}
    assert result.messages[0].text == "Let me check"
    assert (result.tokens_in, result.tokens_out) == (17, 6)


def test_anthropic_stream_error_event_raises() -> None:
    body = sse_body(
        [anthropic_message_start(1), {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}],
        done=False,
    )
    adapter = create_adapter("anthropic", "ak", transport=sse_transport([body]))

    with pytest.raises(AdapterError, match="Anthropic stream error: Overloaded"):
        asyncio.run(adapter.prompt([Message.user("hi")]))


def test_non_2xx_raises_provider_http_error() -> None:
    detail = json.dumps({"error": {"message": "invalid key"}})
    adapter = create_adapter("openai", "bad", streaming=False, transport=text_transport(detail, status_code=401))

    with pytest.raises(ProviderHTTPError) as excinfo:
        asyncio.run(adapter.prompt([Message.user("hi")]))

    error = excinfo.value
    assert error.status_code == 401
    assert str(error) == f"gpt-4.1 error 401: {detail}"
    assert error.provider == "openai"


def test_streaming_error_status_truncates_body() -> None:
    long_body = "x" * 1000
    adapter = create_adapter("anthropic", "ak", transport=text_transport(long_body, status_code=529))

    with pytest.raises(ProviderHTTPError) as excinfo:
        asyncio.run(adapter.prompt([Message.user("hi")]))

    assert str(excinfo.value) == "Anthropic error 529: " + "x" * 300


def test_missing_api_key_fails_before_any_request() -> None:
    transport = json_transport(OPENAI_REPLY)
    adapter = create_adapter("openai", "", transport=transport)

    with pytest.raises(ConfigurationError) as excinfo:
        asyncio.run(adapter.prompt([Message.user("hi")]))

    assert str(excinfo.value) == MISSING_API_KEY_MESSAGE
    assert transport.requests == []


def test_transport_failure_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter = create_adapter("openai", "k", streaming=False, transport=RecordingTransport(handler))

    with pytest.raises(AdapterError, match="OpenAI request failed"):
        asyncio.run(adapter.prompt([Message.user("hi")]))


def test_non_json_body_is_adapter_error() -> None:
    adapter = create_adapter("openai", "k", streaming=False, transport=text_transport("<html>", status_code=200))

    with pytest.raises(AdapterError, match="not JSON"):
        asyncio.run(adapter.prompt([Message.user("hi")]))


def test_sync_prompt_cancelled_while_waiting() -> None:
    cancel_holder: list[CancelToken] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        cancel_holder[0].cancel()
        await asyncio.sleep(30)
        return httpx.Response(200, json=OPENAI_REPLY)  # pragma: no cover

    adapter = create_adapter("openai", "k", streaming=False, transport=RecordingTransport(handler))
    recorder = _Recorder()

    async def scenario():
        cancel_holder.append(CancelToken())
        return await adapter.prompt([Message.user("hi")], recorder, cancel_holder[0])

    result = asyncio.run(scenario())

    assert result.cancelled is True
    assert result.messages == ()
    assert recorder.events == []
    with pytest.raises(PromptCancelled):
        result.raise_if_cancelled()


def test_streaming_prompt_cancelled_keeps_partial_text() -> None:
    transport = stalled_sse_transport([sse_body([openai_text_chunk("Hel")], done=False)])
    adapter = create_adapter("openai", "k", transport=transport)

    async def scenario():
        cancel = CancelToken()
        seen: list[str] = []

        def notify(event, payload) -> None:
            seen.append(event)
            cancel.cancel()

        result = await asyncio.wait_for(adapter.prompt([Message.user("hi")], notify, cancel), timeout=5)
        return result, seen

    result, seen = asyncio.run(scenario())

    assert seen == ["text_delta"]
    assert result.cancelled is True
    assert [message.text for message in result.messages] == ["Hel"]


def test_streaming_prompt_cancelled_from_outside() -> None:
    transport = stalled_sse_transport([])
    adapter = create_adapter("anthropic", "k", transport=transport)

    async def scenario():
        cancel = CancelToken()
        task = asyncio.ensure_future(adapter.prompt([Message.user("hi")], None, cancel))
        await asyncio.sleep(0.01)
        cancel.cancel()
        return await asyncio.wait_for(task, timeout=5)

    result = asyncio.run(scenario())

    assert result.cancelled is True
    assert result.messages == ()


def test_system_prompt_applies_to_next_call_only() -> None:
    transport = json_transport(OPENAI_REPLY)
    adapter = create_adapter("openai", "k", streaming=False, transport=transport)

    asyncio.run(adapter.prompt([Message.user("one")]))
    adapter.set_system_prompt("Now with rules.")
    asyncio.run(adapter.prompt([Message.user("two")]))

    first, second = (json.loads(request.content) for request in transport.requests)
    assert first["messages"][0]["role"] == "user"
    assert second["messages"][0] == {"role": "system", "content": "Now with rules."}
    assert adapter.system_prompt == "Now with rules."
