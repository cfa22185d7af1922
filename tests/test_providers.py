"""Tests for model provider adapters, driven by fake SDK clients."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any

import pytest

from openwork.config import ProviderConfig
from openwork.errors import ConfigurationError
from openwork.llm import (
    AnthropicProvider,
    FinishChunk,
    OpenAIProvider,
    TextChunk,
    ToolCallChunk,
    ToolSpec,
    create_provider,
    is_valid_model,
    normalize_finish_reason,
)
from openwork.llm.anthropic import to_anthropic_messages
from openwork.llm.base import parse_tool_arguments
from openwork.llm.openai import to_openai_messages
from openwork.models import (
    ConversationMessage,
    ModelSettings,
    ToolInvocationRequest,
    ToolInvocationResult,
)

# ---------------------------------------------------------------------------
# Fake SDK clients
# ---------------------------------------------------------------------------


class FakeStream:
    def __init__(self, items: list[Any]) -> None:
        self.items = items

    async def __aiter__(self):
        for item in self.items:
            yield item


class FakeCreate:
    """Stands in for ``client.chat.completions`` / ``client.messages``."""

    def __init__(self, items: list[Any]) -> None:
        self.items = items
        self.kwargs: dict[str, Any] = {}

    async def create(self, **kwargs: Any) -> FakeStream:
        self.kwargs = kwargs
        return FakeStream(self.items)


def _openai_client(chunks: list[Any]) -> tuple[Any, FakeCreate]:
    completions = FakeCreate(chunks)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _anthropic_client(events: list[Any]) -> tuple[Any, FakeCreate]:
    messages = FakeCreate(events)
    return SimpleNamespace(messages=messages), messages


def _oa_chunk(content: str | None = None, tool_calls: list[Any] | None = None, finish: str | None = None) -> Any:
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish)])


def _oa_tool(index: int, call_id: str | None = None, name: str | None = None, args: str | None = None) -> Any:
    return SimpleNamespace(index=index, id=call_id, function=SimpleNamespace(name=name, arguments=args))


async def _collect(provider: Any, tools: list[ToolSpec] | None = None, params: ModelSettings | None = None) -> list[Any]:
    stream = provider.stream_completion(
        "Be brief.", [ConversationMessage.user("hi")], tools or [], params or ModelSettings(),
    )
    return [chunk async for chunk in stream]


HISTORY = [
    ConversationMessage.user("read both"),
    ConversationMessage(
        role="assistant",
        content="Reading.",
        tool_calls=(
            ToolInvocationRequest(id="c1", name="code_read", arguments={"path": "a"}),
            ToolInvocationRequest(id="c2", name="code_read", arguments={"path": "b"}),
        ),
    ),
    ConversationMessage(role="tool", tool_results=(
        ToolInvocationResult(invocation_id="c1", name="code_read", success=True, result="A"),
    )),
    ConversationMessage(role="tool", tool_results=(
        ToolInvocationResult(invocation_id="c2", name="code_read", success=False, error="missing"),
    )),
    ConversationMessage(role="assistant", content="One was missing."),
]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, "stop"),
            ("end_turn", "stop"),
            ("tool_calls", "tool-calls"),
            ("tool_use", "tool-calls"),
            ("max_tokens", "length"),
            ("content_filter", "content-filter"),
            ("something_new", "other"),
        ],
    )
    def test_normalize_finish_reason(self, raw: str | None, expected: str) -> None:
        assert normalize_finish_reason(raw) == expected

    def test_parse_tool_arguments(self) -> None:
        assert parse_tool_arguments('{"a": 1}', "t") == {"a": 1}
        assert parse_tool_arguments("", "t") == {}
        assert parse_tool_arguments("{broken", "t") == {}
        assert parse_tool_arguments("[1, 2]", "t") == {}
        assert parse_tool_arguments({"b": 2}, "t") == {"b": 2}

    def test_is_valid_model(self) -> None:
        assert is_valid_model("openai", "gpt-4o")
        assert not is_valid_model("openai", "claude-sonnet-4-20250514")
        assert is_valid_model("ollama", "anything-local")
        assert not is_valid_model("nope", "gpt-4o")


class TestCreateProvider:
    """Factory dispatch by provider id."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("provider_id", "expected"),
        [
            ("anthropic", AnthropicProvider),
            ("openai", OpenAIProvider),
            ("google", OpenAIProvider),
            ("ollama", OpenAIProvider),
        ],
    )
    async def test_known_providers(self, provider_id: str, expected: type) -> None:
        config = ProviderConfig(anthropic_api_key="a", openai_api_key="o", google_api_key="g")
        provider = create_provider(provider_id, config)
        try:
            assert isinstance(provider, expected)
        finally:
            await provider.aclose()

    @pytest.mark.asyncio
    async def test_google_uses_compatibility_endpoint(self) -> None:
        provider = create_provider("google", ProviderConfig(google_api_key="g"))
        try:
            assert "generativelanguage.googleapis.com" in str(provider.client.base_url)
        finally:
            await provider.aclose()

    def test_unknown_provider(self) -> None:
        with pytest.raises(ConfigurationError):
            create_provider("mystery", ProviderConfig())


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


class TestOpenAIMessages:
    def test_conversion(self) -> None:
        messages = to_openai_messages("System.", HISTORY)

        assert messages[0] == {"role": "system", "content": "System."}
        assert messages[1] == {"role": "user", "content": "read both"}
        assistant = messages[2]
        assert assistant["content"] == "Reading."
        assert [c["id"] for c in assistant["tool_calls"]] == ["c1", "c2"]
        assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"path": "a"}
        assert messages[3] == {"role": "tool", "tool_call_id": "c1", "content": "A"}
        assert messages[4] == {"role": "tool", "tool_call_id": "c2", "content": "Error: missing"}
        assert messages[5] == {"role": "assistant", "content": "One was missing."}

    def test_no_system_prompt(self) -> None:
        assert to_openai_messages("", [ConversationMessage.user("x")]) == [{"role": "user", "content": "x"}]


class TestOpenAIProvider:
    """Streaming against a fake chat completions client."""

    @pytest.mark.asyncio
    async def test_text_stream(self) -> None:
        client, completions = _openai_client([
            _oa_chunk("Hel"),
            _oa_chunk("lo"),
            SimpleNamespace(choices=[]),
            _oa_chunk(finish="stop"),
        ])
        chunks = await _collect(OpenAIProvider(client=client), params=ModelSettings(provider="openai", model="gpt-4o", max_tokens=50))

        assert chunks == [TextChunk("Hel"), TextChunk("lo"), FinishChunk("stop")]
        assert completions.kwargs["model"] == "gpt-4o"
        assert completions.kwargs["max_tokens"] == 50
        assert completions.kwargs["stream"] is True
        assert "tools" not in completions.kwargs

    @pytest.mark.asyncio
    async def test_tool_call_fragments_assembled(self) -> None:
        client, completions = _openai_client([
            _oa_chunk(tool_calls=[_oa_tool(1, "call_b", "file_search", '{"directory"')]),
            _oa_chunk(tool_calls=[_oa_tool(0, "call_a", "code_read", '{"path": ')]),
            _oa_chunk(tool_calls=[_oa_tool(0, args='"x.py"}')]),
            _oa_chunk(tool_calls=[_oa_tool(1, args=': "."}')]),
            _oa_chunk(finish="tool_calls"),
        ])
        tools = [ToolSpec("code_read", "Read", {"type": "object"})]

        chunks = await _collect(OpenAIProvider(client=client), tools=tools)

        assert chunks == [
            ToolCallChunk("call_a", "code_read", {"path": "x.py"}),
            ToolCallChunk("call_b", "file_search", {"directory": "."}),
            FinishChunk("tool-calls"),
        ]
        assert completions.kwargs["tools"][0]["function"]["name"] == "code_read"

    @pytest.mark.asyncio
    async def test_missing_finish_reason_with_tool_calls(self) -> None:
        client, _ = _openai_client([_oa_chunk(tool_calls=[_oa_tool(0, None, "ping", None)])])
        chunks = await _collect(OpenAIProvider(client=client))
        call, finish = chunks
        assert (call.name, call.arguments) == ("ping", {})
        assert call.id.startswith("call_")
        assert finish == FinishChunk("tool-calls")

    @pytest.mark.asyncio
    async def test_missing_tool_call_ids_are_unique_across_steps(self) -> None:
        client, _ = _openai_client([_oa_chunk(tool_calls=[
            _oa_tool(0, None, "ping", "{}"),
            _oa_tool(1, None, "pong", "{}"),
        ])])
        provider = OpenAIProvider(client=client)

        first = await _collect(provider)
        second = await _collect(provider)

        ids = [c.id for c in first + second if isinstance(c, ToolCallChunk)]
        assert len(ids) == 4
        assert len(set(ids)) == 4


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


def _ev(event_type: str, **fields: Any) -> Any:
    return SimpleNamespace(type=event_type, **fields)


class TestAnthropicMessages:
    def test_consecutive_tool_results_share_one_user_turn(self) -> None:
        system, messages = to_anthropic_messages(HISTORY)

        assert system == []
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        blocks = messages[1]["content"]
        assert blocks[0] == {"type": "text", "text": "Reading."}
        assert [b["id"] for b in blocks[1:]] == ["c1", "c2"]
        results = messages[2]["content"]
        assert [r["tool_use_id"] for r in results] == ["c1", "c2"]
        assert results[1]["is_error"] is True
        assert results[1]["content"] == "Error: missing"

    def test_system_messages_extracted(self) -> None:
        system, messages = to_anthropic_messages([
            ConversationMessage(role="system", content="Extra rules."),
            ConversationMessage.user("hi"),
        ])
        assert system == ["Extra rules."]
        assert messages == [{"role": "user", "content": "hi"}]


class TestAnthropicProvider:
    """Streaming against a fake messages client."""

    @pytest.mark.asyncio
    async def test_text_and_tool_use(self) -> None:
        client, messages = _anthropic_client([
            _ev("message_start"),
            _ev("content_block_start", index=0, content_block=SimpleNamespace(type="text")),
            _ev("content_block_delta", index=0, delta=SimpleNamespace(type="text_delta", text="Let me look.")),
            _ev("content_block_stop", index=0),
            _ev("content_block_start", index=1, content_block=SimpleNamespace(type="tool_use", id="tu_1", name="code_read")),
            _ev("content_block_delta", index=1, delta=SimpleNamespace(type="input_json_delta", partial_json='{"path"')),
            _ev("content_block_delta", index=1, delta=SimpleNamespace(type="input_json_delta", partial_json=': "a.py"}')),
            _ev("content_block_stop", index=1),
            _ev("message_delta", delta=SimpleNamespace(stop_reason="tool_use")),
            _ev("message_stop"),
        ])
        tools = [ToolSpec("code_read", "Read", {"type": "object"})]

        chunks = await _collect(AnthropicProvider(client=client), tools=tools)

        assert chunks == [
            TextChunk("Let me look."),
            ToolCallChunk("tu_1", "code_read", {"path": "a.py"}),
            FinishChunk("tool-calls"),
        ]
        assert messages.kwargs["system"] == "Be brief."
        assert messages.kwargs["max_tokens"] == 4096
        assert messages.kwargs["tools"] == [{"name": "code_read", "description": "Read", "input_schema": {"type": "object"}}]

    @pytest.mark.asyncio
    async def test_settings_forwarded(self) -> None:
        client, messages = _anthropic_client([_ev("message_delta", delta=SimpleNamespace(stop_reason="max_tokens"))])
        params = ModelSettings(max_tokens=10, top_p=0.9, top_k=5, temperature=0.1)

        chunks = await _collect(AnthropicProvider(client=client), params=params)

        assert chunks == [FinishChunk("length")]
        assert messages.kwargs["max_tokens"] == 10
        assert messages.kwargs["top_p"] == 0.9
        assert messages.kwargs["top_k"] == 5
        assert messages.kwargs["temperature"] == 0.1
