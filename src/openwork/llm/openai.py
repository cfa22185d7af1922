"""
OpenAI chat completions provider.

Also serves OpenAI-compatible endpoints (Ollama, Gemini's compatibility
API) through ``base_url``.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
from openai import AsyncOpenAI

from openwork.llm.base import (
    FinishChunk,
    ModelChunk,
    ModelProvider,
    TextChunk,
    ToolCallChunk,
    ToolSpec,
    normalize_finish_reason,
    parse_tool_arguments,
)
from openwork.logging import get_logger
from openwork.models import ConversationMessage, ModelSettings

logger = get_logger("llm.openai")


def to_openai_messages(
    system_prompt: str, messages: Sequence[ConversationMessage],
) -> list[dict[str, Any]]:
    """Convert history into chat completion messages."""
    result: list[dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    for msg in messages:
        if msg.role == "tool":
            for tool_result in msg.tool_results:
                result.append({
                    "role": "tool",
                    "tool_call_id": tool_result.invocation_id,
                    "content": tool_result.content,
                })
        elif msg.role == "assistant" and msg.tool_calls:
            result.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in msg.tool_calls
                ],
            })
        else:
            result.append({"role": msg.role, "content": msg.content})
    return result


def to_openai_tools(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]


class OpenAIProvider(ModelProvider):
    """
    Streams completions from an OpenAI-compatible API.

    Example:
        provider = OpenAIProvider(api_key="sk-...")
        async for chunk in provider.stream_completion(prompt, history, tools, settings):
            ...
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        if client is None:
            http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(300.0, connect=30.0),
            )
            client = AsyncOpenAI(api_key=api_key, base_url=base_url, http_client=http_client)
        self.client = client

    def _request_kwargs(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSpec],
        params: ModelSettings,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": params.model,
            "messages": to_openai_messages(system_prompt, messages),
            "temperature": params.temperature,
            "stream": True,
        }
        if params.max_tokens is not None:
            kwargs["max_tokens"] = params.max_tokens
        if params.top_p is not None:
            kwargs["top_p"] = params.top_p
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
        return kwargs

    async def stream_completion(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSpec],
        params: ModelSettings,
    ) -> AsyncIterator[ModelChunk]:
        """
        Stream one completion.

        Tool call fragments arrive keyed by index; they are assembled and
        emitted, in index order, once the model finishes.
        """
        stream = await self.client.chat.completions.create(
            **self._request_kwargs(system_prompt, messages, tools, params)
        )

        # index -> {id, name, args}
        active_tool_calls: dict[int, dict[str, str]] = {}
        finish_reason: str | None = None

        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta is not None and delta.content:
                yield TextChunk(delta.content)

            if delta is not None and delta.tool_calls:
                for tc_delta in delta.tool_calls:
                    entry = active_tool_calls.setdefault(
                        tc_delta.index, {"id": "", "name": "", "args": ""},
                    )
                    if tc_delta.id:
                        entry["id"] = tc_delta.id
                    if tc_delta.function is not None:
                        if tc_delta.function.name:
                            entry["name"] = tc_delta.function.name
                        if tc_delta.function.arguments:
                            entry["args"] += tc_delta.function.arguments

            if choice.finish_reason is not None:
                finish_reason = choice.finish_reason

        for index in sorted(active_tool_calls):
            entry = active_tool_calls[index]
            yield ToolCallChunk(
                id=entry["id"] or f"call_{uuid.uuid4().hex[:24]}",
                name=entry["name"],
                arguments=parse_tool_arguments(entry["args"], entry["name"]),
            )

        if finish_reason is None and active_tool_calls:
            finish_reason = "tool_calls"
        yield FinishChunk(normalize_finish_reason(finish_reason))

    async def aclose(self) -> None:
        await self.client.close()
