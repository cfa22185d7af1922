"""Anthropic messages API provider."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

from anthropic import AsyncAnthropic

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

logger = get_logger("llm.anthropic")

DEFAULT_MAX_TOKENS = 4096


def to_anthropic_messages(
    messages: Sequence[ConversationMessage],
) -> tuple[list[str], list[dict[str, Any]]]:
    """
    Convert history into Anthropic messages.

    Returns extra system text (from ``system`` messages, which Anthropic
    takes separately) and the message list.
    """
    system_parts: list[str] = []
    result: list[dict[str, Any]] = []
    previous_role: str | None = None

    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.content)
            continue
        if msg.role == "tool":
            results = [
                {
                    "type": "tool_result",
                    "tool_use_id": r.invocation_id,
                    "content": r.content,
                    "is_error": not r.success,
                }
                for r in msg.tool_results
            ]
            # Results answering one assistant message share a single user turn
            if previous_role == "tool":
                result[-1]["content"].extend(results)
            else:
                result.append({"role": "user", "content": results})
        elif msg.role == "assistant" and msg.tool_calls:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for call in msg.tool_calls:
                blocks.append({
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": call.arguments,
                })
            result.append({"role": "assistant", "content": blocks})
        else:
            result.append({"role": msg.role, "content": msg.content})
        previous_role = msg.role
    return system_parts, result


def to_anthropic_tools(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {"name": t.name, "description": t.description, "input_schema": t.parameters}
        for t in tools
    ]


class AnthropicProvider(ModelProvider):
    """
    Streams completions from the Anthropic messages API.

    Example:
        provider = AnthropicProvider(api_key="sk-ant-...")
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        api_key: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.max_tokens = max_tokens

    def _request_kwargs(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSpec],
        params: ModelSettings,
    ) -> dict[str, Any]:
        extra_system, anthropic_messages = to_anthropic_messages(messages)
        system = "\n\n".join(p for p in [system_prompt, *extra_system] if p)

        kwargs: dict[str, Any] = {
            "model": params.model,
            "max_tokens": params.max_tokens or self.max_tokens,
            "messages": anthropic_messages,
            "temperature": params.temperature,
            "stream": True,
        }
        if system:
            kwargs["system"] = system
        if params.top_p is not None:
            kwargs["top_p"] = params.top_p
        if params.top_k is not None:
            kwargs["top_k"] = params.top_k
        if tools:
            kwargs["tools"] = to_anthropic_tools(tools)
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

        Maps raw stream events: text deltas are forwarded as they arrive,
        ``tool_use`` blocks are emitted when their block closes.
        """
        stream = await self.client.messages.create(
            **self._request_kwargs(system_prompt, messages, tools, params)
        )

        # content block index -> {id, name, json}
        tool_blocks: dict[int, dict[str, str]] = {}
        stop_reason: str | None = None

        async for event in stream:
            if event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    tool_blocks[event.index] = {"id": block.id, "name": block.name, "json": ""}
            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta":
                    yield TextChunk(delta.text)
                elif delta.type == "input_json_delta" and event.index in tool_blocks:
                    tool_blocks[event.index]["json"] += delta.partial_json
            elif event.type == "content_block_stop":
                entry = tool_blocks.pop(event.index, None)
                if entry is not None:
                    yield ToolCallChunk(
                        id=entry["id"],
                        name=entry["name"],
                        arguments=parse_tool_arguments(entry["json"], entry["name"]),
                    )
            elif event.type == "message_delta":
                if event.delta.stop_reason is not None:
                    stop_reason = event.delta.stop_reason

        yield FinishChunk(normalize_finish_reason(stop_reason))

    async def aclose(self) -> None:
        await self.client.close()
