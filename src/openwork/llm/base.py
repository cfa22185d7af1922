"""
Model provider interface.

A provider turns (system prompt, history, tool catalog, settings) into a
stream of chunks: text fragments, complete tool call requests, and one
final finish chunk. The catalog is supplied on every call; providers keep
no per-agent registration.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from openwork.events import (
    FINISH_CONTENT_FILTER,
    FINISH_LENGTH,
    FINISH_OTHER,
    FINISH_STOP,
    FINISH_TOOL_CALLS,
)
from openwork.logging import get_logger
from openwork.models import ConversationMessage, ModelSettings

logger = get_logger("llm")


@dataclass(frozen=True)
class ToolSpec:
    """A tool as described to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class ToolCallChunk:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FinishChunk:
    reason: str = FINISH_STOP


ModelChunk = Union[TextChunk, ToolCallChunk, FinishChunk]


_FINISH_REASONS = {
    "stop": FINISH_STOP,
    "end_turn": FINISH_STOP,
    "stop_sequence": FINISH_STOP,
    "pause_turn": FINISH_STOP,
    "tool_calls": FINISH_TOOL_CALLS,
    "tool_use": FINISH_TOOL_CALLS,
    "function_call": FINISH_TOOL_CALLS,
    "length": FINISH_LENGTH,
    "max_tokens": FINISH_LENGTH,
    "content_filter": FINISH_CONTENT_FILTER,
    "refusal": FINISH_CONTENT_FILTER,
}


def normalize_finish_reason(raw: str | None) -> str:
    """Map a vendor finish reason onto the runtime's vocabulary."""
    if raw is None:
        return FINISH_STOP
    return _FINISH_REASONS.get(raw, FINISH_OTHER)


def parse_tool_arguments(raw: str | dict[str, Any] | None, tool_name: str) -> dict[str, Any]:
    """Decode streamed tool arguments. Malformed JSON yields an empty mapping."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Malformed arguments for tool %s: %r", tool_name, raw[:200])
        return {}
    return value if isinstance(value, dict) else {}


class ModelProvider(ABC):
    """
    Abstract base class for model providers.

    Example implementation:

        class EchoProvider(ModelProvider):
            async def stream_completion(self, system_prompt, messages, tools, params):
                yield TextChunk(messages[-1].content)
                yield FinishChunk("stop")
    """

    @abstractmethod
    def stream_completion(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSpec],
        params: ModelSettings,
    ) -> AsyncIterator[ModelChunk]:
        """Stream one model step. Implementations are async generators."""

    async def aclose(self) -> None:
        """Release client resources."""
