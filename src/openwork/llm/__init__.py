"""Model providers."""

from openwork.llm.anthropic import AnthropicProvider
from openwork.llm.base import (
    FinishChunk,
    ModelChunk,
    ModelProvider,
    TextChunk,
    ToolCallChunk,
    ToolSpec,
    normalize_finish_reason,
)
from openwork.llm.openai import OpenAIProvider
from openwork.llm.providers import (
    DEFAULT_MODELS,
    PROVIDER_MODELS,
    create_provider,
    is_valid_model,
)

__all__ = [
    "AnthropicProvider",
    "DEFAULT_MODELS",
    "FinishChunk",
    "ModelChunk",
    "ModelProvider",
    "OpenAIProvider",
    "PROVIDER_MODELS",
    "TextChunk",
    "ToolCallChunk",
    "ToolSpec",
    "create_provider",
    "is_valid_model",
    "normalize_finish_reason",
]
