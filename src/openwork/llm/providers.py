"""Provider catalog and factory."""

from __future__ import annotations

from openwork.config import ProviderConfig
from openwork.errors import ConfigurationError
from openwork.llm.anthropic import AnthropicProvider
from openwork.llm.base import ModelProvider
from openwork.llm.openai import OpenAIProvider

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

PROVIDER_MODELS: dict[str, list[str]] = {
    "anthropic": [
        "claude-sonnet-4-20250514",
        "claude-opus-4-20250514",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
    ],
    "openai": [
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-4-turbo",
        "gpt-4",
        "gpt-3.5-turbo",
        "o1",
        "o1-mini",
    ],
    "google": [
        "gemini-2.0-flash-exp",
        "gemini-1.5-pro",
        "gemini-1.5-flash",
        "gemini-1.5-flash-8b",
    ],
    "ollama": [
        "llama3.2",
        "llama3.1",
        "mistral",
        "codellama",
        "deepseek-coder",
        "qwen2.5-coder",
    ],
}

DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "google": "gemini-1.5-pro",
    "ollama": "llama3.2",
}


def is_valid_model(provider_id: str, model_id: str) -> bool:
    """Whether ``model_id`` is a known model of ``provider_id``.

    Ollama serves whatever models are pulled locally, so any id is accepted.
    """
    if provider_id == "ollama":
        return True
    return model_id in PROVIDER_MODELS.get(provider_id, [])


def create_provider(provider_id: str, config: ProviderConfig | None = None) -> ModelProvider:
    """
    Create a model provider.

    Raises:
        ConfigurationError: ``provider_id`` is unknown.
    """
    config = config or ProviderConfig.from_env()
    if provider_id == "anthropic":
        return AnthropicProvider(api_key=config.anthropic_api_key)
    if provider_id == "openai":
        return OpenAIProvider(api_key=config.openai_api_key, base_url=config.openai_base_url)
    if provider_id == "google":
        # Gemini through its OpenAI-compatible endpoint
        return OpenAIProvider(api_key=config.google_api_key, base_url=GEMINI_OPENAI_BASE_URL)
    if provider_id == "ollama":
        return OpenAIProvider(api_key="ollama", base_url=config.ollama_base_url)
    raise ConfigurationError(f"Unknown provider: {provider_id}")
