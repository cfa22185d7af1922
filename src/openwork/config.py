"""
Configuration for the runtime.

Settings can be loaded from YAML, from the environment (a ``.env`` file is
read first), or constructed programmatically.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_HOME = Path.home() / ".openwork"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class ProviderConfig:
    """Credentials and endpoints for model providers."""

    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    google_api_key: str | None = None
    ollama_base_url: str = "http://localhost:11434/v1"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        return cls(
            anthropic_api_key=data.get("anthropic_api_key"),
            openai_api_key=data.get("openai_api_key"),
            openai_base_url=data.get("openai_base_url"),
            google_api_key=data.get("google_api_key"),
            ollama_base_url=data.get("ollama_base_url", "http://localhost:11434/v1"),
        )

    @classmethod
    def from_env(cls) -> ProviderConfig:
        return cls(
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            openai_base_url=os.environ.get("OPENAI_BASE_URL"),
            google_api_key=os.environ.get("GOOGLE_API_KEY"),
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434/v1"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "anthropic_api_key": self.anthropic_api_key,
            "openai_api_key": self.openai_api_key,
            "openai_base_url": self.openai_base_url,
            "google_api_key": self.google_api_key,
            "ollama_base_url": self.ollama_base_url,
        }


@dataclass
class RuntimeConfig:
    """
    Main configuration for the runtime.

    Timeouts are in seconds. ``None`` disables a timeout.

    Example YAML:
        storage_dir: ~/.openwork
        skill_dirs:
          - ./skills
        connect_timeout: 30
        call_timeout: 60
        model_timeout: 120
        providers:
          anthropic_api_key: "sk-ant-..."
    """

    # Storage
    storage_dir: Path = field(default_factory=lambda: DEFAULT_HOME)
    skill_dirs: list[Path] = field(default_factory=list)  # Searched after storage skills

    # Timeouts
    connect_timeout: float | None = 30.0  # Transport open + capability discovery
    call_timeout: float | None = 60.0  # One tool invocation
    model_timeout: float | None = 120.0  # Wait for the next streamed model chunk

    # Turn loop
    default_max_tool_calls: int = 25

    providers: ProviderConfig = field(default_factory=ProviderConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuntimeConfig:
        """Create config from a dictionary."""
        storage_dir = data.get("storage_dir")
        return cls(
            storage_dir=Path(storage_dir).expanduser() if storage_dir else DEFAULT_HOME,
            skill_dirs=[Path(p).expanduser() for p in data.get("skill_dirs", [])],
            connect_timeout=data.get("connect_timeout", 30.0),
            call_timeout=data.get("call_timeout", 60.0),
            model_timeout=data.get("model_timeout", 120.0),
            default_max_tool_calls=data.get("default_max_tool_calls", 25),
            providers=ProviderConfig.from_dict(data.get("providers") or {}),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> RuntimeConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> RuntimeConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls, **overrides: Any) -> RuntimeConfig:
        """Create config from environment variables (and ``.env``)."""
        load_dotenv()
        home = os.environ.get("OPENWORK_HOME")
        values: dict[str, Any] = {
            "storage_dir": Path(home).expanduser() if home else DEFAULT_HOME,
            "connect_timeout": _env_float("OPENWORK_CONNECT_TIMEOUT", 30.0),
            "call_timeout": _env_float("OPENWORK_CALL_TIMEOUT", 60.0),
            "model_timeout": _env_float("OPENWORK_MODEL_TIMEOUT", 120.0),
            "providers": ProviderConfig.from_env(),
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "storage_dir": str(self.storage_dir),
            "skill_dirs": [str(p) for p in self.skill_dirs],
            "connect_timeout": self.connect_timeout,
            "call_timeout": self.call_timeout,
            "model_timeout": self.model_timeout,
            "default_max_tool_calls": self.default_max_tool_calls,
            "providers": self.providers.to_dict(),
        }
