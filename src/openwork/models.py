"""
Data models for agents and conversations.

Records serialize to the camelCase JSON layout used on disk and
deserialize leniently: missing keys fall back to defaults.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from openwork.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BUILTIN_TOOL_IDS = (
    "code_write",
    "code_read",
    "bash_execute",
    "file_search",
    "web_search",
    "browser",
)

DEFAULT_BUILTIN_TOOLS = ["code_write", "code_read", "bash_execute"]

PROVIDER_IDS = ("anthropic", "openai", "google", "ollama")

MessageRole = Literal["user", "assistant", "system", "tool"]


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Agent profile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SystemPromptSource:
    """Where an agent's system prompt comes from: inline text or a file."""

    kind: Literal["inline", "file"] = "inline"
    content: str = ""
    path: str = ""

    @classmethod
    def inline(cls, content: str) -> SystemPromptSource:
        return cls(kind="inline", content=content)

    @classmethod
    def file(cls, path: str) -> SystemPromptSource:
        return cls(kind="file", path=path)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str | None) -> SystemPromptSource:
        if data is None:
            return cls()
        if isinstance(data, str):
            return cls.inline(data)
        kind = data.get("type", "inline")
        if kind == "file":
            if not data.get("path"):
                raise ConfigurationError("File system prompt requires a path")
            return cls.file(data["path"])
        if kind != "inline":
            raise ConfigurationError(f"Unknown system prompt type: {kind}")
        return cls.inline(data.get("content", ""))

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "file":
            return {"type": "file", "path": self.path}
        return {"type": "inline", "content": self.content}


@dataclass(frozen=True)
class SkillReference:
    """Reference from an agent to a stored skill document."""

    id: str
    path: str = ""
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillReference:
        return cls(
            id=data["id"],
            path=data.get("path", ""),
            enabled=data.get("enabled", True),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "path": self.path, "enabled": self.enabled}


@dataclass(frozen=True)
class ServerReference:
    """Reference from an agent to an external tool server.

    ``enabled_tools`` is an allow-list of server-local capability names;
    ``None`` exposes every capability the server offers.
    """

    server_id: str
    enabled_tools: tuple[str, ...] | None = None

    def allows(self, tool_name: str) -> bool:
        return self.enabled_tools is None or tool_name in self.enabled_tools

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerReference:
        enabled = data.get("enabledTools")
        return cls(
            server_id=data["serverId"],
            enabled_tools=tuple(enabled) if enabled is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"serverId": self.server_id}
        if self.enabled_tools is not None:
            result["enabledTools"] = list(self.enabled_tools)
        return result


@dataclass(frozen=True)
class ToolConfiguration:
    """Built-in tools and external servers enabled for an agent."""

    builtin: tuple[str, ...] = tuple(DEFAULT_BUILTIN_TOOLS)
    integrations: tuple[str, ...] = ()
    mcp: tuple[ServerReference, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ToolConfiguration:
        data = data or {}
        return cls(
            builtin=tuple(data.get("builtin", DEFAULT_BUILTIN_TOOLS)),
            integrations=tuple(data.get("integrations", [])),
            mcp=tuple(ServerReference.from_dict(r) for r in data.get("mcp", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "builtin": list(self.builtin),
            "integrations": list(self.integrations),
            "mcp": [r.to_dict() for r in self.mcp],
        }


@dataclass(frozen=True)
class ModelSettings:
    """Model selection and sampling parameters."""

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    temperature: float = 0.7
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ModelSettings:
        data = data or {}
        provider = data.get("provider", "anthropic")
        if provider not in PROVIDER_IDS:
            raise ConfigurationError(f"Unknown LLM provider: {provider}")
        return cls(
            provider=provider,
            model=data.get("model", "claude-sonnet-4-20250514"),
            temperature=data.get("temperature", 0.7),
            max_tokens=data.get("maxTokens"),
            top_p=data.get("topP"),
            top_k=data.get("topK"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "provider": self.provider,
            "model": self.model,
            "temperature": self.temperature,
        }
        if self.max_tokens is not None:
            result["maxTokens"] = self.max_tokens
        if self.top_p is not None:
            result["topP"] = self.top_p
        if self.top_k is not None:
            result["topK"] = self.top_k
        return result


@dataclass(frozen=True)
class AgentSettings:
    """Behavioral settings for the turn loop."""

    max_tool_calls: int = 25
    stream_responses: bool = True
    confirm_destructive_actions: bool = True
    working_directory: str | None = None
    trigger_skills: bool = False  # Re-inject skills whose triggers match live input
    tool_call_timeout: float | None = None  # Overrides the runtime default

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AgentSettings:
        data = data or {}
        max_tool_calls = data.get("maxToolCalls", 25)
        if not isinstance(max_tool_calls, int) or max_tool_calls < 1:
            raise ConfigurationError("maxToolCalls must be a positive integer")
        return cls(
            max_tool_calls=max_tool_calls,
            stream_responses=data.get("streamResponses", True),
            confirm_destructive_actions=data.get("confirmDestructiveActions", True),
            working_directory=data.get("workingDirectory"),
            trigger_skills=data.get("triggerSkills", False),
            tool_call_timeout=data.get("toolCallTimeout"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "maxToolCalls": self.max_tool_calls,
            "streamResponses": self.stream_responses,
            "confirmDestructiveActions": self.confirm_destructive_actions,
            "triggerSkills": self.trigger_skills,
        }
        if self.working_directory is not None:
            result["workingDirectory"] = self.working_directory
        if self.tool_call_timeout is not None:
            result["toolCallTimeout"] = self.tool_call_timeout
        return result


@dataclass(frozen=True)
class AgentMetadata:
    created_at: int = 0
    updated_at: int = 0
    author: str | None = None
    tags: tuple[str, ...] = ()
    version: str = "1.0.0"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AgentMetadata:
        data = data or {}
        return cls(
            created_at=data.get("createdAt", 0),
            updated_at=data.get("updatedAt", 0),
            author=data.get("author"),
            tags=tuple(data.get("tags") or ()),
            version=data.get("version", "1.0.0"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
        }
        if self.author is not None:
            result["author"] = self.author
        if self.tags:
            result["tags"] = list(self.tags)
        return result


@dataclass(frozen=True)
class AgentProfile:
    """
    A configured agent: persona, prompt, skills, tools, and model settings.

    Profiles are frozen. Use ``with_changes`` to derive an updated copy;
    an engine only sees the new copy after ``update_config``.
    """

    id: str
    name: str
    system_prompt: SystemPromptSource = field(default_factory=SystemPromptSource)
    description: str | None = None
    skills: tuple[SkillReference, ...] = ()
    tools: ToolConfiguration = field(default_factory=ToolConfiguration)
    llm: ModelSettings = field(default_factory=ModelSettings)
    settings: AgentSettings = field(default_factory=AgentSettings)
    metadata: AgentMetadata = field(default_factory=AgentMetadata)

    def with_changes(self, **changes: Any) -> AgentProfile:
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentProfile:
        """Build a profile from its stored JSON form."""
        try:
            agent_id = data["id"]
            name = data["name"]
        except KeyError as e:
            raise ConfigurationError(f"Agent config missing field: {e.args[0]}") from e
        return cls(
            id=agent_id,
            name=name,
            description=data.get("description"),
            system_prompt=SystemPromptSource.from_dict(data.get("systemPrompt")),
            skills=tuple(SkillReference.from_dict(s) for s in data.get("skills", [])),
            tools=ToolConfiguration.from_dict(data.get("tools")),
            llm=ModelSettings.from_dict(data.get("llm")),
            settings=AgentSettings.from_dict(data.get("settings")),
            metadata=AgentMetadata.from_dict(data.get("metadata")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "systemPrompt": self.system_prompt.to_dict(),
            "skills": [s.to_dict() for s in self.skills],
            "tools": self.tools.to_dict(),
            "llm": self.llm.to_dict(),
            "settings": self.settings.to_dict(),
            "metadata": self.metadata.to_dict(),
        }
        if self.description is not None:
            result["description"] = self.description
        return result


def create_agent_profile(
    name: str,
    system_prompt: SystemPromptSource | str = "",
    **fields: Any,
) -> AgentProfile:
    """Create a new profile with a fresh id and creation timestamps."""
    if isinstance(system_prompt, str):
        system_prompt = SystemPromptSource.inline(system_prompt)
    now = now_ms()
    fields.setdefault("metadata", AgentMetadata(created_at=now, updated_at=now))
    return AgentProfile(id=new_id(), name=name, system_prompt=system_prompt, **fields)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolInvocationRequest:
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolInvocationRequest:
        return cls(id=data["id"], name=data["toolName"], arguments=data.get("args") or {})

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "toolName": self.name, "args": self.arguments}


@dataclass(frozen=True)
class ToolInvocationResult:
    """Outcome of one tool call, correlated by ``invocation_id``."""

    invocation_id: str
    name: str
    success: bool
    result: Any = None
    error: str | None = None
    code: str | None = None

    @property
    def content(self) -> str:
        """Text fed back to the model for this result."""
        if not self.success:
            return f"Error: {self.error or 'Tool execution failed'}"
        if isinstance(self.result, str):
            return self.result
        if self.result is None:
            return ""
        try:
            return json.dumps(self.result, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(self.result)

    @classmethod
    def failure(
        cls, invocation_id: str, name: str, error: str, code: str | None = None,
    ) -> ToolInvocationResult:
        return cls(invocation_id=invocation_id, name=name, success=False, error=error, code=code)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolInvocationResult:
        return cls(
            invocation_id=data["toolCallId"],
            name=data.get("toolName", ""),
            success=data.get("success", True),
            result=data.get("result"),
            error=data.get("error"),
            code=data.get("code"),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "toolCallId": self.invocation_id,
            "toolName": self.name,
            "success": self.success,
            "result": self.result,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.code is not None:
            result["code"] = self.code
        return result


@dataclass(frozen=True)
class ConversationMessage:
    """One entry in a session's append-only history."""

    role: MessageRole
    content: str = ""
    id: str = field(default_factory=new_id)
    tool_calls: tuple[ToolInvocationRequest, ...] = ()
    tool_results: tuple[ToolInvocationResult, ...] = ()
    timestamp: int = field(default_factory=now_ms)

    @classmethod
    def user(cls, content: str) -> ConversationMessage:
        return cls(role="user", content=content)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationMessage:
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content", ""),
            tool_calls=tuple(
                ToolInvocationRequest.from_dict(c) for c in data.get("toolCalls") or ()
            ),
            tool_results=tuple(
                ToolInvocationResult.from_dict(r) for r in data.get("toolResults") or ()
            ),
            timestamp=data.get("timestamp", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.tool_calls:
            result["toolCalls"] = [c.to_dict() for c in self.tool_calls]
        if self.tool_results:
            result["toolResults"] = [r.to_dict() for r in self.tool_results]
        return result


@dataclass(frozen=True)
class SessionInfo:
    """Session metadata."""

    id: str
    agent_id: str
    name: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionInfo:
        return cls(
            id=data["id"],
            agent_id=data["agentId"],
            name=data.get("name"),
            created_at=data.get("createdAt", 0),
            updated_at=data.get("updatedAt", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "agentId": self.agent_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.name is not None:
            result["name"] = self.name
        return result
