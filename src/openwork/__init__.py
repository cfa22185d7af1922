"""
Openwork - a tool-orchestration runtime for LLM agents.

An agent profile names a system prompt, skills, built-in tools, and external
tool servers. The execution engine runs the model-call / tool-call loop for
one turn and streams typed events; tool servers are reached through a
connection pool speaking the Model Context Protocol.

Example:
    from openwork import Runtime, RuntimeConfig

    async with Runtime(RuntimeConfig.from_env()) as runtime:
        agent = runtime.create_agent("Helper", "You are a helpful assistant.")
        session = runtime.storage.create_session(agent.id)
        async for event in runtime.chat(session.id, "What's in this repo?"):
            print(event)
"""

from openwork.config import DEFAULT_HOME, ProviderConfig, RuntimeConfig
from openwork.engine import CatalogEntry, ExecutionEngine, TurnSnapshot
from openwork.errors import (
    ConfigurationError,
    DispatchErrorCode,
    DuplicateServerError,
    ModelError,
    OpenworkError,
    SchemaValidationError,
    ServerConnectionError,
    ServerNotFoundError,
    SkillParseError,
    ToolExecutionError,
)
from openwork.events import (
    FINISH_CONTENT_FILTER,
    FINISH_LENGTH,
    FINISH_OTHER,
    FINISH_STEP_LIMIT,
    FINISH_STOP,
    FINISH_TOOL_CALLS,
    ErrorEvent,
    StreamEvent,
    TextDelta,
    ToolCallFinished,
    ToolCallStarted,
    TurnFinished,
    TurnStarted,
    is_terminal,
)
from openwork.llm import ModelProvider, create_provider
from openwork.logging import get_logger, setup_logging
from openwork.mcp import (
    CallResult,
    ConnectionStatus,
    ServerConfig,
    ServerConnection,
    ServerPool,
    SSEServerConfig,
    StdioServerConfig,
)
from openwork.models import (
    AgentProfile,
    AgentSettings,
    ConversationMessage,
    ModelSettings,
    ServerReference,
    SessionInfo,
    SkillReference,
    SystemPromptSource,
    ToolConfiguration,
    ToolInvocationRequest,
    ToolInvocationResult,
    create_agent_profile,
)
from openwork.runtime import Runtime
from openwork.schema import CapabilityDescriptor, adapt_schema, parse_tool_name, qualify_tool_name
from openwork.skills import Skill, SkillDiscovery, SkillInjector, SkillParser
from openwork.storage import FileStorage
from openwork.tools import BaseTool, ToolRegistry, create_builtin_tools
from openwork.transcript import TranscriptBuilder, collect_events

__version__ = "0.1.0"

__all__ = [
    # Runtime
    "Runtime",
    "ExecutionEngine",
    "CatalogEntry",
    "TurnSnapshot",
    # Config
    "DEFAULT_HOME",
    "ProviderConfig",
    "RuntimeConfig",
    # Models
    "AgentProfile",
    "AgentSettings",
    "ConversationMessage",
    "ModelSettings",
    "ServerReference",
    "SessionInfo",
    "SkillReference",
    "SystemPromptSource",
    "ToolConfiguration",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "create_agent_profile",
    # Events
    "FINISH_CONTENT_FILTER",
    "FINISH_LENGTH",
    "FINISH_OTHER",
    "FINISH_STEP_LIMIT",
    "FINISH_STOP",
    "FINISH_TOOL_CALLS",
    "ErrorEvent",
    "StreamEvent",
    "TextDelta",
    "ToolCallFinished",
    "ToolCallStarted",
    "TurnFinished",
    "TurnStarted",
    "is_terminal",
    "TranscriptBuilder",
    "collect_events",
    # Errors
    "ConfigurationError",
    "DispatchErrorCode",
    "DuplicateServerError",
    "ModelError",
    "OpenworkError",
    "SchemaValidationError",
    "ServerConnectionError",
    "ServerNotFoundError",
    "SkillParseError",
    "ToolExecutionError",
    # Tool servers
    "CallResult",
    "CapabilityDescriptor",
    "ConnectionStatus",
    "SSEServerConfig",
    "ServerConfig",
    "ServerConnection",
    "ServerPool",
    "StdioServerConfig",
    "adapt_schema",
    "parse_tool_name",
    "qualify_tool_name",
    # Skills
    "Skill",
    "SkillDiscovery",
    "SkillInjector",
    "SkillParser",
    # Tools
    "BaseTool",
    "ToolRegistry",
    "create_builtin_tools",
    # Providers
    "ModelProvider",
    "create_provider",
    # Storage
    "FileStorage",
    # Logging
    "get_logger",
    "setup_logging",
]
