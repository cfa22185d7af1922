"""Types for external tool server connections."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

from openwork.errors import ConfigurationError, DispatchErrorCode
from openwork.schema import (
    NAME_SEPARATOR,
    CapabilityDescriptor,
    parse_tool_name,
    qualify_tool_name,
)

SERVERS_FILE_VERSION = 1


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Server configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _ServerConfigBase:
    id: str
    name: str
    description: str | None = None
    enabled: bool = True

    def _check_id(self) -> None:
        if not self.id:
            raise ConfigurationError("Server id must not be empty")
        if NAME_SEPARATOR in self.id:
            raise ConfigurationError(
                f"Server id {self.id!r} must not contain {NAME_SEPARATOR!r}"
            )
        if not self.name:
            raise ConfigurationError(f"Server {self.id} must have a name")

    def _base_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "name": self.name, "enabled": self.enabled}
        if self.description is not None:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class StdioServerConfig(_ServerConfigBase):
    """A tool server spawned as a local process speaking over stdin/stdout."""

    command: str = ""
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None
    transport: Literal["stdio"] = "stdio"

    def __post_init__(self) -> None:
        self._check_id()
        if not self.command:
            raise ConfigurationError(f"Server {self.id}: stdio transport requires a command")

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result.update(transport="stdio", command=self.command, args=list(self.args))
        if self.env is not None:
            result["env"] = dict(self.env)
        if self.cwd is not None:
            result["cwd"] = self.cwd
        return result


@dataclass(frozen=True)
class SSEServerConfig(_ServerConfigBase):
    """A network tool server reached over a server-sent-events stream."""

    url: str = ""
    headers: dict[str, str] | None = None
    transport: Literal["sse"] = "sse"

    def __post_init__(self) -> None:
        self._check_id()
        if not self.url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Server {self.id}: invalid url {self.url!r}")

    def to_dict(self) -> dict[str, Any]:
        result = self._base_dict()
        result.update(transport="sse", url=self.url)
        if self.headers is not None:
            result["headers"] = dict(self.headers)
        return result


ServerConfig = Union[StdioServerConfig, SSEServerConfig]


def server_config_from_dict(data: dict[str, Any]) -> ServerConfig:
    """Build a server config from its stored form, dispatching on ``transport``."""
    transport = data.get("transport")
    common = {
        "id": data.get("id", ""),
        "name": data.get("name", ""),
        "description": data.get("description"),
        "enabled": data.get("enabled", True),
    }
    if transport == "stdio":
        return StdioServerConfig(
            **common,
            command=data.get("command", ""),
            args=tuple(data.get("args") or ()),
            env=data.get("env"),
            cwd=data.get("cwd"),
        )
    if transport == "sse":
        return SSEServerConfig(**common, url=data.get("url", ""), headers=data.get("headers"))
    raise ConfigurationError(f"Unsupported transport: {transport}")


# ---------------------------------------------------------------------------
# State and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerState:
    """Point-in-time snapshot of one server connection."""

    config: ServerConfig
    status: ConnectionStatus
    error: str | None = None
    tools: tuple[CapabilityDescriptor, ...] = ()
    connected_at: int | None = None

    @property
    def server_id(self) -> str:
        return self.config.id


@dataclass(frozen=True)
class CallResult:
    """Uniform outcome of a tool invocation on a server."""

    success: bool
    result: Any = None
    error: str | None = None
    code: DispatchErrorCode | None = None

    @classmethod
    def ok(cls, result: Any) -> CallResult:
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str, code: DispatchErrorCode | None = None) -> CallResult:
        return cls(success=False, error=error, code=code)


@dataclass
class ServersFile:
    """On-disk list of configured servers."""

    version: int = SERVERS_FILE_VERSION
    servers: list[ServerConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServersFile:
        return cls(
            version=data.get("version", SERVERS_FILE_VERSION),
            servers=[server_config_from_dict(s) for s in data.get("servers", [])],
        )

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "servers": [s.to_dict() for s in self.servers]}


__all__ = [
    "CallResult",
    "CapabilityDescriptor",
    "ConnectionStatus",
    "SSEServerConfig",
    "ServerConfig",
    "ServerState",
    "ServersFile",
    "StdioServerConfig",
    "parse_tool_name",
    "qualify_tool_name",
    "server_config_from_dict",
]
