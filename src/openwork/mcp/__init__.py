"""External tool server connections (Model Context Protocol)."""

from openwork.mcp.client import ServerConnection, normalize_result
from openwork.mcp.manager import ServerPool
from openwork.mcp.transport import (
    MCPTransport,
    ToolServerTransport,
    TransportClosedError,
    TransportError,
    create_transport,
)
from openwork.mcp.types import (
    CallResult,
    ConnectionStatus,
    ServerConfig,
    ServerState,
    ServersFile,
    SSEServerConfig,
    StdioServerConfig,
    server_config_from_dict,
)

__all__ = [
    "CallResult",
    "ConnectionStatus",
    "MCPTransport",
    "SSEServerConfig",
    "ServerConfig",
    "ServerConnection",
    "ServerPool",
    "ServerState",
    "ServersFile",
    "StdioServerConfig",
    "ToolServerTransport",
    "TransportClosedError",
    "TransportError",
    "create_transport",
    "normalize_result",
    "server_config_from_dict",
]
