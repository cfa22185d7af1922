"""
Pool of external tool server connections.

The pool owns one ``ServerConnection`` per configured server. Servers
connect, fail, and disconnect independently: fan-out operations report a
per-server outcome instead of failing as a whole, and the catalog only ever
lists capabilities of servers that are connected right now.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from openwork.config import RuntimeConfig
from openwork.errors import (
    DispatchErrorCode,
    DuplicateServerError,
    ServerNotFoundError,
)
from openwork.logging import get_logger
from openwork.mcp.client import ServerConnection, TransportFactory
from openwork.mcp.transport import create_transport
from openwork.mcp.types import (
    CallResult,
    ConnectionStatus,
    ServerConfig,
    ServerState,
)
from openwork.models import ServerReference
from openwork.schema import CapabilityDescriptor, parse_tool_name

logger = get_logger("mcp.manager")


class ServerPool:
    """
    Registry and dispatcher for tool server connections.

    Mutations (add, remove, update) are serialized by a lock. Reads take a
    snapshot of the connection map without awaiting, so checking one server
    never waits on another server's I/O.

    Example:
        async with ServerPool() as pool:
            await pool.add_server(config)
            outcomes = await pool.connect_all()
            catalog = pool.get_catalog()
            result = await pool.dispatch("mcp_github_search", {"q": "bug"})
    """

    def __init__(
        self,
        transport_factory: TransportFactory = create_transport,
        connect_timeout: float | None = 30.0,
        call_timeout: float | None = 60.0,
    ) -> None:
        self._transport_factory = transport_factory
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._connections: dict[str, ServerConnection] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        transport_factory: TransportFactory = create_transport,
    ) -> ServerPool:
        return cls(
            transport_factory=transport_factory,
            connect_timeout=config.connect_timeout,
            call_timeout=config.call_timeout,
        )

    async def __aenter__(self) -> ServerPool:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _new_connection(self, config: ServerConfig) -> ServerConnection:
        return ServerConnection(
            config,
            transport_factory=self._transport_factory,
            connect_timeout=self.connect_timeout,
            call_timeout=self.call_timeout,
        )

    def _require(self, server_id: str) -> ServerConnection:
        conn = self._connections.get(server_id)
        if conn is None:
            raise ServerNotFoundError(server_id)
        return conn

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def add_server(self, config: ServerConfig, auto_connect: bool = False) -> None:
        """
        Register a server.

        Raises:
            DuplicateServerError: a server with this id already exists.
            ServerConnectionError: ``auto_connect`` was requested and the
                connection failed. The server stays registered in ``error``.
        """
        async with self._lock:
            if config.id in self._connections:
                raise DuplicateServerError(config.id)
            conn = self._new_connection(config)
            self._connections[config.id] = conn
        logger.debug("Registered server %s", config.id)

        if auto_connect and config.enabled:
            await conn.connect()

    async def remove_server(self, server_id: str) -> bool:
        """Disconnect and forget a server. Returns whether it existed."""
        async with self._lock:
            conn = self._connections.pop(server_id, None)
        if conn is None:
            return False
        await conn.disconnect()
        logger.debug("Removed server %s", server_id)
        return True

    async def update_server(self, server_id: str, config: ServerConfig) -> None:
        """
        Replace a server's configuration.

        The old connection is closed. The new one is connected only if the
        old one was connected.
        """
        async with self._lock:
            existing = self._require(server_id)
            if config.id != server_id and config.id in self._connections:
                raise DuplicateServerError(config.id)
            was_connected = existing.is_connected
            del self._connections[server_id]
            replacement = self._new_connection(config)
            self._connections[config.id] = replacement

        await existing.disconnect()
        if was_connected and config.enabled:
            await replacement.connect()

    async def load_servers(
        self, configs: Iterable[ServerConfig], auto_connect: bool = False,
    ) -> dict[str, Exception | None]:
        """
        Register several servers, optionally connecting them concurrently.

        Ids that are already registered keep their existing connection.
        """
        added: list[str] = []
        for config in configs:
            if self.has_server(config.id):
                logger.debug("Server %s already registered, skipping", config.id)
            else:
                await self.add_server(config)
            added.append(config.id)
        if not auto_connect:
            return {}
        return await self._connect_many(
            [self._connections[sid] for sid in added if sid in self._connections]
        )

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def connect_server(self, server_id: str) -> None:
        await self._require(server_id).connect()

    async def disconnect_server(self, server_id: str) -> None:
        await self._require(server_id).disconnect()

    async def connect_all(self) -> dict[str, Exception | None]:
        """
        Connect every enabled server concurrently.

        Returns a map of server id to ``None`` on success or the exception
        that server's connect raised.
        """
        return await self._connect_many(list(self._connections.values()))

    async def connect_servers(self, server_ids: Iterable[str]) -> dict[str, Exception | None]:
        """Like ``connect_all``, limited to ``server_ids``. Unknown ids are skipped."""
        return await self._connect_many(
            [self._connections[sid] for sid in server_ids if sid in self._connections]
        )

    async def _connect_many(
        self, connections: list[ServerConnection],
    ) -> dict[str, Exception | None]:
        targets = [c for c in connections if c.config.enabled]
        results = await asyncio.gather(
            *(c.connect() for c in targets), return_exceptions=True,
        )
        outcomes: dict[str, Exception | None] = {}
        for conn, result in zip(targets, results):
            if isinstance(result, Exception):
                outcomes[conn.id] = result
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes[conn.id] = None
        failed = sum(1 for r in outcomes.values() if r is not None)
        if failed:
            logger.warning("%d of %d servers failed to connect", failed, len(outcomes))
        return outcomes

    async def disconnect_all(self) -> None:
        await asyncio.gather(*(c.disconnect() for c in list(self._connections.values())))

    async def close(self) -> None:
        """Disconnect every server. The pool stays usable afterwards."""
        await self.disconnect_all()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has_server(self, server_id: str) -> bool:
        return server_id in self._connections

    @property
    def server_ids(self) -> list[str]:
        return list(self._connections)

    @property
    def server_count(self) -> int:
        return len(self._connections)

    @property
    def connected_count(self) -> int:
        return sum(1 for c in list(self._connections.values()) if c.is_connected)

    def get_server_status(self, server_id: str) -> ConnectionStatus | None:
        conn = self._connections.get(server_id)
        return conn.status if conn else None

    def get_server_state(self, server_id: str) -> ServerState | None:
        conn = self._connections.get(server_id)
        return conn.state() if conn else None

    def get_all_server_states(self) -> list[ServerState]:
        return [c.state() for c in list(self._connections.values())]

    # ------------------------------------------------------------------
    # Catalog and dispatch
    # ------------------------------------------------------------------

    def get_catalog(self, server_ids: Iterable[str] | None = None) -> list[CapabilityDescriptor]:
        """Capabilities of connected servers, optionally limited to ``server_ids``."""
        if server_ids is None:
            connections = list(self._connections.values())
        else:
            connections = [
                self._connections[sid] for sid in server_ids if sid in self._connections
            ]
        catalog: list[CapabilityDescriptor] = []
        for conn in connections:
            if conn.is_connected:
                catalog.extend(conn.tools)
        return catalog

    def get_catalog_for(self, refs: Iterable[ServerReference]) -> list[CapabilityDescriptor]:
        """Capabilities of connected referenced servers, filtered by allow-lists."""
        catalog: list[CapabilityDescriptor] = []
        for ref in refs:
            conn = self._connections.get(ref.server_id)
            if conn is None or not conn.is_connected:
                continue
            catalog.extend(t for t in conn.tools if ref.allows(t.name))
        return catalog

    async def dispatch(
        self,
        qualified_name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> CallResult:
        """Invoke ``mcp_<server>_<tool>``. Failures are returned, never raised."""
        parsed = parse_tool_name(qualified_name)
        if parsed is None:
            return CallResult.fail(
                f"Invalid MCP tool ID: {qualified_name}", DispatchErrorCode.INVALID_IDENTIFIER,
            )
        server_id, tool_name = parsed

        conn = self._connections.get(server_id)
        if conn is None:
            return CallResult.fail(f"Server {server_id} not found", DispatchErrorCode.NOT_FOUND)
        if not conn.is_connected:
            return CallResult.fail(
                f"Server {server_id} is not connected", DispatchErrorCode.NOT_CONNECTED,
            )
        return await conn.invoke(tool_name, arguments, timeout=timeout)
