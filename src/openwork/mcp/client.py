"""
Connection to one external tool server.

``ServerConnection`` is a small state machine::

    disconnected -> connecting -> connected
    connecting   -> error
    connected    -> error | disconnected
    error        -> disconnected | connecting

Only ``connect``/``disconnect`` and transport callbacks move it between
states. ``invoke`` never raises: every outcome becomes a ``CallResult``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import partial
from typing import Any

from openwork.errors import DispatchErrorCode, ServerConnectionError
from openwork.logging import get_logger
from openwork.mcp.transport import (
    ToolServerTransport,
    TransportClosedError,
    create_transport,
)
from openwork.mcp.types import (
    CallResult,
    ConnectionStatus,
    ServerConfig,
    ServerState,
)
from openwork.models import now_ms
from openwork.schema import CapabilityDescriptor

logger = get_logger("mcp.client")

TransportFactory = Callable[[ServerConfig], ToolServerTransport]

NOT_CONNECTED_MESSAGE = "Not connected to MCP server"


class ServerConnection:
    """
    Lifecycle and invocation for a single tool server.

    Example:
        conn = ServerConnection(config, connect_timeout=10)
        await conn.connect()
        result = await conn.invoke("ping", {})
        await conn.disconnect()
    """

    def __init__(
        self,
        config: ServerConfig,
        transport_factory: TransportFactory = create_transport,
        connect_timeout: float | None = 30.0,
        call_timeout: float | None = 60.0,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout

        self._status = ConnectionStatus.DISCONNECTED
        self._error: str | None = None
        self._tools: tuple[CapabilityDescriptor, ...] = ()
        self._connected_at: int | None = None
        self._transport: ToolServerTransport | None = None

        # Bumped by every connect attempt and every disconnect so a stale
        # attempt can tell it has been superseded.
        self._generation = 0
        self._settled: asyncio.Event | None = None
        # Set when the current session ends; releases in-flight invocations.
        self._closed = asyncio.Event()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def tools(self) -> tuple[CapabilityDescriptor, ...]:
        return self._tools

    @property
    def connected_at(self) -> int | None:
        return self._connected_at

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    def state(self) -> ServerState:
        return ServerState(
            config=self._config,
            status=self._status,
            error=self._error,
            tools=self._tools,
            connected_at=self._connected_at,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the transport and discover capabilities.

        A no-op when already connected. When an attempt is already in
        flight, waits for it instead of starting another one.

        Raises:
            ServerConnectionError: the transport could not be opened, or
                capability discovery failed or timed out.
        """
        if self._status is ConnectionStatus.CONNECTED:
            return
        if self._status is ConnectionStatus.CONNECTING and self._settled is not None:
            await self._settled.wait()
            if self._status is not ConnectionStatus.CONNECTED:
                raise ServerConnectionError(self.id, self._error or "Connection attempt failed")
            return

        self._generation += 1
        generation = self._generation
        settled = asyncio.Event()
        self._settled = settled
        self._status = ConnectionStatus.CONNECTING
        self._error = None
        logger.info("Connecting to server %s (%s)", self.id, self._config.transport)

        try:
            try:
                transport = self._transport_factory(self._config)
            except Exception as e:
                self._status = ConnectionStatus.ERROR
                self._error = str(e) or type(e).__name__
                raise ServerConnectionError(self.id, self._error) from e
            self._transport = transport
            transport.on_error = partial(self._on_transport_error, transport)
            transport.on_close = partial(self._on_transport_closed, transport)
            await self._establish(transport, generation)
        finally:
            settled.set()

    async def _establish(self, transport: ToolServerTransport, generation: int) -> None:
        try:
            tools = await asyncio.wait_for(
                self._open_and_discover(transport), timeout=self.connect_timeout,
            )
        except asyncio.CancelledError:
            if generation == self._generation:
                self._transport = None
                self._status = ConnectionStatus.DISCONNECTED
                await self._release(transport)
            raise
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                message = f"Connection timed out after {self.connect_timeout}s"
            else:
                message = str(e) or type(e).__name__
            if generation != self._generation:
                raise ServerConnectionError(self.id, "Connection aborted") from e
            self._transport = None
            self._status = ConnectionStatus.ERROR
            self._error = message
            self._tools = ()
            await self._release(transport)
            logger.warning("Failed to connect to server %s: %s", self.id, message)
            raise ServerConnectionError(self.id, message) from e

        if generation != self._generation:
            # disconnect() ran while we were connecting and already released
            # the transport.
            raise ServerConnectionError(self.id, "Connection aborted")

        self._tools = tuple(tools)
        self._connected_at = now_ms()
        self._closed = asyncio.Event()
        self._status = ConnectionStatus.CONNECTED
        logger.info("Connected to server %s (%d tools)", self.id, len(self._tools))

    async def _open_and_discover(
        self, transport: ToolServerTransport,
    ) -> list[CapabilityDescriptor]:
        await transport.open()
        raw_tools = await transport.list_tools()
        descriptors: list[CapabilityDescriptor] = []
        for raw in raw_tools:
            if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
                logger.debug("Skipping malformed tool from %s: %r", self.id, raw)
                continue
            descriptors.append(
                CapabilityDescriptor.from_tool_info(self.id, self._config.name, raw)
            )
        return descriptors

    async def disconnect(self) -> None:
        """Release the transport and reset to ``disconnected``. Never raises."""
        self._generation += 1
        transport = self._transport
        self._transport = None
        previous = self._status
        self._status = ConnectionStatus.DISCONNECTED
        self._error = None
        self._tools = ()
        self._connected_at = None
        self._closed.set()
        if transport is not None:
            await self._release(transport)
        if previous is not ConnectionStatus.DISCONNECTED:
            logger.info("Disconnected from server %s", self.id)

    async def _release(self, transport: ToolServerTransport) -> None:
        transport.on_error = None
        transport.on_close = None
        try:
            await transport.close()
        except Exception as e:
            logger.debug("Ignoring error while closing %s: %s", self.id, e)

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _on_transport_error(self, transport: ToolServerTransport, exc: Exception) -> None:
        if transport is not self._transport or not self.is_connected:
            return
        logger.warning("Server %s transport error: %s", self.id, exc)
        self._drop_session(ConnectionStatus.ERROR, str(exc) or type(exc).__name__)

    def _on_transport_closed(self, transport: ToolServerTransport) -> None:
        if transport is not self._transport or not self.is_connected:
            return
        logger.info("Server %s closed the connection", self.id)
        self._drop_session(ConnectionStatus.DISCONNECTED, None)

    def _drop_session(self, status: ConnectionStatus, error: str | None) -> None:
        self._transport = None
        self._status = status
        self._error = error
        self._tools = ()
        self._connected_at = None
        self._closed.set()

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        timeout: float | None = None,
    ) -> CallResult:
        """
        Call a tool on the server.

        Rejected locally, without any transport I/O, unless connected.
        ``timeout`` defaults to ``call_timeout``.
        """
        transport = self._transport
        if not self.is_connected or transport is None:
            return CallResult.fail(NOT_CONNECTED_MESSAGE, DispatchErrorCode.NOT_CONNECTED)

        if timeout is None:
            timeout = self.call_timeout
        closed = self._closed
        logger.debug("Invoking %s on %s", tool_name, self.id)

        call = asyncio.ensure_future(transport.call_tool(tool_name, arguments))
        closed_wait = asyncio.ensure_future(closed.wait())
        try:
            done, _ = await asyncio.wait(
                {call, closed_wait}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            closed_wait.cancel()

        if call not in done:
            call.cancel()
            if closed.is_set():
                return CallResult.fail(NOT_CONNECTED_MESSAGE, DispatchErrorCode.NOT_CONNECTED)
            return CallResult.fail(
                f"Tool {tool_name} timed out after {timeout}s", DispatchErrorCode.TIMEOUT,
            )

        if call.cancelled():
            return CallResult.fail("Tool call was cancelled", DispatchErrorCode.TRANSPORT_ERROR)
        exc = call.exception()
        if exc is not None:
            if isinstance(exc, TransportClosedError):
                self._on_transport_closed(transport)
            return CallResult.fail(
                str(exc) or type(exc).__name__, DispatchErrorCode.TRANSPORT_ERROR,
            )
        return normalize_result(call.result())


def normalize_result(value: Any) -> CallResult:
    """
    Map the shapes a server may answer with onto ``CallResult``.

    - ``{"toolResult": v}`` succeeds with ``v``
    - ``{"content": [...]}`` succeeds with the text blocks joined by newlines,
      or fails with that text when ``isError`` is set
    - anything else succeeds with the value itself
    """
    if not isinstance(value, dict):
        return CallResult.ok(value)
    if "toolResult" in value:
        return CallResult.ok(value["toolResult"])

    content = value.get("content")
    if not isinstance(content, list):
        return CallResult.ok(content if "content" in value else value)

    text = "\n".join(
        block.get("text", "")
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    )
    if value.get("isError"):
        return CallResult.fail(text or "Tool execution failed", DispatchErrorCode.TOOL_ERROR)
    if not text and value.get("structuredContent") is not None:
        return CallResult.ok(value["structuredContent"])
    return CallResult.ok(text)
