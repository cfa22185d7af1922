"""
Transports to external tool servers.

``ToolServerTransport`` is the seam between a connection's state machine
and the wire protocol. ``MCPTransport`` speaks the Model Context Protocol
through the ``mcp`` SDK; tests substitute in-memory transports.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any

import anyio
from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED

from openwork.errors import ConfigurationError, OpenworkError
from openwork.logging import get_logger
from openwork.mcp.types import ServerConfig, SSEServerConfig, StdioServerConfig

logger = get_logger("mcp.transport")

# How long close() waits for the session to shut down before cancelling it
_CLOSE_TIMEOUT = 5.0

ErrorCallback = Callable[[Exception], None]
CloseCallback = Callable[[], None]


class TransportError(OpenworkError):
    """The transport failed while talking to the server."""


class TransportClosedError(TransportError):
    """The transport is closed; no further calls can be made."""


def unwrap_exception(exc: BaseException) -> BaseException:
    """Return the first leaf of an exception group (anyio wraps task errors)."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    return exc


class ToolServerTransport(ABC):
    """
    One live link to a tool server.

    A transport is opened once and closed once. ``on_error`` fires when the
    link faults after opening; ``on_close`` fires when it goes away without
    ``close()`` having been called.
    """

    def __init__(self) -> None:
        self.on_error: ErrorCallback | None = None
        self.on_close: CloseCallback | None = None

    @abstractmethod
    async def open(self) -> None: ...

    @abstractmethod
    async def list_tools(self) -> list[dict[str, Any]]:
        """Return ``{name, description, inputSchema}`` for each capability."""

    @abstractmethod
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def close(self) -> None: ...

    def _notify_error(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)

    def _notify_close(self) -> None:
        if self.on_close is not None:
            self.on_close()


class MCPTransport(ToolServerTransport):
    """
    MCP client transport over stdio or SSE.

    The SDK's client contexts are anyio task groups that must be exited by
    the task that entered them, so the session lives inside a dedicated
    runner task. ``open`` waits for the runner to finish the handshake and
    ``close`` signals it to unwind.
    """

    def __init__(self, config: ServerConfig) -> None:
        super().__init__()
        self.config = config
        self._session: ClientSession | None = None
        self._runner: asyncio.Task[None] | None = None
        self._ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._startup_error: BaseException | None = None
        self._closing = False

    def _client_context(self) -> Any:
        config = self.config
        if isinstance(config, StdioServerConfig):
            params = StdioServerParameters(
                command=config.command,
                args=list(config.args),
                env=dict(config.env) if config.env is not None else None,
                cwd=config.cwd,
            )
            return stdio_client(params)
        if isinstance(config, SSEServerConfig):
            return sse_client(config.url, headers=dict(config.headers or {}))
        raise ConfigurationError(f"Unsupported transport: {getattr(config, 'transport', None)}")

    async def _run(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(self._client_context())
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()
                self._session = session
                self._ready.set()
                await self._stop.wait()
        except Exception as e:
            exc = unwrap_exception(e)
            if not self._ready.is_set():
                self._startup_error = exc
            elif not self._closing:
                logger.warning("Transport for %s failed: %s", self.config.id, exc)
                self._notify_error(exc if isinstance(exc, Exception) else e)
        finally:
            self._session = None
            if self._ready.is_set() and not self._closing:
                self._notify_close()

    async def open(self) -> None:
        if self._runner is not None:
            raise TransportError("Transport already opened")
        self._runner = asyncio.create_task(self._run(), name=f"mcp-transport-{self.config.id}")
        ready = asyncio.create_task(self._ready.wait())
        try:
            await asyncio.wait({self._runner, ready}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            ready.cancel()
            self._runner.cancel()
            raise
        if not ready.done():
            ready.cancel()
            error = self._startup_error
            if error is None:
                raise TransportClosedError("Connection closed during startup")
            raise TransportError(str(error) or type(error).__name__) from error

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise TransportClosedError("Transport is not open")
        return self._session

    async def list_tools(self) -> list[dict[str, Any]]:
        session = self._require_session()
        try:
            result = await session.list_tools()
        except Exception as e:
            raise self._translate(e) from e
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.inputSchema,
            }
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        session = self._require_session()
        try:
            result = await session.call_tool(name, arguments=arguments)
        except Exception as e:
            raise self._translate(e) from e
        return result.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def _translate(exc: Exception) -> TransportError:
        exc = unwrap_exception(exc)  # type: ignore[assignment]
        if isinstance(exc, (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream)):
            return TransportClosedError("Connection closed")
        if isinstance(exc, McpError) and exc.error.code == CONNECTION_CLOSED:
            return TransportClosedError(exc.error.message or "Connection closed")
        return TransportError(str(exc) or type(exc).__name__)

    async def close(self) -> None:
        runner = self._runner
        if runner is None or self._closing:
            return
        self._closing = True
        self._stop.set()
        try:
            await asyncio.wait_for(asyncio.shield(runner), timeout=_CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug("Transport for %s did not close in time, cancelling", self.config.id)
            runner.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await runner


def create_transport(config: ServerConfig) -> ToolServerTransport:
    """Default transport factory."""
    return MCPTransport(config)
