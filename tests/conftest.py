"""Shared pytest fixtures for openwork tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path
from textwrap import dedent
from typing import Any

import pytest

from openwork.llm.base import FinishChunk, ModelChunk, ModelProvider, TextChunk, ToolCallChunk, ToolSpec
from openwork.mcp.manager import ServerPool
from openwork.mcp.transport import ToolServerTransport, TransportClosedError
from openwork.mcp.types import ServerConfig, StdioServerConfig
from openwork.models import ConversationMessage, ModelSettings
from openwork.skills import SkillDiscovery, SkillInjector
from openwork.storage import FileStorage

# ---------------------------------------------------------------------------
# Fake tool server transport
# ---------------------------------------------------------------------------


class FakeTransport(ToolServerTransport):
    """
    In-memory tool server.

    ``results`` maps tool names to a value, an exception to raise, or a
    callable taking the arguments.
    """

    def __init__(
        self,
        tools: list[dict[str, Any]] | None = None,
        results: dict[str, Any] | None = None,
        fail_open: Exception | None = None,
        fail_list: Exception | None = None,
        open_delay: float = 0.0,
        call_delay: float = 0.0,
    ) -> None:
        super().__init__()
        self.tools = tools if tools is not None else []
        self.results = results or {}
        self.fail_open = fail_open
        self.fail_list = fail_list
        self.open_delay = open_delay
        self.call_delay = call_delay
        self.open_calls = 0
        self.list_calls = 0
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open is not None:
            raise self.fail_open

    async def list_tools(self) -> list[dict[str, Any]]:
        self.list_calls += 1
        if self.fail_list is not None:
            raise self.fail_list
        return list(self.tools)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        if self.closed:
            raise TransportClosedError("Transport is closed")
        self.calls.append((name, arguments))
        if self.call_delay:
            await asyncio.sleep(self.call_delay)
        outcome = self.results.get(name, {"content": [{"type": "text", "text": f"{name} ok"}]})
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(arguments)
        return outcome

    async def close(self) -> None:
        self.closed = True

    # Simulate the server going away on its own
    def drop(self) -> None:
        self.closed = True
        self._notify_close()


class ExplodingTransport(FakeTransport):
    """Connects fine, but any invocation is a test failure."""

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        raise AssertionError("call_tool must not be reached")


class TransportRegistry:
    """Transport factory handing out pre-built transports by server id."""

    def __init__(self) -> None:
        self.transports: dict[str, FakeTransport] = {}
        self.created: list[str] = []

    def add(self, server_id: str, transport: FakeTransport) -> FakeTransport:
        self.transports[server_id] = transport
        return transport

    def __call__(self, config: ServerConfig) -> FakeTransport:
        self.created.append(config.id)
        transport = self.transports.get(config.id)
        if transport is None:
            transport = FakeTransport()
            self.transports[config.id] = transport
        return transport


def tool_info(name: str, properties: dict[str, Any] | None = None, required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    return {"name": name, "description": f"The {name} tool", "inputSchema": schema}


def stdio_config(server_id: str, name: str | None = None, **kwargs: Any) -> StdioServerConfig:
    return StdioServerConfig(id=server_id, name=name or server_id.title(), command="fake-server", **kwargs)


# ---------------------------------------------------------------------------
# Scripted model provider
# ---------------------------------------------------------------------------


class ScriptedProvider(ModelProvider):
    """
    Replays a fixed list of model steps.

    Each step is a list of chunks. Once the script runs out, the last step
    repeats. A step may also be an exception, raised when it is reached.
    """

    def __init__(self, steps: Sequence[list[ModelChunk] | Exception], chunk_delay: float = 0.0) -> None:
        self.steps = list(steps)
        self.chunk_delay = chunk_delay
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    async def stream_completion(
        self,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSpec],
        params: ModelSettings,
    ) -> AsyncIterator[ModelChunk]:
        index = min(len(self.requests), len(self.steps) - 1)
        self.requests.append({
            "system_prompt": system_prompt,
            "messages": list(messages),
            "tools": [t.name for t in tools],
            "params": params,
        })
        step = self.steps[index]
        if isinstance(step, Exception):
            raise step
        for chunk in step:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def text_step(*parts: str, reason: str = "stop") -> list[ModelChunk]:
    return [*(TextChunk(p) for p in parts), FinishChunk(reason)]


def tool_step(name: str, arguments: dict[str, Any] | None = None, call_id: str = "call_1") -> list[ModelChunk]:
    return [ToolCallChunk(id=call_id, name=name, arguments=arguments or {}), FinishChunk("tool-calls")]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def transports() -> TransportRegistry:
    return TransportRegistry()


@pytest.fixture
def pool(transports: TransportRegistry) -> ServerPool:
    return ServerPool(transport_factory=transports, connect_timeout=2.0, call_timeout=2.0)


@pytest.fixture
def storage(tmp_path: Path) -> FileStorage:
    store = FileStorage(tmp_path / "home")
    store.initialize()
    return store


@pytest.fixture
def skills_dir(tmp_path: Path) -> Path:
    """A directory with two skill documents."""
    directory = tmp_path / "skills"
    directory.mkdir()
    (directory / "review.md").write_text(dedent("""\
        ---
        id: code-review
        name: Code Review
        description: Review code for bugs
        triggers:
          - /review
          - review this
        tags: [quality]
        ---

        # Code Review

        Look for bugs first.
        """))
    (directory / "commit.md").write_text(dedent("""\
        ---
        id: commit
        name: Commit Messages
        triggers: ["/commit"]
        ---
        Write conventional commit messages.
        """))
    return directory


@pytest.fixture
def injector(skills_dir: Path) -> SkillInjector:
    return SkillInjector(SkillDiscovery([skills_dir]))


@pytest.fixture
def make_skill_file(tmp_path: Path) -> Callable[..., Path]:
    def _make(filename: str, content: str, directory: Path | None = None) -> Path:
        target = (directory or tmp_path) / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(dedent(content))
        return target

    return _make
