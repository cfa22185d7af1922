"""
Execution engine: the model-call / tool-call turn loop.

One engine serves one agent profile. ``run`` drives a single turn and
yields ``StreamEvent`` values as they happen: text is forwarded as the
model streams it, each tool call is bracketed by a started/finished pair,
and the turn ends with exactly one ``TurnFinished`` or ``ErrorEvent``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from openwork.config import RuntimeConfig
from openwork.errors import (
    ConfigurationError,
    DispatchErrorCode,
    DuplicateServerError,
    ModelError,
    SchemaValidationError,
    ToolExecutionError,
)
from openwork.events import (
    FINISH_STEP_LIMIT,
    FINISH_STOP,
    ErrorEvent,
    StreamEvent,
    TextDelta,
    ToolCallFinished,
    ToolCallStarted,
    TurnFinished,
    TurnStarted,
)
from openwork.llm.base import FinishChunk, ModelChunk, ModelProvider, TextChunk, ToolCallChunk, ToolSpec
from openwork.logging import get_logger
from openwork.mcp.manager import ServerPool
from openwork.mcp.types import ConnectionStatus
from openwork.models import (
    AgentProfile,
    ConversationMessage,
    ToolInvocationRequest,
    ToolInvocationResult,
    new_id,
)
from openwork.schema import CapabilityDescriptor, ObjectSchema
from openwork.skills.injector import SkillInjector
from openwork.skills.models import Skill
from openwork.tools import ToolDefinition, ToolRegistry, create_builtin_tools

if TYPE_CHECKING:
    from openwork.storage import FileStorage

logger = get_logger("engine")


@dataclass(frozen=True)
class CatalogEntry:
    """One tool as offered to the model: a built-in or an external capability."""

    name: str
    description: str
    parameters: dict[str, Any]
    input_schema: ObjectSchema = field(repr=False)
    server_id: str | None = None  # None for built-in tools

    @property
    def is_builtin(self) -> bool:
        return self.server_id is None

    @classmethod
    def from_builtin(cls, tool: ToolDefinition) -> CatalogEntry:
        return cls(
            name=tool.name,
            description=tool.description,
            parameters=tool.parameters,
            input_schema=tool.input_schema,
        )

    @classmethod
    def from_capability(cls, capability: CapabilityDescriptor) -> CatalogEntry:
        parameters = capability.raw_schema
        if parameters.get("type") != "object":
            parameters = capability.input_schema.to_json_schema()
        return cls(
            name=capability.qualified_name,
            description=capability.description,
            parameters=parameters,
            input_schema=capability.input_schema,
            server_id=capability.server_id,
        )

    def to_tool_spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.parameters)


@dataclass(frozen=True)
class TurnSnapshot:
    """The configuration one turn runs against, fixed when the turn starts."""

    profile: AgentProfile
    provider: ModelProvider
    tools: ToolRegistry
    system_prompt: str
    skills: tuple[Skill, ...] = ()


class ExecutionEngine:
    """
    Runs turns for one agent profile.

    Collaborators are passed in rather than looked up, so several engines
    (and several pools) can live in one process.

    Example:
        engine = ExecutionEngine(profile, provider, pool, injector, storage=storage)
        async for event in engine.run([ConversationMessage.user("hello")]):
            ...
    """

    def __init__(
        self,
        profile: AgentProfile,
        provider: ModelProvider,
        pool: ServerPool,
        injector: SkillInjector,
        storage: FileStorage | None = None,
        tools: ToolRegistry | None = None,
        config: RuntimeConfig | None = None,
    ) -> None:
        self._profile = profile
        self.provider = provider
        self.pool = pool
        self.injector = injector
        self.storage = storage
        self.config = config or RuntimeConfig()

        self._custom_tools = tools
        self._tools: ToolRegistry = tools if tools is not None else ToolRegistry()
        self._base_prompt = ""
        self._system_prompt = ""
        self._skills: list[Skill] = []
        self._initialized = False
        self._generation = 0
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def profile(self) -> AgentProfile:
        return self._profile

    @property
    def system_prompt(self) -> str:
        """The assembled prompt: base text plus the active skills block."""
        return self._system_prompt

    @property
    def loaded_skills(self) -> list[Skill]:
        return list(self._skills)

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Load the prompt, skills, and tools, and connect referenced servers.

        Safe to call repeatedly; only the first call does work until the
        configuration changes.

        Raises:
            ConfigurationError: The system prompt file cannot be read.
        """
        async with self._init_lock:
            if self._initialized:
                return

            generation = self._generation
            self._base_prompt = self._load_system_prompt()
            self._skills = self.injector.load_for_agent(self._profile.skills)
            self._system_prompt = self.injector.compose(self._base_prompt, self._skills)

            if self._custom_tools is None:
                self._tools = create_builtin_tools(
                    self._profile.tools.builtin, cwd=self._profile.settings.working_directory,
                )

            await self._ensure_servers()
            if generation != self._generation:
                # update_config ran while servers were connecting
                return
            self._initialized = True
            logger.info(
                "Initialized agent %s: %d skills, %d built-in tools, %d servers",
                self._profile.id,
                len(self._skills),
                len(self._tools),
                len(self._profile.tools.mcp),
            )

    def _load_system_prompt(self) -> str:
        source = self._profile.system_prompt
        if source.kind == "inline":
            return source.content

        path = self.storage.resolve_path(source.path) if self.storage else Path(source.path)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read system prompt {path}: {e}") from e

    async def _ensure_servers(self) -> None:
        """Register referenced servers from storage and connect them."""
        wanted: list[str] = []
        for ref in self._profile.tools.mcp:
            if not self.pool.has_server(ref.server_id):
                config = self.storage.get_mcp_server(ref.server_id) if self.storage else None
                if config is None:
                    logger.warning("MCP server %s is not configured", ref.server_id)
                    continue
                try:
                    await self.pool.add_server(config)
                except DuplicateServerError:
                    pass  # registered concurrently by another engine
            if self.pool.get_server_status(ref.server_id) != ConnectionStatus.CONNECTED:
                wanted.append(ref.server_id)

        if not wanted:
            return
        outcomes = await self.pool.connect_servers(wanted)
        for server_id, error in outcomes.items():
            if error is not None:
                logger.warning("MCP server %s unavailable: %s", server_id, error)

    def update_config(self, profile: AgentProfile | None = None, **changes: Any) -> None:
        """
        Replace the profile, or apply field changes to it.

        The next ``initialize`` (or ``run``) rebuilds prompt, skills, and
        tools. A turn already in progress keeps the snapshot it started with.
        """
        self._profile = profile if profile is not None else self._profile.with_changes(**changes)
        self._base_prompt = ""
        self._system_prompt = ""
        self._skills = []
        if self._custom_tools is None:
            self._tools = ToolRegistry()
        self._initialized = False
        self._generation += 1

    def snapshot(self) -> TurnSnapshot:
        """The current profile, tools, and prompt as one immutable value."""
        return TurnSnapshot(
            profile=self._profile,
            provider=self.provider,
            tools=self._tools,
            system_prompt=self._system_prompt,
            skills=tuple(self._skills),
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def catalog(self, snapshot: TurnSnapshot | None = None) -> list[CatalogEntry]:
        """Built-in tools plus capabilities of referenced servers connected right now."""
        snapshot = snapshot or self.snapshot()
        entries: dict[str, CatalogEntry] = {}
        for tool in snapshot.tools.list_tools():
            entries[tool.name] = CatalogEntry.from_builtin(tool)
        for capability in self.pool.get_catalog_for(snapshot.profile.tools.mcp):
            entry = CatalogEntry.from_capability(capability)
            entries.setdefault(entry.name, entry)
        return list(entries.values())

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def run(self, history: Sequence[ConversationMessage]) -> AsyncIterator[StreamEvent]:
        """
        Run one turn over ``history``.

        The stream is single-pass. Failures that end the turn are reported
        as one ``ErrorEvent``; cancellation propagates to the caller. The
        profile, provider, and tools are read once, after initialization;
        ``update_config`` during the turn applies to the next one.
        """
        turn_id = new_id()
        yield TurnStarted(turn_id)

        try:
            while not self._initialized:
                await self.initialize()
        except ConfigurationError as e:
            logger.warning("Agent %s failed to initialize: %s", self._profile.id, e)
            yield ErrorEvent(str(e), details={"kind": "configuration"})
            return

        snapshot = self.snapshot()
        profile = snapshot.profile
        messages = list(history)
        system_prompt = self._prompt_for(messages, snapshot)
        max_steps = profile.settings.max_tool_calls
        steps = 0

        while True:
            catalog = {entry.name: entry for entry in self.catalog(snapshot)}
            specs = [entry.to_tool_spec() for entry in catalog.values()]

            text_parts: list[str] = []
            requests: list[ToolInvocationRequest] = []
            finish_reason = FINISH_STOP

            try:
                stream = self._stream_model(snapshot, system_prompt, messages, specs)
                async with aclosing(stream) as chunks:
                    async for chunk in chunks:
                        if isinstance(chunk, TextChunk):
                            if chunk.text:
                                text_parts.append(chunk.text)
                                yield TextDelta(chunk.text)
                        elif isinstance(chunk, ToolCallChunk):
                            requests.append(ToolInvocationRequest(
                                id=chunk.id or new_id(), name=chunk.name, arguments=chunk.arguments,
                            ))
                        elif isinstance(chunk, FinishChunk):
                            finish_reason = chunk.reason
            except Exception as e:
                logger.warning("Model call failed for agent %s: %s", profile.id, e)
                yield ErrorEvent(f"Model call failed: {e}", details={"kind": "model"})
                return

            if text_parts or requests:
                messages.append(ConversationMessage(
                    role="assistant", content="".join(text_parts), tool_calls=tuple(requests),
                ))

            if not requests:
                yield TurnFinished(turn_id, finish_reason)
                return

            for request in requests:
                if steps >= max_steps:
                    yield TurnFinished(turn_id, FINISH_STEP_LIMIT)
                    return
                steps += 1

                yield ToolCallStarted(request)
                try:
                    result = await self._dispatch(request, catalog, snapshot)
                except Exception as e:
                    logger.warning("Tool dispatch failed for %s: %s", request.name, e)
                    yield ErrorEvent(f"Tool dispatch failed: {e}", details={"kind": "dispatch"})
                    return
                yield ToolCallFinished(request.id, result)
                messages.append(ConversationMessage(role="tool", tool_results=(result,)))

            if steps >= max_steps:
                logger.info("Agent %s reached the tool call limit (%d)", profile.id, max_steps)
                yield TurnFinished(turn_id, FINISH_STEP_LIMIT)
                return

    def _prompt_for(self, messages: Sequence[ConversationMessage], snapshot: TurnSnapshot) -> str:
        if not snapshot.profile.settings.trigger_skills:
            return snapshot.system_prompt

        latest = next((m.content for m in reversed(messages) if m.role == "user"), "")
        if not latest:
            return snapshot.system_prompt
        loaded = {s.id for s in snapshot.skills}
        candidates = [s for s in self.injector.discovery.discover_all() if s.id not in loaded]
        return snapshot.system_prompt + self.injector.build_triggered_context(latest, candidates)

    async def _stream_model(
        self,
        snapshot: TurnSnapshot,
        system_prompt: str,
        messages: Sequence[ConversationMessage],
        specs: list[ToolSpec],
    ) -> AsyncIterator[ModelChunk]:
        """Provider stream with each chunk wait bounded by ``model_timeout``."""
        timeout = self.config.model_timeout
        stream = snapshot.provider.stream_completion(
            system_prompt, messages, specs, snapshot.profile.llm,
        )
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(anext(stream), timeout)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    raise ModelError(f"Model stream timed out after {timeout}s") from None
                yield chunk
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    def _call_timeout(self, profile: AgentProfile) -> float | None:
        timeout = profile.settings.tool_call_timeout
        return timeout if timeout is not None else self.config.call_timeout

    async def _dispatch(
        self,
        request: ToolInvocationRequest,
        catalog: dict[str, CatalogEntry],
        snapshot: TurnSnapshot,
    ) -> ToolInvocationResult:
        entry = catalog.get(request.name)
        if entry is None:
            return ToolInvocationResult.failure(
                request.id, request.name, f"Tool {request.name} not found",
                DispatchErrorCode.NOT_FOUND.value,
            )

        try:
            arguments = entry.input_schema.validate(request.arguments)
        except SchemaValidationError as e:
            return ToolInvocationResult.failure(
                request.id, request.name, f"Invalid arguments: {e}",
                DispatchErrorCode.INVALID_ARGUMENTS.value,
            )

        timeout = self._call_timeout(snapshot.profile)
        logger.debug("Dispatching %s with %s", request.name, arguments)

        if entry.is_builtin:
            return await self._run_builtin(snapshot.tools, request, arguments, timeout)

        call = await self.pool.dispatch(request.name, arguments, timeout=timeout)
        return ToolInvocationResult(
            invocation_id=request.id,
            name=request.name,
            success=call.success,
            result=call.result,
            error=call.error,
            code=call.code.value if call.code is not None else None,
        )

    async def _run_builtin(
        self,
        tools: ToolRegistry,
        request: ToolInvocationRequest,
        arguments: dict[str, Any],
        timeout: float | None,
    ) -> ToolInvocationResult:
        tool = tools.get(request.name)
        if tool is None or tool.handler is None:
            return ToolInvocationResult.failure(
                request.id, request.name, f"Tool {request.name} not found",
                DispatchErrorCode.NOT_FOUND.value,
            )
        try:
            output = await asyncio.wait_for(tool.handler(arguments), timeout)
        except asyncio.TimeoutError:
            return ToolInvocationResult.failure(
                request.id, request.name, f"Tool {request.name} timed out after {timeout}s",
                DispatchErrorCode.TIMEOUT.value,
            )
        except ToolExecutionError as e:
            return ToolInvocationResult.failure(
                request.id, request.name, str(e), DispatchErrorCode.TOOL_ERROR.value,
            )
        except Exception as e:
            logger.exception("Built-in tool %s raised", request.name)
            return ToolInvocationResult.failure(
                request.id, request.name, f"{type(e).__name__}: {e}",
                DispatchErrorCode.TOOL_ERROR.value,
            )
        return ToolInvocationResult(
            invocation_id=request.id, name=request.name, success=True, result=output,
        )
