"""
Runtime: the composition root.

A ``Runtime`` owns one storage, one server pool, one skill discovery and
the model providers, and wires them into execution engines. Nothing here
is process-global; independent runtimes can run side by side.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from openwork.config import ProviderConfig, RuntimeConfig
from openwork.engine import ExecutionEngine
from openwork.errors import ConfigurationError
from openwork.events import StreamEvent
from openwork.llm import ModelProvider, create_provider
from openwork.logging import get_logger
from openwork.mcp.client import TransportFactory
from openwork.mcp.manager import ServerPool
from openwork.mcp.transport import create_transport
from openwork.models import AgentProfile, AgentSettings, ConversationMessage, SystemPromptSource
from openwork.skills import SkillDiscovery, SkillInjector
from openwork.storage import FileStorage
from openwork.transcript import TranscriptBuilder

logger = get_logger("runtime")

ProviderFactory = Callable[[str, ProviderConfig], ModelProvider]


class Runtime:
    """
    Wires storage, servers, skills, and providers into engines.

    Example:
        async with Runtime(RuntimeConfig.from_env()) as runtime:
            agent = runtime.create_agent("Helper", "You are helpful.")
            session = runtime.storage.create_session(agent.id)
            async for event in runtime.chat(session.id, "hello"):
                print(event)
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        storage: FileStorage | None = None,
        pool: ServerPool | None = None,
        provider_factory: ProviderFactory = create_provider,
        transport_factory: TransportFactory = create_transport,
    ) -> None:
        self.config = config or RuntimeConfig()
        self.storage = storage or FileStorage(self.config.storage_dir)
        self.storage.initialize()
        self.pool = pool or ServerPool.from_config(self.config, transport_factory)

        self.discovery = SkillDiscovery([self.storage.skills_dir, *self.config.skill_dirs])
        self.injector = SkillInjector(self.discovery)
        self.storage.add_skill_listener(self._on_skill_changed)

        self._provider_factory = provider_factory
        self._providers: dict[str, ModelProvider] = {}
        self._engines: dict[str, ExecutionEngine] = {}

    @classmethod
    def from_env(cls, **overrides: Any) -> Runtime:
        return cls(RuntimeConfig.from_env(**overrides))

    async def __aenter__(self) -> Runtime:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Agents and engines
    # ------------------------------------------------------------------

    def create_agent(
        self,
        name: str,
        system_prompt: SystemPromptSource | str = "",
        **fields: Any,
    ) -> AgentProfile:
        """Create and store an agent, using the runtime's default tool call limit."""
        fields.setdefault("settings", AgentSettings(max_tool_calls=self.config.default_max_tool_calls))
        return self.storage.create_agent(name, system_prompt, **fields)

    def provider_for(self, provider_id: str) -> ModelProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            provider = self._provider_factory(provider_id, self.config.providers)
            self._providers[provider_id] = provider
        return provider

    def create_engine(self, agent_id: str) -> ExecutionEngine:
        """
        Build a fresh engine for a stored agent.

        Raises:
            ConfigurationError: The agent does not exist.
        """
        profile = self.storage.load_agent(agent_id)
        if profile is None:
            raise ConfigurationError(f"Agent {agent_id} not found")
        return ExecutionEngine(
            profile,
            provider=self.provider_for(profile.llm.provider),
            pool=self.pool,
            injector=self.injector,
            storage=self.storage,
            config=self.config,
        )

    def get_engine(self, agent_id: str) -> ExecutionEngine:
        """The cached engine for ``agent_id``, created on first use."""
        engine = self._engines.get(agent_id)
        if engine is None:
            engine = self.create_engine(agent_id)
            self._engines[agent_id] = engine
        return engine

    def reload_agent(self, agent_id: str) -> None:
        """Make the cached engine pick up the stored profile on its next run."""
        engine = self._engines.get(agent_id)
        profile = self.storage.load_agent(agent_id)
        if engine is None:
            return
        if profile is None:
            del self._engines[agent_id]
            return
        engine.provider = self.provider_for(profile.llm.provider)
        engine.update_config(profile)

    def _on_skill_changed(self, path: Path) -> None:
        self.discovery.invalidate_skill(path)
        for engine in self._engines.values():
            engine.update_config(engine.profile)
        logger.debug("Skill changed: %s", path)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, session_id: str, text: str) -> AsyncIterator[StreamEvent]:
        """
        Run one turn in a stored session.

        The user message is stored before the turn starts; the messages the
        turn produced are stored when the stream ends, including when it is
        cancelled part-way.

        Raises:
            ConfigurationError: The session or its agent does not exist.
        """
        session = self.storage.load_session(session_id)
        if session is None:
            raise ConfigurationError(f"Session {session_id} not found")
        engine = self.get_engine(session.agent_id)

        history = self.storage.load_messages(session_id)
        user_message = ConversationMessage.user(text)
        self.storage.append_message(session_id, user_message)

        builder = TranscriptBuilder()
        try:
            async for event in engine.run([*history, user_message]):
                builder.add(event)
                yield event
        finally:
            builder.flush()
            for message in builder.messages:
                self.storage.append_message(session_id, message)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Disconnect all servers and release provider clients."""
        await self.pool.close()
        for provider_id, provider in list(self._providers.items()):
            try:
                await provider.aclose()
            except Exception as e:
                logger.warning("Failed to close provider %s: %s", provider_id, e)
        self._providers.clear()
        self._engines.clear()
