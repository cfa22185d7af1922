"""
File-backed storage for agents, sessions, skills, and server configs.

Layout under the base directory::

    agents/<id>/agent.json        agent profile
    agents/<id>/system.md         copy of an inline system prompt
    sessions/<id>/meta.json       session metadata
    sessions/<id>/messages.jsonl  append-only message log
    skills/*.md                   skill documents
    mcp-servers.json              {"version": 1, "servers": [...]}

Read failures (missing files, unreadable or corrupt JSON) are logged and
reported as "not found".
"""

from __future__ import annotations

import json
import os
import shutil
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

from openwork.config import DEFAULT_HOME
from openwork.errors import ConfigurationError, DuplicateServerError
from openwork.logging import get_logger
from openwork.mcp.types import ServerConfig, ServersFile, server_config_from_dict
from openwork.models import (
    AgentProfile,
    ConversationMessage,
    SessionInfo,
    SystemPromptSource,
    create_agent_profile,
    new_id,
    now_ms,
)

logger = get_logger("storage")

SkillListener = Callable[[Path], None]

_SUBDIRS = ("agents", "sessions", "skills", "integrations", "providers")


class FileStorage:
    """
    JSON file store.

    Example:
        storage = FileStorage("~/.openwork")
        storage.initialize()
        agent = storage.create_agent("Helper", "You are helpful.")
        session = storage.create_session(agent.id)
        storage.append_message(session.id, ConversationMessage.user("hi"))
    """

    def __init__(self, base_dir: str | Path = DEFAULT_HOME) -> None:
        self.base_dir = Path(base_dir).expanduser()
        self._skill_listeners: list[SkillListener] = []

    def initialize(self) -> None:
        """Create the directory layout."""
        for name in _SUBDIRS:
            (self.base_dir / name).mkdir(parents=True, exist_ok=True)

    def resolve_path(self, path: str | Path) -> Path:
        """Resolve ``path`` against the base directory when relative."""
        p = Path(path).expanduser()
        return p if p.is_absolute() else self.base_dir / p

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_json(path: Path) -> Any | None:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read %s: %s", path, e)
            return None

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)

    @staticmethod
    def _remove_tree(path: Path) -> bool:
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def _agent_dir(self, agent_id: str) -> Path:
        return self.base_dir / "agents" / agent_id

    def save_agent(self, agent: AgentProfile) -> None:
        agent_dir = self._agent_dir(agent.id)
        self._write_json(agent_dir / "agent.json", agent.to_dict())
        if agent.system_prompt.kind == "inline":
            (agent_dir / "system.md").write_text(agent.system_prompt.content, encoding="utf-8")

    def load_agent(self, agent_id: str) -> AgentProfile | None:
        data = self._read_json(self._agent_dir(agent_id) / "agent.json")
        if not isinstance(data, dict):
            return None
        try:
            return AgentProfile.from_dict(data)
        except (ConfigurationError, KeyError, TypeError) as e:
            logger.warning("Invalid agent config %s: %s", agent_id, e)
            return None

    def list_agents(self) -> list[AgentProfile]:
        """All agents, most recently updated first."""
        agents_dir = self.base_dir / "agents"
        if not agents_dir.is_dir():
            return []
        agents = [
            agent
            for entry in agents_dir.iterdir()
            if entry.is_dir() and (agent := self.load_agent(entry.name)) is not None
        ]
        return sorted(agents, key=lambda a: a.metadata.updated_at, reverse=True)

    def create_agent(
        self,
        name: str,
        system_prompt: SystemPromptSource | str = "",
        **fields: Any,
    ) -> AgentProfile:
        agent = create_agent_profile(name, system_prompt, **fields)
        self.save_agent(agent)
        return agent

    def update_agent(self, agent_id: str, **changes: Any) -> AgentProfile | None:
        """Apply field changes. The id is preserved and ``updated_at`` bumped."""
        agent = self.load_agent(agent_id)
        if agent is None:
            return None
        changes.pop("id", None)
        metadata = changes.pop("metadata", agent.metadata)
        updated = agent.with_changes(**changes, metadata=replace(metadata, updated_at=now_ms()))
        self.save_agent(updated)
        return updated

    def delete_agent(self, agent_id: str) -> bool:
        return self._remove_tree(self._agent_dir(agent_id))

    # ------------------------------------------------------------------
    # Sessions and messages
    # ------------------------------------------------------------------

    def _session_dir(self, session_id: str) -> Path:
        return self.base_dir / "sessions" / session_id

    def create_session(self, agent_id: str, name: str | None = None) -> SessionInfo:
        now = now_ms()
        session = SessionInfo(id=new_id(), agent_id=agent_id, name=name, created_at=now, updated_at=now)
        session_dir = self._session_dir(session.id)
        self._write_json(session_dir / "meta.json", session.to_dict())
        (session_dir / "messages.jsonl").write_text("", encoding="utf-8")
        return session

    def load_session(self, session_id: str) -> SessionInfo | None:
        data = self._read_json(self._session_dir(session_id) / "meta.json")
        if not isinstance(data, dict):
            return None
        try:
            return SessionInfo.from_dict(data)
        except KeyError as e:
            logger.warning("Invalid session metadata %s: missing %s", session_id, e)
            return None

    def list_sessions(self, agent_id: str | None = None) -> list[SessionInfo]:
        """Sessions, most recently updated first, optionally for one agent."""
        sessions_dir = self.base_dir / "sessions"
        if not sessions_dir.is_dir():
            return []
        sessions = [
            session
            for entry in sessions_dir.iterdir()
            if entry.is_dir()
            and (session := self.load_session(entry.name)) is not None
            and (agent_id is None or session.agent_id == agent_id)
        ]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    def delete_session(self, session_id: str) -> bool:
        return self._remove_tree(self._session_dir(session_id))

    def append_message(self, session_id: str, message: ConversationMessage) -> None:
        """Append to the session log and bump the session's ``updated_at``."""
        session_dir = self._session_dir(session_id)
        session_dir.mkdir(parents=True, exist_ok=True)
        with open(session_dir / "messages.jsonl", "a", encoding="utf-8") as f:
            f.write(json.dumps(message.to_dict(), ensure_ascii=False) + "\n")

        session = self.load_session(session_id)
        if session is not None:
            data = session.to_dict()
            data["updatedAt"] = now_ms()
            self._write_json(session_dir / "meta.json", data)

    def load_messages(self, session_id: str) -> list[ConversationMessage]:
        path = self._session_dir(session_id) / "messages.jsonl"
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Failed to read %s: %s", path, e)
            return []

        messages: list[ConversationMessage] = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                messages.append(ConversationMessage.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning("Skipping corrupt message %s:%d: %s", path, number, e)
        return messages

    def get_recent_messages(self, session_id: str, limit: int = 50) -> list[ConversationMessage]:
        return self.load_messages(session_id)[-limit:]

    # ------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------

    @property
    def skills_dir(self) -> Path:
        return self.base_dir / "skills"

    def get_skills_directory(self) -> Path:
        return self.skills_dir

    def add_skill_listener(self, listener: SkillListener) -> None:
        """Register a callback run with the path of every saved or deleted skill."""
        self._skill_listeners.append(listener)

    def _notify_skill_changed(self, path: Path) -> None:
        for listener in self._skill_listeners:
            listener(path)

    def save_skill(self, filename: str, content: str) -> Path:
        if not filename.endswith(".md"):
            filename += ".md"
        path = self.skills_dir / Path(filename).name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self._notify_skill_changed(path)
        return path

    def read_skill(self, path: str | Path) -> str | None:
        try:
            return self.resolve_path(path).read_text(encoding="utf-8")
        except OSError:
            return None

    def delete_skill(self, path: str | Path) -> bool:
        resolved = self.resolve_path(path)
        try:
            resolved.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Failed to delete skill %s: %s", resolved, e)
            return False
        self._notify_skill_changed(resolved)
        return True

    # ------------------------------------------------------------------
    # Tool servers
    # ------------------------------------------------------------------

    @property
    def servers_file(self) -> Path:
        return self.base_dir / "mcp-servers.json"

    def _load_servers_file(self) -> ServersFile:
        data = self._read_json(self.servers_file)
        if not isinstance(data, dict):
            return ServersFile()
        servers: list[ServerConfig] = []
        for raw in data.get("servers", []):
            try:
                servers.append(server_config_from_dict(raw))
            except (ConfigurationError, TypeError, AttributeError) as e:
                logger.warning("Skipping invalid server config %r: %s", raw, e)
        return ServersFile(version=data.get("version", ServersFile().version), servers=servers)

    def _save_servers_file(self, servers_file: ServersFile) -> None:
        self._write_json(self.servers_file, servers_file.to_dict())

    def list_mcp_servers(self) -> list[ServerConfig]:
        return self._load_servers_file().servers

    def get_mcp_server(self, server_id: str) -> ServerConfig | None:
        for server in self.list_mcp_servers():
            if server.id == server_id:
                return server
        return None

    def add_mcp_server(self, config: ServerConfig) -> None:
        servers_file = self._load_servers_file()
        if any(s.id == config.id for s in servers_file.servers):
            raise DuplicateServerError(config.id)
        servers_file.servers.append(config)
        self._save_servers_file(servers_file)

    def update_mcp_server(self, server_id: str, config: ServerConfig) -> bool:
        servers_file = self._load_servers_file()
        for i, server in enumerate(servers_file.servers):
            if server.id == server_id:
                servers_file.servers[i] = config
                self._save_servers_file(servers_file)
                return True
        return False

    def remove_mcp_server(self, server_id: str) -> bool:
        servers_file = self._load_servers_file()
        remaining = [s for s in servers_file.servers if s.id != server_id]
        if len(remaining) == len(servers_file.servers):
            return False
        servers_file.servers = remaining
        self._save_servers_file(servers_file)
        return True
