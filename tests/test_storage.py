"""Tests for the file-backed store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import stdio_config
from openwork.errors import DuplicateServerError
from openwork.mcp.types import SSEServerConfig, StdioServerConfig
from openwork.models import (
    AgentMetadata,
    ConversationMessage,
    SystemPromptSource,
    ToolInvocationRequest,
    ToolInvocationResult,
    create_agent_profile,
)
from openwork.storage import FileStorage


class TestLayout:
    def test_initialize_creates_directories(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path / "home")
        storage.initialize()
        for name in ("agents", "sessions", "skills", "integrations", "providers"):
            assert (tmp_path / "home" / name).is_dir()

    def test_resolve_path(self, storage: FileStorage, tmp_path: Path) -> None:
        assert storage.resolve_path("prompts/a.md") == storage.base_dir / "prompts" / "a.md"
        assert storage.resolve_path(tmp_path / "x") == tmp_path / "x"


class TestAgents:
    """Agent profile persistence."""

    def test_create_and_load(self, storage: FileStorage) -> None:
        agent = storage.create_agent("Helper", "You are helpful.", description="Helps")

        loaded = storage.load_agent(agent.id)

        assert loaded == agent
        assert (storage.base_dir / "agents" / agent.id / "system.md").read_text() == "You are helpful."

    def test_file_prompt_has_no_copy(self, storage: FileStorage) -> None:
        agent = storage.create_agent("Helper", SystemPromptSource.file("prompts/helper.md"))
        assert not (storage.base_dir / "agents" / agent.id / "system.md").exists()
        assert storage.load_agent(agent.id).system_prompt.path == "prompts/helper.md"

    def test_load_missing(self, storage: FileStorage) -> None:
        assert storage.load_agent("ghost") is None

    def test_load_corrupt(self, storage: FileStorage) -> None:
        agent_dir = storage.base_dir / "agents" / "broken"
        agent_dir.mkdir(parents=True)
        (agent_dir / "agent.json").write_text("{not json")
        assert storage.load_agent("broken") is None

    def test_load_invalid_fields(self, storage: FileStorage) -> None:
        agent_dir = storage.base_dir / "agents" / "bad"
        agent_dir.mkdir(parents=True)
        (agent_dir / "agent.json").write_text(json.dumps({"id": "bad", "name": "Bad", "llm": {"provider": "nope"}}))
        assert storage.load_agent("bad") is None

    def test_list_most_recent_first(self, storage: FileStorage) -> None:
        older = create_agent_profile("Older", metadata=AgentMetadata(created_at=1, updated_at=1))
        newer = create_agent_profile("Newer", metadata=AgentMetadata(created_at=1, updated_at=5))
        storage.save_agent(older)
        storage.save_agent(newer)
        (storage.base_dir / "agents" / "junk").mkdir()

        assert [a.name for a in storage.list_agents()] == ["Newer", "Older"]

    def test_update_keeps_id_and_bumps_timestamp(self, storage: FileStorage) -> None:
        agent = create_agent_profile("Helper", metadata=AgentMetadata(created_at=1, updated_at=1))
        storage.save_agent(agent)

        updated = storage.update_agent(agent.id, id="other", name="Renamed")

        assert updated is not None
        assert updated.id == agent.id
        assert updated.name == "Renamed"
        assert updated.metadata.created_at == 1
        assert updated.metadata.updated_at > 1
        assert storage.load_agent(agent.id).name == "Renamed"

    def test_update_missing(self, storage: FileStorage) -> None:
        assert storage.update_agent("ghost", name="x") is None

    def test_delete(self, storage: FileStorage) -> None:
        agent = storage.create_agent("Helper")
        assert storage.delete_agent(agent.id) is True
        assert storage.load_agent(agent.id) is None
        assert storage.delete_agent(agent.id) is False


class TestSessions:
    """Sessions and their message logs."""

    def test_create_and_load(self, storage: FileStorage) -> None:
        session = storage.create_session("agent-1", name="First")
        assert storage.load_session(session.id) == session
        assert storage.load_messages(session.id) == []

    def test_list_filters_by_agent(self, storage: FileStorage) -> None:
        a = storage.create_session("agent-1")
        b = storage.create_session("agent-2")

        assert {s.id for s in storage.list_sessions()} == {a.id, b.id}
        assert [s.id for s in storage.list_sessions("agent-2")] == [b.id]

    def test_append_and_load_messages(self, storage: FileStorage) -> None:
        session = storage.create_session("agent-1")
        request = ToolInvocationRequest(id="c1", name="code_read", arguments={"path": "a.py"})
        result = ToolInvocationResult(invocation_id="c1", name="code_read", success=True, result="text")
        messages = [
            ConversationMessage.user("read a.py"),
            ConversationMessage(role="assistant", tool_calls=(request,)),
            ConversationMessage(role="tool", tool_results=(result,)),
        ]
        for message in messages:
            storage.append_message(session.id, message)

        assert storage.load_messages(session.id) == messages
        assert storage.load_session(session.id).updated_at >= session.updated_at

    def test_recent_messages(self, storage: FileStorage) -> None:
        session = storage.create_session("agent-1")
        for i in range(5):
            storage.append_message(session.id, ConversationMessage.user(f"m{i}"))

        recent = storage.get_recent_messages(session.id, limit=2)

        assert [m.content for m in recent] == ["m3", "m4"]

    def test_corrupt_lines_skipped(self, storage: FileStorage) -> None:
        session = storage.create_session("agent-1")
        storage.append_message(session.id, ConversationMessage.user("ok"))
        log = storage.base_dir / "sessions" / session.id / "messages.jsonl"
        with open(log, "a", encoding="utf-8") as f:
            f.write("{broken\n\n")
            f.write(json.dumps({"role": "user"}) + "\n")
        storage.append_message(session.id, ConversationMessage.user("still ok"))

        assert [m.content for m in storage.load_messages(session.id)] == ["ok", "still ok"]

    def test_missing_session(self, storage: FileStorage) -> None:
        assert storage.load_session("ghost") is None
        assert storage.load_messages("ghost") == []

    def test_delete(self, storage: FileStorage) -> None:
        session = storage.create_session("agent-1")
        assert storage.delete_session(session.id) is True
        assert storage.load_session(session.id) is None
        assert storage.delete_session(session.id) is False


class TestSkills:
    """Skill documents and change notifications."""

    def test_save_read_delete(self, storage: FileStorage) -> None:
        changed: list[Path] = []
        storage.add_skill_listener(changed.append)

        path = storage.save_skill("review", "---\nid: review\nname: Review\n---\nbody")

        assert path == storage.skills_dir / "review.md"
        assert storage.read_skill(path) == "---\nid: review\nname: Review\n---\nbody"
        assert storage.delete_skill(path) is True
        assert storage.read_skill(path) is None
        assert storage.delete_skill(path) is False
        assert changed == [path, path]

    def test_filename_cannot_escape_directory(self, storage: FileStorage) -> None:
        path = storage.save_skill("../../evil.md", "x")
        assert path.parent == storage.skills_dir

    def test_skills_directory(self, storage: FileStorage) -> None:
        assert storage.get_skills_directory() == storage.base_dir / "skills"


class TestServers:
    """Persisted tool server configs."""

    def test_add_and_get(self, storage: FileStorage) -> None:
        config = stdio_config("fs", args=("--root", "/tmp"), env={"A": "1"})
        storage.add_mcp_server(config)

        assert storage.get_mcp_server("fs") == config
        assert storage.get_mcp_server("ghost") is None
        data = json.loads(storage.servers_file.read_text())
        assert data["version"] == 1
        assert data["servers"][0]["transport"] == "stdio"

    def test_sse_config(self, storage: FileStorage) -> None:
        config = SSEServerConfig(id="remote", name="Remote", url="https://tools.example.com/sse")
        storage.add_mcp_server(config)
        assert storage.list_mcp_servers() == [config]

    def test_duplicate_rejected(self, storage: FileStorage) -> None:
        storage.add_mcp_server(stdio_config("fs"))
        with pytest.raises(DuplicateServerError):
            storage.add_mcp_server(stdio_config("fs"))

    def test_update_and_remove(self, storage: FileStorage) -> None:
        storage.add_mcp_server(stdio_config("fs"))

        assert storage.update_mcp_server("fs", stdio_config("fs", name="Files")) is True
        assert storage.get_mcp_server("fs").name == "Files"
        assert storage.update_mcp_server("ghost", stdio_config("ghost")) is False

        assert storage.remove_mcp_server("fs") is True
        assert storage.list_mcp_servers() == []
        assert storage.remove_mcp_server("fs") is False

    def test_invalid_entries_skipped(self, storage: FileStorage) -> None:
        storage.servers_file.write_text(json.dumps({
            "version": 1,
            "servers": [
                {"id": "ok", "name": "Ok", "transport": "stdio", "command": "run"},
                {"id": "bad", "name": "Bad", "transport": "carrier-pigeon"},
                {"id": "bad_id", "name": "Bad", "transport": "stdio", "command": "run"},
            ],
        }))
        assert [s.id for s in storage.list_mcp_servers()] == ["ok"]
        assert isinstance(storage.get_mcp_server("ok"), StdioServerConfig)

    def test_corrupt_file(self, storage: FileStorage) -> None:
        storage.servers_file.write_text("not json")
        assert storage.list_mcp_servers() == []
