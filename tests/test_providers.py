"""Tests for session providers."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from agent_insights.errors import MalformedLogError
from agent_insights.models import CODE, FILE, IMAGE, TEXT, THINKING, TOOL_CALL, ContentBlock
from agent_insights.providers.claude_code import ClaudeCodeProvider
from agent_insights.providers.cursor import CursorProvider, load_workspace_map, workspace_key
from agent_insights.providers.opencode import OpenCodeProvider, PartIndex, classify_part, part_ordinal
from agent_insights.stats import session_stats


def ts(minute, second=0):
    return datetime(2025, 3, 1, 12, minute, second, tzinfo=timezone.utc)


CLAUDE_ROWS = [
    {"type": "summary", "summary": "Login page"},
    {
        "type": "user", "uuid": "u1", "sessionId": "abc-123",
        "timestamp": "2025-03-01T12:00:00Z", "cwd": "/home/user/webapp",
        "gitBranch": "main", "version": "1.0.30",
        "message": {"role": "user", "content": "Add a login page"},
    },
    {
        "type": "assistant", "uuid": "a1", "parentUuid": "u1", "sessionId": "abc-123",
        "timestamp": "2025-03-01T12:00:10Z", "cwd": "/somewhere/else",
        "message": {
            "id": "msg_1", "role": "assistant", "model": "claude-sonnet-4",
            "content": [{"type": "thinking", "thinking": "plan it"}],
            "usage": {"input_tokens": 100, "output_tokens": 20},
        },
    },
    {
        "type": "assistant", "uuid": "a2", "parentUuid": "a1", "sessionId": "abc-123",
        "timestamp": "2025-03-01T12:00:12Z",
        "message": {
            "id": "msg_1", "role": "assistant", "model": "claude-sonnet-4",
            "content": [{"type": "tool_use", "id": "t1", "name": "Read", "input": {"file_path": "app.py"}}],
            "usage": {"input_tokens": 100, "output_tokens": 20},
        },
    },
    {
        "type": "user", "uuid": "u2", "sessionId": "abc-123", "isSidechain": False,
        "timestamp": "2025-03-01T12:00:13Z",
        "message": {"role": "user", "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "print('hi')"}]},
    },
    {
        "type": "user", "uuid": "u3", "sessionId": "abc-123",
        "timestamp": "2025-03-01T12:02:00Z",
        "message": {"role": "user", "content": [
            {"type": "text", "text": "Thanks"},
            {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="}},
            {"type": "redacted_thinking", "data": "xyz"},
            {"type": "server_widget", "value": 3},
        ]},
    },
]


class TestClaudeCodeProvider:
    """Tests for Claude Code provider."""

    @pytest.fixture
    def claude_provider(self):
        return ClaudeCodeProvider()

    @pytest.fixture
    def temp_session_dir(self, tmp_path, write_jsonl):
        """Create a temporary projects directory with one session."""
        write_jsonl(tmp_path / "-home-user-webapp" / "abc-123.jsonl", CLAUDE_ROWS)
        return tmp_path

    def test_provider_attributes(self, claude_provider):
        """Test provider has required attributes."""
        assert claude_provider.name == "claude-code"
        assert claude_provider.display_name == "Claude Code"
        assert claude_provider.icon == "🧠"
        assert claude_provider.color == "cyan"

    def test_get_sessions_dir(self, claude_provider, monkeypatch):
        """Test sessions directory path."""
        monkeypatch.setattr("agent_insights.config.get_platform", lambda: "linux")
        assert claude_provider.get_sessions_dir() == Path.home() / ".claude" / "projects"

    def test_parse_session(self, claude_provider, temp_session_dir):
        """Test parsing identity, project and timing."""
        session = claude_provider.parse_session(temp_session_dir / "-home-user-webapp" / "abc-123.jsonl")

        assert session is not None
        assert session.id == "abc-123"
        assert session.agent == "claude-code"
        assert session.directory == "/home/user/webapp"
        assert session.title == "webapp"
        assert session.start_time == ts(0)
        assert session.end_time == ts(2)
        assert [m.id for m in session.messages] == ["u1", "a1", "a2", "u2", "u3"]
        assert session.metadata["branch"] == "main"
        assert session.metadata["model"] == "claude-sonnet-4"
        assert session.metadata["version"] == "1.0.30"
        assert session.metadata["project_id"] == "-home-user-webapp"

    def test_content_mapping(self, claude_provider, temp_session_dir):
        """Test each part type maps to the right block kind."""
        session = claude_provider.parse_session(temp_session_dir / "-home-user-webapp" / "abc-123.jsonl")
        by_id = {m.id: m for m in session.messages}

        assert by_id["u1"].content == [ContentBlock(TEXT, "Add a login page")]
        assert by_id["a1"].content == [ContentBlock(THINKING, "plan it")]
        assert by_id["a2"].content[0].kind == TOOL_CALL
        assert by_id["u2"].content[0].kind == TOOL_CALL

        text, image, redacted, unknown = by_id["u3"].content
        assert text == ContentBlock(TEXT, "Thanks")
        assert image.kind == IMAGE
        assert "data" not in image.data["source"]
        assert redacted == ContentBlock(THINKING, "")
        assert unknown.kind == TEXT
        assert json.loads(unknown.data) == {"type": "server_widget", "value": 3}

    def test_usage_counted_once_per_api_message(self, claude_provider, temp_session_dir):
        """Test streamed rows sharing a message id report usage once."""
        session = claude_provider.parse_session(temp_session_dir / "-home-user-webapp" / "abc-123.jsonl")
        by_id = {m.id: m for m in session.messages}
        assert by_id["a1"].tokens == {"input_tokens": 100, "output_tokens": 20}
        assert by_id["a2"].tokens is None

        stats = session_stats(session)
        assert stats.input_tokens == 100
        assert stats.output_tokens == 20
        assert stats.user_messages == 2
        assert stats.tool_calls == 2
        assert stats.duration_seconds == 120

    def test_missing_session_id(self, claude_provider, tmp_path, write_jsonl):
        """Test a log without any session id is discarded."""
        rows = [{k: v for k, v in row.items() if k != "sessionId"} for row in CLAUDE_ROWS]
        path = write_jsonl(tmp_path / "p" / "x.jsonl", rows)
        assert claude_provider.parse_session(path) is None

    def test_project_dir_fallback(self, claude_provider, tmp_path, write_jsonl):
        rows = [{k: v for k, v in row.items() if k != "cwd"} for row in CLAUDE_ROWS]
        path = write_jsonl(tmp_path / "-home-user-api" / "x.jsonl", rows)
        session = claude_provider.parse_session(path)
        assert session.directory == str(tmp_path / "-home-user-api")
        assert session.title == "-home-user-api"

    def test_skips_subagent_files(self, claude_provider, temp_session_dir, write_jsonl):
        rows = [dict(row, sessionId="sub-1") for row in CLAUDE_ROWS]
        write_jsonl(temp_session_dir / "-home-user-webapp" / "agent-sub-1.jsonl", rows)

        sessions = claude_provider.find_sessions(temp_session_dir)

        assert [s.id for s in sessions] == ["abc-123"]

    def test_corrupt_file_among_valid(self, claude_provider, temp_session_dir, write_jsonl, caplog):
        """Test one unreadable log does not abort the scan."""
        write_jsonl(temp_session_dir / "-home-user-webapp" / "broken.jsonl", ["{not json", "also bad"])

        with caplog.at_level(logging.WARNING):
            sessions = claude_provider.find_sessions(temp_session_dir)

        assert [s.id for s in sessions] == ["abc-123"]
        assert "broken.jsonl" in caplog.text

    def test_scan_filters_trivial_sessions(self, claude_provider, temp_session_dir, write_jsonl, caplog):
        trivial = [
            {"type": "user", "uuid": "x1", "sessionId": "tiny", "timestamp": "2025-03-01T12:00:00Z",
             "message": {"role": "user", "content": "hi"}},
            {"type": "assistant", "uuid": "x2", "sessionId": "tiny", "timestamp": "2025-03-01T12:00:05Z",
             "message": {"role": "assistant", "content": "hello"}},
        ]
        write_jsonl(temp_session_dir / "-home-user-webapp" / "tiny.jsonl", trivial)

        with caplog.at_level(logging.INFO):
            sessions = claude_provider.scan(temp_session_dir)

        assert [s.id for s in sessions] == ["abc-123"]
        assert "1 sessions (1 filtered)" in caplog.text


class TestCursorProvider:
    """Tests for Cursor provider."""

    @pytest.fixture
    def storage(self, tmp_path, write_json):
        storage = tmp_path / "workspaceStorage"
        write_json(storage / "f00d" / "workspace.json", {"folder": "file:///home/user/my_shop.v2"})
        write_json(storage / "beef" / "workspace.json", {"configuration": "file:///x.code-workspace"})
        (storage / "dead").mkdir()
        (storage / "dead" / "workspace.json").write_text("{broken")
        return storage

    @pytest.fixture
    def cursor_provider(self, storage):
        return CursorProvider(workspace_storage=storage)

    @pytest.fixture
    def projects_root(self, tmp_path, write_jsonl):
        root = tmp_path / "projects"
        write_jsonl(root / "home-user-my-shopv2" / "agent-transcripts" / "conv-1.jsonl", [
            {"role": "user", "timestamp": "2025-03-01T12:00:00Z",
             "message": {"content": [{"type": "text", "text": "Fix the cart"}]}},
            {"role": "assistant", "message": {"content": [
                {"type": "thinking", "thinking": "look at cart.py"},
                {"type": "tool_use", "name": "edit_file", "input": {"path": "cart.py"}},
                {"type": "code_selection", "text": "def total(): ..."},
                {"type": "attached_files", "text": "cart.py"},
                {"type": "hologram", "x": 1},
            ]}},
            {"role": "system", "message": {"content": "ignored"}},
            {"role": "user", "timestamp": "2025-03-01T12:03:00Z", "message": {"content": "Thanks"}},
        ])
        return root

    def test_provider_attributes(self, cursor_provider):
        assert cursor_provider.name == "cursor"
        assert cursor_provider.display_name == "Cursor"

    @pytest.mark.parametrize("folder,key", [
        ("/home/user/my_shop.v2", "home-user-my-shopv2"),
        ("/Users/erik/code/app", "Users-erik-code-app"),
        ("C:\\Users\\erik\\app", "Users-erik-app"),
    ])
    def test_workspace_key(self, folder, key):
        assert workspace_key(folder) == key

    def test_workspace_map_skips_bad_entries(self, storage, caplog):
        with caplog.at_level(logging.WARNING):
            mapping = load_workspace_map(storage)
        assert mapping == {"home-user-my-shopv2": "/home/user/my_shop.v2"}
        assert "dead" in caplog.text

    def test_find_sessions_resolves_workspace(self, cursor_provider, projects_root):
        sessions = cursor_provider.find_sessions(projects_root)

        assert len(sessions) == 1
        session = sessions[0]
        assert session.id == "conv-1"
        assert session.agent == "cursor"
        assert session.directory == "/home/user/my_shop.v2"
        assert session.title == "my_shop.v2"
        assert session.start_time == ts(0)
        assert session.end_time == ts(3)
        assert [m.role for m in session.messages] == ["user", "assistant", "user"]
        assert [m.id for m in session.messages] == ["conv-1-0", "conv-1-1", "conv-1-2"]

    def test_content_mapping(self, cursor_provider, projects_root):
        session = cursor_provider.find_sessions(projects_root)[0]
        thinking, tool, code, files, unknown = session.messages[1].content

        assert thinking == ContentBlock(THINKING, "look at cart.py")
        assert tool.kind == TOOL_CALL
        assert tool.data["name"] == "edit_file"
        assert code == ContentBlock(CODE, "def total(): ...")
        assert files.kind == FILE
        assert unknown.kind == TEXT
        assert json.loads(unknown.data) == {"type": "hologram", "x": 1}
        assert session.messages[2].content == [ContentBlock(TEXT, "Thanks")]

    def test_unmapped_project_uses_directory(self, tmp_path, write_jsonl):
        root = tmp_path / "projects"
        write_jsonl(root / "srv-api" / "agent-transcripts" / "c2.jsonl", [
            {"role": "user", "message": {"content": "hello"}},
        ])
        provider = CursorProvider(workspace_storage=tmp_path / "nothing")

        session = provider.find_sessions(root)[0]

        assert session.directory == str(root / "srv-api")
        assert session.title == "srv-api"
        # No timestamps in the log: file times are used
        assert session.start_time is not None
        assert session.end_time is not None

    def test_root_level_file_is_unknown_project(self, tmp_path, write_jsonl):
        root = tmp_path / "projects"
        write_jsonl(root / "loose.jsonl", [{"role": "user", "message": {"content": "hello"}}])
        provider = CursorProvider(workspace_storage=tmp_path / "nothing")

        session = provider.find_sessions(root)[0]

        assert session.metadata["project_key"] == "unknown"

    def test_missing_root(self, cursor_provider, tmp_path):
        assert cursor_provider.scan(tmp_path / "missing") == []


class TestOpenCodeProvider:
    """Tests for the OpenCode session/message/part join."""

    CREATED = 1740830400000  # 2025-03-01T12:00:00Z

    @pytest.fixture
    def opencode_provider(self):
        return OpenCodeProvider()

    @pytest.fixture
    def storage(self, tmp_path, write_json):
        root = tmp_path / "storage"
        write_json(root / "session" / "proj1" / "ses_1.json", {
            "id": "ses_1", "title": "Fix bug", "directory": "/home/user/api", "parentID": "ses_0",
            "time": {"created": self.CREATED, "updated": self.CREATED + 300_000},
        })
        write_json(root / "session" / "proj1" / "ses_2.json", {
            "id": "ses_2", "directory": "/home/user/api", "time": {"created": self.CREATED},
        })

        messages = root / "message" / "ses_1"
        # Written out of order on purpose
        write_json(messages / "msg_11.json", {
            "id": "msg_11", "role": "user", "content": "thanks",
            "time": {"created": self.CREATED + 120_000},
        })
        write_json(messages / "msg_10.json", {
            "id": "msg_10", "role": "assistant", "modelID": "gpt-5",
            "time": {"created": self.CREATED + 60_000, "completed": self.CREATED + 90_000},
            "tokens": {"input": 50, "output": 25, "reasoning": 0},
        })
        write_json(messages / "msg_2.json", {"id": "msg_2", "role": "user", "time": {"created": self.CREATED}})

        parts = root / "part"
        write_json(parts / "msg_2" / "10_b.json", {"id": "10_b", "messageID": "msg_2", "type": "text", "text": "second"})
        write_json(parts / "msg_2" / "2_a.json", {"id": "2_a", "messageID": "msg_2", "type": "text", "text": "first"})
        write_json(parts / "msg_10" / "1_x.json", {"id": "1_x", "type": "step-start", "snapshot": "abcdef123456"})
        write_json(parts / "msg_10" / "2_x.json", {
            "id": "2_x", "type": "tool", "callID": "c1", "tool": "bash",
            "state": {"status": "completed", "input": {"command": "ls"}, "output": "a\nb"},
        })
        write_json(parts / "msg_10" / "3_x.json", {
            "id": "3_x", "type": "step-finish", "reason": "stop", "tokens": {"input": 50, "output": 25},
        })
        write_json(parts / "msg_10" / "4_x.json", {"id": "4_x", "type": "weird"})
        (parts / "msg_10" / "5_x.json").write_text("{corrupt")
        return root

    def test_provider_attributes(self, opencode_provider):
        assert opencode_provider.name == "opencode"
        assert opencode_provider.display_name == "OpenCode"

    def test_three_way_join_ordering(self, opencode_provider, storage):
        sessions = opencode_provider.find_sessions(storage)

        assert [s.id for s in sessions] == ["ses_1"]
        session = sessions[0]
        assert [m.id for m in session.messages] == ["msg_2", "msg_10", "msg_11"]
        assert session.messages[0].content == [ContentBlock(TEXT, "first"), ContentBlock(TEXT, "second")]
        assert [b.kind for b in session.messages[1].content] == [TEXT, TOOL_CALL, TEXT, TEXT]
        assert session.messages[2].content == [ContentBlock(TEXT, "thanks")]

    def test_session_identity(self, opencode_provider, storage):
        session = opencode_provider.find_sessions(storage)[0]

        assert session.agent == "opencode"
        assert session.directory == "/home/user/api"
        assert session.title == "api"
        assert session.metadata["session_title"] == "Fix bug"
        assert session.metadata["parent_id"] == "ses_0"
        assert session.metadata["model"] == "gpt-5"
        assert session.start_time == ts(0)
        assert session.end_time == ts(2)

    def test_stats(self, opencode_provider, storage):
        stats = session_stats(opencode_provider.find_sessions(storage)[0])

        assert stats.user_messages == 2
        assert stats.tool_calls == 2
        assert (stats.input_tokens, stats.output_tokens) == (50, 25)
        assert stats.duration_seconds == 120

    def test_parse_session_without_scan(self, opencode_provider, storage):
        """Test the storage root is derived from the session path."""
        session = opencode_provider.parse_session(storage / "session" / "proj1" / "ses_1.json")
        assert [m.id for m in session.messages] == ["msg_2", "msg_10", "msg_11"]

    def test_session_without_messages(self, opencode_provider, storage):
        assert opencode_provider.parse_session(storage / "session" / "proj1" / "ses_2.json") is None

    def test_malformed_session_record(self, opencode_provider, storage):
        bad = storage / "session" / "proj1" / "ses_3.json"
        bad.write_text("[]")
        with pytest.raises(MalformedLogError):
            opencode_provider.parse_session(bad)

    def test_part_index_ordinals(self, tmp_path, write_json):
        for part_id in ("10_c", "2_b", "2_a", "prt_z"):
            write_json(tmp_path / "msg_1" / f"{part_id}.json", {"id": part_id, "type": "text"})

        index = PartIndex.build(tmp_path, ["msg_1", "msg_missing"])

        assert [p["id"] for p in index.parts_for("msg_1")] == ["2_a", "2_b", "10_c", "prt_z"]
        assert index.parts_for("msg_missing") == []
        assert part_ordinal("prt_12") == 12
        assert part_ordinal("prt_abc") is None

    @pytest.mark.parametrize("part,kind", [
        ({"type": "reasoning", "text": "hmm"}, THINKING),
        ({"type": "tool-use", "data": {"name": "grep"}}, TOOL_CALL),
        ({"type": "file", "filename": "a.py"}, FILE),
        ({"type": "resource", "data": {"uri": "x"}}, FILE),
        ({"type": "patch", "hash": "abc", "files": ["a.py"]}, TEXT),
        ({"type": "snapshot", "snapshot": "abc"}, TEXT),
        ({"type": "never-seen"}, TEXT),
        ("not a dict", TEXT),
    ])
    def test_classify_part(self, part, kind):
        assert classify_part(part).kind == kind

    def test_scalar_message_time(self, opencode_provider, tmp_path, write_json):
        """Test a message record with a non-object time keeps the rest of the session."""
        root = tmp_path / "storage"
        write_json(root / "session" / "p" / "ses_9.json", {"id": "ses_9", "directory": "/w/api"})
        write_json(root / "message" / "ses_9" / "msg_1.json", {
            "id": "msg_1", "role": "user", "content": "hello", "time": {"created": self.CREATED},
        })
        write_json(root / "message" / "ses_9" / "msg_2.json", {
            "id": "msg_2", "role": "assistant", "content": "hi", "time": self.CREATED + 100_000,
        })
        write_json(root / "message" / "ses_9" / "msg_x.json", {"id": 7, "role": "user", "time": "soon"})
        write_json(root / "part" / "msg_2" / "1_a.json", {"id": "1_a", "messageID": ["msg_2"], "type": "text", "text": "hi there"})

        sessions = opencode_provider.find_sessions(root)

        assert [s.id for s in sessions] == ["ses_9"]
        messages = sessions[0].messages
        assert [m.id for m in messages][:2] == ["msg_1", "msg_2"]
        assert messages[1].content == [ContentBlock(TEXT, "hi there")]
        assert messages[0].timestamp == ts(0)
        assert messages[1].timestamp is None

    def test_missing_root(self, opencode_provider, tmp_path):
        assert opencode_provider.scan(tmp_path / "missing") == []


class TestProviderRegistry:
    """Tests for provider registry."""

    def test_get_all_providers(self):
        from agent_insights.providers import get_all_providers

        names = [p.name for p in get_all_providers()]
        assert names == ["cursor", "claude-code", "opencode"]

    def test_provider_names(self):
        from agent_insights.providers import PROVIDER_NAMES

        assert PROVIDER_NAMES == ("cursor", "claude-code", "opencode")

    def test_get_provider_by_name(self):
        from agent_insights.providers import get_provider

        assert get_provider("opencode").name == "opencode"
        assert get_provider("unknown-provider") is None

    def test_get_available_providers(self):
        from agent_insights.providers import get_available_providers

        assert isinstance(get_available_providers(), list)
