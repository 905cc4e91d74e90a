"""Shared fixtures for writing raw session logs."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from agent_insights.models import TEXT, ContentBlock, UnifiedMessage, UnifiedSession

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def write_jsonl():
    """Write rows (dicts or raw strings) as a JSONL file, creating parents."""

    def _write(path, rows):
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [row if isinstance(row, str) else json.dumps(row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_json():
    def _write(path, data):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_session():
    """Build a session whose messages are ``seconds_apart`` seconds apart."""

    def _make(user_messages=2, seconds_apart=30, agent="claude-code", session_id="s1"):
        messages = []
        for i in range(user_messages):
            messages.append(UnifiedMessage(
                id=f"u{i}",
                role="user",
                content=[ContentBlock(TEXT, f"question {i}")],
                timestamp=BASE_TIME + timedelta(seconds=2 * i * seconds_apart),
            ))
            messages.append(UnifiedMessage(
                id=f"a{i}",
                role="assistant",
                content=[ContentBlock(TEXT, f"answer {i}")],
                timestamp=BASE_TIME + timedelta(seconds=(2 * i + 1) * seconds_apart),
            ))
        return UnifiedSession(
            id=session_id,
            agent=agent,
            title="webapp",
            directory="/home/user/webapp",
            start_time=messages[0].timestamp if messages else None,
            end_time=messages[-1].timestamp if messages else None,
            messages=messages,
        )

    return _make
