"""Shared fixtures for history sync tests."""

import json
from pathlib import Path

import pytest

from history_sync.config import Config
from history_sync.sync.messages import Message

THREE_LINES = (
    '{"uuid":"msg-1","timestamp":"2024-01-01T00:00:00Z","role":"user","content":"Hello","model":null,"tokens":null}\n'
    '{"uuid":"msg-2","timestamp":"2024-01-01T00:01:00Z","role":"assistant","content":"Hi there","model":"claude-sonnet-4-5-20250929","tokens":42}\n'
    '{"uuid":"msg-3","timestamp":"2024-01-01T00:02:00Z","role":"user","content":"Thanks","model":null,"tokens":null}\n'
)


def write_session(directory: Path, name: str, records: list[dict] | str) -> Path:
    """Write a session log file from records or raw text."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    if isinstance(records, str):
        path.write_text(records)
    else:
        path.write_text("".join(json.dumps(r) + "\n" for r in records))
    return path


@pytest.fixture
def three_line_session(tmp_path):
    """A legacy-shape session file with msg-1..msg-3."""
    return write_session(tmp_path / "my-project", "test-session.jsonl", THREE_LINES)


@pytest.fixture
def messages():
    """Three normalized messages."""
    return [
        Message(uuid="a", timestamp="2024-01-01T00:00:00Z", role="user", content="Hello"),
        Message(
            uuid="b",
            timestamp="2024-01-01T00:01:00Z",
            role="assistant",
            content="Hi",
            model="claude-sonnet-4-5-20250929",
            tokens=10,
        ),
        Message(uuid="c", timestamp="2024-01-01T00:02:00Z", role="user", content="Thanks"),
    ]


@pytest.fixture
def config(tmp_path):
    """Config pointing at temporary directories."""
    return Config(
        api_endpoint="http://history.test",
        machine_id="test-machine",
        claude_data_dir=tmp_path / "projects",
        exclude_patterns=[],
        state_path=tmp_path / "state" / "state.json",
        token_path=tmp_path / "token.json",
    )


@pytest.fixture
def session_writer():
    """Helper for writing session log files."""
    return write_session
