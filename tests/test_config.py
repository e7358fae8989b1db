"""Tests for configuration loading."""

import socket
from pathlib import Path

import pytest

from history_sync.config import DEFAULT_API_ENDPOINT, load_config
from history_sync.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in [
        "HISTORY_SYNC_API_ENDPOINT",
        "HISTORY_SYNC_MACHINE_ID",
        "HISTORY_SYNC_DATA_DIR",
        "HISTORY_SYNC_EXCLUDE",
        "HISTORY_SYNC_INTERVAL",
        "HISTORY_SYNC_STATE_PATH",
        "HISTORY_SYNC_TOKEN_PATH",
    ]:
        monkeypatch.delenv(key, raising=False)


class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults_when_missing(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.api_endpoint == DEFAULT_API_ENDPOINT
        assert config.machine_id == socket.gethostname()
        assert config.claude_data_dir == Path.home() / ".claude" / "projects"
        assert config.state_path == Path.home() / ".claude-history-sync" / "state.json"
        assert config.exclude_patterns == []
        assert config.sync_interval_minutes == 5

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "api_endpoint: https://example.test/api/\n"
            "machine_id: laptop\n"
            "claude_data_dir: /data/claude\n"
            "exclude_patterns:\n"
            "  - agent-*\n"
            "  - /tmp/\n"
            "sync_interval_minutes: 15\n"
            "max_retries: 1\n"
        )

        config = load_config(path)

        assert config.api_endpoint == "https://example.test/api"
        assert config.machine_id == "laptop"
        assert config.claude_data_dir == Path("/data/claude")
        assert config.exclude_patterns == ["agent-*", "/tmp/"]
        assert config.sync_interval_minutes == 15
        assert config.max_retries == 1

    def test_tilde_expanded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("state_path: ~/sync/state.json\n")

        config = load_config(path)

        assert config.state_path == Path.home() / "sync" / "state.json"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path).api_endpoint == DEFAULT_API_ENDPOINT

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("machine_id: laptop\n")
        monkeypatch.setenv("HISTORY_SYNC_MACHINE_ID", "desktop")
        monkeypatch.setenv("HISTORY_SYNC_EXCLUDE", "a*, b*,")
        monkeypatch.setenv("HISTORY_SYNC_INTERVAL", "10")

        config = load_config(path)

        assert config.machine_id == "desktop"
        assert config.exclude_patterns == ["a*", "b*"]
        assert config.sync_interval_minutes == 10

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("api_endpoint: [unclosed\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_single_exclude_pattern(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("exclude_patterns: agent-*\n")

        assert load_config(path).exclude_patterns == ["agent-*"]

    @pytest.mark.parametrize(
        "value",
        ["{a: b}", "[1, 2]", "[agent-*, {a: b}]", "5"],
    )
    def test_invalid_exclude_patterns(self, tmp_path, value):
        path = tmp_path / "config.yaml"
        path.write_text(f"exclude_patterns: {value}\n")

        with pytest.raises(ConfigError, match="exclude_patterns"):
            load_config(path)

    @pytest.mark.parametrize(
        "line,field",
        [
            ("max_retries: lots", "max_retries"),
            ("sync_interval_minutes: soon", "sync_interval_minutes"),
            ("request_timeout_seconds: slow", "request_timeout_seconds"),
            ("max_retries: true", "max_retries"),
        ],
    )
    def test_invalid_numbers(self, tmp_path, line, field):
        path = tmp_path / "config.yaml"
        path.write_text(line + "\n")

        with pytest.raises(ConfigError, match=field):
            load_config(path)

    def test_invalid_interval_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HISTORY_SYNC_INTERVAL", "five")

        with pytest.raises(ConfigError, match="HISTORY_SYNC_INTERVAL"):
            load_config(tmp_path / "missing.yaml")
