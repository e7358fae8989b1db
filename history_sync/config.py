"""Configuration loading for claude-history-sync."""

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

DEFAULT_API_ENDPOINT = "https://claude-history-mcp.devrel.hny.wtf"


def default_config_dir() -> Path:
    return Path.home() / ".claude-history-sync"


def default_config_path() -> Path:
    return default_config_dir() / "config.yaml"


@dataclass
class Config:
    api_endpoint: str = DEFAULT_API_ENDPOINT
    machine_id: str = ""
    claude_data_dir: Path = field(default_factory=lambda: Path(".claude/projects"))
    exclude_patterns: list[str] = field(default_factory=list)
    sync_interval_minutes: int = 5
    state_path: Path = field(default_factory=lambda: Path("state.json"))
    token_path: Path = field(default_factory=lambda: Path("token.json"))
    request_timeout_seconds: float = 30.0
    max_retries: int = 3


def default_config() -> Config:
    """Build the default config from the home directory and hostname.

    This is the only place process environment feeds into defaults; the
    resulting Config is passed explicitly to everything else.
    """
    home = Path.home()
    config_dir = default_config_dir()
    return Config(
        machine_id=socket.gethostname(),
        claude_data_dir=home / ".claude" / "projects",
        state_path=config_dir / "state.json",
        token_path=config_dir / "token.json",
    )


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with HISTORY_SYNC_ prefix."""
    return os.environ.get(f"HISTORY_SYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if endpoint := _get_env("API_ENDPOINT"):
        config.api_endpoint = endpoint
    if machine_id := _get_env("MACHINE_ID"):
        config.machine_id = machine_id
    if data_dir := _get_env("DATA_DIR"):
        config.claude_data_dir = Path(data_dir).expanduser()
    if exclude := _get_env("EXCLUDE"):
        config.exclude_patterns = [p.strip() for p in exclude.split(",") if p.strip()]
    if interval := _get_env("INTERVAL"):
        config.sync_interval_minutes = _int_value("HISTORY_SYNC_INTERVAL", interval)
    if state_path := _get_env("STATE_PATH"):
        config.state_path = Path(state_path).expanduser()
    if token_path := _get_env("TOKEN_PATH"):
        config.token_path = Path(token_path).expanduser()

    return config


def _int_value(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _float_value(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _pattern_list(value: Any) -> list[str]:
    """A single pattern or a list of patterns."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise ConfigError(f"exclude_patterns must be a list of strings, got {value!r}")
    return [p for p in value if p]


def _path_value(data: dict, key: str, default: Path) -> Path:
    value = data.get(key)
    if not value:
        return default
    return Path(value).expanduser()


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses
            ``~/.claude-history-sync/config.yaml``.

    Returns:
        Loaded Config object. A missing file yields the defaults.

    Raises:
        ConfigError: If the file exists but cannot be read or parsed.
    """
    config = default_config()
    path = Path(config_path) if config_path else default_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"loading config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"config file {path} is not a mapping")

        config = Config(
            api_endpoint=data.get("api_endpoint") or config.api_endpoint,
            machine_id=data.get("machine_id") or config.machine_id,
            claude_data_dir=_path_value(data, "claude_data_dir", config.claude_data_dir),
            exclude_patterns=_pattern_list(data.get("exclude_patterns")),
            sync_interval_minutes=_int_value(
                "sync_interval_minutes",
                data.get("sync_interval_minutes", config.sync_interval_minutes),
            ),
            state_path=_path_value(data, "state_path", config.state_path),
            token_path=_path_value(data, "token_path", config.token_path),
            request_timeout_seconds=_float_value(
                "request_timeout_seconds",
                data.get("request_timeout_seconds", config.request_timeout_seconds),
            ),
            max_retries=_int_value(
                "max_retries", data.get("max_retries", config.max_retries)
            ),
        )

    config = _apply_env_overrides(config)

    # Endpoint paths are appended directly
    config.api_endpoint = config.api_endpoint.rstrip("/")

    return config
