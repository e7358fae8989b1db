"""Persistent record of per-session sync progress.

The state file is the only durable record of which messages have been
delivered. It is loaded once at the start of a run and written once at the
end through a temp file and rename, so an interrupted write never leaves a
truncated file behind.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import PersistError, StateError

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as an RFC 3339 string with second precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class SessionState:
    """Sync progress of a single session."""

    last_synced_uuid: str = ""
    last_sync_at: str = ""
    message_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_synced_uuid": self.last_synced_uuid,
            "last_sync_at": self.last_sync_at,
            "message_count": self.message_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        return cls(
            last_synced_uuid=data.get("last_synced_uuid") or "",
            last_sync_at=data.get("last_sync_at") or "",
            message_count=data.get("message_count") or 0,
        )


@dataclass
class SyncState:
    """Sync progress of all sessions."""

    sessions: dict[str, SessionState] = field(default_factory=dict)
    last_sync_at: str = ""

    def get_last_synced_uuid(self, session_id: str) -> str:
        """Get the watermark of a session, or "" if it was never synced."""
        session = self.sessions.get(session_id)
        return session.last_synced_uuid if session else ""

    def update_session(self, session_id: str, last_uuid: str, message_count: int) -> None:
        """Record a successful delivery for a session."""
        self.sessions[session_id] = SessionState(
            last_synced_uuid=last_uuid,
            last_sync_at=utc_now(),
            message_count=message_count,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions": {sid: s.to_dict() for sid, s in self.sessions.items()},
            "last_sync_at": self.last_sync_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncState":
        sessions = data.get("sessions") or {}
        if not isinstance(sessions, dict):
            raise StateError("'sessions' is not an object")
        return cls(
            sessions={
                sid: SessionState.from_dict(s or {}) for sid, s in sessions.items()
            },
            last_sync_at=data.get("last_sync_at") or "",
        )

    def save(self, path: str | Path) -> None:
        """Write the state atomically, stamping ``last_sync_at``."""
        save_state(path, self)


def load_state(path: str | Path) -> SyncState:
    """Load sync state from disk.

    Args:
        path: Path to the state file.

    Returns:
        The loaded state, or an empty state if the file doesn't exist.

    Raises:
        StateError: If the file exists but cannot be read or parsed.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"No state file at {path}, starting fresh")
        return SyncState()
    except OSError as e:
        raise StateError(f"reading state file {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise StateError(f"parsing state file {path}: {e}") from e

    if not isinstance(data, dict):
        raise StateError(f"parsing state file {path}: not a JSON object")

    try:
        state = SyncState.from_dict(data)
    except (AttributeError, TypeError) as e:
        raise StateError(f"parsing state file {path}: {e}") from e

    logger.debug(f"Loaded state for {len(state.sessions)} sessions from {path}")
    return state


def save_state(path: str | Path, state: SyncState) -> None:
    """Atomically write sync state to disk.

    The parent directory is created with mode 0700 and the file is written
    with mode 0600.

    Raises:
        PersistError: If the file cannot be written or renamed into place.
    """
    path = Path(path)
    state.last_sync_at = utc_now()
    data = json.dumps(state.to_dict(), indent=2)

    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise PersistError(f"creating state directory {path.parent}: {e}") from e

    tmp_path: Path | None = None
    try:
        # mkstemp creates the file with mode 0600
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=path.parent,
            prefix=path.name + ".tmp.",
        ) as f:
            tmp_path = Path(f.name)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise PersistError(f"writing state file {path}: {e}") from e

    logger.debug(f"Saved state for {len(state.sessions)} sessions to {path}")
