"""Content hashing for change detection against the remote service.

The server computes the same digest independently from the conversations it
has ingested, so the canonical form below has to match it byte for byte:
one compact JSON metadata line followed by one compact JSON line per
message, joined with ``\\n`` and no trailing newline, hashed with SHA-256.
"""

import hashlib
import json
import re
from typing import Any

from ..errors import EmptyContentError, HashError
from .messages import Message, read_messages
from .scanner import LogFile

UNKNOWN_MODEL = "unknown"

_SURROGATE = re.compile("[\ud800-\udfff]")


def dumps(data: Any) -> str:
    """Serialize to compact JSON the way JSON.stringify does.

    Non-ASCII text is left as is, except lone surrogates (e.g. from a
    truncated emoji), which are written as \\uXXXX escapes.
    """
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return _SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def content_hash(content: str) -> str:
    """SHA-256 of a string's UTF-8 bytes as lowercase hex."""
    try:
        data = content.encode("utf-8")
    except UnicodeError as e:
        raise HashError(f"content is not encodable as UTF-8: {e}") from e
    return hashlib.sha256(data).hexdigest()


def extract_models(messages: list[Message]) -> list[str]:
    """Distinct non-empty models in first-seen order, or ``["unknown"]``."""
    models: dict[str, None] = {}
    for message in messages:
        if message.model:
            models.setdefault(message.model, None)
    return list(models) or [UNKNOWN_MODEL]


def total_tokens(messages: list[Message]) -> int:
    return sum(message.tokens for message in messages)


def build_metadata(
    session_id: str, project_path: str, messages: list[Message]
) -> dict[str, Any]:
    """Build the session metadata record in canonical key order."""
    if not messages:
        raise EmptyContentError(f"session {session_id} has no valid messages")

    return {
        "sessionId": session_id,
        "userId": "",  # filled in by the server
        "projectPath": project_path,
        "timestamp": messages[0].timestamp,
        "startTime": messages[0].timestamp,
        "endTime": messages[-1].timestamp,
        "messageCount": len(messages),
        "models": extract_models(messages),
        "totalTokens": total_tokens(messages),
    }


def build_session_jsonl(
    session_id: str, project_path: str, messages: list[Message]
) -> str:
    """Render a session in the canonical JSONL form used for hashing."""
    lines = [dumps(build_metadata(session_id, project_path, messages))]
    lines.extend(dumps(message.to_dict()) for message in messages)
    return "\n".join(lines)


def hash_session(session_id: str, project_path: str, messages: list[Message]) -> str:
    """Compute the content hash of a session.

    Args:
        session_id: Session identifier.
        project_path: Project path of the session.
        messages: Normalized messages in file order.

    Returns:
        64-character lowercase hex digest.

    Raises:
        EmptyContentError: If there are no messages.
    """
    return content_hash(build_session_jsonl(session_id, project_path, messages))


def hash_file(log_file: LogFile) -> str:
    """Read a log file and compute its content hash.

    Raises:
        HashError: If the file is unreadable or has no valid messages.
    """
    messages = read_messages(log_file.path)
    return hash_session(log_file.session_id, log_file.project_path, messages)


def needs_sync(local_hash: str, remote_hash: str | None) -> bool:
    """A session needs syncing when the server has no hash or a different one."""
    if not remote_hash:
        return True
    return local_hash != remote_hash
