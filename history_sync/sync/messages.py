"""Normalization of session log lines into canonical messages.

Log files are written by different versions of the Claude CLI and carry one
of two record shapes per line:

- structured: ``{"uuid", "timestamp", "type", "message": {"role", "model",
  "content"}}`` where ``content`` is a string or a list of typed parts
- legacy: ``{"uuid", "timestamp", "role", "content", "model", "tokens"}``

Every line is classified as structured first and falls back to legacy.
Lines that fit neither shape are dropped without interrupting the file.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import HashError, ParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    """A single normalized conversation message."""

    uuid: str
    timestamp: str
    role: str
    content: str
    model: str = ""
    type: str = ""
    tokens: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire/hash representation.

        Key order is part of the content hash contract. ``model`` and
        ``tokens`` are omitted when empty, ``type`` is never serialized.
        """
        data: dict[str, Any] = {
            "uuid": self.uuid,
            "timestamp": self.timestamp,
            "role": self.role,
            "content": self.content,
        }
        if self.model:
            data["model"] = self.model
        if self.tokens:
            data["tokens"] = self.tokens
        return data


def _optional_str(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ParseError(f"field {key!r} is not a string")
    return value


def _optional_int(record: dict[str, Any], key: str) -> int:
    value = record.get(key)
    if value is None:
        return 0
    # bool is an int subclass but not a token count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"field {key!r} is not an integer")
    return value


def _first_text_part(parts: list[Any]) -> str:
    for part in parts:
        if isinstance(part, dict) and part.get("type") == "text":
            text = part.get("text")
            return text if isinstance(text, str) else ""
    return ""


def _from_structured(record: dict[str, Any]) -> Message | None:
    """Build a message from the structured shape, or None if it doesn't fit."""
    inner = record.get("message")
    if not isinstance(inner, dict):
        return None

    try:
        uuid = _optional_str(record, "uuid")
        role = _optional_str(inner, "role")
        if not uuid or not role:
            return None

        content = inner.get("content")
        if isinstance(content, list):
            text = _first_text_part(content)
        elif isinstance(content, str):
            text = content
        elif content is None:
            text = ""
        else:
            return None

        return Message(
            uuid=uuid,
            timestamp=_optional_str(record, "timestamp"),
            role=role,
            content=text,
            model=_optional_str(inner, "model"),
            type=_optional_str(record, "type"),
        )
    except ParseError:
        return None


def _from_legacy(record: dict[str, Any]) -> Message:
    """Build a message from the legacy flat shape."""
    uuid = _optional_str(record, "uuid")
    role = _optional_str(record, "role")
    if not uuid or not role:
        raise ParseError("record is missing uuid or role")

    return Message(
        uuid=uuid,
        timestamp=_optional_str(record, "timestamp"),
        role=role,
        content=_optional_str(record, "content"),
        model=_optional_str(record, "model"),
        tokens=_optional_int(record, "tokens"),
    )


def parse_line(raw_line: str | bytes) -> Message:
    """Parse one log line into a message.

    Args:
        raw_line: A single line, with or without its line terminator.

    Returns:
        The normalized Message.

    Raises:
        ParseError: If the line is empty, not a JSON object, or lacks a
            uuid or role under both shapes.
    """
    if isinstance(raw_line, bytes):
        raw_line = raw_line.decode("utf-8", errors="replace")
    line = raw_line.rstrip("\r\n")
    if not line.strip():
        raise ParseError("empty line")

    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON: {e}") from e

    if not isinstance(record, dict):
        raise ParseError("record is not a JSON object")

    message = _from_structured(record)
    if message is not None:
        return message
    return _from_legacy(record)


def normalize_line(raw_line: str | bytes) -> Message | None:
    """Normalize one log line, returning None for lines that are discarded."""
    try:
        return parse_line(raw_line)
    except ParseError as e:
        logger.debug(f"Discarding log line: {e}")
        return None


def read_messages(path: str | Path) -> list[Message]:
    """Read and normalize every line of a session log file.

    Args:
        path: Path to the ``.jsonl`` file.

    Returns:
        Messages in file order. Malformed lines are skipped.

    Raises:
        HashError: If the file cannot be opened or read.
    """
    messages = []
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                message = normalize_line(line)
                if message is not None:
                    messages.append(message)
    except OSError as e:
        raise HashError(f"reading {path}: {e}") from e
    return messages
