"""Extraction of messages newer than a session's watermark."""

import logging
from dataclasses import dataclass, field

from .messages import Message, read_messages
from .scanner import LogFile

logger = logging.getLogger(__name__)


@dataclass
class Delta:
    """Messages of one session that have not been delivered yet."""

    session_id: str
    project_path: str
    messages: list[Message] = field(default_factory=list)
    new_last_uuid: str = ""


def new_messages(messages: list[Message], last_synced_uuid: str) -> list[Message]:
    """Return the messages after the watermark.

    If the watermark isn't present the file is assumed to have been
    rewritten and every message is returned.
    """
    if not last_synced_uuid:
        return list(messages)

    for i, message in enumerate(messages):
        if message.uuid == last_synced_uuid:
            return list(messages[i + 1 :])

    logger.debug(f"Watermark {last_synced_uuid} not found, resending all messages")
    return list(messages)


def extract_delta(
    messages: list[Message],
    last_synced_uuid: str,
    session_id: str = "",
    project_path: str = "",
) -> Delta | None:
    """Compute the delta of a session against its watermark.

    Args:
        messages: Normalized messages in file order.
        last_synced_uuid: UUID of the last delivered message, or "".
        session_id: Session the messages belong to.
        project_path: Project path of the session.

    Returns:
        A Delta with at least one message, or None if nothing is new.
    """
    pending = new_messages(messages, last_synced_uuid)
    if not pending:
        return None

    return Delta(
        session_id=session_id,
        project_path=project_path,
        messages=pending,
        new_last_uuid=pending[-1].uuid,
    )


def calculate_delta(log_file: LogFile, last_synced_uuid: str) -> Delta | None:
    """Read a log file and compute its delta.

    Raises:
        HashError: If the file cannot be read.
    """
    return extract_delta(
        read_messages(log_file.path),
        last_synced_uuid,
        session_id=log_file.session_id,
        project_path=log_file.project_path,
    )
