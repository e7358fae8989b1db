"""Incremental sync engine for Claude session logs.

Scans the Claude data directory for session files, detects changed sessions
by content hash and uploads only the messages past each session's watermark.
"""

from .delta import Delta, calculate_delta, extract_delta
from .engine import SyncEngine, SyncSummary, sync_loop
from .hashing import hash_file, hash_session, needs_sync
from .messages import Message, normalize_line, read_messages
from .scanner import LogFile, scan
from .state import SessionState, SyncState, load_state, save_state

__all__ = [
    "Delta",
    "LogFile",
    "Message",
    "SessionState",
    "SyncEngine",
    "SyncState",
    "SyncSummary",
    "calculate_delta",
    "extract_delta",
    "hash_file",
    "hash_session",
    "load_state",
    "needs_sync",
    "normalize_line",
    "read_messages",
    "save_state",
    "scan",
    "sync_loop",
]
