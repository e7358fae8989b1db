"""Discovery of session log files under the Claude data directory."""

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from ..errors import ScanError

logger = logging.getLogger(__name__)

LOG_EXTENSION = ".jsonl"

# Hidden directories are skipped, apart from this one
HIDDEN_DIR_ALLOWED = ".claude"


@dataclass
class LogFile:
    """A session log file found by the scanner."""

    path: Path
    project_path: str
    session_id: str
    mod_time: int = 0
    size: int = 0


def extract_project_path(rel_path: str | Path) -> str:
    """Derive the project path from a file path relative to the scan root.

    Args:
        rel_path: Path of the log file relative to the scan root.

    Returns:
        ``/`` for files directly under the root, otherwise the parent
        directory prefixed with ``/`` using forward slashes.
    """
    parent = Path(rel_path).parent
    if str(parent) == ".":
        return "/"
    return "/" + parent.as_posix()


def extract_session_id(filename: str) -> str:
    """Strip the log extension from a file name."""
    if filename.endswith(LOG_EXTENSION):
        return filename[: -len(LOG_EXTENSION)]
    return filename


def is_excluded(path: str | Path, patterns: list[str]) -> bool:
    """Check whether a path is excluded by any pattern.

    A pattern excludes a file when it glob-matches the file's basename or
    appears anywhere in the full path.
    """
    path_str = str(path)
    name = os.path.basename(path_str)
    for pattern in patterns:
        if fnmatch.fnmatchcase(name, pattern):
            return True
        if pattern in path_str:
            return True
    return False


def _skip_dir(name: str) -> bool:
    return name.startswith(".") and name != HIDDEN_DIR_ALLOWED


def scan(root_dir: str | Path, exclude_patterns: list[str] | None = None) -> list[LogFile]:
    """Recursively find session log files.

    Args:
        root_dir: Directory to walk.
        exclude_patterns: Glob or substring patterns to leave out.

    Returns:
        LogFile entries in sorted walk order.

    Raises:
        ScanError: If the root directory itself cannot be read.
    """
    root = Path(root_dir)
    patterns = exclude_patterns or []

    try:
        os.listdir(root)
    except OSError as e:
        raise ScanError(f"cannot read scan root {root}: {e}") from e

    def on_error(err: OSError) -> None:
        logger.debug(f"Skipping unreadable directory {err.filename}: {err.strerror}")

    files = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        # Prune in place so os.walk doesn't descend
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(d))

        for filename in sorted(filenames):
            if not filename.endswith(LOG_EXTENSION):
                continue

            path = Path(dirpath) / filename
            if is_excluded(path, patterns):
                logger.debug(f"Excluded {path}")
                continue

            try:
                stat = path.stat()
            except OSError as e:
                logger.debug(f"Cannot stat {path}: {e}")
                continue

            files.append(
                LogFile(
                    path=path,
                    project_path=extract_project_path(path.relative_to(root)),
                    session_id=extract_session_id(filename),
                    mod_time=int(stat.st_mtime),
                    size=stat.st_size,
                )
            )

    logger.debug(f"Scanned {root}: {len(files)} log files")
    return files
