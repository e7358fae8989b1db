"""Sync orchestration: scan, hash, diff, upload, record progress.

A run processes session files one at a time. Each file is hashed and
compared with the server's hash; changed sessions have their new messages
uploaded, and the session watermark only moves forward after the server
confirms the upload. Per-file failures are counted and the run carries on.
State is written once at the end of the run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..config import Config
from ..credentials import TokenProvider
from ..errors import DeliveryError, HashError, PersistError, SyncError
from .delta import extract_delta
from .hashing import hash_session, needs_sync
from .messages import read_messages
from .scanner import LogFile, scan
from .state import SyncState, load_state

if TYPE_CHECKING:
    from ..api.client import HistoryClient

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    """Aggregate counts of a sync run."""

    total_files: int = 0
    synced: int = 0
    skipped: int = 0  # remote hash matched
    unchanged: int = 0  # hash differed but no message is past the watermark
    errored: int = 0

    def __str__(self) -> str:
        text = (
            f"{self.synced} sessions synced, "
            f"{self.skipped} skipped (unchanged)"
        )
        if self.errored:
            text += f", {self.errored} errors"
        return text


class SyncEngine:
    """Runs incremental syncs of local session logs to the history API."""

    def __init__(
        self,
        config: Config,
        client: "HistoryClient",
        credentials: TokenProvider,
    ):
        """Initialize the engine.

        Args:
            config: Loaded configuration.
            client: API client used to fetch hashes and upload deltas.
            credentials: Token provider checked before any work starts.
        """
        self.config = config
        self.client = client
        self.credentials = credentials

    async def run(self) -> SyncSummary:
        """Perform one sync run.

        Returns:
            SyncSummary with per-session outcome counts.

        Raises:
            CredentialError: If no valid token is available.
            StateError: If the state file cannot be loaded.
            ScanError: If the data directory cannot be read.
            PersistError: If the state file cannot be saved at the end.
        """
        await self.credentials.get_token()

        state = load_state(self.config.state_path)

        logger.info(f"Scanning {self.config.claude_data_dir} for conversations")
        files = scan(self.config.claude_data_dir, self.config.exclude_patterns)
        logger.info(f"Found {len(files)} conversation files")

        summary = SyncSummary(total_files=len(files))
        completed = False
        try:
            remote_hashes = await self._fetch_remote_hashes()
            for log_file in files:
                await self.sync_file(log_file, state, remote_hashes, summary)
            completed = True
        finally:
            if not completed:
                logger.warning("Sync interrupted, saving progress so far")
                self._save_best_effort(state)

        state.save(self.config.state_path)
        logger.info(f"Sync complete: {summary}")
        return summary

    async def _fetch_remote_hashes(self) -> dict[str, str]:
        """Fetch remote hashes, degrading to an empty map on failure."""
        try:
            hashes = await self.client.get_conversation_hashes()
        except DeliveryError as e:
            logger.warning(f"Failed to fetch conversation list: {e}")
            logger.warning(
                "Continuing with UUID-based sync (may re-process unchanged conversations)"
            )
            return {}

        logger.info(f"Server has {len(hashes)} conversations")
        return hashes

    async def sync_file(
        self,
        log_file: LogFile,
        state: SyncState,
        remote_hashes: dict[str, str],
        summary: SyncSummary,
    ) -> None:
        """Sync a single session file, recording the outcome in summary."""
        session_id = log_file.session_id

        try:
            messages = read_messages(log_file.path)
            local_hash = hash_session(session_id, log_file.project_path, messages)
        except HashError as e:
            logger.warning(f"Error calculating hash for {log_file.path}: {e}")
            summary.errored += 1
            return

        if not needs_sync(local_hash, remote_hashes.get(session_id)):
            logger.debug(f"Skipping {session_id}: unchanged")
            summary.skipped += 1
            return

        delta = extract_delta(
            messages,
            state.get_last_synced_uuid(session_id),
            session_id=session_id,
            project_path=log_file.project_path,
        )
        if delta is None:
            logger.debug(f"No new messages in {session_id}")
            summary.unchanged += 1
            return

        try:
            response = await self.client.sync_session(delta)
        except DeliveryError as e:
            logger.warning(f"Sync failed for {session_id}: {e}")
            summary.errored += 1
            return

        if not response.success:
            logger.warning(f"Server did not accept {session_id}")
            summary.errored += 1
            return

        state.update_session(session_id, delta.new_last_uuid, response.processed)
        summary.synced += 1
        logger.info(f"Synced {response.processed} messages from {session_id}")

    def _save_best_effort(self, state: SyncState) -> None:
        try:
            state.save(self.config.state_path)
        except PersistError as e:
            logger.error(f"Failed to save sync state: {e}")


async def sync_loop(
    engine: SyncEngine,
    interval_seconds: int = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Run sync repeatedly until stopped.

    Args:
        engine: Engine to run.
        interval_seconds: Seconds between runs.
        stop_event: Event to signal loop should stop.
    """
    logger.info(f"Starting sync loop with {interval_seconds}s interval")

    while True:
        if stop_event and stop_event.is_set():
            break

        try:
            await engine.run()
        except SyncError as e:
            logger.error(f"Sync run failed: {e}")

        if stop_event:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
                break  # Stop event was set
            except asyncio.TimeoutError:
                pass  # Normal timeout, continue loop
        else:
            await asyncio.sleep(interval_seconds)

    logger.info("Sync loop stopped")
