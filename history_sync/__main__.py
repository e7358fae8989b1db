"""CLI entry point for claude-history-sync."""

import argparse
import asyncio
import inspect
import json
import logging
import signal
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

from . import __version__
from .api import HistoryClient
from .config import load_config
from .credentials import default_token_provider
from .errors import CredentialError, SyncError
from .sync import SyncEngine, load_state, sync_loop


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            # UTC, same form as the timestamps in the state file
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%SZ"
            ),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def cmd_sync(args: argparse.Namespace) -> int:
    """Sync conversation history."""
    try:
        config = load_config(args.config)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    credentials = default_token_provider(config)
    client = HistoryClient(
        config.api_endpoint,
        config.machine_id,
        credentials,
        timeout=config.request_timeout_seconds,
        max_retries=config.max_retries,
    )
    engine = SyncEngine(config, client, credentials)

    # SIGTERM cancels the run like Ctrl-C so progress is saved
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    terminated = False

    def on_sigterm() -> None:
        nonlocal terminated
        terminated = True
        task.cancel()

    try:
        loop.add_signal_handler(signal.SIGTERM, on_sigterm)
        handles_sigterm = True
    except (NotImplementedError, RuntimeError):
        # not supported on Windows or outside the main thread
        handles_sigterm = False

    try:
        if args.watch:
            await sync_loop(engine, interval_seconds=config.sync_interval_minutes * 60)
            return 0

        summary = await engine.run()
    except CredentialError as e:
        print(
            f"Error: not authenticated. Log in and try again: {e}",
            file=sys.stderr,
        )
        return 1
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except asyncio.CancelledError:
        if not terminated:
            raise
        if hasattr(task, "uncancel"):
            task.uncancel()
        print("\nTerminated", file=sys.stderr)
        return 143
    finally:
        if handles_sigterm:
            loop.remove_signal_handler(signal.SIGTERM)
        await client.close()

    print(f"\nSync complete: {summary}")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Show config, auth and sync state."""
    try:
        config = load_config(args.config)
    except SyncError as e:
        print(f"Config: error loading ({e})", file=sys.stderr)
        return 1

    status_data = {
        "config": {
            "api_endpoint": config.api_endpoint,
            "machine_id": config.machine_id,
            "data_dir": str(config.claude_data_dir),
            "state_path": str(config.state_path),
        },
    }

    try:
        await default_token_provider(config).get_token()
        status_data["auth"] = {"authenticated": True}
    except CredentialError as e:
        status_data["auth"] = {"authenticated": False, "error": str(e)}

    try:
        state = load_state(config.state_path)
        status_data["state"] = {
            "last_sync_at": state.last_sync_at or None,
            "sessions": len(state.sessions),
            "messages": sum(s.message_count for s in state.sessions.values()),
        }
    except SyncError as e:
        status_data["state"] = {"error": str(e)}

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    cfg = status_data["config"]
    print("Config:")
    print(f"  API Endpoint: {cfg['api_endpoint']}")
    print(f"  Machine ID:   {cfg['machine_id']}")
    print(f"  Data Dir:     {cfg['data_dir']}")
    print()

    auth = status_data["auth"]
    print("Auth:")
    if auth["authenticated"]:
        print("  Status: authenticated")
    else:
        print(f"  Status: not authenticated ({auth['error']})")
    print()

    sync_state = status_data["state"]
    if "error" in sync_state:
        print(f"Sync State: error loading ({sync_state['error']})")
        return 0

    print("Sync State:")
    print(f"  Last Sync:    {sync_state['last_sync_at'] or 'never'}")
    print(f"  Sessions:     {sync_state['sessions']}")
    print(f"  Messages:     {sync_state['messages']}")

    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Print version information."""
    print(f"claude-history-sync {__version__}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="claude-history-sync",
        description="Sync Claude conversation history to a remote service",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: ~/.claude-history-sync/config.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    sync_parser = subparsers.add_parser("sync", help="Sync Claude conversation history")
    sync_parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep running and sync every sync_interval_minutes",
    )
    sync_parser.set_defaults(func=cmd_sync)

    status_parser = subparsers.add_parser("status", help="Show sync and auth status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    version_parser = subparsers.add_parser("version", help="Print version information")
    version_parser.set_defaults(func=cmd_version)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if inspect.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
