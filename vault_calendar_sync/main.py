#!/usr/bin/env python3
"""
Vault ↔ Calendar Sync CLI

Main command-line interface for the sync tool.
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from .calendar_api import CalendarApiClient
from .calendar_sync import CalendarSync
from .dates import parse_moment
from .exceptions import CalendarSyncError, SetupError
from .query import apply_query, parse_query, render_agenda
from .status import LoggingStatusListener, StatusBroadcaster
from .sync_engine import Synchronizer
from .sync_history import SyncHistory
from .vault import FileSystemVault, VaultTasks
from . import config

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Log to the console and to a file under LOGS_DIR."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s"
    )

    try:
        config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.LOGS_DIR / "sync.log", encoding="utf-8")
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
        return
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logging.getLogger().addHandler(file_handler)


@asynccontextmanager
async def open_synchronizer():
    """
    Wire the synchronizer to the configured vault and calendar.

    Raises:
        SetupError: if the vault is missing or no access token is configured
    """
    if not config.VAULT_PATH.is_dir():
        raise SetupError(f"Vault not found at {config.VAULT_PATH}. Set VAULT_PATH.")

    try:
        client = CalendarApiClient()
    except ValueError as e:
        raise SetupError(str(e))

    status = StatusBroadcaster()
    status.subscribe(LoggingStatusListener())

    synchronizer = Synchronizer(
        vault=VaultTasks(FileSystemVault(config.VAULT_PATH)),
        calendar=CalendarSync(client, status=status),
        history=SyncHistory(),
    )
    try:
        yield synchronizer
    finally:
        await client.close()


async def _sync(args) -> int:
    async with open_synchronizer() as synchronizer:
        result = await synchronizer.run_sync(
            mode="manual" if args.manual else "auto",
            dry_run=args.dry_run,
        )
    return 0 if not result.errors else 1


def cmd_sync(args):
    """Run one sync pass."""
    print("Starting sync...")
    code = asyncio.run(_sync(args))

    if args.dry_run:
        print("\n[DRY RUN] No changes were made.")

    return code


async def _watch() -> None:
    async with open_synchronizer() as synchronizer:
        loop = asyncio.get_running_loop()
        next_sync = loop.time()
        while True:
            if loop.time() >= next_sync:
                await synchronizer.run_sync(mode="auto")
                next_sync = loop.time() + config.SYNC_INTERVAL_SECONDS
            await synchronizer.flush_retry_queue()
            await asyncio.sleep(config.QUEUE_INTERVAL_SECONDS)


def cmd_watch(args):
    """Sync periodically and replay queued patches until interrupted."""
    print(
        f"Watching (sync every {config.SYNC_INTERVAL_SECONDS}s, "
        f"retry queue every {config.QUEUE_INTERVAL_SECONDS}s). Press Ctrl+C to stop."
    )
    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        print("\nStopped.")
    return 0


async def _agenda(query) -> list:
    window_start = parse_moment(query.time_min)
    async with open_synchronizer() as synchronizer:
        return await synchronizer.list_active_todos(window_start)


def cmd_agenda(args):
    """Print the open calendar tasks selected by a query file."""
    query_path = Path(args.query_file)
    if not query_path.exists():
        print(f"Error: Query file not found: {query_path}")
        return 1

    query = parse_query(query_path.read_text(encoding="utf-8"))
    todos = asyncio.run(_agenda(query))
    print(render_agenda(query, apply_query(query, todos)))
    return 0


async def _done(path: str, block_id: str) -> int:
    async with open_synchronizer() as synchronizer:
        todo = await synchronizer.find_todo(block_id)
        if todo is None:
            print(f"Error: No calendar event carries block ID ^{block_id}")
            return 1

        todo.source_path = path
        delivered = await synchronizer.patch_todo_to_done(todo)
        if delivered:
            print(f"✓ Marked '{todo.content}' done")
            return 0

        # Nothing else will replay the queue in a one-shot command
        if await synchronizer.flush_retry_queue():
            print(f"✓ Marked '{todo.content}' done")
            return 0
        print(f"✗ Marked '{todo.content}' done locally, calendar not updated")
        return 1


def cmd_done(args):
    """Mark a task done in its note and in the calendar."""
    return asyncio.run(_done(args.path, args.block_id))


def cmd_status(args):
    """Show sync status."""
    history = SyncHistory()
    last_logs = history.get_recent_logs(5)

    print("\n=== Sync Status ===\n")
    print(f"Vault: {config.VAULT_PATH}")
    print(f"Calendar: {config.CALENDAR_ID}")
    print()
    print("Sync History:")
    for key, value in history.get_stats().items():
        print(f"  {key}: {value}")

    if last_logs:
        print("\nRecent Activity:")
        for log in last_logs:
            block = f" ^{log['block_id']}" if log["block_id"] else ""
            print(f"  [{log['timestamp']}] {log['action']}{block}")

    return 0


async def _test() -> None:
    print("Testing vault...")
    try:
        vault = VaultTasks(FileSystemVault(config.VAULT_PATH))
        if not config.VAULT_PATH.is_dir():
            print(f"  ✗ Vault not found at {config.VAULT_PATH}")
        else:
            tasks = await vault.list_tasks(Synchronizer.default_window_start(), mode="manual", assign_ids=False)
            print(f"  ✓ Connected. Found {len(tasks)} tasks.")
    except (OSError, CalendarSyncError) as e:
        print(f"  ✗ Error: {e}")

    print("\nTesting calendar...")
    try:
        client = CalendarApiClient()
    except ValueError as e:
        print(f"  ✗ Error: {e}")
        return

    try:
        calendar = CalendarSync(client)
        if await calendar.is_ready():
            todos = await calendar.list_events(Synchronizer.default_window_start(), config.FETCH_MAX_EVENTS)
            print(f"  ✓ Connected. Found {len(todos)} events.")
        else:
            print("  ✗ Connection failed.")
    except CalendarSyncError as e:
        print(f"  ✗ Error: {e}")
    finally:
        await client.close()


def cmd_test(args):
    """Test connections to both systems."""
    print("\n=== Connection Test ===\n")
    asyncio.run(_test())
    return 0


def cmd_clear_history(args):
    """Clear the sync history."""
    if not args.yes:
        response = input("This will clear all sync history. Type 'CLEAR' to confirm: ")
        if response != "CLEAR":
            print("Cancelled.")
            return 1

    history = SyncHistory()
    history.clear_all()
    print("Sync history cleared.")
    return 0


def cmd_config(args):
    """Show current configuration."""
    config.print_config()
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Vault ↔ Calendar Sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what sync would do
  vault-calendar-sync sync --dry-run

  # Run the actual sync, including the task under the cursor
  vault-calendar-sync sync --manual

  # Keep syncing in the background
  vault-calendar-sync watch

  # Print an agenda from a query file
  vault-calendar-sync agenda queries/this-week.yaml

  # Mark a task done in its note and the calendar
  vault-calendar-sync done Projects/home.md AB12CD34

  # Check sync status
  vault-calendar-sync status
"""
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log debug output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync pass")
    sync_parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Preview changes without making them"
    )
    sync_parser.add_argument(
        "--manual", "-m",
        action="store_true",
        help="Also sync the task under the editor cursor"
    )

    # watch command
    subparsers.add_parser("watch", help="Sync periodically until interrupted")

    # agenda command
    agenda_parser = subparsers.add_parser("agenda", help="Print open tasks selected by a query")
    agenda_parser.add_argument("query_file", help="Path to a YAML query file")

    # done command
    done_parser = subparsers.add_parser("done", help="Mark a task done in both systems")
    done_parser.add_argument("path", help="Note path relative to the vault")
    done_parser.add_argument("block_id", help="Block ID of the task, without ^")

    # status command
    subparsers.add_parser("status", help="Show sync status")

    # test command
    subparsers.add_parser("test", help="Test connections to both systems")

    # config command
    subparsers.add_parser("config", help="Show current configuration")

    # clear-history command
    clear_parser = subparsers.add_parser("clear-history", help="Clear sync history")
    clear_parser.add_argument("--yes", "-y", action="store_true")

    args = parser.parse_args()
    setup_logging(args.verbose)

    # Dispatch to command handler
    commands = {
        "sync": cmd_sync,
        "watch": cmd_watch,
        "agenda": cmd_agenda,
        "done": cmd_done,
        "status": cmd_status,
        "test": cmd_test,
        "config": cmd_config,
        "clear-history": cmd_clear_history,
    }

    handler = commands.get(args.command)
    if not handler:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(handler(args))
    except CalendarSyncError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
