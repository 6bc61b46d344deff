"""
Command line interface.

Hook commands (invoked by Claude Code hooks, always exit 0):
    bookmark snapshot --trigger pre_compact
    bookmark restore
    bookmark check

Interactive commands:
    bookmark status | list | show [id] | config [--interval N] | archive
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path

from .config import BookmarkConfig, get_storage_path, write_project_config
from .hooks import read_hook_input, run_check, run_restore, run_snapshot
from .restore import RestoreFormat
from .schema import SnapshotTrigger
from .snapshot.compress import compress_to_markdown
from .snapshot.storage import SnapshotStore
from .threshold.state import load_state

logger = logging.getLogger(__name__)

HOOK_COMMANDS = ("snapshot", "restore", "check")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="bookmark: %(levelname)s %(name)s: %(message)s",
    )


def _format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


# -----------------------------------------------------------------------------
# Hook commands
# -----------------------------------------------------------------------------


def cmd_snapshot(args: argparse.Namespace, hook_input: dict) -> int:
    result = run_snapshot(
        hook_input,
        trigger=args.trigger,
        cwd=args.cwd,
        transcript_path=args.transcript,
        session_id=args.session_id,
        smart=True if args.smart else None,
    )
    if result is None:
        return 0

    snapshot = result.snapshot
    print(f"Snapshot captured: {snapshot.snapshot_id}")
    print(f"  Trigger: {snapshot.trigger}")
    print(f"  Decisions: {len(snapshot.decisions)}")
    print(f"  Files changed: {len(snapshot.files_changed)}")
    print(f"  Open items: {len(snapshot.open_items)}")
    print(f"  Context remaining: {round(snapshot.context_remaining_pct * 100)}%")
    return 0


def cmd_restore(args: argparse.Namespace, hook_input: dict) -> int:
    # Plain text on stdout: the SessionStart hook injects it as context
    message = run_restore(
        hook_input,
        source=args.session_source,
        cwd=args.cwd,
        output_format=args.format,
    )
    if message:
        print(message)
    return 0


def cmd_check(args: argparse.Namespace, hook_input: dict) -> int:
    run_check(hook_input, cwd=args.cwd, transcript_path=args.transcript)
    return 0


# -----------------------------------------------------------------------------
# Interactive commands
# -----------------------------------------------------------------------------


def cmd_status(cwd: Path, config: BookmarkConfig) -> int:
    root = get_storage_path(cwd, config)
    store = SnapshotStore(root, max_active=config.max_active_snapshots)
    state = load_state(root, config)

    print("")
    print("Bookmark Status")
    print("===============")
    print(f"  Snapshots:          {store.count()}")
    print(f"  Compaction cycles:  {state.compaction_count}")
    print(f"  Current threshold:  {round(state.current_threshold * 100)}% remaining")
    print(f"  Snapshot interval:  {state.snapshot_interval_minutes} minutes")
    if state.last_snapshot_time > 0:
        ago = int((time.time() - state.last_snapshot_time) / 60)
        print(f"  Last snapshot:      {ago} minutes ago")
    else:
        print("  Last snapshot:      never")

    recent = store.list_snapshots(limit=5)
    if recent:
        print("")
        print("Recent Snapshots:")
        for entry in recent:
            pct = round(entry.context_remaining_pct * 100)
            print(f"  {entry.id}  {entry.trigger:<14}  {pct:>3}% ctx  {_format_time(entry.timestamp)}")
    print("")
    return 0


def cmd_list(cwd: Path, config: BookmarkConfig, limit: int) -> int:
    store = SnapshotStore(get_storage_path(cwd, config), max_active=config.max_active_snapshots)
    entries = store.list_snapshots(limit=limit)
    if not entries:
        print("No snapshots found. Run `bookmark snapshot` to create one.")
        return 0

    print("")
    print(f"{'ID':<23}  {'Trigger':<15}  {'Ctx%':>5}  {'Decisions':>9}  {'Files':>5}  {'Open Items':>10}  Time")
    print(f"{'-' * 23}  {'-' * 15}  {'-' * 5}  {'-' * 9}  {'-' * 5}  {'-' * 10}  {'-' * 19}")
    for e in entries:
        print(
            f"{e.id:<23}  {e.trigger:<15}  {round(e.context_remaining_pct * 100):>4}%  "
            f"{e.decisions_count:>9}  {e.files_changed_count:>5}  {e.open_items_count:>10}  "
            f"{_format_time(e.timestamp)}"
        )
    print("")
    return 0


def cmd_show(cwd: Path, config: BookmarkConfig, snapshot_id: str | None) -> int:
    store = SnapshotStore(get_storage_path(cwd, config), max_active=config.max_active_snapshots)

    if not snapshot_id:
        latest = store.read_latest()
        if latest:
            print(latest)
            return 0
        print("No snapshots found.")
        return 1

    snapshot = store.load(snapshot_id)
    if snapshot is None:
        print(f"Snapshot not found: {snapshot_id}")
        return 1
    print(compress_to_markdown(snapshot))
    return 0


def cmd_config(cwd: Path, config: BookmarkConfig, interval: int | None) -> int:
    if interval is not None:
        if interval <= 0:
            print("Interval must be a positive number of minutes")
            return 1
        path = write_project_config(cwd, interval_minutes=interval)
        print(f"Snapshot interval set to {interval} minutes ({path})")
        return 0

    print("")
    print("Bookmark Configuration")
    print("======================")
    print(f"  Storage path:       {config.storage_path}")
    print(f"  Interval:           {config.interval_minutes} minutes")
    print(f"  Thresholds:         {', '.join(f'{round(t * 100)}%' for t in config.thresholds)}")
    print(f"  Max threshold:      {round(config.max_threshold * 100)}%")
    print(f"  Context limit:      {config.context_limit_tokens:,} tokens")
    print(f"  Smart default:      {config.smart_default}")
    print(f"  Max snapshots:      {config.max_active_snapshots}")
    print(f"  Archive after:      {config.archive_after_days} days")
    print("")
    print("Environment overrides:")
    print("  BOOKMARK_INTERVAL, BOOKMARK_THRESHOLD, BOOKMARK_MAX_THRESHOLD, BOOKMARK_STORAGE_PATH")
    print("  BOOKMARK_CONTEXT_LIMIT, BOOKMARK_SMART, BOOKMARK_MODEL, BOOKMARK_VERBOSE, ANTHROPIC_API_KEY")
    print("")
    return 0


def cmd_archive(cwd: Path, config: BookmarkConfig, days: int | None) -> int:
    store = SnapshotStore(get_storage_path(cwd, config), max_active=config.max_active_snapshots)
    archived = store.archive_stale(max_age_days=days if days is not None else config.archive_after_days)
    if not archived:
        print("Nothing to archive.")
    else:
        print(f"Archived {len(archived)} snapshot(s):")
        for snapshot_id in archived:
            print(f"  {snapshot_id}")
    return 0


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmark",
        description="Context snapshots for Claude Code: session continuity across compactions",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging on stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    snapshot = sub.add_parser("snapshot", help="Capture a context snapshot")
    snapshot.add_argument(
        "--trigger",
        choices=[t.value for t in SnapshotTrigger],
        default=SnapshotTrigger.MANUAL.value,
        help="What caused this capture",
    )
    snapshot.add_argument("--smart", action="store_true", help="Enhance extraction with an LLM call")
    snapshot.add_argument("--transcript", help="Path to transcript JSONL")
    snapshot.add_argument("--session-id", help="Session ID")
    snapshot.add_argument("--cwd", help="Project directory")

    restore = sub.add_parser("restore", help="Print restoration context (SessionStart hook)")
    restore.add_argument(
        "--session-source",
        choices=["startup", "resume", "compact", "clear"],
        help="Session start source",
    )
    restore.add_argument(
        "--format",
        choices=[f.value for f in RestoreFormat],
        default=RestoreFormat.SYSTEM_MESSAGE.value,
        help="Output format",
    )
    restore.add_argument("--cwd", help="Project directory")

    check = sub.add_parser("check", help="Check time/threshold triggers (UserPromptSubmit hook)")
    check.add_argument("--transcript", help="Path to transcript JSONL")
    check.add_argument("--cwd", help="Project directory")

    status = sub.add_parser("status", help="Show trigger state and recent snapshots")
    status.add_argument("--cwd", help="Project directory")

    list_cmd = sub.add_parser("list", help="List snapshots")
    list_cmd.add_argument("--limit", type=int, default=20, help="Maximum entries to show")
    list_cmd.add_argument("--cwd", help="Project directory")

    show = sub.add_parser("show", help="Show a snapshot (default: LATEST.md)")
    show.add_argument("snapshot_id", nargs="?", help="Snapshot ID")
    show.add_argument("--cwd", help="Project directory")

    config = sub.add_parser("config", help="Show or update configuration")
    config.add_argument("--interval", type=int, help="Set the snapshot interval in minutes")
    config.add_argument("--cwd", help="Project directory")

    archive = sub.add_parser("archive", help="Move stale snapshots into archive/")
    archive.add_argument("--days", type=int, help="Age limit in days (default: config)")
    archive.add_argument("--cwd", help="Project directory")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.command in HOOK_COMMANDS:
        # Hooks must never fail the host session
        try:
            hook_input = read_hook_input()
            cwd = Path(args.cwd or hook_input.get("cwd") or os.getcwd())
            configure_logging(args.verbose or BookmarkConfig.load(cwd).verbose_logging)
            handler = {"snapshot": cmd_snapshot, "restore": cmd_restore, "check": cmd_check}[args.command]
            handler(args, hook_input)
        except Exception as e:
            logger.debug(f"{args.command} failed: {e}", exc_info=True)
        return 0

    cwd = Path(args.cwd or os.getcwd())
    config = BookmarkConfig.load(cwd)
    configure_logging(args.verbose or config.verbose_logging)

    if args.command == "status":
        return cmd_status(cwd, config)
    if args.command == "list":
        return cmd_list(cwd, config, args.limit)
    if args.command == "show":
        return cmd_show(cwd, config, args.snapshot_id)
    if args.command == "config":
        return cmd_config(cwd, config, args.interval)
    if args.command == "archive":
        return cmd_archive(cwd, config, args.days)
    return 1


if __name__ == "__main__":
    sys.exit(main())
