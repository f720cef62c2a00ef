"""CLI entry point for driftsync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import Config, load_config
from .history import REVERTED
from .sync import classify
from .workspace import Workspace


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


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
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler])


def _open(args: argparse.Namespace) -> tuple[Config, Workspace]:
    config = load_config(args.config)
    return config, Workspace.from_config(config)


# ==================== History Commands ====================


def cmd_record(args: argparse.Namespace) -> int:
    """Record the contents of a local file as an edit."""
    _, workspace = _open(args)
    try:
        content = Path(args.source).read_text(encoding="utf-8")
        result = workspace.save(args.file_id, content, file_path=args.path)
        if result is None:
            print("No change recorded")
        elif result == REVERTED:
            print(f"{args.file_id}: edits reverted, history cleared")
        else:
            stats = result.open_session.stats
            print(f"{args.file_id}: +{stats.additions} -{stats.deletions}")
    finally:
        workspace.close()
    return 0


def cmd_commit(args: argparse.Namespace) -> int:
    """Close the open edit session of a file."""
    _, workspace = _open(args)
    try:
        workspace.history.add_boundary(args.file_id)
    finally:
        workspace.close()
    return 0


async def _history_items(args: argparse.Namespace, config: Config, workspace: Workspace):
    if not args.remote:
        return workspace.history.merge_history(args.file_id)
    items, error = await workspace.orchestrator(config).remote_history(args.file_id)
    if error:
        print(f"Remote history unavailable ({error}), showing local only", file=sys.stderr)
    return items


async def cmd_history(args: argparse.Namespace) -> int:
    """List the edit history of a file, optionally merged with the remote's."""
    config, workspace = _open(args)
    try:
        items = await _history_items(args, config, workspace)
        if args.json:
            print(json.dumps([item.to_dict() for item in items], indent=2))
            return 0

        if not items:
            print(f"No history for {args.file_id}")
            return 0
        for index, item in enumerate(items):
            print(
                f"[{index}] {item.timestamp}  {item.origin}  "
                f"+{item.stats.additions} -{item.stats.deletions}"
            )
            if args.diff:
                print(item.diff)
                print()
    finally:
        workspace.close()
    return 0


async def cmd_restore(args: argparse.Namespace) -> int:
    """Restore the version right after a history entry."""
    config, workspace = _open(args)
    try:
        items = await _history_items(args, config, workspace)
        restored = workspace.history.restore_history_item(args.file_id, items, args.index)
        if restored is None:
            print(f"Cannot restore {args.file_id} to entry {args.index}", file=sys.stderr)
            return 1
        if args.output:
            Path(args.output).write_text(restored, encoding="utf-8")
        print(f"Restored {args.file_id} to entry {args.index}")
    finally:
        workspace.close()
    return 0


def cmd_prune(args: argparse.Namespace) -> int:
    """Apply history retention limits."""
    config, workspace = _open(args)
    try:
        deleted = workspace.history.prune(
            max_entries_per_file=(
                args.max_entries
                if args.max_entries is not None
                else config.history.max_entries_per_file
            ),
            max_age_days=(
                args.max_age_days
                if args.max_age_days is not None
                else config.history.max_age_days
            ),
        )
        print(f"Pruned {deleted} entries.")
    finally:
        workspace.close()
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show edit history and store statistics."""
    _, workspace = _open(args)
    try:
        stats = {
            "history": workspace.history.get_stats(),
            "store": workspace.store.get_stats(),
        }
        print(json.dumps(stats, indent=2))
    finally:
        workspace.close()
    return 0


# ==================== Sync Commands ====================


async def cmd_status(args: argparse.Namespace) -> int:
    """Classify every file against the remote."""
    config, workspace = _open(args)
    try:
        orchestrator = workspace.orchestrator(config)
        if args.offline:
            snapshot = orchestrator.cached_snapshot()
        else:
            snapshot, error = await orchestrator.client.fetch_snapshot()
            if error:
                print(f"Remote unavailable ({error}), using cached snapshot", file=sys.stderr)
                snapshot = orchestrator.cached_snapshot()
            elif snapshot is not None:
                workspace.baseline.put_remote(snapshot.to_dict())

        diff = classify(
            workspace.baseline.get(),
            snapshot,
            workspace.history.locally_modified_ids(),
        )
        if args.json:
            print(json.dumps(diff.to_dict(), indent=2))
            return 0

        if diff.is_settled:
            print("Everything is in sync")
            return 0
        for label, ids in (
            ("To push", diff.to_push),
            ("To pull", diff.to_pull),
            ("Edited here, deleted remotely", diff.edit_delete_conflicts),
            ("Local only", diff.local_only),
            ("Remote only", diff.remote_only),
        ):
            if ids:
                print(f"{label}: {', '.join(ids)}")
        for conflict in diff.conflicts:
            print(
                f"Conflict: {conflict.file_name} ({conflict.file_id}) "
                f"local {conflict.local_checksum[:8]} vs remote {conflict.remote_checksum[:8]}"
            )
    finally:
        workspace.close()
    return 0


def _print_result(result) -> int:
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.status.value in ("success", "partial") else 1


async def cmd_push(args: argparse.Namespace) -> int:
    config, workspace = _open(args)
    try:
        return _print_result(await workspace.orchestrator(config).push())
    finally:
        workspace.close()


async def cmd_pull(args: argparse.Namespace) -> int:
    config, workspace = _open(args)
    try:
        return _print_result(await workspace.orchestrator(config).pull())
    finally:
        workspace.close()


async def cmd_resolve(args: argparse.Namespace) -> int:
    config, workspace = _open(args)
    try:
        orchestrator = workspace.orchestrator(config)
        return _print_result(await orchestrator.resolve_conflict(args.file_id, args.choice))
    finally:
        workspace.close()


async def cmd_dashboard(args: argparse.Namespace) -> int:
    """Start the local JSON API."""
    config = load_config(args.config)

    try:
        import uvicorn

        from .dashboard import create_app
    except ImportError as e:
        print(f"Dashboard dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install driftsync[dashboard]", file=sys.stderr)
        return 1

    workspace = Workspace.from_config(config)
    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port
    print(f"Starting driftsync dashboard on http://{host}:{port}")

    app = create_app(config, workspace)

    stop_event = asyncio.Event()
    poll_task = None
    if config.sync.remote_url:
        poll_task = asyncio.create_task(
            app.state.orchestrator.poll_loop(
                interval_seconds=config.sync.poll_interval_minutes * 60,
                stop_event=stop_event,
            )
        )

    try:
        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                log_level="info" if args.verbose else "warning",
            )
        )
        await server.serve()
    finally:
        if poll_task:
            stop_event.set()
            await poll_task
        workspace.close()
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="driftsync",
        description="Local-first edit history and sync for remote files",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
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

    record_parser = subparsers.add_parser("record", help="Record an edit from a local file")
    record_parser.add_argument("file_id", help="Remote file id")
    record_parser.add_argument("source", help="Local file holding the new content")
    record_parser.add_argument("--path", default=None, help="Remote path of the file")
    record_parser.set_defaults(func=cmd_record)

    commit_parser = subparsers.add_parser("commit", help="Close the open edit session")
    commit_parser.add_argument("file_id")
    commit_parser.set_defaults(func=cmd_commit)

    history_parser = subparsers.add_parser("history", help="Show edit history")
    history_parser.add_argument("file_id")
    history_parser.add_argument("--diff", action="store_true", help="Print each diff")
    history_parser.add_argument("--json", action="store_true", help="Output as JSON")
    history_parser.add_argument(
        "--remote", action="store_true", help="Merge in the remote edit history"
    )
    history_parser.set_defaults(func=cmd_history)

    restore_parser = subparsers.add_parser("restore", help="Restore an earlier version")
    restore_parser.add_argument("file_id")
    restore_parser.add_argument("index", type=int, help="History index (0 = newest)")
    restore_parser.add_argument("-o", "--output", default=None, help="Also write content here")
    restore_parser.add_argument(
        "--remote",
        action="store_true",
        help="Index into the history merged with the remote edit history",
    )
    restore_parser.set_defaults(func=cmd_restore)

    prune_parser = subparsers.add_parser("prune", help="Drop old history records")
    prune_parser.add_argument("--max-entries", type=int, default=None)
    prune_parser.add_argument("--max-age-days", type=int, default=None)
    prune_parser.set_defaults(func=cmd_prune)

    stats_parser = subparsers.add_parser("stats", help="Show history statistics")
    stats_parser.set_defaults(func=cmd_stats)

    status_parser = subparsers.add_parser("status", help="Compare local and remote state")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")
    status_parser.add_argument(
        "--offline",
        action="store_true",
        help="Use the cached remote snapshot instead of fetching one",
    )
    status_parser.set_defaults(func=cmd_status)

    push_parser = subparsers.add_parser("push", help="Push local edits")
    push_parser.set_defaults(func=cmd_push)

    pull_parser = subparsers.add_parser("pull", help="Pull remote changes")
    pull_parser.set_defaults(func=cmd_pull)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve a conflict")
    resolve_parser.add_argument("file_id")
    resolve_parser.add_argument("choice", choices=["local", "remote"])
    resolve_parser.set_defaults(func=cmd_resolve)

    dashboard_parser = subparsers.add_parser("dashboard", help="Start the JSON API")
    dashboard_parser.add_argument("-p", "--port", type=int, default=None)
    dashboard_parser.add_argument("--host", type=str, default=None)
    dashboard_parser.set_defaults(func=cmd_dashboard)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
