"""CLI entry point for factory.

Subcommands:
    factory start [--foreground]   - Start the background daemon
    factory stop                   - Stop the daemon
    factory status                 - Show daemon state and processed items
    factory trigger KEY            - Process one item now, in the foreground
    factory clear [KEY]            - Forget one (or every) processed item
    factory logs [-n N]            - Tail the daemon log
    factory version                - Print the version
"""

from __future__ import annotations

import argparse
import sys

from factory.config import CONFIG_FILE, Config, config_exists, get_config_dir, load_config
from factory.daemon import DaemonSupervisor, LaunchMode, tail_log
from factory.errors import AlreadyRunningError, ConfigError, NotRunningError
from factory.ledger import Ledger, LedgerRecord
from factory.logger import setup_logging
from factory.pipeline import Pipeline
from factory.setup import SetupError, check_required_tools

# Version is set during build
__version__ = "1.0.0"

DETAIL_WIDTH = 38
TIME_FORMAT = "%b %d %H:%M"


def fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def format_record_line(key: str, record: LedgerRecord) -> str:
    """Render one ledger record for `factory status`."""
    mark = "✓" if record.succeeded else "✗"
    detail = record.pr_url or record.error or ""
    if len(detail) > DETAIL_WIDTH:
        detail = detail[:DETAIL_WIDTH] + "..."
    when = record.processed_at.astimezone().strftime(TIME_FORMAT)
    return f"{key:<12} {mark:<10} {detail:<41} {when}"


def _require_config() -> Config:
    """Load the config file, or the environment when there is no file."""
    config_dir = get_config_dir()
    try:
        return load_config(config_dir)
    except ConfigError as e:
        if config_exists(config_dir):
            fail(f"Configuration error: {e}")
        fail(
            f"not configured. Create {config_dir / CONFIG_FILE} with KEY=value settings "
            f"or set them as environment variables ({e})"
        )


def cmd_start(args: argparse.Namespace) -> None:
    """Handle the 'start' subcommand."""
    config = _require_config()
    mode = LaunchMode.FOREGROUND if args.foreground else LaunchMode.DETACH
    setup_logging(daemon_mode=mode is LaunchMode.FOREGROUND, masked_values=config.secrets)

    try:
        check_required_tools(config)
    except SetupError as e:
        fail(str(e))

    supervisor = DaemonSupervisor(config.config_dir, config)
    try:
        pid = supervisor.start(mode)
    except AlreadyRunningError as e:
        fail(str(e))

    if mode is LaunchMode.DETACH:
        print(f"Daemon started (PID {pid})")
        print(f"Logs: {supervisor.log_path}")


def cmd_stop(args: argparse.Namespace) -> None:
    """Handle the 'stop' subcommand."""
    supervisor = DaemonSupervisor(get_config_dir())
    try:
        pid = supervisor.stop()
    except NotRunningError as e:
        fail(str(e))
    print(f"Daemon stopped (PID {pid})")


def cmd_status(args: argparse.Namespace) -> None:
    """Handle the 'status' subcommand."""
    status = DaemonSupervisor(get_config_dir()).status()

    if status.running:
        print(f"Daemon: Running (PID {status.pid})")
    else:
        print("Daemon: Stopped")

    if not status.records:
        print("\nNo processed issues")
        return

    print(f"\nProcessed Issues ({len(status.records)}):")
    print(f"{'Issue':<12} {'Status':<10} {'PR/Error':<41} When")
    print("-" * 80)
    ordered = sorted(status.records.items(), key=lambda entry: entry[1].processed_at)
    for key, record in ordered:
        print(format_record_line(key, record))


def cmd_trigger(args: argparse.Namespace) -> None:
    """Handle the 'trigger' subcommand: run the pipeline once for KEY."""
    config = _require_config()
    setup_logging(masked_values=config.secrets)

    try:
        check_required_tools(config)
    except SetupError as e:
        fail(str(e))

    result = Pipeline.from_config(config).process(args.key)

    if result.succeeded:
        print(f"{result.key}: completed" + (f" - {result.pr_url}" if result.pr_url else " (no changes)"))
        return
    print(f"{result.key}: failed - {result.error_text}", file=sys.stderr)
    sys.exit(1)


def cmd_clear(args: argparse.Namespace) -> None:
    """Handle the 'clear' subcommand."""
    ledger = Ledger(DaemonSupervisor(get_config_dir()).ledger_path)
    ledger.load()

    if not args.key:
        count = len(ledger)
        ledger.clear_all()
        ledger.save()
        print(f"Cleared all ({count} items)")
        return

    if ledger.clear(args.key):
        ledger.save()
        print(f"Cleared {args.key}")
    else:
        print(f"{args.key} was not processed")


def cmd_logs(args: argparse.Namespace) -> None:
    """Handle the 'logs' subcommand."""
    log_path = DaemonSupervisor(get_config_dir()).log_path
    if not log_path.exists():
        fail(f"no log file at {log_path}. Run 'factory start' first.")

    try:
        tail_log(log_path, lines=args.lines, follow=args.follow)
    except KeyboardInterrupt:
        print()


def cmd_version(args: argparse.Namespace) -> None:
    print(f"factory v{__version__}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="factory",
        description="Jira to code to PR, automated with Claude Code",
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"factory v{__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser("start", help="Start the background daemon")
    start_parser.add_argument(
        "--foreground",
        action="store_true",
        help="Run the poll loop in this process instead of detaching",
    )
    start_parser.set_defaults(func=cmd_start)

    stop_parser = subparsers.add_parser("stop", help="Stop the daemon")
    stop_parser.set_defaults(func=cmd_stop)

    status_parser = subparsers.add_parser(
        "status", help="Show daemon status and processed issues"
    )
    status_parser.set_defaults(func=cmd_status)

    trigger_parser = subparsers.add_parser(
        "trigger", help="Process a specific issue immediately"
    )
    trigger_parser.add_argument("key", help="Issue key (e.g., PROJ-123)")
    trigger_parser.set_defaults(func=cmd_trigger)

    clear_parser = subparsers.add_parser(
        "clear", help="Clear processed issues so they are picked up again"
    )
    clear_parser.add_argument(
        "key", nargs="?", default="", help="Issue key to clear. If omitted, clears all."
    )
    clear_parser.set_defaults(func=cmd_clear)

    logs_parser = subparsers.add_parser("logs", help="Tail the daemon log")
    logs_parser.add_argument(
        "-n",
        "--lines",
        type=int,
        default=50,
        help="Number of lines to show (default: 50)",
    )
    logs_parser.add_argument(
        "--no-follow",
        dest="follow",
        action="store_false",
        help="Print the lines and exit instead of following the log",
    )
    logs_parser.set_defaults(func=cmd_logs)

    version_parser = subparsers.add_parser("version", help="Show the version")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the factory CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
