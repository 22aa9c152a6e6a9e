"""
Rewatch Command Line Interface.

Watches paths and reruns a command for each whenever files change.
Requires Python 3.11+.

Usage:
    rewatch -p src -c "make test" -x '\\.git/'
    rewatch -p api -c "go test ./..." -p web -c "npm test"
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence

from orchestrator.app import run_targets
from orchestrator.target import WatchTarget
from utils.config import Settings, get_settings
from utils.errors import ConfigurationError
from utils.logger import configure_logging, get_logger

logger = get_logger("rewatch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rewatch",
        description="Rerun a command whenever files under a path change.",
        epilog="-p, -c and -x are paired by position: the first -c runs for the first -p.",
    )
    parser.add_argument(
        "-p",
        dest="paths",
        action="append",
        default=[],
        metavar="PATH",
        help="The path to watch (repeatable)",
    )
    parser.add_argument(
        "-c",
        dest="commands",
        action="append",
        default=[],
        metavar="COMMAND",
        help="The command to run when the matching path changes (repeatable)",
    )
    parser.add_argument(
        "-x",
        dest="excludes",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Exclude files and directories matching this regular expression (repeatable)",
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        help="Enable verbose debugging output",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=None,
        help="Quiet period after the last change before rerunning (default 200)",
    )
    parser.add_argument(
        "--run-on-start",
        action="store_true",
        default=None,
        help="Run every command once at startup",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {get_settings().app_version}",
    )
    return parser


def build_targets(
    paths: Sequence[str],
    commands: Sequence[str],
    excludes: Sequence[str],
) -> list[WatchTarget]:
    """
    Pair paths, commands and exclude patterns by position.

    Raises:
        ConfigurationError: Counts do not line up or a pattern is invalid
    """
    if len(commands) != len(paths):
        raise ConfigurationError(
            f"the number of commands ({len(commands)}) does not match "
            f"the number of paths ({len(paths)})"
        )
    return [
        WatchTarget(
            root=path,
            command=command,
            exclude=excludes[i] if i < len(excludes) else None,
        )
        for i, (path, command) in enumerate(zip(paths, commands))
    ]


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Layer command-line flags over environment settings."""
    updates: dict[str, object] = {}
    if args.delay_ms is not None:
        updates["debounce_delay_ms"] = args.delay_ms
    if args.run_on_start is not None:
        updates["run_on_start"] = args.run_on_start
    if not updates:
        return settings
    watcher = settings.watcher.model_copy(update=updates)
    return settings.model_copy(update={"watcher": watcher})


def _leaves(group: BaseExceptionGroup) -> list[BaseException]:
    leaves: list[BaseException] = []
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            leaves.extend(_leaves(exc))
        else:
            leaves.append(exc)
    return leaves


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.commands:
        parser.print_help(sys.stderr)
        return 1

    if args.delay_ms is not None and args.delay_ms <= 0:
        print(f"{parser.prog}: error: --delay-ms must be positive", file=sys.stderr)
        return 1

    configure_logging(verbose=args.verbose)
    settings = apply_overrides(get_settings(), args)

    try:
        targets = build_targets(args.paths, args.commands, args.excludes)
    except ConfigurationError as e:
        print(f"{parser.prog}: error: {e}", file=sys.stderr)
        return 1

    try:
        asyncio.run(run_targets(targets, settings=settings))
    except KeyboardInterrupt:
        return 130
    except ExceptionGroup as group:
        for exc in _leaves(group):
            logger.error("fatal_error", error=str(exc), error_type=type(exc).__name__)
            print(f"{parser.prog}: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
