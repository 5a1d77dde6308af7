"""CLI interface for oomkill-exporter."""

from __future__ import annotations

import argparse
import sys

from .commands.match import add_match_parser
from .commands.run import add_run_parser
from .logging import configure_logging


def cmd_version(args: argparse.Namespace) -> int:
    """Show version."""
    from . import __version__

    sys.stdout.write(f"oomkill-exporter version {__version__}\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""
    parser = argparse.ArgumentParser(
        prog="oomkill-exporter",
        description="Count Kubernetes container OOM kills from the kernel log",
    )

    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: $LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command")

    add_run_parser(subparsers)
    add_match_parser(subparsers)

    p_version = subparsers.add_parser(
        "version",
        help="Show version",
    )
    p_version.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)

    if args.version:
        from . import __version__

        sys.stdout.write(f"oomkill-exporter version {__version__}\n")
        raise SystemExit(0)

    if not args.command:
        parser.print_help()
        raise SystemExit(0)

    rc = int(args.func(args))
    raise SystemExit(rc)
