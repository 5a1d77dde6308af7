"""Pattern check command handler.

Runs the extractor over captured kernel log lines so operators can check a
pattern against their kernel and cgroup driver before deploying it.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from ..config import settings
from ..errors import ExporterError
from ..extract import Identifiers, OomPattern, PodAndContainer, extract
from ..kmsg import StreamSource


def _output(data: str, output_file: str | None = None) -> None:
    """Write *data* to stdout, or append it to *output_file*."""
    if output_file is None:
        sys.stdout.write(data + "\n")
        sys.stdout.flush()
        return
    with open(output_file, "a", encoding="utf-8") as f:
        f.write(data + "\n")


def _as_dict(ids: Identifiers, message: str) -> dict[str, Any]:
    return {
        "pod_uid": ids.pod_uid,
        "container_id": ids.container_id if isinstance(ids, PodAndContainer) else "",
        "message": message,
    }


def _format_match_table(strategy: str, scanned: int, matches: list[dict[str, Any]]) -> str:
    lines: list[str] = [
        "=" * 92,
        "  OOM Kill Pattern Check",
        "=" * 92,
        f"Strategy: {strategy}",
        f"Lines scanned: {scanned} | Matches: {len(matches)}",
        "",
    ]

    if not matches:
        lines.append("No OOM kill lines matched the pattern.")
        lines.append("")
        return "\n".join(lines)

    lines.extend([
        "+------+----------------------------------------+----------------------------------------+",
        "| #    | Pod UID                                | Container ID                           |",
        "+------+----------------------------------------+----------------------------------------+",
    ])
    for idx, m in enumerate(matches, start=1):
        lines.append(
            f"| {idx:>4} | {m['pod_uid'][:38]:<38} | {(m['container_id'] or '-')[:38]:<38} |"
        )
    lines.extend([
        "+------+----------------------------------------+----------------------------------------+",
        "",
    ])
    return "\n".join(lines)


def cmd_match(args: argparse.Namespace) -> int:
    """Report which lines of a captured kernel log the pattern matches."""
    try:
        pattern = OomPattern.compile(args.match_pattern)
        if args.file and args.file != "-":
            source = StreamSource.from_path(args.file)
        else:
            source = StreamSource(sys.stdin, name="<stdin>")
    except ExporterError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2

    scanned = 0
    matches: list[dict[str, Any]] = []
    with source:
        for line in source:
            scanned += 1
            ids = extract(line.message, pattern)
            if ids is not None:
                matches.append(_as_dict(ids, line.message))

    if args.format == "json":
        payload = {
            "strategy": pattern.strategy,
            "lines_scanned": scanned,
            "matches": matches,
        }
        _output(json.dumps(payload, indent=2), args.output)
    else:
        _output(_format_match_table(pattern.strategy, scanned, matches), args.output)

    return 0 if matches else 1


def add_match_parser(subparsers: Any) -> None:
    """Register `match` subcommand parser."""
    examples = (
        "Examples:\n"
        "  dmesg | oomkill-exporter match\n"
        "  oomkill-exporter match kern.log -f json\n"
        "  oomkill-exporter match kern.log --match-pattern '^.+/pod(\\w+-\\w+-\\w+-\\w+-\\w+)/.+$'\n"
    )
    p_match = subparsers.add_parser(
        "match",
        help="Check the extraction pattern against captured kernel log lines",
        description=(
            "Run the OOM kill extractor over a file (or stdin) and print the\n"
            "pod UIDs and container IDs it finds. No container runtime needed.\n"
            "Exits 1 when nothing matched."
        ),
        epilog=examples,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    p_match.add_argument(
        "file",
        nargs="?",
        default="-",
        help="Kernel log file to scan (default: stdin)",
    )
    p_match.add_argument(
        "--match-pattern",
        default=settings.match_pattern,
        help="Extraction pattern (default: built-in task_memcg pattern or $MATCH_PATTERN)",
    )
    p_match.add_argument(
        "--format",
        "-f",
        choices=["table", "json"],
        default="table",
        help="Report format (default: table)",
    )
    p_match.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Output file (default: stdout)",
    )
    p_match.set_defaults(func=cmd_match)
