"""Tests for the command line interface."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from oomkill_exporter import __version__
from oomkill_exporter.cli import build_parser, main
from oomkill_exporter.extract import LEGACY_POD_PATTERN
from oomkill_exporter.kmsg import StreamSource

KILL_LINE = (
    "oom-kill:constraint=CONSTRAINT_MEMCG,task_memcg=/kubepods/burstable/"
    "pod6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab/0b1c2d3e4f5a,task=java,pid=1,uid=0"
)


def _run(argv: list[str]) -> int:
    args = build_parser().parse_args(argv)
    return int(args.func(args))


def test_run_defaults() -> None:
    args = build_parser().parse_args(["run"])
    assert args.listen_address == ":9102"
    assert args.log_source == "kmsg"
    assert args.kmsg_path == "/dev/kmsg"


def test_version(capsys) -> None:
    with patch("oomkill_exporter.cli.configure_logging"):
        with pytest.raises(SystemExit) as excinfo:
            main(["version"])
    assert excinfo.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_match_json(tmp_path, capsys) -> None:
    log_file = tmp_path / "kern.log"
    log_file.write_text(f"noise\n{KILL_LINE}\nmore noise\n")

    assert _run(["match", str(log_file), "-f", "json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["strategy"] == "single-stage"
    assert payload["lines_scanned"] == 3
    assert payload["matches"] == [
        {
            "pod_uid": "6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab",
            "container_id": "0b1c2d3e4f5a",
            "message": KILL_LINE,
        }
    ]


def test_match_table_with_legacy_pattern(tmp_path, capsys) -> None:
    log_file = tmp_path / "kern.log"
    log_file.write_text(KILL_LINE + "\n")

    assert _run(["match", str(log_file), "--match-pattern", LEGACY_POD_PATTERN]) == 0

    out = capsys.readouterr().out
    assert "Strategy: two-stage" in out
    assert "6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab" in out


def test_match_closes_log_file(tmp_path, capsys) -> None:
    log_file = tmp_path / "kern.log"
    log_file.write_text(KILL_LINE + "\n")

    with patch.object(StreamSource, "close", autospec=True, side_effect=StreamSource.close) as close:
        assert _run(["match", str(log_file)]) == 0

    close.assert_called_once()
    assert close.call_args.args[0].stream.closed


def test_match_nothing_found(tmp_path, capsys) -> None:
    log_file = tmp_path / "kern.log"
    log_file.write_text("noise\n")
    assert _run(["match", str(log_file)]) == 1
    assert "No OOM kill lines matched" in capsys.readouterr().out


def test_match_bad_pattern(tmp_path, capsys) -> None:
    assert _run(["match", str(tmp_path / "x"), "--match-pattern", "pod("]) == 2
    assert "invalid match pattern" in capsys.readouterr().err


@pytest.mark.parametrize(
    "argv",
    [
        ["run", "--match-pattern", "pod("],
        ["run", "--listen-address", "nonsense"],
    ],
)
def test_run_startup_errors_exit_1(argv: list[str], monkeypatch) -> None:
    monkeypatch.setattr("oomkill_exporter.commands.run.signal.signal", lambda *a: None)
    assert _run(argv) == 1
