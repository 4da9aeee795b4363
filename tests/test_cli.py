"""Tests for the command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from contact_engagement.cli import build_parser, execute
from contact_engagement.core.config import AppSettings


def _write_export(path: Path) -> Path:
    path.write_text(
        json.dumps(
            {
                "contacts": [
                    {"id": "c1", "name": "Ada", "email": "ada@example.com"},
                    {"id": "c2", "name": "", "email": "bob@example.com"},
                ],
                "interactions": [
                    {
                        "id": "m1",
                        "contactId": "c1",
                        "date": "2020-01-01T09:00:00Z",
                        "direction": "sent",
                        "threadId": "t1",
                    },
                    {
                        "id": "m2",
                        "contactId": "c1",
                        "date": "2020-01-02T09:00:00Z",
                        "direction": "received",
                        "threadId": "t1",
                    },
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


def test_parser_defaults_to_info() -> None:
    args = build_parser().parse_args([])

    assert args.command == "info"
    assert args.limit == 20


def test_info_command(capsys: pytest.CaptureFixture[str]) -> None:
    args = build_parser().parse_args(["info"])

    assert execute(args, AppSettings()) == 0
    assert "Concurrency ceiling: 6" in capsys.readouterr().out


def test_recommend_command(capsys: pytest.CaptureFixture[str]) -> None:
    args = build_parser().parse_args(["recommend", "--contacts", "250"])

    assert execute(args, AppSettings()) == 0
    output = capsys.readouterr().out
    assert "Batch size: 75" in output
    assert "Concurrent batches: 2" in output


def test_analyze_requires_input(capsys: pytest.CaptureFixture[str]) -> None:
    args = build_parser().parse_args(["analyze"])

    assert execute(args, AppSettings()) == 2
    assert "requires --input" in capsys.readouterr().out


def test_analyze_prints_summary(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    export = _write_export(tmp_path / "export.json")
    args = build_parser().parse_args(
        ["analyze", "--input", str(export), "--batch-size", "1", "--quiet"]
    )

    assert execute(args, AppSettings()) == 0
    output = capsys.readouterr().out
    assert "Analysed 2 contact(s): 0 recent, 0 in touch, 2 inactive" in output
    assert "Ada <ada@example.com>" in output
    assert "1 inactive contact(s) worth reconnecting with:" in output
    assert "[" not in output.splitlines()[0]


def test_analyze_reports_payload_errors(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("[]", encoding="utf-8")
    args = build_parser().parse_args(["analyze", "--input", str(broken)])

    assert execute(args, AppSettings()) == 1
    assert "Analysis failed" in capsys.readouterr().out


@pytest.mark.parametrize(
    "argv",
    [
        ["analyze", "--input", "x.json", "--batch-size", "0"],
        ["analyze", "--input", "x.json", "--concurrency", "-1"],
    ],
)
def test_non_positive_sizes_rejected_by_parser(
    argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(argv)

    assert excinfo.value.code == 2
    assert "expected a positive integer" in capsys.readouterr().err
