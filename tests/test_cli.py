"""Tests for CLI interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from textpulse.checkpoint import CheckpointStore
from textpulse.cli import main


@pytest.fixture
def plan_file(tmp_path: Path) -> Path:
    """Create a chain plan splitting CSV rows and dropping user_3."""
    file_path = tmp_path / "plan.yaml"
    file_path.write_text(
        "filters:\n"
        "  - type: delimited_row\n"
        "    params:\n"
        "      columns: [name, age]\n"
        "  - type: drop\n"
        "    params:\n"
        "      field: name\n"
        "      equals: user_3\n"
    )
    return file_path


def run_cli(args: list[str]) -> tuple[int, str, str]:
    """Run CLI via main() and capture output."""
    import io
    from contextlib import redirect_stderr, redirect_stdout

    stdout = io.StringIO()
    stderr = io.StringIO()

    try:
        with redirect_stdout(stdout), redirect_stderr(stderr):
            main(args)
        exit_code = 0
    except SystemExit as e:
        exit_code = e.code if isinstance(e.code, int) else 0

    return exit_code, stdout.getvalue(), stderr.getvalue()


class TestReadCommand:
    """Tests for 'read' subcommand."""

    def test_read_all(self, csv_file: Path):
        exit_code, stdout, stderr = run_cli(["read", str(csv_file)])

        assert exit_code == 0
        lines = [json.loads(line) for line in stdout.splitlines()]
        assert len(lines) == 20
        assert lines[0] == {"content": "user_0,20", "start": 0, "end": 10, "length": 9}
        assert "Position: 210" in stderr

    def test_read_from_offset(self, csv_file: Path):
        exit_code, stdout, stderr = run_cli(["read", str(csv_file), "--offset", "199"])

        assert exit_code == 0
        (line,) = [json.loads(line) for line in stdout.splitlines()]
        assert line["content"] == "user_19,39"
        assert line["start"] == 199

    def test_read_max(self, csv_file: Path):
        exit_code, stdout, stderr = run_cli(["read", str(csv_file), "--max", "3"])

        assert exit_code == 0
        assert len(stdout.splitlines()) == 3
        assert "Position: 30" in stderr

    def test_read_crlf(self, write_file):
        path = write_file(b"a\r\nb\rc")

        exit_code, stdout, stderr = run_cli(["read", str(path)])

        lines = [json.loads(line) for line in stdout.splitlines()]
        assert [(x["content"], x["end"]) for x in lines] == [("a", 3), ("b", 5), ("c", 6)]

    def test_read_no_auto_flush(self, write_file):
        path = write_file(b"done\nhalf")

        exit_code, stdout, stderr = run_cli(["read", str(path), "--no-auto-flush"])

        assert exit_code == 0
        assert [json.loads(line)["content"] for line in stdout.splitlines()] == ["done"]
        assert "Position: 5" in stderr

    def test_read_latin1(self, write_file):
        path = write_file("café\n".encode("latin-1"))

        exit_code, stdout, stderr = run_cli(["read", str(path), "--encoding", "latin-1"])

        assert exit_code == 0
        assert json.loads(stdout)["content"] == "café"

    def test_read_decode_error(self, write_file):
        path = write_file(b"\xff\xfe\n")

        exit_code, stdout, stderr = run_cli(["read", str(path)])

        assert exit_code == 1
        assert "Error" in stderr

    def test_read_unsupported_encoding(self, csv_file: Path):
        exit_code, stdout, stderr = run_cli(["read", str(csv_file), "--encoding", "utf-16"])

        assert exit_code == 1
        assert "ASCII-compatible" in stderr

    def test_read_file_not_found(self, tmp_path: Path):
        exit_code, stdout, stderr = run_cli(["read", str(tmp_path / "missing.log")])

        assert exit_code == 1
        assert "Error" in stderr


class TestRunCommand:
    """Tests for 'run' subcommand."""

    def test_run_plan(self, csv_file: Path, plan_file: Path):
        exit_code, stdout, stderr = run_cli(["run", str(csv_file), "-c", str(plan_file)])

        assert exit_code == 0
        records = [json.loads(line) for line in stdout.splitlines()]
        assert len(records) == 19
        assert records[0] == {"name": "user_0", "age": "20"}
        assert "user_3" not in stdout

    def test_run_with_checkpoint(self, csv_file: Path, plan_file: Path, tmp_path: Path):
        store = tmp_path / "run.checkpoint"

        exit_code, _, _ = run_cli(
            ["run", str(csv_file), "-c", str(plan_file), "--checkpoint", str(store), "--batch-size", "7"]
        )
        assert exit_code == 0
        saved = CheckpointStore(store).get(csv_file.resolve())
        assert saved.status == "completed"
        assert saved.offset == 210

        # Nothing left on a second run
        exit_code, stdout, _ = run_cli(
            ["run", str(csv_file), "-c", str(plan_file), "--checkpoint", str(store)]
        )
        assert exit_code == 0
        assert stdout == ""

    def test_run_reports_failures(self, write_file, plan_file: Path):
        path = write_file(b"alice,30\nbroken\n")

        exit_code, stdout, stderr = run_cli(["run", str(path), "-c", str(plan_file)])

        assert exit_code == 1
        assert json.loads(stdout) == {"name": "alice", "age": "30"}
        assert "Error: [delimited_row]@9" in stderr

    def test_run_invalid_config(self, csv_file: Path, tmp_path: Path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("filters:\n  - type: nonexistent\n")

        exit_code, stdout, stderr = run_cli(["run", str(csv_file), "-c", str(bad)])

        assert exit_code == 1
        assert "Invalid chain config" in stderr

    def test_run_missing_argument(self, csv_file: Path, tmp_path: Path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("filters:\n  - type: explode\n")

        exit_code, stdout, stderr = run_cli(["run", str(csv_file), "-c", str(bad)])

        assert exit_code == 1
        assert "source" in stderr

    def test_run_file_not_found(self, tmp_path: Path, plan_file: Path):
        exit_code, stdout, stderr = run_cli(["run", str(tmp_path / "missing.csv"), "-c", str(plan_file)])

        assert exit_code == 1
        assert "Error" in stderr


class TestStagesCommand:
    """Tests for 'stages' subcommand."""

    def test_lists_builtin_stages(self):
        exit_code, stdout, stderr = run_cli(["stages"])

        assert exit_code == 0
        names = [line.split()[0] for line in stdout.splitlines()]
        assert names == sorted(names)
        for name in ("delimited_row", "drop", "exclude", "explode", "json", "multi_row"):
            assert name in names
        assert "(requires: columns)" in stdout


class TestMain:
    """Tests for argument handling."""

    def test_no_command(self):
        exit_code, stdout, stderr = run_cli([])

        assert exit_code == 2

    def test_verbose_flag(self, csv_file: Path):
        exit_code, stdout, stderr = run_cli(["-v", "read", str(csv_file), "--max", "1"])

        assert exit_code == 0
        assert len(stdout.splitlines()) == 1
