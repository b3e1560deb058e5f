"""
tests/test_main.py
------------------
Unit tests for the main.py command-line entry point.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

import main
from core.errors import UnknownProviderError
from models.migration import MigrationReport, MigrationResult, MigrationSummary


@pytest.fixture
def request_file(tmp_path: Path) -> Path:
    path = tmp_path / "request.json"
    path.write_text(json.dumps({
        "sourceProvider": "Postgres",
        "targetProvider": "SqlServer",
        "tables": ["public.t"],
    }), encoding="utf-8")
    return path


class TestCommands:
    def test_no_arguments_prints_usage(self, capsys) -> None:
        assert main.main([]) == 0
        assert "Usage:" in capsys.readouterr().out

    def test_dialects(self, capsys) -> None:
        assert main.main(["dialects"]) == 0
        names = json.loads(capsys.readouterr().out)
        assert "Postgres" in names and "GoogleCloudSpanner" in names

    def test_unknown_command(self, capsys) -> None:
        assert main.main(["export"]) == 2
        assert "Unknown command: export" in capsys.readouterr().err

    def test_missing_request_file_argument(self) -> None:
        assert main.main(["migrate"]) == 2

    def test_unreadable_request(self, tmp_path: Path, capsys) -> None:
        assert main.main(["preview", str(tmp_path / "nope.json")]) == 2
        assert "Could not read request" in capsys.readouterr().err


class TestRun:
    def test_preview_prints_summary(self, request_file: Path, capsys) -> None:
        summary = MigrationSummary(warnings=["public.t will be created on target"])
        with patch("main.MigrationEngine") as engine_cls:
            engine_cls.return_value.preview.return_value = summary
            assert main.main(["preview", str(request_file)]) == 0
        request = engine_cls.return_value.preview.call_args.args[0]
        assert request.tables == ["public.t"]
        assert json.loads(capsys.readouterr().out)["warnings"] == summary.warnings

    def test_preview_error_exit_status(self, request_file: Path) -> None:
        summary = MigrationSummary(warnings=["Preview error: refused"])
        with patch("main.MigrationEngine") as engine_cls:
            engine_cls.return_value.preview.return_value = summary
            assert main.main(["preview", str(request_file)]) == 1

    def test_migrate_exit_status_follows_report(self, request_file: Path, capsys) -> None:
        failed = MigrationReport(results=[MigrationResult(object_name="public.t", error_message="boom")])
        with patch("main.MigrationEngine") as engine_cls:
            engine_cls.return_value.migrate.return_value = failed
            assert main.main(["migrate", str(request_file)]) == 1
            engine_cls.return_value.migrate.return_value = MigrationReport()
            assert main.main(["migrate", str(request_file)]) == 0
        assert '"results"' in capsys.readouterr().out

    def test_unknown_provider(self, request_file: Path, capsys) -> None:
        with patch("main.MigrationEngine") as engine_cls:
            engine_cls.return_value.migrate.side_effect = UnknownProviderError("Informix")
            assert main.main(["migrate", str(request_file)]) == 2
        assert "Informix" in capsys.readouterr().err

    def test_cancel_event_is_passed_through(self, request_file: Path) -> None:
        with patch("main.MigrationEngine") as engine_cls:
            engine_cls.return_value.migrate.return_value = MigrationReport()
            main.main(["migrate", str(request_file)])
        cancel = engine_cls.return_value.migrate.call_args.kwargs["cancel"]
        assert not cancel.is_set()
