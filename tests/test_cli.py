"""Tests for CLI commands."""

from __future__ import annotations

import json
import logging
import struct
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from bsondissect.cli import _setup_logging, app
from bsondissect.index.store import index_path_for


runner = CliRunner()


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("bsondissect.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("bsondissect.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestIndexCommand:
    """Tests for the index command."""

    def test_index_creates_file(self, write_bson, documents) -> None:
        path = write_bson(documents(7))

        result = runner.invoke(app, ["index", str(path)])

        assert result.exit_code == 0
        assert "Indexed 7 documents" in result.stdout
        assert index_path_for(path).exists()

    def test_index_force(self, write_bson, documents) -> None:
        path = write_bson(documents(3))
        runner.invoke(app, ["index", str(path)])

        with patch("bsondissect.cli.build_index", return_value=[]) as mock_build:
            result = runner.invoke(app, ["index", str(path), "--force"])

        assert result.exit_code == 0
        mock_build.assert_called_once()

    def test_index_missing_input(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["index", str(tmp_path / "missing.bson")])

        assert result.exit_code == 2

    def test_index_malformed_input(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.bson"
        path.write_bytes(struct.pack("<i", 3))

        result = runner.invoke(app, ["index", str(path)])

        assert result.exit_code == 1
        assert "Error" in result.stdout


class TestInfoCommand:
    def test_info_table(self, write_bson, documents) -> None:
        path = write_bson(documents(4))

        result = runner.invoke(app, ["info", str(path)])

        assert result.exit_code == 0
        assert "Documents" in result.stdout
        assert str(path.stat().st_size) in result.stdout


class TestExportCommand:
    """Tests for the export command."""

    def test_export_files(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(25))
        out = tmp_path / "out"

        result = runner.invoke(app, ["export", str(path), str(out), "-t", "2", "-b", "4"])

        assert result.exit_code == 0, result.stdout
        assert "Exported 25 documents" in result.stdout
        assert len(list(out.glob("*.json"))) == 25

    def test_export_single_with_slice(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(30))
        out = tmp_path / "all.json"

        result = runner.invoke(app, ["export", str(path), str(out), "--single", "--slice", "10..20"])

        assert result.exit_code == 0, result.stdout
        assert [d["n"] for d in json.loads(out.read_text(encoding="utf-8"))] == list(range(10, 20))

    def test_export_reuses_index(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(5))
        runner.invoke(app, ["index", str(path)])

        result = runner.invoke(app, ["export", str(path), str(tmp_path / "out")])

        assert result.exit_code == 0
        assert "Found index file" in result.stdout

    def test_export_with_script(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(5))
        script = tmp_path / "transform.lua"
        script.write_text("doc.tag = 'seen'\n", encoding="utf-8")
        out = tmp_path / "out"

        result = runner.invoke(app, ["export", str(path), str(out), "-S", str(script)])

        assert result.exit_code == 0, result.stdout
        assert json.loads((out / "3.json").read_text(encoding="utf-8"))["tag"] == "seen"

    def test_export_skip_reports_failures(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(6))
        script = tmp_path / "fail.lua"
        script.write_text('if doc.n == 2 then error("nope") end\n', encoding="utf-8")

        result = runner.invoke(
            app,
            ["export", str(path), str(tmp_path / "out"), "-S", str(script), "--on-error", "skip"],
        )

        assert result.exit_code == 0, result.stdout
        assert "Skipped 1 documents" in result.stdout
        assert "Exported 5 documents" in result.stdout

    def test_export_abort_exits_non_zero(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(6))
        script = tmp_path / "fail.lua"
        script.write_text('if doc.n == 2 then error("nope") end\n', encoding="utf-8")

        result = runner.invoke(app, ["export", str(path), str(tmp_path / "out"), "-S", str(script)])

        assert result.exit_code == 1
        assert "Record #2" in result.stdout

    def test_invalid_slice(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(5))

        result = runner.invoke(app, ["export", str(path), str(tmp_path / "out"), "--slice", "9..2"])

        assert result.exit_code == 2

    def test_slice_outside_index(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(5))

        result = runner.invoke(app, ["export", str(path), str(tmp_path / "out"), "--slice", "2..50"])

        assert result.exit_code == 2

    def test_single_into_directory(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(5))

        result = runner.invoke(app, ["export", str(path), str(tmp_path), "--single"])

        assert result.exit_code == 2

    def test_missing_script(self, write_bson, documents, tmp_path: Path) -> None:
        path = write_bson(documents(5))

        result = runner.invoke(
            app, ["export", str(path), str(tmp_path / "out"), "-S", str(tmp_path / "none.lua")]
        )

        assert result.exit_code == 2

    def test_unwritable_output_reports_error(self, write_bson, documents, tmp_path: Path) -> None:
        """I/O failures end with an error message and exit code 1."""
        path = write_bson(documents(3))
        out = tmp_path / "missing-dir" / "all.json"

        result = runner.invoke(app, ["export", str(path), str(out), "--single"])

        assert result.exit_code == 1
        assert "Error" in result.stdout
