"""
Tests for CLI commands.

Uses typer's CliRunner; remote passes are patched out.
"""

from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from galedi import __version__
from galedi.cli.main import app

runner = CliRunner()


@pytest.fixture
def project(tmp_path):
    config = {
        "store": {"type": "duckdb", "path": "data/galedi.duckdb"},
        "work_dir": "work",
        "logging": {"file_enabled": False, "console_enabled": False},
        "partners": [
            {
                "id": "MFR-H",
                "endpoint": {"url": "ftp://ftp.mfrh.example/lvs", "username": "galedi", "password": "topsecret"},
            },
            {"id": "MFR-A", "enabled": False},
        ],
    }
    (tmp_path / "config.yaml").write_text(yaml.safe_dump(config))
    return tmp_path


def fake_summary(purpose, **result):
    return {
        "purpose": purpose,
        "finished_at": "2024-02-03T07:15:00+00:00",
        "duration_seconds": 0.01,
        "partners": {"MFR-H": {"partner_id": "MFR-H", **result}},
    }


class TestVersion:
    """Tests for --version flag."""

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"galedi version {__version__}" in result.output


class TestHelp:
    """Tests for help output."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "galedi" in result.output.lower()

    @pytest.mark.parametrize("command", ["serve", "ingest", "export", "config", "store"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0


class TestConfigCommand:
    """Tests for galedi config."""

    def test_valid_config_masked(self, project):
        result = runner.invoke(app, ["config", "--project-dir", str(project)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "MFR-H" in result.output
        assert "topsecret" not in result.output

    def test_invalid_config(self, tmp_path):
        (tmp_path / "config.yaml").write_text(yaml.safe_dump({"partners": []}))
        result = runner.invoke(app, ["config", "--project-dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_missing_config(self, tmp_path):
        result = runner.invoke(app, ["config", "--project-dir", str(tmp_path)])
        assert result.exit_code == 1


class TestStoreCommands:
    """Tests for galedi store."""

    def test_init_creates_database(self, project):
        result = runner.invoke(app, ["store", "init", "--project-dir", str(project)])
        assert result.exit_code == 0
        assert "galedi.le_records" in result.output
        assert (project / "data" / "galedi.duckdb").exists()

    def test_pending_counts(self, project):
        from galedi.config.loader import load_config
        from galedi.core.store import RecordStore

        store = RecordStore(load_config(project).store)
        store.insert("MFR-H", ("4711", "A", "B", "01", "03.02.24", "07:15:00"))
        store.close()

        result = runner.invoke(app, ["store", "pending", "--project-dir", str(project)])

        assert result.exit_code == 0
        assert "MFR-H" in result.output
        assert "1" in result.output


class TestSyncCommands:
    """Tests for galedi ingest / galedi export."""

    def test_ingest_prints_summary(self, project):
        summary = fake_summary("ingest", status="ok", lines=3, inserted=3, duplicates=0, rejected=0, failed=0)
        with patch("galedi.cli.run.run_ingestion", return_value=summary) as run_ingestion:
            result = runner.invoke(app, ["ingest", "--project-dir", str(project)])

        assert result.exit_code == 0
        partners = run_ingestion.call_args[0][0]
        assert [p.partner_id for p in partners] == ["MFR-H"]
        assert "MFR-H" in result.output

    def test_export_failure_exit_code(self, project):
        summary = fake_summary("export", status="failed", error="host unreachable")
        with patch("galedi.cli.run.run_export", return_value=summary):
            result = runner.invoke(app, ["export", "--project-dir", str(project)])

        assert result.exit_code == 1
        assert "host unreachable" in result.output

    def test_single_partner(self, project):
        summary = fake_summary("export", status="ok", action="idle")
        with patch("galedi.cli.run.run_export", return_value=summary) as run_export:
            result = runner.invoke(app, ["export", "--partner", "MFR-H", "--project-dir", str(project)])

        assert result.exit_code == 0
        assert [p.partner_id for p in run_export.call_args[0][0]] == ["MFR-H"]

    def test_unknown_partner(self, project):
        result = runner.invoke(app, ["ingest", "--partner", "MFR-X", "--project-dir", str(project)])
        assert result.exit_code == 1

    def test_invalid_config_exit_code(self, tmp_path):
        (tmp_path / "config.yaml").write_text("store: {type: oracle}\n")
        result = runner.invoke(app, ["export", "--project-dir", str(tmp_path)])
        assert result.exit_code == 1
