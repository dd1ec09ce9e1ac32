"""
Tests for configuration loading, resolution and validation.
"""

from pathlib import Path

import pytest
import yaml

from galedi.config.loader import load_config, load_config_data
from galedi.config.resolver import has_unresolved_placeholder, resolve_config
from galedi.config.settings import DEFAULT_REQUEST_FILE, build_agent_config, partner_slug
from galedi.exceptions import ConfigurationError


def base_config() -> dict:
    return {
        "store": {"type": "duckdb", "path": ":memory:"},
        "work_dir": "work",
        "partners": [
            {
                "id": "MFR-H",
                "endpoint": {"url": "ftp://ftp.mfrh.example/lvs", "username": "galedi", "password": "pw"},
            },
            {
                "id": "MFR-E",
                "endpoint": {"url": "sftp://sftp.mfre.example", "username": "galedi", "password": "pw"},
                "source": {"url": "sftp://data.mfre.example/out", "username": "reader", "password": "pw2"},
            },
            {"id": "MFR-A", "enabled": False},
        ],
    }


def write_config(project: Path, data: dict, name: str = "config.yaml") -> None:
    (project / name).write_text(yaml.safe_dump(data))


class TestResolver:
    """Tests for placeholder substitution."""

    def test_env_var_substitution(self, monkeypatch):
        monkeypatch.setenv("GALEDI_TEST_PW", "hunter2")
        assert resolve_config({"a": {"b": "${GALEDI_TEST_PW}"}}) == {"a": {"b": "hunter2"}}

    def test_unknown_var_left_in_place(self, monkeypatch):
        monkeypatch.delenv("GALEDI_DOES_NOT_EXIST", raising=False)
        resolved = resolve_config({"x": "${GALEDI_DOES_NOT_EXIST}"})
        assert resolved["x"] == "${GALEDI_DOES_NOT_EXIST}"
        assert has_unresolved_placeholder(resolved["x"])

    def test_fallback_value(self, monkeypatch):
        monkeypatch.delenv("GALEDI_DB_HOST", raising=False)
        assert resolve_config({"host": "${GALEDI_DB_HOST:-localhost}"}) == {"host": "localhost"}
        monkeypatch.setenv("GALEDI_DB_HOST", "db.internal")
        assert resolve_config({"host": "${GALEDI_DB_HOST:-localhost}"}) == {"host": "db.internal"}

    def test_env_placeholder(self):
        assert resolve_config({"path": "data/{env}.duckdb"}, env="prod") == {"path": "data/prod.duckdb"}

    def test_lists_and_scalars(self):
        assert resolve_config({"l": ["{env}", 3, None]}, env="dev") == {"l": ["dev", 3, None]}


class TestBuildAgentConfig:
    """Tests for validation and defaults."""

    def test_defaults(self, tmp_path):
        cfg = build_agent_config(base_config(), project_dir=tmp_path)

        h = cfg.partner("MFR-H")
        assert h.request_file == DEFAULT_REQUEST_FILE
        assert h.feedback_file == "mfrh_lvs.txt"
        assert h.source_file == "mfrh_int.txt"
        assert h.source == h.endpoint
        assert cfg.store.batch_size == 50
        assert cfg.schedule.ingest.every_s == 20.0
        assert cfg.schedule.export.every_s == 30.0
        assert cfg.schedule.ingest.initial_delay_s == 20.0
        assert cfg.work_dir == tmp_path / "work"

    def test_separate_source_endpoint(self):
        cfg = build_agent_config(base_config())
        e = cfg.partner("MFR-E")
        assert e.source.url == "sftp://data.mfre.example/out"
        assert e.endpoint.url == "sftp://sftp.mfre.example"

    def test_enabled_partners_keep_order(self):
        cfg = build_agent_config(base_config())
        assert [p.partner_id for p in cfg.enabled_partners()] == ["MFR-H", "MFR-E"]
        assert cfg.partner("MFR-A").enabled is False

    def test_unknown_partner_lookup(self):
        with pytest.raises(KeyError):
            build_agent_config(base_config()).partner("MFR-X")

    def test_schedule_overrides(self):
        data = base_config()
        data["schedule"] = {"ingest": {"every_s": 5, "initial_delay_s": 0}, "export": {"every_s": 60}}
        cfg = build_agent_config(data)
        assert cfg.schedule.ingest.every_s == 5.0
        assert cfg.schedule.ingest.initial_delay_s == 0.0
        assert cfg.schedule.export.initial_delay_s == 60.0

    def test_custom_file_names(self):
        data = base_config()
        data["partners"][0].update({"feedback_file": "out.txt", "source_file": "in.txt", "request_file": "REQ.txt"})
        h = build_agent_config(data).partner("MFR-H")
        assert (h.feedback_file, h.source_file, h.request_file) == ("out.txt", "in.txt", "REQ.txt")

    def test_all_problems_reported(self):
        data = {
            "store": {"type": "oracle"},
            "partners": [
                {"id": "MFR-X", "endpoint": {}},
                {"id": "MFR-H", "endpoint": {"url": "http://nope", "username": "u"}},
            ],
            "schedule": {"ingest": {"every_s": -1}},
        }
        with pytest.raises(ConfigurationError) as exc_info:
            build_agent_config(data)

        problems = "\n".join(exc_info.value.problems)
        assert "store.type" in problems
        assert "MFR-X" in problems
        assert "partners[1].endpoint.url" in problems
        assert "partners[1].endpoint.password" in problems
        assert "schedule.ingest.every_s" in problems

    def test_partners_required(self):
        with pytest.raises(ConfigurationError, match="partners"):
            build_agent_config({"store": {"type": "duckdb"}})

    def test_duplicate_partner(self):
        data = base_config()
        data["partners"].append(dict(data["partners"][0]))
        with pytest.raises(ConfigurationError, match="more than once"):
            build_agent_config(data)

    def test_all_disabled_rejected(self):
        data = base_config()
        for p in data["partners"]:
            p["enabled"] = False
        with pytest.raises(ConfigurationError, match="at least one partner"):
            build_agent_config(data)

    def test_unset_secret_rejected(self, monkeypatch):
        monkeypatch.delenv("GALEDI_MISSING_PW", raising=False)
        data = resolve_config(base_config())
        data["partners"][0]["endpoint"]["password"] = "${GALEDI_MISSING_PW}"
        with pytest.raises(ConfigurationError, match="unset environment variable"):
            build_agent_config(data)

    def test_postgres_requires_connection_fields(self):
        data = base_config()
        data["store"] = {"type": "postgres", "host": "db"}
        with pytest.raises(ConfigurationError) as exc_info:
            build_agent_config(data)
        assert any("store.database" in p for p in exc_info.value.problems)

    def test_masked_hides_secrets(self):
        data = base_config()
        data["store"] = {"type": "postgres", "host": "db", "database": "lvs", "user": "galedi", "password": "dbpw"}
        masked = build_agent_config(data).masked()
        text = repr(masked)
        assert "dbpw" not in text
        assert "'pw'" not in text
        assert masked["store"]["password"] == "***"

    def test_partner_slug(self):
        assert partner_slug("MFR-H") == "mfrh"


class TestLoadConfig:
    """Tests for reading config files from a project directory."""

    def test_load(self, tmp_path):
        write_config(tmp_path, base_config())
        cfg = load_config(tmp_path)
        assert cfg.env == "dev"
        assert cfg.project_dir == tmp_path

    def test_env_override_merged(self, tmp_path):
        write_config(tmp_path, base_config())
        write_config(tmp_path, {"store": {"batch_size": 10}, "schedule": {"export": {"every_s": 5}}}, "config.prod.yaml")

        cfg = load_config(tmp_path, env="prod")

        assert cfg.env == "prod"
        assert cfg.store.batch_size == 10
        assert cfg.store.type == "duckdb"
        assert cfg.schedule.export.every_s == 5.0

    def test_override_replaces_partner_list(self, tmp_path):
        write_config(tmp_path, base_config())
        override = {"partners": [base_config()["partners"][0]]}
        write_config(tmp_path, override, "config.staging.yaml")

        cfg = load_config(tmp_path, env="staging")

        assert [p.partner_id for p in cfg.partners] == ["MFR-H"]

    def test_missing_env_override_is_fine(self, tmp_path):
        write_config(tmp_path, base_config())
        assert load_config(tmp_path, env="qa").env == "qa"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config_data(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("partners: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Error parsing config.yaml"):
            load_config_data(tmp_path)

    def test_non_mapping(self, tmp_path):
        (tmp_path / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config_data(tmp_path)

    def test_relative_duckdb_path_under_project(self, tmp_path):
        data = base_config()
        data["store"] = {"type": "duckdb", "path": "data/galedi.duckdb"}
        write_config(tmp_path, data)
        cfg = load_config(tmp_path)
        assert cfg.store.path == str(tmp_path / "data" / "galedi.duckdb")
