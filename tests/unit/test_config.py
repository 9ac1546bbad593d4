"""Unit tests for engine settings and YAML config loading."""

from pathlib import Path

import pytest

from scholex.config import EngineSettings, load_config, load_settings, settings_from_config, validate_config
from scholex.errors import ConfigurationError


REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "scholex.yaml"


class TestEngineSettings:
    def test_defaults(self):
        settings = EngineSettings()
        assert settings.save_threshold == 0.5
        assert settings.apply_threshold == 0.3
        assert settings.max_labels == 10
        assert settings.min_generic_date_year == 1990
        assert settings.db_url is None

    def test_db_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("SCHOLEX_DB_URL", "sqlite:///elsewhere.sqlite")
        assert EngineSettings().db_url == "sqlite:///elsewhere.sqlite"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"save_threshold": 1.5},
            {"apply_threshold": -0.1},
            {"save_threshold": 0.2, "apply_threshold": 0.4},
            {"max_labels": 0},
            {"html_author_delimiters": ""},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            EngineSettings(**kwargs)


class TestYamlConfig:
    def test_repository_config_loads(self):
        settings = load_settings(REPO_CONFIG)
        assert settings.save_threshold == 0.5
        assert settings.db_path == Path("data/scholex.sqlite")

    def test_partial_engine_section(self, tmp_path):
        path = tmp_path / "scholex.yaml"
        path.write_text("engine:\n  max_labels: 4\n", encoding="utf-8")
        settings = load_settings(path)
        assert settings.max_labels == 4
        assert settings.apply_threshold == 0.3

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigurationError):
            validate_config({"engine": {"save_treshold": 0.5}})

    def test_engine_section_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            settings_from_config({"engine": ["save_threshold"]})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path) == EngineSettings()
