"""Tests for configuration loading and saving."""

import pytest
import yaml
from pydantic import ValidationError

from govsearch.config import SearchConfig, load_config, save_config


class TestSearchConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        config = SearchConfig()
        assert config.fulltext.enabled is True
        assert config.qdrant.url == "http://localhost:6333"
        assert config.match_mode == "start"
        assert config.max_roles_returned == -1
        assert config.manually_assignable_role_types == ["business"]
        assert config.request_controls.allow_roles is True

    def test_high_risk_band(self):
        assert SearchConfig().high_risk_band().label == "high"
        assert SearchConfig(score_bands=[]).high_risk_band() is None

    def test_invalid_match_mode(self):
        with pytest.raises(ValidationError):
            SearchConfig(match_mode="sometimes")


class TestLoadConfig:
    """Test YAML loading and saving."""

    def test_load(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "fulltext": {"url": "http://meili:7700", "skip_fields": ["value"]},
            "selectors": {"application": "name=AD"},
            "request_controls": {"allow_entitlements": False},
            "population_size_limit": 500,
        }))

        config = load_config(path)

        assert config.fulltext.url == "http://meili:7700"
        assert config.fulltext.skip_fields == ["value"]
        assert config.selectors == {"application": "name=AD"}
        assert config.request_controls.allow_entitlements is False
        assert config.request_controls.allow_roles is True
        assert config.population_size_limit == 500

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == SearchConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"population_size_limit": "lots"}))
        with pytest.raises(ValueError):
            load_config(path)

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        config = SearchConfig(identity_scope="active=true", removal_rules={"role": "none"})
        save_config(config, path)
        assert load_config(path) == config
