"""Tests for switchyard.config.settings: Pydantic configuration"""

from importlib import metadata as importlib_metadata
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from switchyard.config.settings import (
    BackendsConfig,
    LoggingConfig,
    OrchestrationSettings,
    RoutingSettings,
    Settings,
    _project_version,
    load_settings,
)


class TestHelpers:
    def test_project_version_returns_string(self):
        v = _project_version()
        assert isinstance(v, str)
        assert len(v) > 0

    @patch(
        "switchyard.config.settings.metadata.version",
        side_effect=importlib_metadata.PackageNotFoundError,
    )
    def test_project_version_fallback(self, mock_meta):
        assert _project_version() == "0.0.0-dev"


class TestSubConfigs:
    def test_routing_defaults(self):
        cfg = RoutingSettings()
        assert cfg.cache_ttl_seconds == 300
        assert cfg.max_candidates == 10
        assert cfg.minimum_task_suitability == 6.0

    def test_routing_rejects_zero_candidates(self):
        with pytest.raises(ValueError):
            RoutingSettings(max_candidates=0)

    def test_orchestration_defaults(self):
        cfg = OrchestrationSettings()
        assert cfg.consensus_models == 3
        assert cfg.max_retries == 2
        assert cfg.fallback_options == ["single_model_fallback", "simplified_workflow"]
        assert cfg.register_builtin_workflows is True

    def test_orchestration_unknown_fallback_rejected(self):
        with pytest.raises(ValueError, match="Unknown fallback option"):
            OrchestrationSettings(fallback_options=["ask_a_human"])

    def test_backends_defaults(self):
        cfg = BackendsConfig()
        assert cfg.ollama_url == "http://localhost:11434"
        assert cfg.timeout_seconds == 120

    def test_logging_config_defaults(self):
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_logging_level_is_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_logging_invalid_level(self):
        with pytest.raises(ValueError, match="Log level"):
            LoggingConfig(level="VERBOSE")

    def test_logging_invalid_format(self):
        with pytest.raises(ValueError, match="Log format"):
            LoggingConfig(format="xml")


class TestSettings:
    def test_default_settings(self):
        s = Settings()
        assert s.project_name == "Switchyard"
        assert s.catalog_path is None
        assert isinstance(s.routing, RoutingSettings)
        assert isinstance(s.orchestration, OrchestrationSettings)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SWITCHYARD_ORCHESTRATION__MAX_RETRIES", "4")
        monkeypatch.setenv("SWITCHYARD_ROUTING__CACHE_TTL_SECONDS", "30")
        s = Settings.from_env()
        assert s.orchestration.max_retries == 4
        assert s.routing.cache_ttl_seconds == 30

    def test_from_yaml(self, tmp_path):
        config_file = tmp_path / "switchyard.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "project_name": "TestYard",
                    "orchestration": {"consensus_models": 2},
                    "backends": {"ollama_url": "http://gpu-box:11434"},
                }
            )
        )
        s = Settings.from_yaml(config_file)
        assert s.project_name == "TestYard"
        assert s.orchestration.consensus_models == 2
        assert s.backends.ollama_url == "http://gpu-box:11434"

    def test_from_yaml_not_found(self):
        with pytest.raises(FileNotFoundError):
            Settings.from_yaml("/nonexistent/config.yaml")


class TestValidation:
    def test_valid_defaults(self):
        assert Settings().validate_required_config() == []

    def test_delay_bounds(self):
        s = Settings(orchestration=OrchestrationSettings(retry_base_delay=5, retry_max_delay=1))
        assert any("retry_max_delay" in e for e in s.validate_required_config())

    def test_missing_catalog_path(self):
        s = Settings(catalog_path=Path("/nonexistent/catalog.json"))
        assert any("catalog_path" in e for e in s.validate_required_config())

    def test_load_settings_raises_on_errors(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"catalog_path": str(tmp_path / "missing.json")}))
        with pytest.raises(ValueError, match="Configuration validation failed"):
            load_settings(config_file)

    def test_load_settings_from_yaml(self, tmp_path):
        catalog = tmp_path / "catalog.json"
        catalog.write_text("[]")
        config_file = tmp_path / "ok.yaml"
        config_file.write_text(yaml.dump({"catalog_path": str(catalog)}))
        assert load_settings(config_file).catalog_path == catalog
