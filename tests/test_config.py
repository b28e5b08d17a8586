"""Tests for configuration loading."""

import json

import pytest

from casefile.config import ConfigManager, EngineConfig
from casefile.errors import ConfigurationError
from casefile.resolution.core_engine import ClusterMode


@pytest.fixture
def config_file(tmp_path):
    def _write(content):
        path = tmp_path / "casefile.json"
        path.write_text(content if isinstance(content, str) else json.dumps(content))
        return str(path)

    return _write


class TestDefaults:
    """Test the built-in defaults."""

    def test_defaults(self):
        config = ConfigManager(environ={}).load()

        assert config.cluster_mode == ClusterMode.GREEDY
        assert config.blocking_enabled is False
        assert config.parallel_sources is False
        assert config.min_standalone_mentions == 1
        assert config.top_co_passengers == 10
        assert config.frequent_flyer_threshold == 10
        assert config.thresholds.last_name == 0.90
        assert config.weights.contact_circled == 50

    def test_defaults_match_model(self):
        assert ConfigManager(environ={}).load() == EngineConfig()

    def test_load_is_cached(self):
        manager = ConfigManager(environ={})
        assert manager.load() is manager.config


class TestFileConfig:
    """Test JSON config files."""

    def test_deep_merge(self, config_file):
        path = config_file({"thresholds": {"last_name": 0.95}, "cluster_mode": "transitive"})
        config = ConfigManager(path, environ={}).load()

        assert config.thresholds.last_name == 0.95
        assert config.thresholds.first_name == 0.80
        assert config.cluster_mode == ClusterMode.TRANSITIVE

    def test_defaults_not_mutated(self, config_file):
        path = config_file({"logging": {"level": "DEBUG"}})
        ConfigManager(path, environ={"CASEFILE_LOG_FORMAT": "json"}).load()

        assert ConfigManager.DEFAULT_CONFIG["logging"] == {
            "format": "text",
            "level": "INFO",
            "file": None,
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager(str(tmp_path / "nope.json"), environ={}).load()

    def test_invalid_json(self, config_file):
        with pytest.raises(ConfigurationError):
            ConfigManager(config_file("{not json"), environ={}).load()

    def test_not_an_object(self, config_file):
        with pytest.raises(ConfigurationError):
            ConfigManager(config_file([1, 2]), environ={}).load()

    def test_invalid_value(self, config_file):
        path = config_file({"cluster_mode": "psychic"})
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(path, environ={}).load()
        assert exc_info.value.key == "cluster_mode"

    def test_invalid_threshold(self, config_file):
        path = config_file({"thresholds": {"first_name": 2}})
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigManager(path, environ={}).load()
        assert exc_info.value.key == "thresholds.first_name"

    def test_save_template_round_trip(self, tmp_path):
        path = tmp_path / "template.json"
        ConfigManager(environ={}).save_template(str(path))
        assert ConfigManager(str(path), environ={}).load() == EngineConfig()


class TestEnvironmentOverrides:
    """Test CASEFILE_* environment variables."""

    def test_overrides(self):
        config = ConfigManager(
            environ={
                "CASEFILE_CLUSTER_MODE": "TRANSITIVE",
                "CASEFILE_BLOCKING": "yes",
                "CASEFILE_PARALLEL": "1",
                "CASEFILE_LOG_LEVEL": "debug",
                "CASEFILE_LOG_FORMAT": "JSON",
            }
        ).load()

        assert config.cluster_mode == ClusterMode.TRANSITIVE
        assert config.blocking_enabled is True
        assert config.parallel_sources is True
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"

    def test_env_beats_file(self, config_file):
        path = config_file({"blocking_enabled": True})
        config = ConfigManager(path, environ={"CASEFILE_BLOCKING": "false"}).load()
        assert config.blocking_enabled is False

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("CASEFILE_CLUSTER_MODE", "transitive")
        assert ConfigManager().load().cluster_mode == ClusterMode.TRANSITIVE

    def test_invalid_env_value(self):
        with pytest.raises(ConfigurationError):
            ConfigManager(environ={"CASEFILE_LOG_FORMAT": "xml"}).load()
