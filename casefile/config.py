"""Configuration management for index builds."""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, Literal

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError, ErrorContext
from .resolution.core_engine import ClusterMode
from .resolution.match_classifier import MatchThresholds
from .unification.unifier import SignificanceWeights


class LoggingConfig(BaseModel):
    """Logging options."""

    format: Literal["json", "text"] = "text"
    level: str = "INFO"
    file: Optional[str] = None


class EngineConfig(BaseModel):
    """Settings for one index build."""

    thresholds: MatchThresholds = Field(default_factory=MatchThresholds)
    weights: SignificanceWeights = Field(default_factory=SignificanceWeights)
    cluster_mode: ClusterMode = ClusterMode.GREEDY
    blocking_enabled: bool = False
    parallel_sources: bool = False
    max_workers: int = Field(default=4, ge=1)
    min_standalone_mentions: int = Field(default=1, ge=1)
    top_co_passengers: int = Field(default=10, ge=0)
    frequent_flyer_threshold: int = Field(default=10, ge=1)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


_TRUE_VALUES = ("true", "1", "yes")


class ConfigManager:
    """Loads defaults, an optional JSON file and CASEFILE_* environment overrides."""

    DEFAULT_CONFIG: Dict[str, Any] = {
        "thresholds": MatchThresholds().model_dump(),
        "weights": SignificanceWeights().model_dump(),
        "cluster_mode": ClusterMode.GREEDY.value,
        "blocking_enabled": False,
        "parallel_sources": False,
        "max_workers": 4,
        "min_standalone_mentions": 1,
        "top_co_passengers": 10,
        "frequent_flyer_threshold": 10,
        "logging": {"format": "text", "level": "INFO", "file": None},
    }

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """Initialize config manager.

        Args:
            config_path: Path to a JSON config file. If None, uses defaults + env vars
            environ: Environment to read overrides from (defaults to os.environ)
        """
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ
        self._config: Optional[EngineConfig] = None

    def load(self) -> EngineConfig:
        """Load configuration from defaults, file and environment."""
        if self._config:
            return self._config

        config_dict = self._deep_merge({}, self.DEFAULT_CONFIG)

        if self.config_path:
            config_dict = self._deep_merge(config_dict, self._read_file(self.config_path))

        config_dict = self._apply_env_overrides(config_dict)

        try:
            self._config = EngineConfig(**config_dict)
        except ValidationError as e:
            first = e.errors()[0]
            raise ConfigurationError(
                f"Invalid configuration: {first['msg']}",
                key=".".join(str(loc) for loc in first["loc"]),
                context=ErrorContext(
                    operation="load_config",
                    resource_id=str(self.config_path) if self.config_path else None,
                ),
                cause=e,
            ) from e
        return self._config

    def _read_file(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path, "r") as f:
                file_config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file is not valid JSON: {path}", cause=e) from e
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file must hold a JSON object: {path}")
        return file_config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            elif isinstance(value, dict):
                result[key] = self._deep_merge({}, value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        env = self.environ

        mode = env.get("CASEFILE_CLUSTER_MODE")
        if mode:
            config["cluster_mode"] = mode.lower()

        if "CASEFILE_BLOCKING" in env:
            config["blocking_enabled"] = env["CASEFILE_BLOCKING"].lower() in _TRUE_VALUES

        if "CASEFILE_PARALLEL" in env:
            config["parallel_sources"] = env["CASEFILE_PARALLEL"].lower() in _TRUE_VALUES

        log_level = env.get("CASEFILE_LOG_LEVEL")
        if log_level:
            config.setdefault("logging", {})["level"] = log_level.upper()

        log_format = env.get("CASEFILE_LOG_FORMAT")
        if log_format:
            config.setdefault("logging", {})["format"] = log_format.lower()

        return config

    def save_template(self, path: str):
        """Save a configuration file holding every default."""
        with open(path, "w") as f:
            json.dump(self.DEFAULT_CONFIG, f, indent=2)

    @property
    def config(self) -> EngineConfig:
        """Get the loaded configuration."""
        if not self._config:
            self._config = self.load()
        return self._config
