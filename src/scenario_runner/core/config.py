import copy
import os
import yaml
import json
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError


class ConfigManager:
    """Manages configuration for Scenario Runner"""

    ENV_VAR = "SCENARIO_RUNNER_CONFIG"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else self._get_default_config_path()
        self._config = self._load_config()

    def _get_default_config_path(self) -> Path:
        """Get default configuration path"""
        # Check environment variable first
        if env_path := os.getenv(self.ENV_VAR):
            return Path(env_path)

        # Check common locations
        locations = [
            Path.cwd() / "scenario-runner.yaml",
            Path.cwd() / ".scenario-runner" / "config.yaml",
            Path.home() / ".scenario-runner" / "config.yaml",
        ]

        for location in locations:
            if location.exists():
                return location

        # Return default location
        return Path.home() / ".scenario-runner" / "config.yaml"

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file, layered over the defaults"""
        config = self._get_default_config()
        if not self.config_path.exists():
            return config

        with open(self.config_path, 'r') as f:
            if self.config_path.suffix in ('.yaml', '.yml'):
                loaded = yaml.safe_load(f) or {}
            elif self.config_path.suffix == '.json':
                loaded = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config format: {self.config_path.suffix}")

        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {self.config_path}")

        return _deep_merge(config, loaded)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            "general": {
                "log_level": "INFO",
            },
            "executor": {
                "features": ["features/"],
                "steps": [],
                "parallel_workers": 1,
                "retry": 0,
                "fail_fast": False,
                "dry_run": False,
                "step_timeout": 30000,
                "step_retry_delay": 1.0,
                "tags": None,
                "exclude_tags": None,
                "scenario": None,
                "non_retryable_patterns": None,
            },
            "data_sources": {
                "base_dir": ".",
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self) -> None:
        """Save configuration to file"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            if self.config_path.suffix == '.json':
                json.dump(self._config, f, indent=2)
            else:
                yaml.dump(self._config, f, default_flow_style=False)

    def get_module_config(self, module_name: str) -> Dict[str, Any]:
        """Get configuration for a specific module"""
        return self.get(module_name, {})

    def to_dict(self) -> Dict[str, Any]:
        """Copy of the merged configuration"""
        return copy.deepcopy(self._config)


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
