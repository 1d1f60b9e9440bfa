"""
Configuration loading and saving utilities.

Configuration comes from a YAML or JSON file, overlaid with ``ADIT_*``
environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from loguru import logger

from .models import ApplicationConfig

ENV_PREFIX = "ADIT_"


def _parse_port(value: str) -> Any:
    """``"22"`` or a ``"9000-9005"`` range."""
    if '-' in value:
        low, high = value.split('-', 1)
        return [int(low), int(high)]
    return int(value)


class ConfigLoader:
    """Configuration loader supporting YAML, JSON and the environment."""

    def __init__(self, env_prefix: str = ENV_PREFIX) -> None:
        self._env_prefix = env_prefix

    def load_config(self, config_file: Optional[str] = None) -> ApplicationConfig:
        """
        Load configuration from file and environment variables.

        Args:
            config_file: Path to configuration file (optional)

        Returns:
            Loaded and validated configuration

        Raises:
            FileNotFoundError: If ``config_file`` does not exist
            ValueError: If the file or an environment value is invalid
        """
        config_data: Dict[str, Any] = {}

        if config_file:
            config_data = self._load_from_file(config_file)

        env_overrides = self._load_from_environment()
        config_data = self._merge_configs(config_data, env_overrides)

        try:
            config = ApplicationConfig.from_dict(config_data)
        except TypeError as e:
            raise ValueError(f"Unknown configuration key: {e}")
        config.config_file_path = config_file

        logger.debug(f"Configuration loaded from {config_file or 'defaults'}")
        return config

    def save_config(self, config: ApplicationConfig, file_path: str, format: str = "yaml") -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration to save
            file_path: Output file path
            format: File format (yaml or json)
        """
        config_data = config.to_dict()

        if format.lower() == "yaml":
            self._save_yaml(config_data, file_path)
        elif format.lower() == "json":
            self._save_json(config_data, file_path)
        else:
            raise ValueError(f"Unsupported format: {format}")

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        if path.suffix.lower() in ['.yaml', '.yml']:
            return self._load_yaml(file_path)
        elif path.suffix.lower() == '.json':
            return self._load_json(file_path)
        else:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

    def _load_yaml(self, file_path: str) -> Dict[str, Any]:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {file_path}: {e}")
        except OSError as e:
            raise ValueError(f"Error reading {file_path}: {e}")

    def _load_json(self, file_path: str) -> Dict[str, Any]:
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)  # type: ignore[no-any-return]
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {file_path}: {e}")
        except OSError as e:
            raise ValueError(f"Error reading {file_path}: {e}")

    def _save_yaml(self, data: Dict[str, Any], file_path: str) -> None:
        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
        except OSError as e:
            raise ValueError(f"Error writing YAML to {file_path}: {e}")

    def _save_json(self, data: Dict[str, Any], file_path: str) -> None:
        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise ValueError(f"Error writing JSON to {file_path}: {e}")

    def _env_mappings(self) -> Dict[str, Tuple[str, Callable[[str], Any]]]:
        p = self._env_prefix
        return {
            f"{p}DEBUG": ("debug", self._parse_bool),
            f"{p}SSH_HOST": ("ssh.host", str),
            f"{p}SSH_PORT": ("ssh.port", _parse_port),
            f"{p}SSH_USERNAME": ("ssh.username", str),
            f"{p}SSH_PASSWORD": ("ssh.password", str),
            f"{p}SSH_KEY": ("ssh.key", str),
            f"{p}SSH_AGENT": ("ssh.agent", str),
            f"{p}SSH_KNOWN_HOSTS": ("ssh.known_hosts_path", str),
            f"{p}RETRIES": ("ssh.retries", int),
            f"{p}RETRY_DELAY": ("ssh.retry_delay", float),
            f"{p}FORWARD_MODE": ("forwarding.mode", str),
            f"{p}LOG_LEVEL": ("logging.level", str),
            f"{p}LOG_DIR": ("logging.log_directory", str),
            f"{p}LOG_FILE": ("logging.file_enabled", self._parse_bool),
        }

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration overrides from environment variables."""
        config: Dict[str, Any] = {}

        for env_var, (config_path, converter) in self._env_mappings().items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    self._set_nested_value(config, config_path, converter(value))
                except (ValueError, TypeError) as e:
                    raise ValueError(f"Invalid value for {env_var}: {value} ({e})")

        return config

    def _parse_bool(self, value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on', 'enabled')

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            current = current.setdefault(key, {})

        current[keys[-1]] = value

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result
