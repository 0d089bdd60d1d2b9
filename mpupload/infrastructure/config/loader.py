"""
Configuration loading and saving utilities.

Settings come from an optional YAML or JSON file and are then overridden
from ``MPUPLOAD_*`` environment variables. ``API_BASE`` is read before
them so that ``MPUPLOAD_ENDPOINT`` wins when both are set.
"""

import json
import os
from pathlib import Path
from typing import IO, Any, Callable, Dict, Optional, Tuple

import yaml

from .models import ApplicationConfig

ENV_PREFIX = "MPUPLOAD_"

# Shared with the web frontend deployment
API_BASE_VAR = "API_BASE"


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    return value.strip().lower() in ('true', '1', 'yes', 'on', 'enabled')


# Variable suffix -> (dotted config path, converter)
ENV_SETTINGS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "ENDPOINT": ("endpoint_base", str),
    "ENVIRONMENT": ("environment", str),
    "PART_SIZE": ("part_size", int),
    "NUM_RETRIES": ("num_retries", int),
    "BASE_DELAY": ("base_delay", float),
    "JITTER": ("jitter", float),
    "REQUEST_TIMEOUT": ("request_timeout", float),
    "LOG_LEVEL": ("logging.level", str),
    "LOG_DIR": ("logging.log_directory", str),
    "LOG_FILE": ("logging.file_enabled", parse_bool),
}


def _read_yaml(f: IO[str]) -> Any:
    return yaml.safe_load(f)


def _write_yaml(data: Dict[str, Any], f: IO[str]) -> None:
    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, indent=2)


def _write_json(data: Dict[str, Any], f: IO[str]) -> None:
    json.dump(data, f, indent=2)


FORMATS: Dict[str, Tuple[Callable[[IO[str]], Any], Callable[[Dict[str, Any], IO[str]], None]]] = {
    "yaml": (_read_yaml, _write_yaml),
    "json": (json.load, _write_json),
}
SUFFIXES = {".yaml": "yaml", ".yml": "yaml", ".json": "json"}


def set_dotted(config: Dict[str, Any], path: str, value: Any) -> None:
    """Set ``value`` at a dotted path such as ``logging.level``."""
    *parents, leaf = path.split('.')
    for key in parents:
        config = config.setdefault(key, {})
    config[leaf] = value


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result


class ConfigLoader:
    """Configuration loader for files and environment variables."""

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
            ValueError: On an unreadable file or an invalid value
        """
        config_data: Dict[str, Any] = {}
        if config_file:
            config_data = self._load_from_file(config_file)

        config_data = merge_configs(config_data, self._load_from_environment())

        config = ApplicationConfig.from_dict(config_data)
        config.config_file_path = config_file
        return config

    def save_config(self, config: ApplicationConfig, file_path: str, format: str = "yaml") -> None:
        """
        Save configuration to file.

        Args:
            config: Configuration to save
            file_path: Output file path
            format: File format (yaml or json)
        """
        fmt = format.lower()
        if fmt not in FORMATS:
            raise ValueError(f"Unsupported format: {format}")

        config_data = config.to_dict()
        config_data.pop("config_file_path", None)

        _, write = FORMATS[fmt]
        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                write(config_data, f)
        except OSError as e:
            raise ValueError(f"Error writing {fmt.upper()} to {file_path}: {e}")

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        fmt = SUFFIXES.get(path.suffix.lower())
        if fmt is None:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        read, _ = FORMATS[fmt]
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = read(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid {fmt.upper()} in {file_path}: {e}")
        except OSError as e:
            raise ValueError(f"Error reading {file_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {file_path} must be a mapping, got {type(data).__name__}")
        return data

    def _load_from_environment(self) -> Dict[str, Any]:
        """Collect overrides from environment variables."""
        config: Dict[str, Any] = {}

        api_base = os.getenv(API_BASE_VAR)
        if api_base:
            config["endpoint_base"] = api_base

        for suffix, (config_path, converter) in ENV_SETTINGS.items():
            env_var = f"{self._env_prefix}{suffix}"
            value = os.getenv(env_var)
            if value is None:
                continue
            try:
                set_dotted(config, config_path, converter(value))
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {env_var}: {value} ({e})")

        return config
