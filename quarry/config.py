"""
Config system - layered database configuration.

Builds the ``DbManager`` configuration dict from several sources, later
sources overriding earlier ones:

1. YAML / JSON config files
2. ``.env`` file (``QUARRY_*`` keys)
3. Process environment variables (``QUARRY_*``)
4. Manual overrides

Nested keys in environment variables are separated by a double
underscore: ``QUARRY_CONNECTIONS__MYSQL__HOSTNAME=db1``.

Usage:
    loader = ConfigLoader.load(["config/database.yaml"], env_file=".env")
    loader.get("connections.mysql.hostname")
    db = DbManager.from_config(loader)
"""

from __future__ import annotations

import copy
import json
import os
from glob import glob
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import dotenv_values

from .faults import ConfigInvalidFault

__all__ = ["ConfigLoader"]


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files
    """

    def __init__(self, env_prefix: str = "QUARRY_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "QUARRY_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source and merge it.

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to a .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        loader._validate()
        return loader

    def _load_from_files(self, pattern: str) -> None:
        """Load config from JSON or YAML files."""
        for path_str in sorted(glob(pattern)):
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)

    def _load_json_file(self, path: Path) -> None:
        with open(path) as f:
            data = json.load(f)
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path) -> None:
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str) -> None:
        """Load ``QUARRY_*`` keys from a .env file."""
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self) -> None:
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str) -> None:
        """Convert QUARRY_CONNECTIONS__MYSQL__HOSTNAME to a nested dict."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    @staticmethod
    def _parse_value(value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict) -> None:
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def _validate(self) -> None:
        connections = self.config_data.get("connections")
        if connections is not None and not isinstance(connections, dict):
            raise ConfigInvalidFault("connections", "must be a mapping of name -> options")
        for name, options in (connections or {}).items():
            if not isinstance(options, dict):
                raise ConfigInvalidFault(f"connections.{name}", "must be a mapping")

        default = self.config_data.get("default")
        if default and connections and default not in connections:
            raise ConfigInvalidFault("default", f"no connection named '{default}'")

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config_data)

    def __repr__(self) -> str:
        return f"<ConfigLoader prefix={self.env_prefix!r} keys={sorted(self.config_data)}>"
