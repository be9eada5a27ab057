"""Configuration loader with multi-source support."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Generic, Optional, Type, TypeVar

import platformdirs
import toml
from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)

# Separates nested sections in environment variable names:
# GPHOTOS_FLAT_MIGRATE_MIGRATION__TIMEOUT_MS -> migration.timeout_ms
ENV_SECTION_SEPARATOR = "__"


class ConfigLoader(Generic[T]):
    """Loads configuration from layered sources.

    Priority (lowest to highest): defaults file, system config, user config,
    environment variables. Command line overrides are applied by the caller
    on top of the returned model.
    """

    def __init__(self, app_name: str, config_class: Type[T]) -> None:
        self.app_name = app_name
        self.config_class = config_class

    @property
    def env_prefix(self) -> str:
        return f"{self.app_name.upper().replace('-', '_')}_"

    def load(self, defaults_path: Optional[Path] = None) -> T:
        """Load and validate configuration from all sources.

        Args:
            defaults_path: Optional explicit TOML file (``--config``)

        Returns:
            Validated configuration model

        Raises:
            pydantic.ValidationError: If the merged configuration is invalid
            toml.TomlDecodeError: If a configuration file is malformed
        """
        config_dict = self._load_defaults(defaults_path)

        for layer in (self._load_system_config(), self._load_user_config()):
            if layer:
                config_dict = self._deep_merge(config_dict, layer)

        config_dict = self._apply_env_overrides(config_dict)

        return self.config_class(**config_dict)

    def _load_defaults(self, defaults_path: Optional[Path]) -> Dict[str, Any]:
        if defaults_path is not None:
            logger.debug(f"Loading config file: {{'path': {str(defaults_path)!r}}}")
            return toml.load(defaults_path)

        local_defaults = Path.cwd() / "config" / "defaults.toml"
        if local_defaults.exists():
            logger.debug(f"Loading config file: {{'path': {str(local_defaults)!r}}}")
            return toml.load(local_defaults)

        return {}

    def _load_system_config(self) -> Optional[Dict[str, Any]]:
        if os.name == "nt":
            system_path = (
                Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData"))
                / self.app_name
                / "config.toml"
            )
        else:
            system_path = Path(f"/etc/{self.app_name}/config.toml")

        if system_path.exists():
            logger.debug(f"Loading system config: {{'path': {str(system_path)!r}}}")
            return toml.load(system_path)
        return None

    def _load_user_config(self) -> Optional[Dict[str, Any]]:
        user_config_dir = platformdirs.user_config_dir(appname=self.app_name, appauthor=False)
        user_config_path = Path(user_config_dir) / "config.toml"

        if user_config_path.exists():
            logger.debug(f"Loading user config: {{'path': {str(user_config_path)!r}}}")
            return toml.load(user_config_path)

        logger.debug(f"User config not found: {{'path': {str(user_config_path)!r}}}")
        return None

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Override config values with ``<PREFIX>SECTION__KEY`` variables."""
        prefix = self.env_prefix

        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue

            key_path = env_key[len(prefix):].lower().split(ENV_SECTION_SEPARATOR)
            if not all(key_path):
                logger.warning(f"Ignoring malformed config variable: {{'name': {env_key!r}}}")
                continue

            current = config
            for part in key_path[:-1]:
                current = current.setdefault(part, {})

            current[key_path[-1]] = self._convert_env_value(env_value)

        return config

    def _convert_env_value(self, value: str) -> Any:
        """Convert an environment string to bool, number, list or string."""
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

        if "," in value:
            return [v.strip() for v in value.split(",")]

        return value
