"""Configuration loader for ShiftDeck.

This module provides the ConfigLoader class for loading deployer settings and
deployment request files from YAML, with environment variable substitution
and ``SHIFTDECK_*`` overrides.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shiftdeck.config.defaults import DEFAULT_SETTINGS_FILE
from shiftdeck.config.env_loader import substitute_env_vars
from shiftdeck.config.validator import flatten_pydantic_errors
from shiftdeck.lib.errors import ConfigError
from shiftdeck.models.request import DeploymentRequest
from shiftdeck.models.settings import DeployerSettings

logger = logging.getLogger(__name__)

# Environment variable to settings field mapping
ENV_VAR_MAP = {
    "namespace": "SHIFTDECK_NAMESPACE",
    "force_build": "SHIFTDECK_FORCE_BUILD",
    "default_image_tag": "SHIFTDECK_DEFAULT_IMAGE_TAG",
    "default_s2i_image": "SHIFTDECK_DEFAULT_S2I_IMAGE",
    "scale_down_timeout": "SHIFTDECK_SCALE_DOWN_TIMEOUT",
}


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse environment variable value to the settings field type.

    Raises:
        ValueError: If value cannot be parsed
    """
    if field_name == "scale_down_timeout":
        return float(value)
    elif field_name == "force_build":
        return value.strip().lower() in ("true", "1", "yes", "on")
    else:
        return value


def _get_env_overrides(env_vars: os._Environ[str] | dict[str, str]) -> dict[str, Any]:
    """Collect settings overrides from environment variables.

    Args:
        env_vars: Environment variables mapping

    Returns:
        Field values keyed by settings field name

    Raises:
        ConfigError: If an override cannot be parsed
    """
    overrides: dict[str, Any] = {}
    for field_name, env_var_name in ENV_VAR_MAP.items():
        raw = env_vars.get(env_var_name)
        if raw is None or not raw.strip():
            continue
        try:
            overrides[field_name] = _parse_env_value(field_name, raw)
        except ValueError as e:
            raise ConfigError(
                env_var_name, f"Invalid value '{raw}' for {field_name}: {e}"
            ) from e
    return overrides


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any]:
    """Read a YAML file with environment variable substitution.

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails or the top level is not a
            mapping
    """
    raw_text = path.read_text(encoding="utf-8")
    content = yaml.safe_load(substitute_env_vars(raw_text))
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError("yaml_parse", f"Expected a mapping at the top of {path}")
    return content


class ConfigLoader:
    """Loads and validates ShiftDeck settings and request files.

    Configuration precedence for settings (highest to lowest):
    1. ``SHIFTDECK_*`` environment variables
    2. Settings YAML file
    3. Built-in defaults
    """

    def __init__(self, env_vars: dict[str, str] | None = None) -> None:
        """Create a loader.

        Args:
            env_vars: Environment mapping for overrides (defaults to os.environ)
        """
        self._env_vars = env_vars

    def _read(self, file_path: str | Path) -> dict[str, Any]:
        path = Path(file_path)
        try:
            return _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise ConfigError(
                "file",
                f"Configuration file not found at {path}. "
                f"Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse", f"Failed to parse YAML file {path}: {str(e)}"
            ) from e

    def _validate(
        self, model: type[BaseModel], data: dict[str, Any], field: str, source: str
    ) -> Any:
        try:
            return model(**data)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e))
            raise ConfigError(
                field, f"Invalid configuration in {source}:\n{error_text}"
            ) from e

    def load_settings(self, file_path: str | Path | None = None) -> DeployerSettings:
        """Load deployer settings.

        A missing default settings file is not an error; an explicitly
        requested file must exist.

        Args:
            file_path: Settings YAML path, or None for ``shiftdeck.yaml``

        Returns:
            Validated DeployerSettings

        Raises:
            ConfigError: If the file is unreadable or invalid
        """
        data: dict[str, Any] = {}
        source = "environment"
        if file_path is not None:
            data = self._read(file_path)
            source = str(file_path)
        elif Path(DEFAULT_SETTINGS_FILE).is_file():
            data = self._read(DEFAULT_SETTINGS_FILE)
            source = DEFAULT_SETTINGS_FILE
        else:
            logger.debug("No settings file found, using defaults")

        env_vars = self._env_vars if self._env_vars is not None else os.environ
        data.update(_get_env_overrides(env_vars))
        settings: DeployerSettings = self._validate(
            DeployerSettings, data, "settings_validation", source
        )
        return settings

    def load_request(self, file_path: str | Path) -> DeploymentRequest:
        """Load a deployment request from YAML.

        Args:
            file_path: Request YAML path

        Returns:
            Validated DeploymentRequest

        Raises:
            ConfigError: If the file is unreadable or invalid
        """
        data = self._read(file_path)
        request: DeploymentRequest = self._validate(
            DeploymentRequest, data, "request_validation", str(file_path)
        )
        return request
