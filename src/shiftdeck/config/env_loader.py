"""Environment variable helpers for ShiftDeck configuration files.

Supports ``${VAR}`` and ``${VAR:-default}`` references inside YAML text and
optional ``.env`` files loaded with python-dotenv.
"""

import os
import re
from pathlib import Path

from dotenv import load_dotenv

from shiftdeck.lib.errors import ConfigError

# ${NAME} or ${NAME:-fallback}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR}`` references with environment variable values.

    Args:
        text: Raw text (usually YAML) containing references

    Returns:
        Text with every reference substituted

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        raise ConfigError(
            name,
            f"Environment variable '{name}' is referenced but not set. "
            f"Set it or use ${{{name}:-default}}.",
        )

    return ENV_VAR_PATTERN.sub(_replace, text)


def get_env_var(name: str, default: str | None = None) -> str | None:
    """Return an environment variable, treating blank values as unset."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value


def load_env_file(path: str | Path = ".env", override: bool = False) -> bool:
    """Load a ``.env`` file into the process environment.

    Args:
        path: Path of the dotenv file
        override: Replace variables that are already set

    Returns:
        True if the file existed and was loaded
    """
    env_path = Path(path)
    if not env_path.is_file():
        return False
    return load_dotenv(env_path, override=override)
