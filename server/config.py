"""
Siteadmin - Configuration Manager
=================================
Handles loading of application configuration from two sources:

1. config.yaml  - Non-sensitive settings (web binding, update checks)
2. .env         - Sensitive secrets (admin password, token signing secret)

The config manager provides a unified interface to read both files and to
edit the .env file from the admin console.

Usage:
    config = ConfigManager(project_dir="/path/to/siteadmin")
    settings = config.load()               # Returns merged config dict
    secrets = config.require_secrets()     # Fails fast on missing secrets
    config.update_env({"ADMIN_PASSWORD": "..."})  # Updates .env
"""

import os
import yaml
from dotenv import dotenv_values, load_dotenv, set_key

from server import __version__


# Default configuration values used when config.yaml is missing or incomplete.
DEFAULTS = {
    "web": {
        "port": 5000,
        "host": "0.0.0.0",
    },
    "updates": {
        "enabled": True,
        "interval": 3600,
        "timeout": 10,
        "release_url": "https://api.github.com/repos/siteadmin/siteadmin/releases/latest",
        "current_version": __version__,
    },
}

# Secrets that must be present before the server is allowed to start.
REQUIRED_SECRETS = ["ADMIN_PASSWORD", "JWT_SECRET"]

# Suffixes of .env keys whose values are masked when displayed.
SECRET_SUFFIXES = ("_KEY", "_SECRET", "_PASSWORD", "_TOKEN")


class ConfigError(Exception):
    """Raised when the configuration cannot be used to start the server."""


class ConfigManager:
    """
    Unified configuration manager for Siteadmin.

    Attributes:
        project_dir: Root directory of the Siteadmin project.
        config_path: Full path to config.yaml.
        env_path:    Full path to .env file.
    """

    def __init__(self, project_dir: str):
        self.project_dir = project_dir
        self.config_path = os.path.join(project_dir, "config.yaml")
        self.env_path = os.path.join(project_dir, ".env")

    def load(self) -> dict:
        """
        Load and merge configuration from config.yaml with defaults.

        Missing values are filled from DEFAULTS.

        Returns:
            A dictionary containing the full configuration.

        Raises:
            ConfigError: If config.yaml exists but cannot be parsed.
        """
        config = _deep_copy(DEFAULTS)

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    user_config = yaml.safe_load(f) or {}
            except (yaml.YAMLError, OSError) as e:
                raise ConfigError(f"Cannot read {self.config_path}: {e}") from e
            if not isinstance(user_config, dict):
                raise ConfigError(f"{self.config_path} must contain a mapping")
            _deep_merge(config, user_config)

        return config

    # -- Secrets ---------------------------------------------------------------

    def load_env(self) -> None:
        """Load .env into the process environment (existing vars win)."""
        if os.path.exists(self.env_path):
            load_dotenv(self.env_path, override=False)

    def require_secrets(self) -> dict[str, str]:
        """
        Return the secrets the server cannot run without.

        Values come from the process environment, which load_env() fills
        from .env. There is no fallback value for any of them.

        Returns:
            Dict mapping each name in REQUIRED_SECRETS to its value.

        Raises:
            ConfigError: If any required secret is missing or empty.
        """
        self.load_env()
        values = {name: os.environ.get(name, "") for name in REQUIRED_SECRETS}
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigError(
                "Missing required secret(s): " + ", ".join(missing)
                + f". Set them in the environment or in {self.env_path}."
            )
        return values

    # -- .env editing ----------------------------------------------------------

    def get_env(self) -> dict[str, str]:
        """
        Load the .env file for display.

        Values of keys ending in one of SECRET_SUFFIXES are masked.

        Returns:
            Dict of key names to (possibly masked) values.
        """
        env_values = dotenv_values(self.env_path) if os.path.exists(self.env_path) else {}

        result = {}
        for key_name, value in env_values.items():
            value = value or ""
            if key_name.upper().endswith(SECRET_SUFFIXES):
                result[key_name] = _mask_key(value)
            else:
                result[key_name] = value
        return result

    def update_env(self, values: dict[str, str]) -> None:
        """
        Set or update several keys in the .env file.

        Values are written single-quoted through python-dotenv, so spaces,
        '#' and quotes survive a round trip. Existing keys are replaced in
        place, new keys are appended.

        Args:
            values: Dict mapping key names to values.

        Raises:
            ValueError: If a key name is not a valid environment variable
                        name or a value spans more than one line.
        """
        for key_name, value in values.items():
            if not _is_env_name(key_name):
                raise ValueError(f"Invalid variable name: {key_name!r}")
            if "\n" in value or "\r" in value:
                raise ValueError(f"Value for {key_name} must be a single line")

        if not os.path.exists(self.env_path):
            open(self.env_path, "a", encoding="utf-8").close()
        for key_name, value in values.items():
            set_key(self.env_path, key_name, value, quote_mode="always")


# -- Helper Functions ---------------------------------------------------------

def _deep_copy(d: dict) -> dict:
    """Create a deep copy of a nested dictionary."""
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _deep_merge(base: dict, override: dict) -> None:
    """
    Recursively merge 'override' into 'base' (in-place).

    For nested dicts, values are merged recursively.
    For all other types, override replaces base.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _is_env_name(name: str) -> bool:
    return bool(name) and (name[0].isalpha() or name[0] == "_") and all(
        c.isalnum() or c == "_" for c in name
    )


def _mask_key(value: str) -> str:
    """
    Mask a secret for safe display.

    Shows first 6 and last 4 characters, replaces the middle with '****'.
    Values shorter than 12 characters are fully masked.

    Example: "sk-41****270b"
    """
    if not value or len(value) < 12:
        return "****" if value else ""
    return f"{value[:6]}****{value[-4:]}"
