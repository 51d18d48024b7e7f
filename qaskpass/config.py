"""
Application settings - YAML file plus environment overrides.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "qaskpass" / "config.yaml"

BACKENDS = ("keyring", "vault", "memory", "none")

# Environment variable -> settings field
ENV_OVERRIDES = {
    "QASKPASS_BACKEND": "backend",
    "QASKPASS_FOLDER": "folder",
    "QASKPASS_VAULT": "vault_path",
}


class ConfigError(Exception):
    """Settings file is unreadable or invalid."""
    pass


@dataclass
class AppSettings:
    """Runtime settings."""
    backend: str = "keyring"
    folder: str = "qaskpass"              # One folder per application identity
    vault_path: Optional[str] = None      # None = ~/.qaskpass/vault.db
    dialog_title: str = "qaskpass"
    default_prompt: str = "Please enter passphrase"
    theme: dict = field(default_factory=dict)

    def __post_init__(self):
        for name in ("backend", "folder", "dialog_title", "default_prompt"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"Setting '{name}' must be a string")
        if self.vault_path is not None and not isinstance(self.vault_path, str):
            raise ConfigError("Setting 'vault_path' must be a string")
        if self.theme is not None and not isinstance(self.theme, dict):
            raise ConfigError("Setting 'theme' must be a mapping")

        if self.backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend '{self.backend}', expected one of {', '.join(BACKENDS)}"
            )
        if not self.folder:
            raise ConfigError("Folder name must not be empty")
        if self.theme is None:
            self.theme = {}

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AppSettings:
        """Deserialize, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_settings(path: Path = None, environ: dict = None) -> AppSettings:
    """
    Load settings from YAML and apply environment overrides.

    A missing file is not an error; defaults apply.

    Raises:
        ConfigError: File exists but cannot be parsed or holds bad values
    """
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ

    data = {}
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at top level")
        logger.debug(f"Loaded settings from {path}")

    for var, key in ENV_OVERRIDES.items():
        if environ.get(var):
            data[key] = environ[var]

    try:
        return AppSettings.from_dict(data)
    except TypeError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


def save_settings(settings: AppSettings, path: Path = None) -> None:
    """Write settings as YAML."""
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(settings.to_dict(), f, default_flow_style=False, sort_keys=False)
    logger.info(f"Settings saved to {path}")


_settings: Optional[AppSettings] = None


def get_settings(path: Path = None) -> AppSettings:
    """
    Cached settings for the process.

    Falls back to defaults (with a warning) when the file is invalid.
    """
    global _settings
    if _settings is None:
        try:
            _settings = load_settings(path)
        except ConfigError as e:
            logger.warning(f"{e} - using defaults")
            _settings = AppSettings()
    return _settings
