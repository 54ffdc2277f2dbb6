"""
firecontrol - Configuration

Settings are resolved from, in increasing precedence:
defaults, a YAML file, FIRECONTROL_* environment variables, CLI flags.

Environment Variables:
  FIRECONTROL_CONFIG           - Path to a YAML settings file
  FIRECONTROL_HOST / _PORT     - Listen address
  FIRECONTROL_LOGS             - Verbose logging (true/false)
  FIRECONTROL_TEST             - Serve the "/" test page (true/false)
  FIRECONTROL_SECRET           - Shared secret for requests
  FIRECONTROL_PLAIN            - Compare the secret as plain text instead of HMAC
  FIRECONTROL_ZONE             - Default zone for grants
  FIRECONTROL_ENDPOINT         - Path prefix for /add and /list
  FIRECONTROL_FOLDER           - Directory holding iptable.json
  FIRECONTROL_GRANT_DURATION   - Grant window in seconds (default 86400)
  FIRECONTROL_SWEEP_INTERVAL   - Seconds between expiry sweeps (default 600)
  FIRECONTROL_COMMAND_TIMEOUT  - Seconds before a firewall command is a failure
  FIRECONTROL_FIREWALL_CMD     - firewall-cmd binary
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

logger = logging.getLogger("firecontrol.config")

ENV_PREFIX = "FIRECONTROL_"

# setting name -> environment variable suffix, where they differ
_ENV_NAMES = {
    "grant_duration_seconds": "GRANT_DURATION",
    "sweep_interval_seconds": "SWEEP_INTERVAL",
    "command_timeout_seconds": "COMMAND_TIMEOUT",
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def normalize_endpoint(endpoint: Optional[str]) -> str:
    """Empty, or "/prefix" without a trailing slash."""
    endpoint = (endpoint or "").strip().strip("/")
    return f"/{endpoint}" if endpoint else ""


@dataclass(frozen=True)
class Settings:
    """Runtime configuration of the daemon."""

    host: str = "0.0.0.0"
    port: int = 81
    logs: bool = False
    test: bool = False

    # Auth
    secret: Optional[str] = None
    plain: bool = False

    zone: Optional[str] = None
    endpoint: str = ""
    folder: str = "."

    grant_duration_seconds: int = 24 * 60 * 60
    sweep_interval_seconds: int = 10 * 60
    command_timeout_seconds: float = 5.0
    firewall_cmd: str = "firewall-cmd"

    def __post_init__(self):
        object.__setattr__(self, "endpoint", normalize_endpoint(self.endpoint))
        if self.port <= 0 or self.port > 65535:
            raise ValueError(f"Invalid port: {self.port}")
        if self.grant_duration_seconds <= 0:
            raise ValueError("grant_duration_seconds must be positive")
        if self.sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be positive")
        if self.command_timeout_seconds <= 0:
            raise ValueError("command_timeout_seconds must be positive")

    @property
    def grant_duration_ms(self) -> int:
        return self.grant_duration_seconds * 1000

    @property
    def folder_path(self) -> Path:
        return Path(self.folder).expanduser()

    def merged(self, overrides: Mapping[str, Any]) -> "Settings":
        """Copy with ``overrides`` applied; None values are ignored."""
        return replace(self, **_coerce({k: v for k, v in overrides.items() if v is not None}))

    @classmethod
    def from_file(cls, path: Union[str, Path], base: Optional["Settings"] = None) -> "Settings":
        """Apply a YAML mapping of setting names on top of ``base``."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings in {path}: {sorted(unknown)}")

        return (base or cls()).merged({k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, base: Optional["Settings"] = None) -> "Settings":
        """Apply FIRECONTROL_* environment variables on top of ``base``."""
        overrides: Dict[str, Any] = {}
        for f in fields(cls):
            env_name = ENV_PREFIX + _ENV_NAMES.get(f.name, f.name.upper())
            if env_name in os.environ:
                overrides[f.name] = os.environ[env_name]
        return (base or cls()).merged(overrides)

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> "Settings":
        """Defaults, then the YAML file (if any), then the environment."""
        settings = cls()
        config_path = config_path or os.getenv(ENV_PREFIX + "CONFIG")
        if config_path:
            settings = cls.from_file(config_path, settings)
        return cls.from_env(settings)


def _coerce(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert raw file/env values to the field types of Settings."""
    types = {f.name: f.type for f in fields(Settings)}
    coerced: Dict[str, Any] = {}
    for name, value in values.items():
        kind = types[name]
        if kind is bool:
            coerced[name] = _to_bool(value)
        elif kind is int:
            coerced[name] = int(value)
        elif kind is float:
            coerced[name] = float(value)
        elif value == "":
            coerced[name] = None if name in ("secret", "zone") else value
        else:
            coerced[name] = str(value)
    return coerced


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, loaded on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def set_settings(settings: Settings) -> None:
    global _settings
    _settings = settings
