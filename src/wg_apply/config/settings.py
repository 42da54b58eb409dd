"""Tool settings loaded from YAML with environment overrides.

Example settings.yaml:

```yaml
config_dir: /etc/wireguard
default_mtu: 1420
rt_tables_paths:
  - /etc/iproute2/rt_tables
log_level: INFO
log_file: /var/log/wg-apply.log
```

Environment Variables:
    WGAPPLY_SETTINGS: Settings file to load
    WGAPPLY_CONFIG_DIR: Directory holding <interface>.conf files
    WGAPPLY_DEFAULT_MTU: MTU asserted when a config sets none
    WGAPPLY_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR
    WGAPPLY_LOG_FILE: Path to a rotating log file
"""
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import SettingsError
from ..wgconf.rt_tables import DEFAULT_RT_TABLES_PATHS

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "WGAPPLY_CONFIG_DIR": ("config_dir", str),
    "WGAPPLY_DEFAULT_MTU": ("default_mtu", int),
    "WGAPPLY_LOG_LEVEL": ("log_level", str),
    "WGAPPLY_LOG_FILE": ("log_file", str),
}


@dataclass
class Settings:
    """Runtime settings for wg-apply."""
    config_dir: str = "/etc/wireguard"
    config_suffix: str = ".conf"
    rt_tables_paths: list[str] = field(default_factory=lambda: list(DEFAULT_RT_TABLES_PATHS))
    default_mtu: int = 1420
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_max_size_mb: int = 10
    log_backups: int = 5

    def __post_init__(self):
        if not 0 <= self.default_mtu <= 65535:
            raise SettingsError(f"default_mtu out of range: {self.default_mtu}")
        if not self.config_suffix:
            raise SettingsError("config_suffix must not be empty")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise SettingsError(f"Unknown settings: {', '.join(sorted(unknown))}")

        if "rt_tables_paths" in data and not isinstance(data["rt_tables_paths"], list):
            raise SettingsError("rt_tables_paths must be a list")
        for name in ("default_mtu", "log_max_size_mb", "log_backups"):
            if name in data and not isinstance(data[name], int):
                raise SettingsError(f"{name} must be an integer")

        return cls(**data)


def find_settings_file() -> Optional[Path]:
    """Find the settings file, if any."""
    env_path = os.environ.get("WGAPPLY_SETTINGS")
    if env_path:
        return Path(env_path)

    search_paths = [
        Path("/etc/wg-apply/settings.yaml"),
        Path.home() / ".config" / "wg-apply" / "settings.yaml",
    ]
    for path in search_paths:
        if path.exists():
            return path
    return None


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from YAML and apply environment overrides.

    Args:
        path: Explicit settings file (must exist when given)

    Returns:
        Settings with defaults for anything not configured

    Raises:
        SettingsError: If the file is unreadable or holds invalid values
    """
    settings_path = Path(path) if path else find_settings_file()

    data: dict[str, Any] = {}
    if settings_path is not None:
        try:
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise SettingsError(f"Cannot read settings file {settings_path}: {e}") from e
        except yaml.YAMLError as e:
            raise SettingsError(f"Invalid YAML in {settings_path}: {e}") from e

        if not isinstance(data, dict):
            raise SettingsError(f"Settings file {settings_path} must contain a mapping")

    for env_name, (key, convert) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        try:
            data[key] = convert(value)
        except ValueError as e:
            raise SettingsError(f"Invalid value for {env_name}: {value}") from e

    settings = Settings.from_dict(data)
    if settings_path is not None:
        logger.debug(f"Loaded settings from {settings_path}")
    return settings
