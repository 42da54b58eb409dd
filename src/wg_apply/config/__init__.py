"""Settings management."""
from .settings import Settings, find_settings_file, load_settings

__all__ = ["Settings", "find_settings_file", "load_settings"]
