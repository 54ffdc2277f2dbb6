"""
Configuration for firecontrol.
"""

from .settings import Settings, get_settings, set_settings, normalize_endpoint

__all__ = ["Settings", "get_settings", "set_settings", "normalize_endpoint"]
