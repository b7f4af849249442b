"""Core: settings and shared constants.

Single place for settings and shared constants.
"""

from contentstore.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
