"""
Paperfolio Configuration Package
"""

from paperfolio.config.settings import ApplicationSettings, get_settings, settings

__all__ = ["ApplicationSettings", "get_settings", "settings"]
