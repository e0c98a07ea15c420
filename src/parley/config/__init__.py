"""
Configuration module for Parley.

Uses pydantic-settings for environment variable and YAML loading.
"""

from parley.config.settings import Settings
from parley.config.sources import ConfigFileError

__all__ = ["ConfigFileError", "Settings"]
