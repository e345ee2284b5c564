"""Configuration management for ptymux.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides for deployment values like
the server password.
"""

from ptymux.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
