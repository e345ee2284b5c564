"""Configuration management for ptymux.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/ptymux.yaml")

DEFAULT_CANDIDATES = [
    "/usr/local/bin/claude",
    "/usr/bin/claude",
    "/opt/homebrew/bin/claude",
    "~/.npm-global/bin/claude",
    "~/.local/bin/claude",
    "~/.claude/local/claude",
]

# Markers a nested CLI uses to detect it is already running inside a wrapper.
DEFAULT_STRIP_ENV = [
    "CLAUDECODE",
    "CLAUDE_CODE_SESSION",
    "CLAUDE_CODE_ENTRY_POINT",
    "ELECTRON_RUN_AS_NODE",
]


class LocatorConfig(BaseModel):
    override_path: str = Field(default="", description="Explicit binary path, returned unchecked")
    binary_name: str = Field(default="claude")
    candidates: list[str] = Field(default_factory=lambda: list(DEFAULT_CANDIDATES))
    lookup_timeout: float = Field(default=5.0, gt=0, le=5.0)


class SessionConfig(BaseModel):
    columns: int = Field(default=120, gt=0)
    rows: int = Field(default=40, gt=0)
    working_directory: str | None = Field(default=None)
    strip_env: list[str] = Field(default_factory=lambda: list(DEFAULT_STRIP_ENV))
    extra_env: dict[str, str] = Field(
        default_factory=lambda: {"NODE_OPTIONS": "--max-old-space-size=4096"},
    )
    lang_fallback: str = Field(default="en_US.UTF-8")
    kill_grace: float = Field(default=0.5, ge=0)


class InjectorConfig(BaseModel):
    char_delay: float = Field(default=0.005, ge=0)
    submit_delay: float = Field(default=0.03, ge=0)


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3131, ge=1, le=65535)
    password: SecretStr = Field(default=SecretStr(""))
    projects_dir: str = Field(default="~/Desktop/Github")
    allowed_roots: list[str] = Field(default_factory=list)
    columns: int = Field(default=80, gt=0)
    rows: int = Field(default=24, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for ptymux.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "PTYMUX_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    locator: LocatorConfig = Field(default_factory=LocatorConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    injector: InjectorConfig = Field(default_factory=InjectorConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Values passed in from the YAML file rank below the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply the un-prefixed server variables the mobile launcher exports."""
    port = os.environ.get("PORT", "")
    password = os.environ.get("CLAUDE_PASSWORD", "")
    projects_dir = os.environ.get("PROJECTS_DIR", "")

    if "server" not in yaml_data or yaml_data["server"] is None:
        yaml_data["server"] = {}
    server = yaml_data["server"]

    if port:
        server["port"] = int(port)
    if password:
        server["password"] = password
    if projects_dir:
        server["projects_dir"] = projects_dir
