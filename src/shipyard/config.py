"""Centralized configuration for Shipyard.

Configuration is loaded from multiple sources with the following priority:
1. Environment variables (SHIPYARD_*)
2. Project config (.shipyard/config.json in working directory or parents)
3. Defaults

Usage:
    from shipyard.config import get_config

    config = get_config()
    print(config.scheduler.tick_interval)
    print(config.process.cancellation_exit_codes)
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# --- Constants ---

DEFAULT_TICK_INTERVAL = 0.05
# 137 = 128 + SIGKILL, 143 = 128 + SIGTERM
DEFAULT_CANCELLATION_EXIT_CODES = (137, 143)
DEFAULT_SUCCESS_EXIT_CODES = (0,)
DEFAULT_STATE_DIR = ".shipyard"
DEFAULT_LOG_LEVEL = "INFO"
PROJECT_CONFIG_DIR = ".shipyard"
PROJECT_CONFIG_FILE = "config.json"


# --- Path utilities ---


def find_project_config() -> Path | None:
    """Find .shipyard/config.json in current directory or parents.

    Returns:
        Path to project config if found, None otherwise.
    """
    current = Path.cwd()
    for directory in [current, *current.parents]:
        config_path = directory / PROJECT_CONFIG_DIR / PROJECT_CONFIG_FILE
        if config_path.exists():
            return config_path
    return None


def load_json_file(path: Path) -> dict[str, Any]:
    """Load a JSON config file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.debug(f"Could not load {path}: {e}")
        return {}


# --- Pydantic Config Models ---


class SchedulerConfig(BaseModel):
    """Scheduler configuration.

    Attributes:
        tick_interval: Seconds between ticks for polling tick sources.
    """

    tick_interval: float = Field(default=DEFAULT_TICK_INTERVAL, gt=0)


class ProcessConfig(BaseModel):
    """Process runner configuration.

    Attributes:
        success_exit_codes: Exit codes treated as success.
        cancellation_exit_codes: Exit codes meaning "terminated by request".
            Processes exiting with these are not reported as failures.
    """

    success_exit_codes: tuple[int, ...] = DEFAULT_SUCCESS_EXIT_CODES
    cancellation_exit_codes: tuple[int, ...] = DEFAULT_CANCELLATION_EXIT_CODES


class ProjectConfig(BaseModel):
    """Project-level configuration (.shipyard/config.json in repo)."""

    tick_interval: float | None = None
    success_exit_codes: list[int] | None = None
    cancellation_exit_codes: list[int] | None = None
    state_dir: str | None = None
    log_level: str | None = None


class ShipyardSettings(BaseSettings):
    """Top-level settings loaded from environment variables.

    This uses pydantic-settings to read from SHIPYARD_* environment variables.
    List values are given as JSON, e.g. SHIPYARD_CANCELLATION_EXIT_CODES='[137]'.
    """

    tick_interval: float | None = None
    success_exit_codes: list[int] | None = None
    cancellation_exit_codes: list[int] | None = None
    state_dir: str | None = None
    log_level: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="SHIPYARD_",
        env_nested_delimiter="__",
        extra="ignore",
    )


class ShipyardConfig(BaseModel):
    """Unified Shipyard configuration.

    Combines settings from all sources (env vars, project config, defaults).
    """

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    process: ProcessConfig = Field(default_factory=ProcessConfig)
    state_dir: Path = Path(DEFAULT_STATE_DIR)
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def lock_path(self) -> Path:
        """Lock file guarding against overlapping runs."""
        return self.state_dir / "run.lock"

    @property
    def artifacts_path(self) -> Path:
        """File recording the last build path of every target."""
        return self.state_dir / "artifacts.json"


# --- Config loading ---


def load_config(use_project_config: bool = True) -> ShipyardConfig:
    """Load configuration from all sources.

    Args:
        use_project_config: Whether to load .shipyard/config.json from project.

    Returns:
        Fully resolved ShipyardConfig.
    """
    env_settings = ShipyardSettings()

    project_config = ProjectConfig()
    project_dir: Path | None = None
    if use_project_config:
        project_path = find_project_config()
        if project_path:
            project_dir = project_path.parent.parent
            project_config = ProjectConfig.model_validate(load_json_file(project_path))

    tick_interval = (
        env_settings.tick_interval
        or project_config.tick_interval
        or DEFAULT_TICK_INTERVAL
    )
    success_codes = (
        env_settings.success_exit_codes
        or project_config.success_exit_codes
        or list(DEFAULT_SUCCESS_EXIT_CODES)
    )
    # An explicit empty list disables the cancellation convention
    cancellation_codes = env_settings.cancellation_exit_codes
    if cancellation_codes is None:
        cancellation_codes = project_config.cancellation_exit_codes
    if cancellation_codes is None:
        cancellation_codes = list(DEFAULT_CANCELLATION_EXIT_CODES)

    state_dir = Path(
        env_settings.state_dir or project_config.state_dir or DEFAULT_STATE_DIR
    )
    if not state_dir.is_absolute() and project_dir is not None:
        state_dir = project_dir / state_dir

    log_level = (
        env_settings.log_level or project_config.log_level or DEFAULT_LOG_LEVEL
    ).upper()

    return ShipyardConfig(
        scheduler=SchedulerConfig(tick_interval=tick_interval),
        process=ProcessConfig(
            success_exit_codes=tuple(success_codes),
            cancellation_exit_codes=tuple(cancellation_codes),
        ),
        state_dir=state_dir,
        log_level=log_level,
    )


@lru_cache(maxsize=1)
def get_config() -> ShipyardConfig:
    """Get the cached global configuration.

    This loads configuration once and caches it. Use clear_config_cache()
    to force a reload.
    """
    return load_config()


def clear_config_cache() -> None:
    """Clear the cached configuration, forcing reload on next get_config()."""
    get_config.cache_clear()


# --- Config provider for dependency injection ---


class ConfigProvider:
    """Provider for ShipyardConfig that supports dependency injection.

    This allows tests and advanced use cases to override the config.
    """

    def __init__(self) -> None:
        self._override: ShipyardConfig | None = None

    def get(self) -> ShipyardConfig:
        """Get the current configuration."""
        if self._override is not None:
            return self._override
        return get_config()

    def set(self, config: ShipyardConfig) -> None:
        """Override the configuration."""
        self._override = config

    def reset(self) -> None:
        """Reset to default configuration loading."""
        self._override = None
        clear_config_cache()


# Global config provider instance
config_provider = ConfigProvider()
