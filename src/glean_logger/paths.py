"""XDG Base Directory Specification path utilities.

This module provides XDG-compliant paths for:
- Configuration files ($XDG_CONFIG_HOME/glean-logger, default: ~/.config/glean-logger)
- Local log storage ($XDG_DATA_HOME/glean-logger, default: ~/.local/share/glean-logger)

Reference: https://specifications.freedesktop.org/basedir-spec/latest/
"""

from __future__ import annotations

import os
from pathlib import Path

# XDG environment variable names
XDG_CONFIG_HOME = "XDG_CONFIG_HOME"
XDG_DATA_HOME = "XDG_DATA_HOME"

# Application name used in XDG directories
APP_NAME = "glean-logger"

# Collector output directory, relative to the working directory unless $LOG_DIR is set
LOG_DIR_ENV = "LOG_DIR"
DEFAULT_LOG_DIR = "_logs"


def get_config_home() -> Path:
    """Get the XDG config home directory.

    Returns:
        Path from $XDG_CONFIG_HOME or ~/.config if not set
    """
    xdg_config = os.environ.get(XDG_CONFIG_HOME)
    if xdg_config:
        return Path(xdg_config).expanduser()
    return Path.home() / ".config"


def get_data_home() -> Path:
    """Get the XDG data home directory.

    Returns:
        Path from $XDG_DATA_HOME or ~/.local/share if not set
    """
    xdg_data = os.environ.get(XDG_DATA_HOME)
    if xdg_data:
        return Path(xdg_data).expanduser()
    return Path.home() / ".local" / "share"


def get_config_dir() -> Path:
    """Get the application config directory."""
    return get_config_home() / APP_NAME


def get_data_dir() -> Path:
    """Get the application data directory (local log store lives here)."""
    return get_data_home() / APP_NAME


def get_default_config_path() -> Path:
    """Get the default config file path.

    Returns:
        Path to config.yaml in the config directory
    """
    return get_config_dir() / "config.yaml"


def get_default_store_path() -> Path:
    """Get the default local log store path.

    Returns:
        Path to logs.db in the data directory
    """
    return get_data_dir() / "logs.db"


def get_collector_log_dir(explicit: str | Path | None = None) -> Path:
    """Resolve the directory the collector appends browser logs to.

    Resolution order: explicit argument, $LOG_DIR, ./_logs.

    Args:
        explicit: Directory passed by the caller or taken from config

    Returns:
        Path to the collector log directory (not created)
    """
    if explicit:
        return Path(explicit).expanduser()
    env_dir = os.environ.get(LOG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.cwd() / DEFAULT_LOG_DIR
