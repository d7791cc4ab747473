"""Configuration module for glean-logger.

This module provides configuration loading, validation, and schema definitions.

Usage:
    from glean_logger.config import load_settings, ServerTransportConfig

    settings = load_settings()  # Defaults when no config file exists
    transport_config = ServerTransportConfig.from_env()  # LOGGER_* overrides
"""

from glean_logger.config.env import apply_env_overrides
from glean_logger.config.loader import (
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    EnvironmentVariableError,
    discover_config_path,
    load_settings,
)
from glean_logger.config.schema import (
    BatchingConfig,
    BatchMode,
    ClientTransportConfig,
    CollectorSettings,
    LoggingSettings,
    RedactionSettings,
    RetryConfig,
    ServerTransportConfig,
    Settings,
    StorageSettings,
    TransportSettings,
)

__all__ = [
    "BatchMode",
    "BatchingConfig",
    "ClientTransportConfig",
    "CollectorSettings",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    "EnvironmentVariableError",
    "LoggingSettings",
    "RedactionSettings",
    "RetryConfig",
    "ServerTransportConfig",
    "Settings",
    "StorageSettings",
    "TransportSettings",
    "apply_env_overrides",
    "discover_config_path",
    "load_settings",
]
