"""Find, read and validate the glean-logger YAML config.

Lookup order: an explicit path (``--config``), ``$GLEAN_LOGGER_CONFIG``,
``./glean-logger.yaml``, then ``$XDG_CONFIG_HOME/glean-logger/config.yaml``.
String values may reference environment variables as ``${NAME}``.

glean-logger runs fine without a config file: ``load_settings()`` falls back
to the defaults unless a file was asked for explicitly.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from glean_logger.config.schema import Settings
from glean_logger.paths import get_default_config_path

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GLEAN_LOGGER_CONFIG"
CWD_CONFIG_NAME = "glean-logger.yaml"

# ${NAME} references inside string values
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


class ConfigError(Exception):
    """Base class for config problems.

    Attributes:
        path: Config file involved, when known
    """

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(message)


class ConfigNotFoundError(ConfigError):
    """No config file at the requested or discovered locations."""


class ConfigValidationError(ConfigError):
    """The file parsed but does not match the Settings schema.

    Attributes:
        validation_errors: pydantic error dicts, one per problem
    """

    def __init__(
        self,
        message: str,
        path: Path | None = None,
        validation_errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.validation_errors = validation_errors or []
        super().__init__(message, path)


class EnvironmentVariableError(ConfigError):
    """A ``${NAME}`` reference points at an unset variable."""

    def __init__(self, var_name: str, path: Path | None = None) -> None:
        self.var_name = var_name
        super().__init__(
            f"Environment variable '{var_name}' is not set. "
            "Export it or change the config value that references it.",
            path,
        )


# -----------------------------------------------------------------------------
# Environment expansion
# -----------------------------------------------------------------------------


def expand_env_vars(value: Any, *, strict: bool = True) -> Any:
    """Substitute ``${NAME}`` references in strings, recursing into dicts and lists.

    Args:
        value: Parsed YAML value
        strict: Raise for unset variables; otherwise leave the reference as is

    Raises:
        EnvironmentVariableError: If strict and a variable is unset

    Example:
        >>> os.environ["COLLECTOR_URL"] = "https://logs.example.test"
        >>> expand_env_vars({"base_url": "${COLLECTOR_URL}"})
        {'base_url': 'https://logs.example.test'}
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item, strict=strict) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item, strict=strict) for item in value]
    if not isinstance(value, str):
        return value

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        resolved = os.environ.get(name)
        if resolved is not None:
            return resolved
        if strict:
            raise EnvironmentVariableError(name)
        return match.group(0)

    return ENV_VAR_PATTERN.sub(substitute, value)


# -----------------------------------------------------------------------------
# Discovery and parsing
# -----------------------------------------------------------------------------


def _candidate_paths() -> list[Path]:
    candidates = []
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())
    candidates.append(Path.cwd() / CWD_CONFIG_NAME)
    candidates.append(get_default_config_path())
    return candidates


def discover_config_path(explicit_path: str | Path | None = None) -> Path:
    """Return the config file to load.

    An explicit path must exist; otherwise the first existing candidate wins.

    Raises:
        ConfigNotFoundError: If nothing exists where we looked
    """
    if explicit_path:
        path = Path(explicit_path).expanduser().resolve()
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise ConfigNotFoundError(msg, path)
        return path

    candidates = _candidate_paths()
    for path in candidates:
        if path.exists():
            return path

    searched = "".join(f"\n  - {path}" for path in candidates)
    msg = f"No config file found. Searched locations:{searched}"
    raise ConfigNotFoundError(msg)


def load_yaml(path: Path) -> dict[str, Any]:
    """Parse a config file into a mapping; an empty file is an empty mapping.

    Raises:
        ConfigError: If the file is unreadable, malformed or not a mapping
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        msg = f"Cannot read config file: {e}"
        raise ConfigError(msg, path) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML syntax: {e}"
        raise ConfigError(msg, path) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Config file must contain a YAML mapping, got {type(data).__name__}"
        raise ConfigError(msg, path)
    return data


def _validation_message(error: ValidationError) -> str:
    lines = [
        f"  - {'.'.join(str(part) for part in detail['loc'])}: {detail['msg']}"
        for detail in error.errors()
    ]
    return f"Config validation failed ({len(lines)} error(s)):\n" + "\n".join(lines)


def load_settings(
    path: str | Path | None = None,
    *,
    expand_env: bool = True,
    required: bool = False,
) -> Settings:
    """Load Settings from the discovered (or given) YAML file.

    Args:
        path: Explicit config file; discovery is used when omitted
        expand_env: Substitute ``${NAME}`` references before validating
        required: Fail instead of returning defaults when no file is found

    Returns:
        Validated settings

    Raises:
        ConfigNotFoundError: If ``path`` is missing, or nothing is found and
            ``required`` is set
        ConfigError: If the file cannot be read or parsed
        EnvironmentVariableError: If a referenced variable is unset
        ConfigValidationError: If the content does not match the schema
    """
    try:
        config_path = discover_config_path(path)
    except ConfigNotFoundError:
        if path or required:
            raise
        logger.debug("No config file found, using defaults")
        return Settings()

    raw = load_yaml(config_path)
    if expand_env:
        try:
            raw = expand_env_vars(raw)
        except EnvironmentVariableError as e:
            e.path = config_path
            raise

    try:
        settings = Settings.model_validate(raw)
    except ValidationError as e:
        raise ConfigValidationError(
            _validation_message(e),
            path=config_path,
            validation_errors=[dict(detail) for detail in e.errors()],
        ) from e

    logger.debug("Loaded settings from %s", config_path)
    return settings
