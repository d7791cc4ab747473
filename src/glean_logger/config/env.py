"""LOGGER_* environment overrides for transport settings.

Recognized variables:
- LOGGER_BATCH_MODE: immediate, count or time
- LOGGER_BATCH_TIME_MS: flush interval in milliseconds (positive integer)
- LOGGER_BATCH_COUNT: count-mode threshold (positive integer)
- LOGGER_RETRY_ENABLED: true/false
- LOGGER_RETRY_MAX_RETRIES: retries after the first attempt (non-negative integer)
- LOGGER_RETRY_INITIAL_DELAY_MS: first retry delay in milliseconds
- LOGGER_RETRY_MAX_DELAY_MS: cap on a single delay in milliseconds
- LOGGER_RETRY_BACKOFF_MULTIPLIER: growth factor (>= 1)
- LOGGER_TRANSPORT_ENDPOINT: collector URL

An invalid value never aborts start-up: it is logged as a warning and the
existing value is kept.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from glean_logger.config.schema import BatchMode, RetryConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from glean_logger.config.schema import TransportSettings

    T = TypeVar("T", bound=TransportSettings)

logger = logging.getLogger(__name__)


class _InvalidValue(ValueError):
    pass


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as e:
        raise _InvalidValue(value) from e
    if parsed <= 0:
        raise _InvalidValue(value)
    return parsed


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as e:
        raise _InvalidValue(value) from e
    if parsed < 0:
        raise _InvalidValue(value)
    return parsed


def _millis(value: str) -> float:
    return _positive_int(value) / 1000.0


def _multiplier(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as e:
        raise _InvalidValue(value) from e
    if parsed < 1:
        raise _InvalidValue(value)
    return parsed


def _boolean(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise _InvalidValue(value)


def _batch_mode(value: str) -> BatchMode:
    try:
        return BatchMode(value.lower())
    except ValueError as e:
        raise _InvalidValue(value) from e


def _endpoint(value: str) -> str:
    return value


# variable -> (section, field, parser); section None means a top-level field
ENV_OVERRIDES: dict[str, tuple[str | None, str, Callable[[str], Any]]] = {
    "LOGGER_BATCH_MODE": ("batching", "mode", _batch_mode),
    "LOGGER_BATCH_TIME_MS": ("batching", "interval", _millis),
    "LOGGER_BATCH_COUNT": ("batching", "count_threshold", _positive_int),
    "LOGGER_RETRY_ENABLED": ("retry", "enabled", _boolean),
    "LOGGER_RETRY_MAX_RETRIES": ("retry", "max_retries", _non_negative_int),
    "LOGGER_RETRY_INITIAL_DELAY_MS": ("retry", "initial_delay", _millis),
    "LOGGER_RETRY_MAX_DELAY_MS": ("retry", "max_delay", _millis),
    "LOGGER_RETRY_BACKOFF_MULTIPLIER": ("retry", "backoff_multiplier", _multiplier),
    "LOGGER_TRANSPORT_ENDPOINT": (None, "endpoint", _endpoint),
}


def apply_env_overrides(
    config: T,
    environ: Mapping[str, str] | None = None,
) -> T:
    """Return a copy of ``config`` with LOGGER_* variables applied.

    Args:
        config: Base transport settings
        environ: Variables to read (default: os.environ)

    Returns:
        A new settings object of the same type
    """
    env = os.environ if environ is None else environ

    top: dict[str, Any] = {}
    sections: dict[str, dict[str, Any]] = {"batching": {}, "retry": {}}

    for name, (section, field, parser) in ENV_OVERRIDES.items():
        raw = env.get(name)
        if raw is None or not raw.strip():
            continue
        try:
            value = parser(raw.strip())
        except _InvalidValue:
            current = getattr(getattr(config, section) if section else config, field)
            logger.warning("Invalid %s=%r, using default %r", name, raw, current)
            continue
        if section is None:
            top[field] = value
        else:
            sections[section][field] = value

    batching = config.batching.model_copy(update=sections["batching"])
    retry = config.retry
    if sections["retry"]:
        try:
            retry = RetryConfig.model_validate({**config.retry.model_dump(), **sections["retry"]})
        except ValidationError as e:
            logger.warning("Ignoring inconsistent LOGGER_RETRY_* settings: %s", e)

    return config.model_copy(update={**top, "batching": batching, "retry": retry})
