"""Fluent builder and named presets for RedactionPolicy.

Usage:
    policy = (
        RedactionPolicyBuilder()
        .production()
        .max_size("8kb")
        .add_sensitive_fields("sessionToken")
        .sampling(0.1, ["*/api/search*"])
        .build()
    )

Presets replace the builder's base configuration, so call them first and
chain overrides after.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from glean_logger.redaction.body import parse_duration, parse_size
from glean_logger.redaction.patterns import (
    BEARER_PATTERN,
    BEARER_REPLACEMENT,
    CREDIT_CARD_PATTERN,
    CREDIT_CARD_REPLACEMENT,
    DEFAULT_EXCLUDED_CONTENT_TYPES,
    DEFAULT_SENSITIVE_FIELDS,
    DEFAULT_SENSITIVE_HEADERS,
    EXTENDED_SENSITIVE_FIELDS,
    EXTENDED_SENSITIVE_HEADERS,
    SSN_PATTERN,
    SSN_REPLACEMENT,
)
from glean_logger.redaction.policy import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_SIZE,
    DEFAULT_READ_TIMEOUT,
    MAX_BODY_SIZE,
    ContentTypeFilter,
    PolicyError,
    RedactionPolicy,
    RedactionRule,
    SamplingConfig,
)

logger = logging.getLogger(__name__)

PRESET_NAMES = ("basic", "production", "development", "minimal")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _basic() -> dict[str, Any]:
    return {
        "body_enabled": True,
        "max_size": DEFAULT_MAX_SIZE,
        "read_timeout": DEFAULT_READ_TIMEOUT,
        "include": [],
        "exclude": list(DEFAULT_EXCLUDED_CONTENT_TYPES),
        "patterns": [],
        "sensitive_fields": set(DEFAULT_SENSITIVE_FIELDS),
        "sensitive_headers": set(DEFAULT_SENSITIVE_HEADERS),
        "sampling": None,
        "skip_status_codes": {204, 304},
        "verbose": False,
        "max_depth": DEFAULT_MAX_DEPTH,
    }


def _production() -> dict[str, Any]:
    config = _basic()
    config.update(
        max_size=5 * 1024,
        read_timeout=3.0,
        patterns=[
            RedactionRule(pattern=SSN_PATTERN, replacement=SSN_REPLACEMENT, name="ssn"),
            RedactionRule(
                pattern=CREDIT_CARD_PATTERN,
                replacement=CREDIT_CARD_REPLACEMENT,
                name="credit_card",
            ),
            RedactionRule(pattern=BEARER_PATTERN, replacement=BEARER_REPLACEMENT, name="bearer"),
        ],
        sensitive_fields=set(DEFAULT_SENSITIVE_FIELDS | EXTENDED_SENSITIVE_FIELDS),
        sensitive_headers=set(DEFAULT_SENSITIVE_HEADERS | EXTENDED_SENSITIVE_HEADERS),
        verbose=False,
        max_depth=5,
    )
    return config


def _development() -> dict[str, Any]:
    config = _basic()
    config.update(
        max_size=50 * 1024,
        read_timeout=10.0,
        exclude=["image/*", "audio/*", "video/*"],
        verbose=True,
        max_depth=20,
    )
    return config


def _minimal() -> dict[str, Any]:
    config = _basic()
    config.update(
        body_enabled=False,
        max_size=1024,
        read_timeout=1.0,
        exclude=[
            *DEFAULT_EXCLUDED_CONTENT_TYPES,
            "text/html",
            "text/css",
            "text/javascript",
            "application/javascript",
            "application/xml",
            "text/xml",
        ],
        skip_status_codes={*range(200, 300), 304},
        verbose=False,
        max_depth=3,
    )
    return config


_PRESETS = {
    "basic": _basic,
    "production": _production,
    "development": _development,
    "minimal": _minimal,
}


class RedactionPolicyBuilder:
    """Accumulates overrides over a base configuration and validates on build()."""

    def __init__(self, base: Mapping[str, Any] | None = None) -> None:
        self._config = _basic()
        if base:
            self._config.update(base)

    @classmethod
    def preset(cls, name: str) -> RedactionPolicyBuilder:
        """Start a builder from a named preset.

        Raises:
            PolicyError: If the preset name is unknown
        """
        factory = _PRESETS.get(name.lower())
        if factory is None:
            msg = f"Unknown preset '{name}' (expected one of: {', '.join(PRESET_NAMES)})"
            raise PolicyError(msg)
        return cls(factory())

    # -------------------------------------------------------------------------
    # Presets
    # -------------------------------------------------------------------------

    def basic(self) -> RedactionPolicyBuilder:
        """Body logging on, 10KB/5s, binary types excluded, common fields redacted."""
        self._config = _basic()
        return self

    def production(self) -> RedactionPolicyBuilder:
        """5KB/3s, SSN/card/bearer patterns, extended fields and headers, depth 5."""
        self._config = _production()
        return self

    def development(self) -> RedactionPolicyBuilder:
        """50KB/10s, fewer exclusions, verbose, depth 20."""
        self._config = _development()
        return self

    def minimal(self) -> RedactionPolicyBuilder:
        """Metadata only: body disabled, 1KB/1s, success codes skipped, depth 3."""
        self._config = _minimal()
        return self

    # -------------------------------------------------------------------------
    # Overrides
    # -------------------------------------------------------------------------

    def enabled(self, enabled: bool) -> RedactionPolicyBuilder:
        self._config["body_enabled"] = enabled
        return self

    def max_size(self, size: int | str) -> RedactionPolicyBuilder:
        """Set the body ceiling in bytes; accepts strings like ``"10kb"``."""
        self._config["max_size"] = parse_size(size)
        return self

    def read_timeout(self, timeout: float | str) -> RedactionPolicyBuilder:
        """Set the body read timeout in seconds; accepts ``"5s"`` or ``"500ms"``."""
        self._config["read_timeout"] = parse_duration(timeout)
        return self

    def max_depth(self, depth: int) -> RedactionPolicyBuilder:
        """Set maximum mapping depth (validated on build, 1..100)."""
        self._config["max_depth"] = depth
        return self

    def exclude_content_types(self, *patterns: str) -> RedactionPolicyBuilder:
        self._config["exclude"].extend(p.lower() for p in patterns)
        return self

    def include_content_types(self, *patterns: str) -> RedactionPolicyBuilder:
        self._config["include"].extend(p.lower() for p in patterns)
        return self

    def add_pattern(
        self,
        pattern: str | re.Pattern[str],
        replacement: str,
        field_names: Iterable[str] | None = None,
        *,
        name: str | None = None,
    ) -> RedactionPolicyBuilder:
        """Append a regex rule; rules run in the order they were added."""
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._config["patterns"].append(
            RedactionRule(
                pattern=compiled,
                replacement=replacement,
                field_names=list(field_names) if field_names is not None else None,
                name=name,
            )
        )
        return self

    def remove_pattern(self, name: str) -> RedactionPolicyBuilder:
        self._config["patterns"] = [rule for rule in self._config["patterns"] if rule.name != name]
        return self

    def sensitive_fields(self, *fields: str) -> RedactionPolicyBuilder:
        """Replace the sensitive field set."""
        self._config["sensitive_fields"] = {f.lower() for f in fields}
        return self

    def add_sensitive_fields(self, *fields: str) -> RedactionPolicyBuilder:
        self._config["sensitive_fields"].update(f.lower() for f in fields)
        return self

    def sensitive_headers(self, *headers: str) -> RedactionPolicyBuilder:
        """Replace the sensitive header set."""
        self._config["sensitive_headers"] = {h.lower() for h in headers}
        return self

    def add_sensitive_headers(self, *headers: str) -> RedactionPolicyBuilder:
        self._config["sensitive_headers"].update(h.lower() for h in headers)
        return self

    def sampling(
        self,
        rate: float,
        url_patterns: Iterable[str] | None = None,
    ) -> RedactionPolicyBuilder:
        """Sample body capture at ``rate``, optionally only for matching URLs.

        Raises:
            PolicyError: Immediately, if rate is outside [0, 1]
        """
        if not 0.0 <= rate <= 1.0:
            msg = "Sampling rate must be between 0 and 1"
            raise PolicyError(msg)
        self._config["sampling"] = {"rate": rate, "url_patterns": list(url_patterns or [])}
        return self

    def skip_status_codes(self, *codes: int) -> RedactionPolicyBuilder:
        self._config["skip_status_codes"].update(codes)
        return self

    def verbose(self, enabled: bool = True) -> RedactionPolicyBuilder:
        self._config["verbose"] = enabled
        return self

    # -------------------------------------------------------------------------
    # Environment
    # -------------------------------------------------------------------------

    def from_env(
        self,
        prefix: str = "API_LOGGER",
        environ: Mapping[str, str] | None = None,
    ) -> RedactionPolicyBuilder:
        """Apply ``{prefix}_*`` environment variables.

        Recognized: PRESET, ENABLED, MAX_SIZE, READ_TIMEOUT, MAX_DEPTH,
        SAMPLING_RATE, VERBOSE, SENSITIVE_FIELDS (comma separated).

        Raises:
            PolicyError: If a variable holds an unparseable value
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(f"{prefix}_{name}")
            return value.strip() if value and value.strip() else None

        if (preset := get("PRESET")) is not None:
            factory = _PRESETS.get(preset.lower())
            if factory is None:
                msg = f"Unknown preset '{preset}' in {prefix}_PRESET"
                raise PolicyError(msg)
            self._config = factory()
        if (enabled := get("ENABLED")) is not None:
            self.enabled(_parse_bool(enabled, f"{prefix}_ENABLED"))
        if (size := get("MAX_SIZE")) is not None:
            self.max_size(size)
        if (timeout := get("READ_TIMEOUT")) is not None:
            self.read_timeout(timeout)
        if (depth := get("MAX_DEPTH")) is not None:
            self.max_depth(_parse_int(depth, f"{prefix}_MAX_DEPTH"))
        if (rate := get("SAMPLING_RATE")) is not None:
            self.sampling(_parse_float(rate, f"{prefix}_SAMPLING_RATE"))
        if (verbose := get("VERBOSE")) is not None:
            self.verbose(_parse_bool(verbose, f"{prefix}_VERBOSE"))
        if (fields := get("SENSITIVE_FIELDS")) is not None:
            self.add_sensitive_fields(*(f.strip() for f in fields.split(",") if f.strip()))

        logger.debug("Applied %s_* environment overrides", prefix)
        return self

    # -------------------------------------------------------------------------
    # Build
    # -------------------------------------------------------------------------

    def build(self) -> RedactionPolicy:
        """Validate the accumulated configuration and return a policy.

        Raises:
            PolicyError: If any value is out of range
        """
        config = self._config
        self._validate(config)

        sampling = config["sampling"]
        try:
            return RedactionPolicy(
                sensitive_fields=config["sensitive_fields"],
                sensitive_headers=config["sensitive_headers"],
                patterns=tuple(config["patterns"]),
                max_depth=config["max_depth"],
                body_enabled=config["body_enabled"],
                content_types=ContentTypeFilter(
                    include=config["include"],
                    exclude=config["exclude"],
                ),
                sampling=SamplingConfig(**sampling) if sampling is not None else None,
                max_size=config["max_size"],
                read_timeout=config["read_timeout"],
                skip_status_codes=frozenset(config["skip_status_codes"]),
                verbose=config["verbose"],
            )
        except ValidationError as e:
            msg = f"Invalid redaction policy: {e}"
            raise PolicyError(msg) from e

    @staticmethod
    def _validate(config: Mapping[str, Any]) -> None:
        if config["max_size"] < 0:
            msg = "max_size must be non-negative"
            raise PolicyError(msg)
        if config["max_size"] > MAX_BODY_SIZE:
            msg = "max_size cannot exceed 100MB"
            raise PolicyError(msg)
        if config["read_timeout"] < 0:
            msg = "read_timeout must be non-negative"
            raise PolicyError(msg)
        sampling = config["sampling"]
        if sampling is not None and not 0.0 <= sampling["rate"] <= 1.0:
            msg = "sampling rate must be between 0 and 1"
            raise PolicyError(msg)
        depth = config["max_depth"]
        if not isinstance(depth, int) or isinstance(depth, bool) or not 1 <= depth <= 100:
            msg = "max_depth must be between 1 and 100"
            raise PolicyError(msg)


def _parse_bool(value: str, name: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    msg = f"{name} must be a boolean, got {value!r}"
    raise PolicyError(msg)


def _parse_int(value: str, name: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        msg = f"{name} must be an integer, got {value!r}"
        raise PolicyError(msg) from e


def _parse_float(value: str, name: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        msg = f"{name} must be a number, got {value!r}"
        raise PolicyError(msg) from e
