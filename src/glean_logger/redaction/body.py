"""Helpers deciding whether and how an HTTP body is logged.

These are pure functions over a RedactionPolicy; the logged HTTP client in
glean_logger.http composes them.
"""

from __future__ import annotations

import fnmatch
import random
import re
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from glean_logger.redaction.engine import REDACTED
from glean_logger.redaction.patterns import BINARY_CONTENT_TYPES
from glean_logger.redaction.policy import PolicyError, RedactionPolicy

TRUNCATED_MARKER = "... [truncated]"

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)
_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$", re.IGNORECASE)

_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024 * 1024, "gb": 1024 * 1024 * 1024}
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0}


class BodyKind(str, Enum):
    """How a body should be treated once captured."""

    JSON = "json"
    TEXT = "text"
    BINARY = "binary"


def normalize_content_type(content_type: str | None) -> str:
    """Strip parameters (``; charset=...``) and lowercase a content type."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def _matches_any(content_type: str, patterns: tuple[str, ...]) -> bool:
    return any(fnmatch.fnmatchcase(content_type, pattern) for pattern in patterns)


def is_body_loggable(content_type: str | None, policy: RedactionPolicy) -> bool:
    """Check a content type against the policy's include/exclude filter.

    Args:
        content_type: Raw Content-Type header value
        policy: Policy carrying the content-type filter

    Returns:
        False if excluded, or if an include list exists and nothing in it
        matches. True otherwise.
    """
    normalized = normalize_content_type(content_type)
    content_filter = policy.content_types

    if _matches_any(normalized, content_filter.exclude):
        return False
    if content_filter.include:
        return _matches_any(normalized, content_filter.include)
    return True


def classify_body(content_type: str | None) -> BodyKind:
    """Classify a body by content type.

    Unknown and missing types are treated as text rather than dropped.
    """
    normalized = normalize_content_type(content_type)
    if not normalized:
        return BodyKind.TEXT
    if "json" in normalized:
        return BodyKind.JSON
    if _matches_any(normalized, BINARY_CONTENT_TYPES):
        return BodyKind.BINARY
    return BodyKind.TEXT


def _url_matches(url: str, pattern: str) -> bool:
    if "*" in pattern:
        return fnmatch.fnmatchcase(url, pattern)
    return pattern in url


def should_capture_body(
    url: str,
    policy: RedactionPolicy,
    rng: Callable[[], float] | None = None,
) -> bool:
    """Decide whether the body of a request to ``url`` is captured.

    Sampling never suppresses the request/response log line itself, only the
    body. URLs outside the configured sampling patterns are always captured.

    Args:
        url: Request URL
        policy: Policy carrying the optional sampling config
        rng: Source of floats in [0, 1) (default: random.random)

    Returns:
        True if the body should be read and logged
    """
    sampling = policy.sampling
    if sampling is None:
        return True

    if sampling.url_patterns and not any(
        _url_matches(url, pattern) for pattern in sampling.url_patterns
    ):
        return True

    draw = (rng or random.random)()
    return draw < sampling.rate


def should_skip_for_length(content_length: str | int | None, policy: RedactionPolicy) -> bool:
    """True when a declared Content-Length is more than twice ``max_size``."""
    if content_length is None:
        return False
    try:
        length = int(content_length)
    except (TypeError, ValueError):
        return False
    return length > policy.max_size * 2


def truncate_body(text: str, max_size: int) -> str:
    """Cut ``text`` to ``max_size`` characters and mark it as truncated."""
    if len(text) <= max_size:
        return text
    return text[:max_size] + TRUNCATED_MARKER


def redact_headers(
    headers: Mapping[str, str] | None,
    policy: RedactionPolicy,
) -> dict[str, str] | None:
    """Replace sensitive header values, keeping the original header names."""
    if headers is None:
        return None
    return {
        name: REDACTED if policy.is_sensitive_header(name) else value
        for name, value in headers.items()
    }


def parse_size(value: Any) -> int:
    """Parse a byte size such as ``10240``, ``"10kb"`` or ``"1.5mb"``.

    Raises:
        PolicyError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        msg = f"Invalid size: {value!r}"
        raise PolicyError(msg)
    if isinstance(value, int | float):
        return int(value)

    match = _SIZE_PATTERN.match(str(value))
    if match is None:
        msg = f"Invalid size: {value!r} (expected e.g. '512', '10kb', '1mb')"
        raise PolicyError(msg)
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "b").lower()])


def parse_duration(value: Any) -> float:
    """Parse a duration into seconds: ``5``, ``"5s"``, ``"1500ms"``, ``"1m"``.

    Bare numbers are seconds.

    Raises:
        PolicyError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        msg = f"Invalid duration: {value!r}"
        raise PolicyError(msg)
    if isinstance(value, int | float):
        return float(value)

    match = _DURATION_PATTERN.match(str(value))
    if match is None:
        msg = f"Invalid duration: {value!r} (expected e.g. '5s', '1500ms')"
        raise PolicyError(msg)
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS[(unit or "s").lower()]
