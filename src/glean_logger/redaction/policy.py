"""Pydantic models describing how payloads are redacted and bodies captured.

A RedactionPolicy is immutable configuration: build it once (directly, or via
RedactionPolicyBuilder and its presets) and reuse it for every redaction call.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from glean_logger.redaction.patterns import (
    DEFAULT_EXCLUDED_CONTENT_TYPES,
    DEFAULT_SENSITIVE_FIELDS,
    DEFAULT_SENSITIVE_HEADERS,
    DEFAULT_SKIP_STATUS_CODES,
)

# Largest body ceiling a policy may carry (100 MiB)
MAX_BODY_SIZE = 100 * 1024 * 1024

DEFAULT_MAX_SIZE = 10 * 1024
DEFAULT_READ_TIMEOUT = 5.0
DEFAULT_MAX_DEPTH = 10


class PolicyError(ValueError):
    """Raised when a redaction policy is configured with out-of-range values."""


def _lowercase_set(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    return frozenset(str(item).lower() for item in value)


class RedactionRule(BaseModel):
    """A regex substitution applied to string values.

    Attributes:
        pattern: Compiled pattern; every match is replaced
        replacement: Replacement text (``re.sub`` syntax, so ``\\1`` works)
        field_names: Optional allow-list of keys the rule is limited to
        name: Optional label, used by presets and ``remove_pattern``
    """

    model_config = ConfigDict(frozen=True)

    pattern: re.Pattern[str]
    replacement: str
    field_names: frozenset[str] | None = None
    name: str | None = None

    @field_validator("field_names", mode="before")
    @classmethod
    def lowercase_field_names(cls, v: Any) -> frozenset[str] | None:
        """Store field names lowercased so lookups are case-insensitive."""
        if v is None:
            return None
        return _lowercase_set(v)

    def applies_to(self, key: str | None) -> bool:
        """Check whether this rule applies to a value stored under ``key``."""
        if not self.field_names:
            return True
        return key is not None and key.lower() in self.field_names

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


class ContentTypeFilter(BaseModel):
    """Wildcard include/exclude lists for response content types."""

    model_config = ConfigDict(frozen=True)

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = DEFAULT_EXCLUDED_CONTENT_TYPES

    @field_validator("include", "exclude", mode="before")
    @classmethod
    def lowercase_patterns(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            v = [v]
        return tuple(str(item).strip().lower() for item in v)


class SamplingConfig(BaseModel):
    """Probabilistic body capture for high-traffic endpoints.

    Attributes:
        rate: Probability (0..1) that a matching request has its body captured
        url_patterns: Limit sampling to URLs matching one of these
            (``*`` wildcards or plain substrings). Empty means all URLs.
    """

    model_config = ConfigDict(frozen=True)

    rate: Annotated[float, Field(ge=0.0, le=1.0)]
    url_patterns: tuple[str, ...] = ()


class RedactionPolicy(BaseModel):
    """Immutable redaction and body-capture policy.

    Field and header names are matched case-insensitively, so they are
    stored lowercased. Invalid ranges raise at construction time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sensitive_fields: frozenset[str] = DEFAULT_SENSITIVE_FIELDS
    sensitive_headers: frozenset[str] = DEFAULT_SENSITIVE_HEADERS
    patterns: tuple[RedactionRule, ...] = ()
    max_depth: Annotated[int, Field(ge=1, le=100)] = DEFAULT_MAX_DEPTH

    # Body capture
    body_enabled: bool = True
    content_types: ContentTypeFilter = Field(default_factory=ContentTypeFilter)
    sampling: SamplingConfig | None = None
    max_size: Annotated[int, Field(ge=0, le=MAX_BODY_SIZE)] = DEFAULT_MAX_SIZE
    read_timeout: Annotated[float, Field(ge=0.0)] = DEFAULT_READ_TIMEOUT
    skip_status_codes: frozenset[int] = DEFAULT_SKIP_STATUS_CODES
    verbose: bool = False

    @field_validator("sensitive_fields", "sensitive_headers", mode="before")
    @classmethod
    def lowercase_names(cls, v: Any) -> frozenset[str]:
        return _lowercase_set(v)

    def is_sensitive_field(self, key: object) -> bool:
        return str(key).lower() in self.sensitive_fields

    def is_sensitive_header(self, name: str) -> bool:
        return name.lower() in self.sensitive_headers

    def rules_for(self, key: str | None) -> Iterable[RedactionRule]:
        """Yield the pattern rules that apply to a value under ``key``, in order."""
        return (rule for rule in self.patterns if rule.applies_to(key))


DEFAULT_POLICY = RedactionPolicy()
