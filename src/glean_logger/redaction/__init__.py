"""Redaction of log payloads and HTTP bodies.

Usage:
    from glean_logger.redaction import RedactionPolicyBuilder, redact

    policy = RedactionPolicyBuilder().production().build()
    safe = redact({"user": {"password": "x", "note": "SSN 123-45-6789"}}, policy)
"""

from glean_logger.redaction.body import (
    TRUNCATED_MARKER,
    BodyKind,
    classify_body,
    is_body_loggable,
    normalize_content_type,
    parse_duration,
    parse_size,
    redact_headers,
    should_capture_body,
    should_skip_for_length,
    truncate_body,
)
from glean_logger.redaction.builder import PRESET_NAMES, RedactionPolicyBuilder
from glean_logger.redaction.engine import (
    CIRCULAR,
    MAX_DEPTH_EXCEEDED,
    REDACTED,
    redact,
    redact_string,
)
from glean_logger.redaction.policy import (
    DEFAULT_POLICY,
    ContentTypeFilter,
    PolicyError,
    RedactionPolicy,
    RedactionRule,
    SamplingConfig,
)

__all__ = [
    "CIRCULAR",
    "DEFAULT_POLICY",
    "MAX_DEPTH_EXCEEDED",
    "PRESET_NAMES",
    "REDACTED",
    "TRUNCATED_MARKER",
    "BodyKind",
    "ContentTypeFilter",
    "PolicyError",
    "RedactionPolicy",
    "RedactionPolicyBuilder",
    "RedactionRule",
    "SamplingConfig",
    "classify_body",
    "is_body_loggable",
    "normalize_content_type",
    "parse_duration",
    "parse_size",
    "redact",
    "redact_headers",
    "redact_string",
    "should_capture_body",
    "should_skip_for_length",
    "truncate_body",
]
