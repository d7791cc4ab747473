"""Recursive redaction of JSON-like payloads.

The traversal never mutates its input and never raises on pathological
shapes: cycles and excessive nesting are reported in-band with sentinel
strings so a log call can always complete.

Traversal rules:
- Mappings: keys matching a sensitive field become ``[REDACTED]``; other
  values are visited one level deeper.
- Lists and tuples: elements are visited at the same depth and inherit the
  key of the containing mapping for pattern allow-lists. Tuples stay tuples.
- Strings: every applicable pattern rule is substituted, in order.
- ``datetime``/``date`` render as ISO-8601 and compiled patterns as their
  source, so the output is always serializable.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from glean_logger.redaction.policy import DEFAULT_POLICY, RedactionPolicy

REDACTED = "[REDACTED]"
CIRCULAR = "[REDACTED-CIRCULAR]"
MAX_DEPTH_EXCEEDED = "[MAX_DEPTH_EXCEEDED]"


def redact(
    value: Any,
    policy: RedactionPolicy | None = None,
    visited: set[int] | None = None,
    depth: int = 0,
) -> Any:
    """Return a sanitized copy of ``value``.

    Args:
        value: Arbitrary value; mappings and lists may be nested or cyclic
        policy: Policy to apply (default: DEFAULT_POLICY)
        visited: Identities of containers currently being traversed. Only
            pass this when continuing a traversal started elsewhere.
        depth: Current mapping depth

    Returns:
        The redacted copy. Containers are always new objects.

    Example:
        >>> redact({"user": "ada", "Password": "hunter2"})
        {'user': 'ada', 'Password': '[REDACTED]'}
    """
    if policy is None:
        policy = DEFAULT_POLICY
    if visited is None:
        visited = set()
    return _visit(value, policy, visited, depth, None)


def redact_string(text: str, policy: RedactionPolicy | None = None, key: str | None = None) -> str:
    """Apply the policy's pattern rules to a single string."""
    return _apply_patterns(text, policy or DEFAULT_POLICY, key)


def _visit(
    value: Any,
    policy: RedactionPolicy,
    visited: set[int],
    depth: int,
    key: str | None,
) -> Any:
    if isinstance(value, str):
        return _apply_patterns(value, policy, key)

    if isinstance(value, datetime | date):
        return value.isoformat()

    if isinstance(value, re.Pattern):
        return value.pattern

    if not isinstance(value, Mapping | list | tuple):
        return value

    marker = id(value)
    if marker in visited:
        return CIRCULAR
    if depth > policy.max_depth:
        return MAX_DEPTH_EXCEEDED

    visited.add(marker)
    try:
        if isinstance(value, Mapping):
            return _visit_mapping(value, policy, visited, depth)
        items = [_visit(item, policy, visited, depth, key) for item in value]
        return tuple(items) if isinstance(value, tuple) else items
    finally:
        # Only the current path counts; shared (non-cyclic) references are fine
        visited.discard(marker)


def _visit_mapping(
    value: Mapping[Any, Any],
    policy: RedactionPolicy,
    visited: set[int],
    depth: int,
) -> dict[Any, Any]:
    result: dict[Any, Any] = {}
    for key, item in value.items():
        if policy.is_sensitive_field(key):
            result[key] = REDACTED
            continue
        result[key] = _visit(item, policy, visited, depth + 1, str(key))
    return result


def _apply_patterns(text: str, policy: RedactionPolicy, key: str | None) -> str:
    for rule in policy.rules_for(key):
        text = rule.apply(text)
    return text
