"""Structured logging for glean-logger's own diagnostics.

This module provides:
- configure_logging(), which points structlog and stdlib logging at stderr
- A redaction processor backed by the redaction engine, so tokens and
  sensitive fields never reach glean-logger's own output
- Structured log events for batch delivery, retries, drops and ingestion
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

from glean_logger.redaction import RedactionPolicyBuilder, redact
from glean_logger.redaction.patterns import (
    BEARER_PATTERN,
    BEARER_REPLACEMENT,
    JWT_PATTERN,
    JWT_REPLACEMENT,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import EventDict, WrappedLogger

# Field-name redaction plus token patterns for free-text values
LOG_POLICY = (
    RedactionPolicyBuilder()
    .add_pattern(BEARER_PATTERN, BEARER_REPLACEMENT, name="bearer")
    .add_pattern(JWT_PATTERN, JWT_REPLACEMENT, name="jwt")
    .build()
)


def _redact_processor(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """structlog processor that redacts secrets from log events."""
    return redact(event_dict, LOG_POLICY)


def configure_logging(
    verbose: bool = False,
    json_output: bool = True,
) -> None:
    """Route glean-logger diagnostics (structlog and stdlib) to stderr.

    Events get a UTC ISO timestamp and their level, pass through the
    redaction processor, and are rendered as JSON lines or, for humans, with
    structlog's console renderer.

    Args:
        verbose: Emit debug events too (default: info and above)
        json_output: JSON lines instead of the colored console format
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    processors: list[Callable[..., Any]] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Bound structlog logger
    """
    return structlog.get_logger(name)


# Structured log event helpers


def log_batch_delivered(
    endpoint: str,
    entries: int,
    attempts: int,
    duration_ms: float,
) -> None:
    """Log a batch accepted by the collector.

    Args:
        endpoint: Collector URL
        entries: Number of entries in the batch
        attempts: Attempts it took (1 = first try)
        duration_ms: Time from first attempt to acceptance
    """
    log = get_logger("glean_logger.transport")
    log.debug(
        "batch_delivered",
        endpoint=endpoint,
        entries=entries,
        attempts=attempts,
        duration_ms=round(duration_ms, 2),
    )


def log_retry_scheduled(
    endpoint: str,
    attempt: int,
    max_retries: int,
    delay: float,
    error: str,
) -> None:
    """Log a failed attempt that will be retried.

    Args:
        endpoint: Collector URL
        attempt: 1-based retry number about to run
        max_retries: Configured retry limit
        delay: Seconds until the retry
        error: Why the previous attempt failed
    """
    log = get_logger("glean_logger.transport")
    log.info(
        "batch_retry_scheduled",
        endpoint=endpoint,
        attempt=attempt,
        max_retries=max_retries,
        delay_s=round(delay, 3),
        error=error,
    )


def log_batch_dropped(
    endpoint: str,
    entries: int,
    attempts: int,
    error: str,
    dropped_batches: int,
) -> None:
    """Log a batch given up on. Never silent: the entry count is always recorded.

    Args:
        endpoint: Collector URL
        entries: Number of entries lost
        attempts: Attempts made before giving up
        error: Last failure
        dropped_batches: Running total of dropped batches
    """
    log = get_logger("glean_logger.transport")
    log.warning(
        "batch_dropped",
        endpoint=endpoint,
        entries=entries,
        attempts=attempts,
        error=error,
        dropped_batches=dropped_batches,
    )


def log_ingest(
    count: int,
    path: str,
    success: bool,
    error: str | None = None,
) -> None:
    """Log a collector ingestion.

    Args:
        count: Entries written (0 on failure)
        path: File the batch was appended to
        success: Whether the batch was written
        error: Failure description
    """
    log = get_logger("glean_logger.collector")

    log_func = log.info if success else log.warning

    log_func(
        "logs_ingested",
        count=count,
        path=path,
        success=success,
        error=error,
    )
