"""Logging module for glean-logger.

This module provides structured JSON logging with:
- structlog configuration for consistent log formatting
- Redaction of glean-logger's own events using the redaction engine
- Structured log events for delivery, retries, drops and ingestion

Usage:
    from glean_logger.logging import configure_logging, get_logger

    configure_logging(verbose=True)
    get_logger(__name__).info("transport_started", endpoint="/api/logs")
"""

from glean_logger.logging.structured import (
    LOG_POLICY,
    configure_logging,
    get_logger,
    log_batch_delivered,
    log_batch_dropped,
    log_ingest,
    log_retry_scheduled,
)

__all__ = [
    "LOG_POLICY",
    "configure_logging",
    "get_logger",
    "log_batch_delivered",
    "log_batch_dropped",
    "log_ingest",
    "log_retry_scheduled",
]
