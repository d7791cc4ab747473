"""Collector side of the pipeline: validate posted batches, append to daily files.

A batch is ``{"logs": [entry, ...]}``. Accepted entries are written as JSON
lines to ``browser.YYYY-MM-DD.log`` under the collector log directory
(explicit, then ``$LOG_DIR``, then ``./_logs``).
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from glean_logger.logging import log_ingest
from glean_logger.paths import get_collector_log_dir
from glean_logger.transport.entry import LogEntry

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FILE_PREFIX = "browser"


class PayloadError(ValueError):
    """A posted batch failed validation.

    Attributes:
        problems: One line per invalid field
    """

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or []
        super().__init__(message)


def _describe(index: int, error: ValidationError) -> list[str]:
    problems = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        problems.append(f"logs[{index}].{location}: {detail['msg']}")
    return problems


def validate_payload(payload: Any) -> list[LogEntry]:
    """Validate a posted batch.

    Args:
        payload: Decoded request body

    Returns:
        The entries, in payload order

    Raises:
        PayloadError: If the shape or any entry is invalid
    """
    if not isinstance(payload, dict) or "logs" not in payload:
        msg = "Invalid payload: expected an object with a 'logs' array"
        raise PayloadError(msg)

    raw_entries = payload["logs"]
    if not isinstance(raw_entries, list) or not raw_entries:
        msg = "Invalid payload: 'logs' must be a non-empty array"
        raise PayloadError(msg)

    entries: list[LogEntry] = []
    problems: list[str] = []
    for index, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            problems.append(f"logs[{index}]: expected an object")
            continue
        try:
            entries.append(LogEntry.model_validate(raw))
        except ValidationError as e:
            problems.extend(_describe(index, e))

    if problems:
        msg = "Invalid log entries:\n  " + "\n  ".join(problems)
        raise PayloadError(msg, problems)
    return entries


def log_file_path(log_dir: Path, now: datetime) -> Path:
    return log_dir / f"{LOG_FILE_PREFIX}.{now:%Y-%m-%d}.log"


def format_line(entry: LogEntry) -> str:
    """One JSON line for the daily log file."""
    record = {
        "@timestamp": entry.created_at.isoformat().replace("+00:00", "Z"),
        "level": entry.level.value.upper(),
        "message": entry.message,
        "id": entry.id,
        "source": entry.source.value,
        "timestamp": entry.timestamp,
        "context": entry.context,
    }
    return json.dumps(record, default=str)


def append_batch(
    entries: list[LogEntry],
    log_dir: str | Path | None = None,
    now: datetime | None = None,
) -> int:
    """Append entries to today's log file.

    Args:
        entries: Validated entries
        log_dir: Target directory (default: $LOG_DIR, then ./_logs)
        now: Clock used to pick the file (default: current UTC time)

    Returns:
        Number of entries written

    Raises:
        OSError: If the directory or file cannot be written
    """
    directory = get_collector_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = log_file_path(directory, now or datetime.now(UTC))

    with path.open("a", encoding="utf-8") as f:
        for entry in entries:
            f.write(format_line(entry) + "\n")

    logger.debug("Appended %d entries to %s", len(entries), path)
    return len(entries)


def handle_ingest(
    payload: Any,
    log_dir: str | Path | None = None,
) -> tuple[int, dict[str, Any]]:
    """Validate and store one posted batch.

    Returns:
        (HTTP status, response body): 200 with the count, 400 for invalid
        payloads, 500 when the batch could not be written
    """
    directory = get_collector_log_dir(log_dir)
    try:
        entries = validate_payload(payload)
    except PayloadError as e:
        log_ingest(0, str(directory), success=False, error=str(e))
        return 400, {"success": False, "error": str(e), "details": e.problems}

    try:
        count = append_batch(entries, directory)
    except OSError as e:
        log_ingest(0, str(directory), success=False, error=str(e))
        return 500, {"success": False, "error": f"Failed to write logs: {e}"}

    log_ingest(count, str(directory), success=True)
    return 200, {"success": True, "count": count}
