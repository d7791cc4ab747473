"""Log entry model shared by the transport, facade, store and collector."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    """Ordered severity: debug < info < warn < error < fatal."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    def at_least(self, other: LogLevel) -> bool:
        """True if this level is as severe as ``other`` or more."""
        return self.priority >= other.priority


_PRIORITY = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
    LogLevel.FATAL: 4,
}


class LogSource(str, Enum):
    """Where an entry originated."""

    CONSOLE = "console"
    API = "api"
    ERROR = "error"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(datetime.now(UTC).timestamp() * 1000)


class LogEntry(BaseModel):
    """A single log event, immutable once created.

    Attributes:
        id: Opaque unique identifier
        timestamp: Creation time in epoch milliseconds
        level: Severity
        message: Human-readable message
        context: Optional JSON-compatible structured data
        source: console, api or error
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1)]
    timestamp: Annotated[int, Field(gt=0)]
    level: LogLevel
    message: Annotated[str, Field(min_length=1)]
    context: dict[str, Any] | None = None
    source: LogSource = LogSource.API

    @classmethod
    def create(
        cls,
        level: LogLevel | str,
        message: str,
        context: dict[str, Any] | None = None,
        source: LogSource | str = LogSource.API,
    ) -> LogEntry:
        """Create an entry stamped with a fresh id and the current time."""
        timestamp = now_ms()
        return cls(
            id=f"{timestamp}-{uuid4().hex[:12]}",
            timestamp=timestamp,
            level=LogLevel(level),
            message=message,
            context=context or None,
            source=LogSource(source),
        )

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=UTC)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict as posted to the collector."""
        return self.model_dump(mode="json", exclude_none=True)
