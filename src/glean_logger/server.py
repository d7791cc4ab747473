"""Server-side log sink with the debug..fatal / child contract.

ServerLogger is a thin adapter over a structlog logger: ``fatal`` maps to
``critical``, context dicts become event keys, and ``child`` returns a
logger with extra bound context. Output format and destination follow
``configure_logging``.
"""

from __future__ import annotations

from typing import Any

from glean_logger.logging import get_logger


class ServerLogger:
    """Leveled logger bound to a name and optional context.

    Args:
        name: Logger name, recorded as ``logger`` on every event
        context: Key/values bound to every event
    """

    def __init__(self, name: str = "glean_logger", context: dict[str, Any] | None = None) -> None:
        self.name = name
        self.context: dict[str, Any] = dict(context or {})
        self._log = get_logger(name).bind(**{"logger": name, **self.context})

    def _emit(self, method: str, message: str, context: dict[str, Any] | None) -> None:
        fields = dict(context or {})
        # structlog reserves "event" for the message
        if "event" in fields:
            fields["event_field"] = fields.pop("event")
        getattr(self._log, method)(message, **fields)

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit("debug", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit("info", message, context)

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit("warning", message, context)

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit("error", message, context)

    def fatal(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._emit("critical", message, context)

    def child(self, context: dict[str, Any]) -> ServerLogger:
        """Return a logger with ``context`` merged over this one's."""
        return ServerLogger(self.name, {**self.context, **context})

    def bind(self, **context: Any) -> ServerLogger:
        return self.child(context)


def create_server_logger(name: str = "glean_logger", **context: Any) -> ServerLogger:
    return ServerLogger(name, context or None)
