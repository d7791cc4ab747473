"""ClientLogger: the public logging interface for client code.

Each accepted call fans out to three places:
1. the console (``Console.emit``, never intercepted)
2. the capped local store, when persistence is enabled
3. the client transport, for batched delivery to the collector

Context is redacted before any of them sees it. Logging calls never raise
because of storage or delivery problems.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from glean_logger.console import console as default_console
from glean_logger.redaction import DEFAULT_POLICY, redact
from glean_logger.store import LocalLogStore
from glean_logger.transport import ClientTransport, LogEntry, LogLevel, LogSource

if TYPE_CHECKING:
    from glean_logger.config.schema import Settings
    from glean_logger.console import Console
    from glean_logger.redaction import RedactionPolicy

logger = logging.getLogger(__name__)

_SOURCES = {source.value for source in LogSource}


def _jsonable(context: dict[str, Any]) -> dict[str, Any]:
    """Coerce arbitrary values (sets, objects) to their JSON form."""
    return json.loads(json.dumps(context, default=str))


class ClientLogger:
    """Leveled logger combining console output, local persistence and delivery.

    Args:
        transport: Delivery transport; None keeps entries local only
        store: Local capped store; None disables persistence
        min_level: Calls below this level are ignored
        console_enabled: Echo entries to the console target
        persistence_enabled: Write entries to the store (if one is given)
        policy: Redaction policy for context (default: DEFAULT_POLICY)
        console_target: Console used for output (default: the shared console)
    """

    def __init__(
        self,
        transport: ClientTransport | None = None,
        store: LocalLogStore | None = None,
        *,
        min_level: LogLevel | str = LogLevel.DEBUG,
        console_enabled: bool = True,
        persistence_enabled: bool = True,
        policy: RedactionPolicy | None = None,
        console_target: Console | None = None,
    ) -> None:
        self.transport = transport
        self.store = store
        self.min_level = LogLevel(min_level)
        self.console_enabled = console_enabled
        self.persistence_enabled = persistence_enabled
        self.policy = policy or DEFAULT_POLICY
        self.console = console_target or default_console
        self._tasks: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: ClientTransport | None = None,
    ) -> ClientLogger:
        """Build a logger, store and transport from loaded settings."""
        store = None
        if settings.storage.enabled:
            store = LocalLogStore(settings.storage.get_path(), settings.storage.max_entries)
        return cls(
            transport=transport or ClientTransport(settings.transport),
            store=store,
            min_level=settings.logging.level,
            console_enabled=settings.logging.console,
            persistence_enabled=settings.storage.enabled,
            policy=settings.redaction.build_policy(),
        )

    # -------------------------------------------------------------------------
    # Logging API
    # -------------------------------------------------------------------------

    def log(
        self,
        level: LogLevel | str,
        message: str,
        context: dict[str, Any] | None = None,
        *,
        source: LogSource | str | None = None,
    ) -> LogEntry | None:
        """Record one event.

        Args:
            level: Severity
            message: Message text
            context: Structured data; redacted before use
            source: Origin tag. Defaults to ``context["source"]`` when that
                holds a valid source, otherwise ``api``.

        Returns:
            The created entry, or None when filtered by level
        """
        level = LogLevel(level)
        if not level.at_least(self.min_level):
            return None

        fields = dict(context) if context else {}
        if source is None and fields.get("source") in _SOURCES:
            source = fields.pop("source")

        entry = LogEntry.create(
            level,
            str(message) if message else "(no message)",
            _jsonable(redact(fields, self.policy)) if fields else None,
            source or LogSource.API,
        )

        if self.console_enabled:
            self.console.emit(entry)
        if self.persistence_enabled and self.store is not None:
            self._persist(self.store, entry)
        if self.transport is not None:
            self._dispatch(self.transport, entry)
        return entry

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> LogEntry | None:
        return self.log(LogLevel.DEBUG, message, context, **kwargs)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> LogEntry | None:
        return self.log(LogLevel.INFO, message, context, **kwargs)

    def warn(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> LogEntry | None:
        return self.log(LogLevel.WARN, message, context, **kwargs)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> LogEntry | None:
        return self.log(LogLevel.ERROR, message, context, **kwargs)

    def fatal(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> LogEntry | None:
        return self.log(LogLevel.FATAL, message, context, **kwargs)

    # -------------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------------

    def _persist(self, store: LocalLogStore, entry: LogEntry) -> None:
        try:
            store.append(entry)
        except sqlite3.Error as e:
            logger.warning("Could not persist log entry %s: %s", entry.id, e)

    def _dispatch(self, transport: ClientTransport, entry: LogEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: buffer only; delivered by the next flush or the exit hook
            transport.enqueue(entry)
            return

        task = loop.create_task(transport.send(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # -------------------------------------------------------------------------
    # Stored logs and lifecycle
    # -------------------------------------------------------------------------

    def get_stored_logs(self) -> list[LogEntry]:
        """Locally stored entries, oldest first."""
        if self.store is None:
            return []
        return sorted(self.store.read_all(), key=lambda entry: entry.timestamp)

    def clear_stored_logs(self) -> None:
        if self.store is not None:
            removed = self.store.clear()
            logger.debug("Cleared %d stored log entries", removed)

    async def flush(self) -> None:
        """Wait for scheduled sends, then flush the transport."""
        if self._tasks:
            await asyncio.gather(*self._tasks)
        if self.transport is not None:
            await self.transport.flush()

    async def aclose(self) -> None:
        """Flush, destroy the transport and close the store."""
        await self.flush()
        if self.transport is not None:
            await self.transport.destroy()
        if self.store is not None:
            self.store.close()
