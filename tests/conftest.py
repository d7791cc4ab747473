"""Shared pytest fixtures for glean-logger tests.

This module provides common fixtures for:
- Temporary config files
- Mock time (via freezegun)
- Test log store instances
- Mock collector endpoints (via httpx.MockTransport)
- Sample log entries and batches
"""

from __future__ import annotations

import io
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import pytest
import pytest_asyncio
import structlog
import yaml

from glean_logger.config import ClientTransportConfig
from glean_logger.config.schema import BatchingConfig, BatchMode, RetryConfig
from glean_logger.console import Console
from glean_logger.store import LocalLogStore
from glean_logger.transport import ClientTransport, LogEntry, LogLevel, LogSource

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable, Generator


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def frozen_time() -> datetime:
    """Return a fixed datetime for deterministic tests.

    Use with freezegun's freeze_time decorator:

        @freeze_time("2026-01-10T15:30:00Z")
        def test_something(frozen_time):
            assert datetime.now(UTC) == frozen_time
    """
    return datetime(2026, 1, 10, 15, 30, 0, tzinfo=UTC)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory (cleaned up after test)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def minimal_config() -> dict[str, Any]:
    """Return a minimal valid configuration dictionary."""
    return {"version": 1}


@pytest.fixture
def sample_config(temp_dir: Path) -> dict[str, Any]:
    """Return a configuration exercising every section."""
    return {
        "version": 1,
        "transport": {
            "endpoint": "/api/logs",
            "base_url": "http://collector.test",
            "batching": {"mode": "count", "count_threshold": 5},
            "retry": {"max_retries": 2, "initial_delay": 0.5, "max_delay": 4},
            "flush_on_exit": False,
        },
        "redaction": {
            "preset": "production",
            "extra_sensitive_fields": ["sessionId"],
        },
        "storage": {
            "path": str(temp_dir / "logs.db"),
            "max_entries": 20,
        },
        "logging": {"level": "info", "json_output": False},
        "collector": {"log_dir": str(temp_dir / "_logs")},
    }


@pytest.fixture
def write_config(temp_dir: Path) -> Callable[[dict[str, Any], str], Path]:
    """Factory fixture to write config files.

    Args:
        config: Configuration dictionary
        filename: Name of the config file (default: config.yaml)

    Returns:
        Path to the written config file
    """

    def _write(config: dict[str, Any], filename: str = "config.yaml") -> Path:
        path = temp_dir / filename
        with path.open("w") as f:
            yaml.safe_dump(config, f)
        return path

    return _write


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Keep tests away from the user's config, data dir and LOGGER_* variables."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(temp_dir / "xdg-data"))
    monkeypatch.delenv("GLEAN_LOGGER_CONFIG", raising=False)
    monkeypatch.delenv("LOG_DIR", raising=False)
    for name in list(os.environ):
        if name.startswith(("LOGGER_", "API_LOGGER_")):
            monkeypatch.delenv(name)
    monkeypatch.chdir(temp_dir)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo configure_logging() calls so later tests see a fresh structlog."""
    yield
    structlog.reset_defaults()


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def test_db_path(temp_dir: Path) -> Path:
    """Return path for a test database file."""
    return temp_dir / "test_logs.db"


@pytest.fixture
def log_store(test_db_path: Path) -> Generator[LocalLogStore, None, None]:
    """Create a LocalLogStore for testing.

    Yields:
        Initialized store with a 5-entry cap (closed after test)
    """
    store = LocalLogStore(test_db_path, max_entries=5)
    yield store
    store.close()


# ============================================================================
# Collector Fixtures
# ============================================================================


@dataclass
class FakeCollector:
    """Scripted collector endpoint for httpx.MockTransport.

    Responds with the queued status codes in order, then 200. Every request
    body is recorded.
    """

    statuses: list[int] = field(default_factory=list)
    batches: list[list[dict[str, Any]]] = field(default_factory=list)
    fail_with: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.batches.append(json.loads(request.content)["logs"])
        if self.fail_with is not None:
            raise self.fail_with
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"success": status == 200})

    @property
    def messages(self) -> list[list[str]]:
        return [[entry["message"] for entry in batch] for batch in self.batches]


@dataclass
class RecordingExitHooks:
    """ExitHooks that only remember what was registered."""

    callbacks: list[Callable[[], None]] = field(default_factory=list)

    def register(self, callback: Callable[[], None]) -> None:
        self.callbacks.append(callback)

    def unregister(self, callback: Callable[[], None]) -> None:
        self.callbacks.remove(callback)

    def fire(self) -> None:
        for callback in list(self.callbacks):
            callback()


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def exit_hooks() -> RecordingExitHooks:
    return RecordingExitHooks()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by a transport built with ``make_transport``."""
    return []


@pytest_asyncio.fixture
async def make_transport(
    collector: FakeCollector,
    exit_hooks: RecordingExitHooks,
    sleeps: list[float],
) -> AsyncGenerator[Callable[..., ClientTransport], None]:
    """Factory fixture building transports wired to the fake collector.

    Keyword arguments are passed to ClientTransportConfig. Retries do not
    actually sleep; requested delays are appended to ``sleeps``.
    """
    created: list[ClientTransport] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    def _make(**overrides: Any) -> ClientTransport:
        overrides.setdefault("base_url", "http://collector.test")
        config = ClientTransportConfig(**overrides)
        transport = ClientTransport(
            config,
            client=httpx.AsyncClient(
                base_url=config.base_url,
                transport=httpx.MockTransport(collector),
            ),
            exit_client_factory=lambda: httpx.Client(
                base_url=config.base_url,
                transport=httpx.MockTransport(collector),
            ),
            exit_hooks=exit_hooks,
            sleep=fake_sleep,
        )
        created.append(transport)
        return transport

    yield _make

    for transport in created:
        if not transport.destroyed:
            await transport.destroy()
        if transport._client is not None:
            await transport._client.aclose()


@pytest.fixture
def count_batching() -> BatchingConfig:
    return BatchingConfig(mode=BatchMode.COUNT, count_threshold=3)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_retries=3, initial_delay=0.1, max_delay=1.0, backoff_multiplier=2.0)


# ============================================================================
# Entry Fixtures
# ============================================================================


@pytest.fixture
def make_entry() -> Callable[..., LogEntry]:
    """Factory fixture for log entries with sequential ids."""
    counter = iter(range(1, 1_000_000))

    def _make(
        message: str = "hello",
        level: LogLevel | str = LogLevel.INFO,
        context: dict[str, Any] | None = None,
        source: LogSource | str = LogSource.API,
        timestamp: int | None = None,
    ) -> LogEntry:
        n = next(counter)
        return LogEntry(
            id=f"entry-{n}",
            timestamp=timestamp or 1_768_059_000_000 + n,
            level=LogLevel(level),
            message=message,
            context=context,
            source=LogSource(source),
        )

    return _make


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Return a valid collector batch."""
    return {
        "logs": [
            {
                "id": "1768059000000-abc",
                "timestamp": 1768059000000,
                "level": "info",
                "message": "Page loaded",
                "source": "api",
                "context": {"path": "/dashboard"},
            },
            {
                "id": "1768059000001-def",
                "timestamp": 1768059000001,
                "level": "error",
                "message": "Boom",
                "source": "error",
            },
        ]
    }


# ============================================================================
# Console Fixtures
# ============================================================================


class CapturingConsole(Console):
    """Console writing to in-memory buffers."""

    def __init__(self) -> None:
        self.out = io.StringIO()
        self.err = io.StringIO()
        super().__init__(self.out, self.err, colorize=False)

    @property
    def lines(self) -> list[str]:
        return (self.out.getvalue() + self.err.getvalue()).splitlines()


@pytest.fixture
def capturing_console() -> CapturingConsole:
    return CapturingConsole()


class RecordingSink:
    """Leveled sink logger that records (level, message, context) calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []

    def _record(self, level: str, message: str, context: dict[str, Any] | None) -> None:
        self.calls.append((level, message, context))

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._record("debug", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._record("info", message, context)

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._record("warn", message, context)

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._record("error", message, context)

    def fatal(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._record("fatal", message, context)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
