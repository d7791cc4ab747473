"""Buffered, batched delivery of log entries to a collector endpoint.

This module implements the client transport:
- Buffering with immediate, count and time batching modes
- At most one flush in flight; the buffer is swapped out before any I/O
- Retry of the same batch with capped exponential backoff
- Drop accounting, so a lost batch always leaves a trace
- A synchronous best-effort flush when the process exits
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from glean_logger.config.schema import BatchMode, ClientTransportConfig
from glean_logger.logging import log_batch_delivered, log_batch_dropped, log_retry_scheduled
from glean_logger.transport.lifecycle import AtexitHooks

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from glean_logger.config.schema import TransportSettings
    from glean_logger.transport.entry import LogEntry
    from glean_logger.transport.lifecycle import ExitHooks

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """A batch was not accepted by the collector."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


JSON_HEADERS = {"Content-Type": "application/json"}


def encode_batch(batch: list[LogEntry]) -> bytes:
    """Encode a batch as the collector's ``{"logs": [...]}`` JSON body.

    Raises:
        TypeError: If a context value has no JSON form
        ValueError: If a value cannot be encoded (undecodable bytes, NaN)
    """
    payload = {"logs": [entry.to_wire() for entry in batch]}
    return json.dumps(payload, ensure_ascii=False, allow_nan=False).encode("utf-8")


@dataclass
class TransportStats:
    """Delivery counters, read by callers and the CLI."""

    delivered_batches: int = 0
    delivered_entries: int = 0
    failed_attempts: int = 0
    dropped_batches: int = 0
    dropped_entries: int = 0


class ClientTransport:
    """Owns the outgoing buffer and delivers it in batches.

    Features:
    - ``send`` never raises; delivery failures are retried, then dropped and
      logged with the entry count
    - ``flush`` is a no-op while another flush is in flight
    - time mode arms a loop timer lazily and re-arms it after every flush
    - an exit hook posts whatever is still buffered, once, synchronously

    Example:
        >>> transport = ClientTransport(ClientTransportConfig(endpoint="https://logs.example.test/api/logs"))
        >>> await transport.send(LogEntry.create("info", "hello"))
        >>> await transport.destroy()
    """

    def __init__(
        self,
        config: TransportSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        exit_client_factory: Callable[[], httpx.Client] | None = None,
        exit_hooks: ExitHooks | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Delivery settings (default: ClientTransportConfig())
            client: Async HTTP client to post with; created lazily if omitted
                and closed by destroy()
            exit_client_factory: Builds the sync client used by the exit flush
            exit_hooks: Where the exit flush is registered (default: atexit)
            sleep: Awaitable used between retries
        """
        self.config = config or ClientTransportConfig()
        self.stats = TransportStats()

        self._client = client
        self._owns_client = client is None
        self._exit_client_factory = exit_client_factory or self._default_exit_client
        self._sleep = sleep

        self._buffer: list[LogEntry] = []
        self._sending = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._timer: asyncio.TimerHandle | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._destroyed = False

        self._exit_hooks = exit_hooks or AtexitHooks()
        self._exit_registered = False
        if self.config.flush_on_exit:
            self._exit_hooks.register(self.flush_on_exit)
            self._exit_registered = True

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def endpoint(self) -> str:
        return self.config.endpoint

    @property
    def pending(self) -> int:
        """Number of entries waiting in the buffer (not counting in-flight)."""
        return len(self._buffer)

    @property
    def is_sending(self) -> bool:
        return self._sending

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # -------------------------------------------------------------------------
    # Enqueue / flush
    # -------------------------------------------------------------------------

    def enqueue(self, entry: LogEntry) -> bool:
        """Append an entry without performing any I/O.

        Args:
            entry: Entry to buffer

        Returns:
            True if the batching trigger is met and a flush should follow
        """
        if self._destroyed:
            self.stats.dropped_entries += 1
            logger.warning("Transport destroyed, dropping log entry %s", entry.id)
            return False

        self._buffer.append(entry)
        batching = self.config.batching

        if batching.mode is BatchMode.IMMEDIATE:
            return True
        if batching.mode is BatchMode.COUNT:
            return len(self._buffer) >= batching.count_threshold

        self._arm_timer()
        return False

    async def send(self, entry: LogEntry) -> None:
        """Buffer an entry and flush if the batching mode says so.

        Never raises because of delivery problems.
        """
        if self.enqueue(entry):
            await self.flush()

    async def flush(self) -> None:
        """Deliver everything buffered now.

        Returns immediately when the buffer is empty or a flush is already in
        flight. Entries buffered while a batch is in flight are delivered as
        the next batch of the same flush.
        """
        if not self._buffer or self._sending:
            return

        self._sending = True
        self._idle.clear()
        try:
            while self._buffer:
                batch, self._buffer = self._buffer, []
                await self._deliver(batch)
        finally:
            self._sending = False
            self._idle.set()
            if self.config.batching.mode is BatchMode.TIME and not self._destroyed:
                self._restart_timer()

    async def _deliver(self, batch: list[LogEntry]) -> bool:
        """Post one batch, retrying per config. Returns False if dropped."""
        try:
            content = encode_batch(batch)
        except (TypeError, ValueError) as e:
            # Dropped without retry
            self._record_drop(batch, 0, f"Payload encoding failed: {e}")
            return False

        retry = self.config.retry
        max_attempts = 1 + retry.max_retries if retry.enabled else 1
        started = time.monotonic()
        last_error = ""

        for attempt in range(1, max_attempts + 1):
            try:
                await self._post(content)
            except DeliveryError as e:
                last_error = str(e)
                self.stats.failed_attempts += 1
                if attempt < max_attempts:
                    delay = retry.delay_for(attempt)
                    log_retry_scheduled(
                        self.endpoint, attempt, retry.max_retries, delay, last_error
                    )
                    await self._sleep(delay)
                continue

            self.stats.delivered_batches += 1
            self.stats.delivered_entries += len(batch)
            log_batch_delivered(
                self.endpoint,
                len(batch),
                attempt,
                (time.monotonic() - started) * 1000,
            )
            return True

        self._record_drop(batch, max_attempts, last_error)
        return False

    def _record_drop(self, batch: list[LogEntry], attempts: int, error: str) -> None:
        self.stats.dropped_batches += 1
        self.stats.dropped_entries += len(batch)
        log_batch_dropped(
            self.endpoint,
            len(batch),
            attempts,
            error,
            self.stats.dropped_batches,
        )

    async def _post(self, content: bytes) -> None:
        """Single delivery attempt for an encoded batch.

        Raises:
            DeliveryError: On any non-2xx status or transport failure
        """
        try:
            response = await self._get_client().post(
                self.endpoint, content=content, headers=JSON_HEADERS
            )
        except httpx.TimeoutException as e:
            msg = f"Request timeout: {e}"
            raise DeliveryError(msg) from e
        except httpx.HTTPError as e:
            msg = f"Request error: {e}"
            raise DeliveryError(msg) from e

        if not response.is_success:
            msg = f"HTTP {response.status_code}: {response.text[:200]}"
            raise DeliveryError(msg, status_code=response.status_code)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    # -------------------------------------------------------------------------
    # Time-based batching
    # -------------------------------------------------------------------------

    def _arm_timer(self) -> None:
        if self._timer is not None or self._destroyed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the entry waits for the next send, flush or exit
            return
        self._timer = loop.call_later(self.config.batching.interval, self._on_timer)

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._arm_timer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._timer_task = asyncio.ensure_future(self.flush())

    # -------------------------------------------------------------------------
    # Exit and teardown
    # -------------------------------------------------------------------------

    def _default_exit_client(self) -> httpx.Client:
        return httpx.Client(base_url=self.config.base_url, timeout=self.config.exit_timeout)

    def flush_on_exit(self) -> None:
        """Post the buffer once, synchronously. Registered as the exit hook.

        Best effort: a failure is logged and counted, never raised.
        """
        if not self._buffer:
            return

        batch, self._buffer = self._buffer, []
        try:
            content = encode_batch(batch)
            with self._exit_client_factory() as client:
                response = client.post(self.endpoint, content=content, headers=JSON_HEADERS)
            if not response.is_success:
                msg = f"HTTP {response.status_code}"
                raise DeliveryError(msg, status_code=response.status_code)
        except (httpx.HTTPError, DeliveryError, TypeError, ValueError) as e:
            self.stats.dropped_batches += 1
            self.stats.dropped_entries += len(batch)
            logger.warning("Exit flush failed, %d log entries lost: %s", len(batch), e)
            return

        self.stats.delivered_batches += 1
        self.stats.delivered_entries += len(batch)
        logger.debug("Exit flush delivered %d log entries", len(batch))

    async def destroy(self) -> None:
        """Stop timers, remove the exit hook and flush what is left.

        An in-flight flush is allowed to finish; nothing is aborted.
        """
        if self._destroyed:
            return
        self._destroyed = True

        self._cancel_timer()
        if self._exit_registered:
            self._exit_hooks.unregister(self.flush_on_exit)
            self._exit_registered = False

        await self._idle.wait()
        await self.flush()

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


# Shared instance for application code that does not wire transports itself
_instance: ClientTransport | None = None


def get_client_transport(config: TransportSettings | None = None) -> ClientTransport:
    """Return the process-wide transport, creating it on first call.

    Construct it once at start-up (passing the config there); later callers
    get the same instance. Tests should build ClientTransport directly.
    """
    global _instance  # noqa: PLW0603
    if _instance is None:
        _instance = ClientTransport(config)
    elif config is not None and config != _instance.config:
        logger.warning("Client transport already created; ignoring new config")
    return _instance


def reset_client_transport() -> ClientTransport | None:
    """Forget the shared transport and return it so the caller can destroy it."""
    global _instance  # noqa: PLW0603
    previous, _instance = _instance, None
    return previous
