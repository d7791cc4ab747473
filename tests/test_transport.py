"""Tests for ClientTransport batching, retry and lifecycle."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import httpx
import pytest
from structlog.testing import capture_logs

from glean_logger.config import ClientTransportConfig, RetryConfig
from glean_logger.config.schema import BatchingConfig, BatchMode
from glean_logger.transport import (
    ClientTransport,
    LogEntry,
    get_client_transport,
)
from glean_logger.transport.client import reset_client_transport

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.conftest import FakeCollector, RecordingExitHooks


class TestImmediateMode:
    @pytest.mark.asyncio
    async def test_each_send_posts_one_batch(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
    ) -> None:
        transport = make_transport()
        await transport.send(make_entry("first"))
        await transport.send(make_entry("second"))

        assert collector.messages == [["first"], ["second"]]
        assert transport.pending == 0
        assert transport.stats.delivered_batches == 2
        assert transport.stats.delivered_entries == 2

    @pytest.mark.asyncio
    async def test_wire_format(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
    ) -> None:
        transport = make_transport()
        entry = make_entry("saved", level="warn", context={"draft": 7}, source="console")
        await transport.send(entry)

        assert collector.batches == [
            [
                {
                    "id": entry.id,
                    "timestamp": entry.timestamp,
                    "level": "warn",
                    "message": "saved",
                    "context": {"draft": 7},
                    "source": "console",
                }
            ]
        ]


class TestCountMode:
    @pytest.mark.asyncio
    async def test_flushes_at_threshold(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        count_batching: BatchingConfig,
    ) -> None:
        transport = make_transport(batching=count_batching)

        await transport.send(make_entry("a"))
        await transport.send(make_entry("b"))
        assert collector.batches == []
        assert transport.pending == 2

        await transport.send(make_entry("c"))
        assert collector.messages == [["a", "b", "c"]]
        assert transport.pending == 0

    @pytest.mark.asyncio
    async def test_enqueue_reports_trigger(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        count_batching: BatchingConfig,
    ) -> None:
        transport = make_transport(batching=count_batching)
        assert [transport.enqueue(make_entry()) for _ in range(3)] == [False, False, True]

    @pytest.mark.asyncio
    async def test_explicit_flush_sends_partial_batch(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        count_batching: BatchingConfig,
    ) -> None:
        transport = make_transport(batching=count_batching)
        await transport.send(make_entry("only"))
        await transport.flush()
        assert collector.messages == [["only"]]

    @pytest.mark.asyncio
    async def test_flush_with_empty_buffer_is_noop(
        self,
        make_transport: Callable[..., ClientTransport],
        collector: FakeCollector,
    ) -> None:
        transport = make_transport()
        await transport.flush()
        assert collector.batches == []


class TestTimeMode:
    @pytest.mark.asyncio
    async def test_timer_flushes_buffer(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
    ) -> None:
        transport = make_transport(batching=BatchingConfig(mode=BatchMode.TIME, interval=0.05))

        await transport.send(make_entry("a"))
        await transport.send(make_entry("b"))
        assert collector.batches == []

        await asyncio.sleep(0.2)
        assert collector.messages == [["a", "b"]]

        await transport.send(make_entry("c"))
        await asyncio.sleep(0.2)
        assert collector.messages == [["a", "b"], ["c"]]


class TestRetry:
    @pytest.mark.asyncio
    async def test_drops_after_max_retries(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        fast_retry: RetryConfig,
        sleeps: list[float],
    ) -> None:
        collector.statuses = [500, 500, 500, 500]
        transport = make_transport(retry=fast_retry)

        with capture_logs() as logs:
            await transport.send(make_entry("lost"))

        assert len(collector.batches) == 4
        assert sleeps == [0.1, 0.2, 0.4]
        assert transport.stats.failed_attempts == 4
        assert transport.stats.dropped_batches == 1
        assert transport.stats.dropped_entries == 1

        dropped = [log for log in logs if log["event"] == "batch_dropped"]
        assert len(dropped) == 1
        assert dropped[0]["entries"] == 1
        assert dropped[0]["attempts"] == 4
        assert dropped[0]["log_level"] == "warning"
        assert [log["attempt"] for log in logs if log["event"] == "batch_retry_scheduled"] == [
            1,
            2,
            3,
        ]

    @pytest.mark.asyncio
    async def test_recovers_with_same_batch(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        fast_retry: RetryConfig,
        sleeps: list[float],
    ) -> None:
        collector.statuses = [503, 502]
        transport = make_transport(retry=fast_retry)

        await transport.send(make_entry("eventually"))

        assert collector.messages == [["eventually"]] * 3
        assert sleeps == [0.1, 0.2]
        assert transport.stats.delivered_batches == 1
        assert transport.stats.dropped_batches == 0

    @pytest.mark.asyncio
    async def test_delay_is_capped(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        sleeps: list[float],
    ) -> None:
        collector.statuses = [500] * 6
        retry = RetryConfig(max_retries=5, initial_delay=1, max_delay=3, backoff_multiplier=2)
        transport = make_transport(retry=retry)

        await transport.send(make_entry())
        assert sleeps == [1, 2, 3, 3, 3]

    @pytest.mark.asyncio
    async def test_retry_disabled_makes_one_attempt(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        sleeps: list[float],
    ) -> None:
        collector.statuses = [500]
        transport = make_transport(retry=RetryConfig(enabled=False))

        await transport.send(make_entry())

        assert len(collector.batches) == 1
        assert sleeps == []
        assert transport.stats.dropped_batches == 1

    @pytest.mark.asyncio
    async def test_network_errors_never_raise(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        fast_retry: RetryConfig,
    ) -> None:
        collector.fail_with = httpx.ConnectError("connection refused")
        transport = make_transport(retry=fast_retry)

        await transport.send(make_entry())

        assert len(collector.batches) == 4
        assert transport.stats.dropped_entries == 1

    @pytest.mark.asyncio
    async def test_later_batches_still_delivered_after_drop(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
    ) -> None:
        collector.statuses = [500]
        transport = make_transport(retry=RetryConfig(enabled=False))

        await transport.send(make_entry("dropped"))
        await transport.send(make_entry("kept"))

        assert transport.stats.dropped_batches == 1
        assert transport.stats.delivered_batches == 1
        assert collector.messages[-1] == ["kept"]

    @pytest.mark.asyncio
    async def test_unencodable_batch_dropped_without_retry(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        fast_retry: RetryConfig,
        sleeps: list[float],
    ) -> None:
        transport = make_transport(retry=fast_retry)

        with capture_logs() as logs:
            await transport.send(LogEntry.create("info", "ratio", {"blob": b"\xff\xfe"}))

        assert collector.batches == []
        assert sleeps == []
        assert transport.pending == 0
        assert transport.stats.dropped_batches == 1
        assert transport.stats.dropped_entries == 1
        assert transport.stats.failed_attempts == 0

        (dropped,) = [log for log in logs if log["event"] == "batch_dropped"]
        assert dropped["entries"] == 1
        assert dropped["attempts"] == 0
        assert dropped["error"].startswith("Payload encoding failed")

        await transport.send(make_entry("next"))
        assert collector.messages == [["next"]]


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_entries_sent_during_flush_go_in_next_batch(
        self,
        make_entry: Callable[..., LogEntry],
        exit_hooks: RecordingExitHooks,
    ) -> None:
        entered = asyncio.Event()
        release = asyncio.Event()
        batches: list[list[str]] = []
        in_flight = 0
        max_in_flight = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            batches.append([entry["message"] for entry in json.loads(request.content)["logs"]])
            entered.set()
            await release.wait()
            in_flight -= 1
            return httpx.Response(200)

        client = httpx.AsyncClient(
            base_url="http://collector.test",
            transport=httpx.MockTransport(handler),
        )
        transport = ClientTransport(
            ClientTransportConfig(base_url="http://collector.test"),
            client=client,
            exit_hooks=exit_hooks,
        )

        first = asyncio.create_task(transport.send(make_entry("one")))
        await entered.wait()
        assert transport.is_sending

        await transport.send(make_entry("two"))
        await transport.send(make_entry("three"))
        assert transport.pending == 2

        release.set()
        await first

        assert batches == [["one"], ["two", "three"]]
        assert max_in_flight == 1
        assert not transport.is_sending

        await transport.destroy()
        await client.aclose()


class TestExitAndDestroy:
    @pytest.mark.asyncio
    async def test_exit_hook_posts_pending_entries(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        exit_hooks: RecordingExitHooks,
        count_batching: BatchingConfig,
    ) -> None:
        transport = make_transport(batching=count_batching)
        await transport.send(make_entry("a"))
        await transport.send(make_entry("b"))

        exit_hooks.fire()

        assert collector.messages == [["a", "b"]]
        assert transport.pending == 0
        assert transport.stats.delivered_entries == 2

    @pytest.mark.asyncio
    async def test_exit_hook_failure_is_counted(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        exit_hooks: RecordingExitHooks,
        count_batching: BatchingConfig,
    ) -> None:
        collector.statuses = [500]
        transport = make_transport(batching=count_batching)
        await transport.send(make_entry())

        exit_hooks.fire()

        assert len(collector.batches) == 1
        assert transport.stats.dropped_entries == 1

    @pytest.mark.asyncio
    async def test_exit_hook_unencodable_batch_is_counted(
        self,
        make_transport: Callable[..., ClientTransport],
        collector: FakeCollector,
        exit_hooks: RecordingExitHooks,
        count_batching: BatchingConfig,
    ) -> None:
        transport = make_transport(batching=count_batching)
        await transport.send(LogEntry.create("info", "ratio", {"blob": b"\xff"}))

        exit_hooks.fire()

        assert collector.batches == []
        assert transport.pending == 0
        assert transport.stats.dropped_batches == 1
        assert transport.stats.dropped_entries == 1

    @pytest.mark.asyncio
    async def test_no_exit_hook_when_disabled(
        self,
        make_transport: Callable[..., ClientTransport],
        exit_hooks: RecordingExitHooks,
    ) -> None:
        make_transport(flush_on_exit=False)
        assert exit_hooks.callbacks == []

    @pytest.mark.asyncio
    async def test_destroy_flushes_and_unregisters(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
        exit_hooks: RecordingExitHooks,
        count_batching: BatchingConfig,
    ) -> None:
        transport = make_transport(batching=count_batching)
        await transport.send(make_entry("pending"))
        assert len(exit_hooks.callbacks) == 1

        await transport.destroy()

        assert collector.messages == [["pending"]]
        assert exit_hooks.callbacks == []
        assert transport.destroyed

    @pytest.mark.asyncio
    async def test_send_after_destroy_is_dropped(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
    ) -> None:
        transport = make_transport()
        await transport.destroy()
        await transport.destroy()

        await transport.send(make_entry())

        assert collector.batches == []
        assert transport.stats.dropped_entries == 1

    @pytest.mark.asyncio
    async def test_destroy_cancels_timer(
        self,
        make_transport: Callable[..., ClientTransport],
        make_entry: Callable[..., LogEntry],
        collector: FakeCollector,
    ) -> None:
        transport = make_transport(batching=BatchingConfig(mode=BatchMode.TIME, interval=0.05))
        await transport.send(make_entry("flushed by destroy"))

        await transport.destroy()
        await asyncio.sleep(0.1)

        assert collector.messages == [["flushed by destroy"]]


class TestSharedInstance:
    def test_get_returns_same_instance(self) -> None:
        reset_client_transport()
        config = ClientTransportConfig(flush_on_exit=False)
        try:
            first = get_client_transport(config)
            assert get_client_transport() is first
            assert reset_client_transport() is first
            assert get_client_transport(config) is not first
        finally:
            reset_client_transport()
