"""Tests for collector-side batch ingestion."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest
from structlog.testing import capture_logs

from glean_logger import collector
from glean_logger.collector import (
    PayloadError,
    append_batch,
    format_line,
    handle_ingest,
    log_file_path,
    validate_payload,
)
from glean_logger.transport import LogLevel

if TYPE_CHECKING:
    from pathlib import Path


class TestValidatePayload:
    def test_valid(self, sample_payload: dict[str, Any]) -> None:
        entries = validate_payload(sample_payload)
        assert [e.message for e in entries] == ["Page loaded", "Boom"]
        assert entries[1].level is LogLevel.ERROR

    @pytest.mark.parametrize("payload", [None, [], "logs", {"entries": []}])
    def test_wrong_shape(self, payload: Any) -> None:
        with pytest.raises(PayloadError, match="expected an object with a 'logs' array"):
            validate_payload(payload)

    @pytest.mark.parametrize("logs", [[], {}, "x"])
    def test_logs_must_be_non_empty_list(self, logs: Any) -> None:
        with pytest.raises(PayloadError, match="non-empty array"):
            validate_payload({"logs": logs})

    def test_collects_every_problem(self, sample_payload: dict[str, Any]) -> None:
        sample_payload["logs"].append({"id": "x", "timestamp": 1, "level": "loud", "message": "m"})
        sample_payload["logs"].append("not an entry")

        with pytest.raises(PayloadError) as exc_info:
            validate_payload(sample_payload)

        problems = exc_info.value.problems
        assert len(problems) == 2
        assert problems[0].startswith("logs[2].level:")
        assert problems[1] == "logs[3]: expected an object"
        assert "Invalid log entries" in str(exc_info.value)

    def test_unknown_fields_rejected(self, sample_payload: dict[str, Any]) -> None:
        sample_payload["logs"][0]["extra"] = True
        with pytest.raises(PayloadError, match=r"logs\[0\]\.extra"):
            validate_payload(sample_payload)


class TestAppendBatch:
    def test_writes_daily_file(
        self,
        temp_dir: Path,
        sample_payload: dict[str, Any],
        frozen_time: datetime,
    ) -> None:
        entries = validate_payload(sample_payload)
        log_dir = temp_dir / "collected"

        assert append_batch(entries, log_dir, now=frozen_time) == 2

        path = log_dir / "browser.2026-01-10.log"
        assert log_file_path(log_dir, frozen_time) == path
        first, second = (json.loads(line) for line in path.read_text().splitlines())
        assert first == {
            "@timestamp": "2026-01-10T15:30:00Z",
            "level": "INFO",
            "message": "Page loaded",
            "id": "1768059000000-abc",
            "source": "api",
            "timestamp": 1768059000000,
            "context": {"path": "/dashboard"},
        }
        assert second["level"] == "ERROR"
        assert second["context"] is None

    def test_appends_to_existing_file(
        self,
        temp_dir: Path,
        sample_payload: dict[str, Any],
        frozen_time: datetime,
    ) -> None:
        entries = validate_payload(sample_payload)
        append_batch(entries, temp_dir, now=frozen_time)
        append_batch(entries[:1], temp_dir, now=frozen_time)
        assert len(log_file_path(temp_dir, frozen_time).read_text().splitlines()) == 3

    def test_new_file_per_day(
        self,
        temp_dir: Path,
        sample_payload: dict[str, Any],
    ) -> None:
        entries = validate_payload(sample_payload)
        append_batch(entries, temp_dir, now=datetime(2026, 1, 10, 23, 59, tzinfo=UTC))
        append_batch(entries, temp_dir, now=datetime(2026, 1, 11, 0, 1, tzinfo=UTC))
        assert sorted(p.name for p in temp_dir.glob("browser.*.log")) == [
            "browser.2026-01-10.log",
            "browser.2026-01-11.log",
        ]

    def test_log_dir_from_environment(
        self,
        temp_dir: Path,
        sample_payload: dict[str, Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("LOG_DIR", str(temp_dir / "from-env"))
        append_batch(validate_payload(sample_payload))
        assert len(list((temp_dir / "from-env").glob("browser.*.log"))) == 1

    def test_defaults_to_cwd_logs(
        self,
        temp_dir: Path,
        sample_payload: dict[str, Any],
    ) -> None:
        append_batch(validate_payload(sample_payload))
        assert len(list((temp_dir / "_logs").glob("browser.*.log"))) == 1

    def test_format_line_is_single_line(self, make_entry: Any) -> None:
        line = format_line(make_entry("multi\nline"))
        assert "\n" not in line
        assert json.loads(line)["message"] == "multi\nline"


class TestHandleIngest:
    def test_success(self, temp_dir: Path, sample_payload: dict[str, Any]) -> None:
        with capture_logs() as logs:
            status, body = handle_ingest(sample_payload, temp_dir)

        assert (status, body) == (200, {"success": True, "count": 2})
        assert logs[-1]["event"] == "logs_ingested"
        assert logs[-1]["count"] == 2

    def test_invalid_payload(self, temp_dir: Path) -> None:
        with capture_logs() as logs:
            status, body = handle_ingest({"logs": [{"id": "x"}]}, temp_dir)

        assert status == 400
        assert body["success"] is False
        assert "Invalid log entries" in body["error"]
        assert body["details"]
        assert logs[-1]["log_level"] == "warning"
        assert list(temp_dir.glob("browser.*.log")) == []

    def test_write_failure(
        self,
        temp_dir: Path,
        sample_payload: dict[str, Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def refuse(*_args: Any, **_kwargs: Any) -> int:
            msg = "disk full"
            raise OSError(msg)

        monkeypatch.setattr(collector, "append_batch", refuse)
        status, body = handle_ingest(sample_payload, temp_dir)

        assert status == 500
        assert body == {"success": False, "error": "Failed to write logs: disk full"}

    def test_log_dir_is_a_file(self, temp_dir: Path, sample_payload: dict[str, Any]) -> None:
        blocker = temp_dir / "blocked"
        blocker.write_text("")
        status, body = handle_ingest(sample_payload, blocker)
        assert status == 500
        assert body["error"].startswith("Failed to write logs")
