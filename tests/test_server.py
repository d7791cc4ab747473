"""Tests for the structlog-backed server sink and logging helpers."""

from __future__ import annotations

import json

import pytest
import structlog
from structlog.testing import capture_logs

from glean_logger.logging import configure_logging, log_ingest
from glean_logger.server import ServerLogger, create_server_logger


class TestServerLogger:
    def test_levels(self) -> None:
        with capture_logs() as logs:
            server = ServerLogger("api")
            server.debug("d")
            server.info("i")
            server.warn("w")
            server.error("e")
            server.fatal("f")

        assert [(log["event"], log["log_level"]) for log in logs] == [
            ("d", "debug"),
            ("i", "info"),
            ("w", "warning"),
            ("e", "error"),
            ("f", "critical"),
        ]
        assert all(log["logger"] == "api" for log in logs)

    def test_context_becomes_fields(self) -> None:
        with capture_logs() as logs:
            ServerLogger("api").info("saved", {"user_id": 7, "event": "click"})
        assert logs[0]["user_id"] == 7
        assert logs[0]["event_field"] == "click"
        assert logs[0]["event"] == "saved"

    def test_child_merges_context(self) -> None:
        with capture_logs() as logs:
            parent = create_server_logger("jobs", job="sync")
            child = parent.child({"attempt": 2})
            child.info("running")
            parent.info("done")

        assert logs[0]["job"] == "sync"
        assert logs[0]["attempt"] == 2
        assert "attempt" not in logs[1]
        assert child.context == {"job": "sync", "attempt": 2}

    def test_bind_is_child(self) -> None:
        with capture_logs() as logs:
            ServerLogger("x").bind(request_id="r1").warn("slow")
        assert logs[0]["request_id"] == "r1"


class TestConfigureLogging:
    def test_json_output_redacts_secrets(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, json_output=True)
        structlog.get_logger("test").info(
            "auth_attempt",
            password="hunter2",
            header="Bearer abc.def",
            user="ada",
        )

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["event"] == "auth_attempt"
        assert record["password"] == "[REDACTED]"
        assert record["header"] == "Bearer [REDACTED]"
        assert record["user"] == "ada"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_debug_filtered_unless_verbose(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=False, json_output=True)
        structlog.get_logger("test").debug("hidden")
        assert "hidden" not in capsys.readouterr().err


class TestEventHelpers:
    def test_log_ingest_levels(self) -> None:
        with capture_logs() as logs:
            log_ingest(3, "/tmp/_logs", success=True)
            log_ingest(0, "/tmp/_logs", success=False, error="bad payload")

        assert [(log["log_level"], log["success"]) for log in logs] == [
            ("info", True),
            ("warning", False),
        ]
        assert logs[1]["error"] == "bad payload"
