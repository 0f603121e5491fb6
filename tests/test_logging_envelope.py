from __future__ import annotations

import io
import json

import pytest
import structlog

from toolgate.infra.logging import AUDIT_LOGGER_NAME, RoutingLoggerFactory, setup_logging
from toolgate.tools.envelope import clamp_text, failure, truncation_suffix


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


class TestSetupLogging:
    def test_audit_events_routed(self, capsys) -> None:
        audit = io.StringIO()
        setup_logging(audit_stream=audit)

        structlog.get_logger(AUDIT_LOGGER_NAME).info("command_spawn", argv=["rg"])
        structlog.get_logger().info("tool_executed", tool_name="read_file")

        audit_line = json.loads(audit.getvalue().strip())
        assert audit_line["event"] == "command_spawn"
        assert audit_line["argv"] == ["rg"]
        assert audit_line["level"] == "info"
        assert "timestamp" in audit_line

        out = capsys.readouterr().out
        assert json.loads(out.strip())["event"] == "tool_executed"
        assert "command_spawn" not in out

    def test_level_filtering(self, capsys) -> None:
        setup_logging(log_level="warning")
        logger = structlog.get_logger()
        logger.info("quiet")
        logger.warning("loud")
        out = capsys.readouterr().out
        assert "quiet" not in out
        assert "loud" in out

    def test_unknown_level_means_info(self, capsys) -> None:
        setup_logging(log_level="chatty")
        structlog.get_logger().info("visible")
        assert "visible" in capsys.readouterr().out

    def test_factory_without_audit_stream(self) -> None:
        default = io.StringIO()
        factory = RoutingLoggerFactory(default=default)
        factory(AUDIT_LOGGER_NAME).msg("x")
        assert default.getvalue() == "x\n"


class TestEnvelope:
    def test_within_limit(self) -> None:
        result = clamp_text("abc", 3)
        assert (result.text, result.clamped, result.omitted) == ("abc", False, 0)

    def test_clamped(self) -> None:
        result = clamp_text("abcdef", 4)
        assert result.clamped
        assert result.omitted == 2
        assert result.text == "abcd" + truncation_suffix(2)
        assert result.text.endswith("(truncated 2 characters)")

    def test_non_string_input(self) -> None:
        assert clamp_text(None).text == ""
        assert clamp_text(12345, 2).omitted == 3

    def test_failure(self) -> None:
        assert failure("nope", "INVALID_ARGS", path="x") == {
            "ok": False,
            "error": "nope",
            "error_code": "INVALID_ARGS",
            "path": "x",
        }
