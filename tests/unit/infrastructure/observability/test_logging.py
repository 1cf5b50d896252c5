"""Tests for structured logging and operation timing."""

import json
import logging
import sys
from collections.abc import Iterator

import pytest

from mediacatalog.infrastructure.observability import (
    configure_logging,
    get_correlation_id,
    log_operation,
    log_slow_operation,
    set_correlation_id,
)
from mediacatalog.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """Drop the handler configure_logging() installs so later tests don't write to a closed capsys stream."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            root.removeHandler(handler)
    root.setLevel(level)


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self) -> None:
        assert set_correlation_id("scan-123") == "scan-123"
        assert get_correlation_id() == "scan-123"

    def test_set_correlation_id_generates_uuid_when_none(self) -> None:
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self) -> None:
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_replaces_handlers(self) -> None:
        configure_logging(log_level="INFO")
        configure_logging(log_level="INFO")
        assert len(logging.getLogger().handlers) == 1

    def test_invalid_level_falls_back_to_info(self) -> None:
        configure_logging(log_level="NOPE")
        assert logging.getLogger().level == logging.INFO

    def test_json_output_carries_correlation_id(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging(log_level="INFO", json_format=True)
        set_correlation_id("scan-json")

        logging.getLogger("mediacatalog.test").info("catalog ready")

        lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
        record = json.loads(lines[-1])
        assert record["message"] == "catalog ready"
        assert record["level"] == "INFO"
        assert record["logger"] == "mediacatalog.test"
        assert record["correlation_id"] == "scan-json"


class TestCompactExceptionFormatter:
    def test_formats_chain_root_cause_first(self) -> None:
        formatter = CompactExceptionFormatter()
        try:
            try:
                raise KeyError("path")
            except KeyError as inner:
                raise RuntimeError("upsert failed") from inner
        except RuntimeError:
            text = formatter.formatException(sys.exc_info())

        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == ["╰─► KeyError: 'path'", "╰─► RuntimeError: upsert failed"]

    def test_no_exception(self) -> None:
        assert CompactExceptionFormatter().formatException((None, None, None)) == ""


class TestLogOperation:
    """started / completed / failed lines with timing."""

    async def test_success_logs_completed_with_result_fields(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        logger = logging.getLogger("mediacatalog.test.ops")
        caplog.set_level(logging.INFO, logger="mediacatalog.test.ops")

        async with log_operation(logger, "scan.expunge", scan_id="s1") as result:
            result["deleted"] = 3

        messages = [r.getMessage() for r in caplog.records]
        assert messages == ["scan.expunge.started", "scan.expunge.completed"]
        completed = caplog.records[-1]
        assert completed.deleted == 3  # type: ignore[attr-defined]
        assert completed.scan_id == "s1"  # type: ignore[attr-defined]
        assert completed.duration_ms >= 0  # type: ignore[attr-defined]

    async def test_failure_logs_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("mediacatalog.test.ops")
        caplog.set_level(logging.INFO, logger="mediacatalog.test.ops")

        with pytest.raises(ValueError, match="boom"):
            async with log_operation(logger, "scan.complete"):
                raise ValueError("boom")

        failed = caplog.records[-1]
        assert failed.getMessage() == "scan.complete.failed"
        assert failed.levelno == logging.ERROR
        assert failed.error_type == "ValueError"  # type: ignore[attr-defined]
        assert failed.exc_info is not None

    def test_slow_operation_only_above_threshold(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("mediacatalog.test.slow")
        caplog.set_level(logging.WARNING, logger="mediacatalog.test.slow")

        log_slow_operation(logger, "chunk", 50, threshold_ms=100)
        log_slow_operation(logger, "chunk", 150, threshold_ms=100)

        assert [r.getMessage() for r in caplog.records] == ["operation.slow"]
